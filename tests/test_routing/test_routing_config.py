"""
Tests for the YAML routing configuration manager.
"""

from pathlib import Path

import pytest
from watchdog.events import FileModifiedEvent

from supportdesk.routing.domain import RoutingConfig
from supportdesk.routing.infrastructure import ConfigFileHandler, RoutingConfigManager

REPO_CONFIG = Path(__file__).resolve().parents[2] / "routing_config.yaml"

CUSTOM_YAML = """
weights:
  capacity: 0.5
  skills: 0.5
performance_score: 0.8
intent_skills:
  - pattern: "warranty"
    skills: [hardware]
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "routing_config.yaml"
    path.write_text(CUSTOM_YAML)
    return path


class TestRoutingConfigManager:
    def test_load(self, config_file):
        manager = RoutingConfigManager()
        config = manager.load(config_file)

        assert config.weights.capacity == 0.5
        assert config.weights.language == 0.0
        assert config.performance_score == 0.8
        assert config.intent_skills[0].skills == ["hardware"]
        assert manager.get_config() is config

    def test_shipped_file_matches_defaults(self):
        assert RoutingConfigManager().load(REPO_CONFIG) == RoutingConfig()

    def test_missing_file_uses_defaults(self, tmp_path):
        manager = RoutingConfigManager()
        assert manager.load(tmp_path / "absent.yaml") == RoutingConfig()

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert RoutingConfigManager().load(path) == RoutingConfig()

    def test_reload_picks_up_changes(self, config_file):
        manager = RoutingConfigManager()
        manager.load(config_file)
        config_file.write_text("performance_score: 0.2\n")

        assert manager.reload() is True
        assert manager.config.performance_score == 0.2

    @pytest.mark.parametrize("content", [
        "weights: [unclosed",
        "weights:\n  capacity: -1\n",
        "intent_skills:\n  - pattern: 'billing('\n",
    ])
    def test_bad_reload_keeps_previous(self, config_file, content):
        manager = RoutingConfigManager()
        previous = manager.load(config_file)
        config_file.write_text(content)

        assert manager.reload() is False
        assert manager.config is previous

    def test_reload_before_load(self):
        assert RoutingConfigManager().reload() is False

    def test_unloaded_config_raises(self):
        with pytest.raises(RuntimeError):
            RoutingConfigManager().get_config()

    def test_watch_requires_load(self):
        with pytest.raises(RuntimeError):
            RoutingConfigManager().start_watching()

    def test_watch_skipped_without_file(self, tmp_path):
        manager = RoutingConfigManager()
        manager.load(tmp_path / "absent.yaml")
        manager.start_watching()
        manager.stop_watching()


class TestConfigFileHandler:
    def test_modification_triggers_reload(self, config_file):
        manager = RoutingConfigManager()
        manager.load(config_file)
        config_file.write_text("performance_score: 0.3\n")

        ConfigFileHandler(manager, config_file).on_modified(FileModifiedEvent(str(config_file)))

        assert manager.config.performance_score == 0.3

    def test_other_files_are_ignored(self, config_file, tmp_path):
        manager = RoutingConfigManager()
        manager.load(config_file)
        config_file.write_text("performance_score: 0.3\n")

        ConfigFileHandler(manager, config_file).on_modified(FileModifiedEvent(str(tmp_path / "other.yaml")))

        assert manager.config.performance_score == 0.8
