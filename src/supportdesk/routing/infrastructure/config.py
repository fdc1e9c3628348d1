"""
Routing Configuration Manager
==============================

YAML-backed routing configuration with hot reload via watchdog.
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from supportdesk.config import settings
from supportdesk.routing.application import IRoutingConfigProvider
from supportdesk.routing.domain import RoutingConfig
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for routing config file changes."""

    def __init__(self, config_manager: "RoutingConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("Routing config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()


class RoutingConfigManager(IRoutingConfigProvider):
    """
    Thread-safe routing configuration with hot-reload support.

    A reload that fails to parse keeps the previous configuration.
    """

    def __init__(self):
        self._config: Optional[RoutingConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> RoutingConfig:
        """Initial configuration load."""
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> RoutingConfig:
        if not path.exists():
            logger.warning("Routing config file not found, using defaults", extra={"path": str(path)})
            return RoutingConfig()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return RoutingConfig.model_validate(data)

    def reload(self) -> bool:
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            logger.error("Failed to reload routing config", extra={"error": str(e)})
            return False

        with self._lock:
            self._config = new_config
        logger.info("Routing configuration reloaded")
        return True

    def start_watching(self) -> None:
        """
        Start watching the configuration file for changes.

        Skips watching when the file does not exist or the platform has
        no file notification support.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info("Routing config file doesn't exist, skipping file watch", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            self._observer.schedule(
                ConfigFileHandler(self, self._path),
                str(self._path.resolve().parent),
                recursive=False
            )
            self._observer.start()
            logger.info("Started watching routing config", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static routing config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Safe to call even if not watching."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> RoutingConfig:
        with self._lock:
            if self._config is None:
                raise RuntimeError("Routing configuration not loaded")
            return self._config

    def get_config(self) -> RoutingConfig:
        return self.config


_manager: Optional[RoutingConfigManager] = None


def get_routing_config_manager() -> RoutingConfigManager:
    """Process-wide manager, loaded from settings.routing_config_path on first use."""
    global _manager
    if _manager is None:
        manager = RoutingConfigManager()
        manager.load(settings.routing_config_path)
        _manager = manager
    return _manager
