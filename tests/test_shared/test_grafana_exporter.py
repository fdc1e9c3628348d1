"""
Grafana OTLP exporter tests.
"""

import json

import httpx
import pytest

from supportdesk.config import settings
from supportdesk.shared.infrastructure.grafana import Gauge, GrafanaOTLPExporter


def _exporter(handler) -> GrafanaOTLPExporter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GrafanaOTLPExporter(
        host="https://otlp.grafana.test/",
        api_key="glc_key",
        instance_id="12345",
        http_client=client,
    )


class TestGrafanaOTLPExporter:
    def test_disabled_without_credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "grafana_host", None)
        monkeypatch.setattr(settings, "grafana_api_key", None)
        monkeypatch.setattr(settings, "grafana_instance_id", None)

        assert GrafanaOTLPExporter().is_enabled() is False

    @pytest.mark.asyncio
    async def test_disabled_export_is_noop(self, monkeypatch):
        monkeypatch.setattr(settings, "grafana_host", None)

        exporter = GrafanaOTLPExporter(api_key="glc_key", instance_id="12345")

        assert await exporter.export_breach_scan_metrics(1, 10.0) is False

    @pytest.mark.asyncio
    async def test_breach_scan_payload(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers["Authorization"]
            captured["body"] = json.loads(request.content)
            return httpx.Response(200)

        exported = await _exporter(handler).export_breach_scan_metrics(2, 41.6)

        assert exported is True
        assert captured["url"] == "https://otlp.grafana.test/otlp/v1/metrics"
        assert captured["auth"].startswith("Basic ")
        metrics = captured["body"]["resourceMetrics"][0]["scopeMetrics"][0]["metrics"]
        values = {m["name"]: m["gauge"]["dataPoints"][0]["asInt"] for m in metrics}
        assert values == {"sla_breach_scan_transitioned": 2, "sla_breach_scan_latency_ms": 42}

    @pytest.mark.asyncio
    async def test_rejected_export_returns_false(self):
        exporter = _exporter(lambda request: httpx.Response(401, text="unauthorized"))

        assert await exporter.export([Gauge("g", 1, "1", "gauge")], {}) is False

    @pytest.mark.asyncio
    async def test_transport_error_returns_false(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        assert await _exporter(handler).export_llm_metrics("glm-4", 10, 5, 120) is False
