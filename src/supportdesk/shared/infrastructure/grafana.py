"""
Grafana OTLP Metrics Exporter
==============================

Pushes operational gauges to Grafana Cloud via OTLP.

Metrics exported:
- sla_breach_scan_transitioned: Instances moved to BREACHED in one sweep
- sla_breach_scan_latency_ms: Duration of one sweep
- llm_latency_ms / llm_tokens_total: Content analysis calls

Export is fire-and-forget: failures are logged and reported as False.
"""

import base64
import time
from typing import Dict, NamedTuple, Optional, Sequence

import httpx

from supportdesk.config import settings
from supportdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

OTLP_METRICS_PATH = "/otlp/v1/metrics"


class Gauge(NamedTuple):
    name: str
    value: float
    unit: str
    description: str


def _attribute(key: str, value) -> dict:
    return {"key": key, "value": {"stringValue": str(value)}}


class GrafanaOTLPExporter:
    """
    Gauge export to the Grafana Cloud OTLP HTTP gateway.

    Disabled unless host, API key and instance id are all configured.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        host = host or settings.grafana_host
        api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._enabled = bool(host and api_key and self._instance_id)
        self._http_client = http_client

        if not self._enabled:
            logger.debug("Grafana OTLP exporter not configured, metrics will not be exported")
            return

        self._url = host if OTLP_METRICS_PATH in host else host.rstrip("/") + OTLP_METRICS_PATH
        credentials = base64.b64encode(f"{self._instance_id}:{api_key}".encode()).decode()
        self._headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {credentials}",
            "X-Grafana-Org-Id": str(self._instance_id),
        }
        logger.info("Grafana OTLP exporter initialized", extra={"url": self._url})

    def is_enabled(self) -> bool:
        return self._enabled

    @staticmethod
    def build_payload(gauges: Sequence[Gauge], attributes: Dict[str, str]) -> dict:
        """OTLP JSON body with one data point per gauge, all sharing the attributes."""
        timestamp_ns = int(time.time() * 1_000_000_000)
        point_attributes = [_attribute("service", settings.app_name)]
        point_attributes += [_attribute(key, value) for key, value in attributes.items()]

        return {
            "resourceMetrics": [{
                "resource": {
                    "attributes": [
                        _attribute("service.name", settings.app_name),
                        _attribute("service.version", settings.app_version),
                        _attribute("deployment.environment", settings.environment),
                    ]
                },
                "scopeMetrics": [{
                    "metrics": [
                        {
                            "name": gauge.name,
                            "unit": gauge.unit,
                            "description": gauge.description,
                            "gauge": {"dataPoints": [{
                                "asInt": int(round(gauge.value)),
                                "timeUnixNano": timestamp_ns,
                                "attributes": point_attributes,
                            }]},
                        }
                        for gauge in gauges
                    ]
                }],
            }]
        }

    async def _post(self, payload: dict) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.post(self._url, headers=self._headers, json=payload)
        async with httpx.AsyncClient(timeout=10.0) as client:
            return await client.post(self._url, headers=self._headers, json=payload)

    async def export(self, gauges: Sequence[Gauge], attributes: Dict[str, str]) -> bool:
        if not self._enabled:
            return False

        try:
            response = await self._post(self.build_payload(gauges, attributes))
        except httpx.HTTPError as e:
            logger.error("Error exporting metrics to Grafana", extra={"error": str(e)})
            return False

        if response.status_code in (200, 202):
            return True
        logger.warning(
            "Failed to export metrics to Grafana",
            extra={"status_code": response.status_code, "response": response.text[:500]}
        )
        return False

    async def export_breach_scan_metrics(self, transitioned: int, latency_ms: float) -> bool:
        """Outcome of one breach sweep."""
        return await self.export(
            [
                Gauge("sla_breach_scan_transitioned", transitioned, "1", "Instances breached in one sweep"),
                Gauge("sla_breach_scan_latency_ms", latency_ms, "ms", "Breach sweep duration"),
            ],
            {"operation": "breach_scan"},
        )

    async def export_llm_metrics(
        self,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int,
        operation: str = "chat_completion",
    ) -> bool:
        """Token usage and latency of one LLM call."""
        return await self.export(
            [
                Gauge("llm_tokens_total", prompt_tokens + completion_tokens, "1", "Total tokens used in LLM requests"),
                Gauge("llm_latency_ms", latency_ms, "ms", "LLM request latency in milliseconds"),
            ],
            {"model": model, "operation": operation},
        )


_grafana_exporter: Optional[GrafanaOTLPExporter] = None


def get_grafana_exporter() -> GrafanaOTLPExporter:
    global _grafana_exporter
    if _grafana_exporter is None:
        _grafana_exporter = GrafanaOTLPExporter()
    return _grafana_exporter
