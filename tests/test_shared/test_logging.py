"""
Structured logging tests.
"""

import json
import logging

from supportdesk.shared.infrastructure.logging import (
    REDACTED,
    ContextLoggerAdapter,
    CustomJsonFormatter,
    get_context_logger,
    log_latency,
)


def _format(**extra) -> dict:
    formatter = CustomJsonFormatter("%(name)s %(levelname)s %(message)s")
    formatter.environment = "testing"
    record = logging.LogRecord("supportdesk.test", logging.INFO, __file__, 1, "SLA breached", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


class TestCustomJsonFormatter:
    def test_adds_service_context(self):
        data = _format(ticket_id="T-1")

        assert data["message"] == "SLA breached"
        assert data["ticket_id"] == "T-1"
        assert data["environment"] == "testing"
        assert data["service"] == "supportdesk-sla-engine"
        assert "timestamp" in data

    def test_redacts_secrets_but_not_token_counts(self):
        data = _format(
            notification_webhook_url="https://hooks.test/abc",
            zai_api_key="sk-1",
            access_token="t-1",
            prompt_tokens=120,
        )

        assert data["notification_webhook_url"] == REDACTED
        assert data["zai_api_key"] == REDACTED
        assert data["access_token"] == REDACTED
        assert data["prompt_tokens"] == 120


class TestContextLogger:
    def test_binds_correlation_and_tenant(self, caplog):
        log = get_context_logger("supportdesk.test.context", "corr-1", tenant_id="acme")
        assert isinstance(log, ContextLoggerAdapter)

        with caplog.at_level(logging.INFO, logger="supportdesk.test.context"):
            log.info("Ticket event handled", extra={"ticket_id": "T-1"})

        record = caplog.records[-1]
        assert record.correlation_id == "corr-1"
        assert record.tenant_id == "acme"
        assert record.ticket_id == "T-1"

    def test_plain_logger_without_context(self):
        assert isinstance(get_context_logger("supportdesk.test.plain", None, tenant_id=None), logging.Logger)


class TestLogLatency:
    def test_completed(self, caplog):
        logger = logging.getLogger("supportdesk.test.latency")
        with caplog.at_level(logging.INFO, logger="supportdesk.test.latency"):
            with log_latency(logger, "sla_breach_scan", tenants=2):
                pass

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.getMessage() == "sla_breach_scan completed"
        assert record.tenants == 2

    def test_slow_operation_warns(self, caplog):
        logger = logging.getLogger("supportdesk.test.slow")
        with caplog.at_level(logging.INFO, logger="supportdesk.test.slow"):
            with log_latency(logger, "sla_breach_scan", slow_ms=-1):
                pass

        assert caplog.records[-1].levelno == logging.WARNING
        assert caplog.records[-1].getMessage() == "sla_breach_scan slow"
