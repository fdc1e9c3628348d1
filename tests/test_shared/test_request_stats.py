"""
Request statistics and exception status mapping tests.
"""

import pytest

from supportdesk.core import (
    ApplicationException,
    ConcurrencyConflictException,
    LLMException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from supportdesk.shared.api import RequestStats


class TestRequestStats:
    def test_groups_by_first_path_segment(self):
        stats = RequestStats()
        stats.record("/sla/policies", 201, 0.010)
        stats.record("/sla/breaches/check", 500, 0.030)
        stats.record("/routing/suggest", 200, 0.020)
        stats.record("/", 200, 0.0)

        snapshot = stats.snapshot()

        assert snapshot["total"] == 4
        assert snapshot["server_errors"] == 1
        assert snapshot["average_response_ms"] == pytest.approx(15.0)
        assert snapshot["by_module"] == {"sla": 2, "routing": 1, "root": 1}

    def test_empty(self):
        assert RequestStats().snapshot()["average_response_ms"] == 0.0


class TestExceptionStatus:
    @pytest.mark.parametrize("exc,status_code", [
        (ResourceNotFoundException("SLA policy", "p-1"), 404),
        (ValidationException("bad range"), 400),
        (ConcurrencyConflictException("SLA instance", "i-1", 3), 409),
        (LLMException("timeout"), 502),
        (RepositoryException("database unavailable"), 500),
        (ApplicationException("boom"), 500),
    ])
    def test_status_codes(self, exc, status_code):
        assert exc.status_code == status_code

    def test_not_found_message(self):
        assert ResourceNotFoundException("SLA policy", "p-1").message == "SLA policy 'p-1' not found"
        assert ResourceNotFoundException("Ticket").message == "Ticket not found"

    def test_conflict_details(self):
        exc = ConcurrencyConflictException("SLA instance", "i-1", 3)
        assert exc.details == {"resource_id": "i-1", "expected_version": 3}
        assert isinstance(exc, RepositoryException)

    def test_core_exports_resolve(self):
        import supportdesk.core as core

        missing = [name for name in core.__all__ if not hasattr(core, name)]
        assert missing == []
