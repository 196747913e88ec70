"""
Tests for per-policy usage counting.
"""

import time
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from salary_advance.eligibility import EligibilityEvaluator
from salary_advance.models import RequesterProfile, RequestStatus
from salary_advance.query_engine import in_month
from salary_advance.usage_window import UsageWindowIndex

ONCE = "capped-annual-once"
THRICE = "capped-periodic-thrice"


class TestUsageWindowIndex:
    """Quota consumption and the active-loan flag."""

    def test_empty_history(self, catalog):
        snapshot = UsageWindowIndex(catalog).build(1, 2026, [])

        assert snapshot.used_count(ONCE) == 0
        assert snapshot.used_count(THRICE) == 0
        assert snapshot.has_active_loan is False

    def test_rejected_and_cancelled_do_not_consume(self, catalog, make_request):
        history = [
            make_request(status=RequestStatus.REJECTED),
            make_request(status=RequestStatus.CANCELLED),
            make_request(status=RequestStatus.CLOSED, policy_type=THRICE),
        ]

        snapshot = UsageWindowIndex(catalog).build(1, 2026, history)

        assert snapshot.used_count(ONCE) == 0
        assert snapshot.used_count(THRICE) == 1

    def test_pending_approved_closed_consume(self, catalog, make_request):
        history = [
            make_request(policy_type=THRICE, status=RequestStatus.PENDING),
            make_request(policy_type=THRICE, status=RequestStatus.APPROVED),
            make_request(policy_type=THRICE, status=RequestStatus.CLOSED),
        ]

        snapshot = UsageWindowIndex(catalog).build(1, 2026, history)

        assert snapshot.used_count(THRICE) == 3

    def test_only_requests_in_calendar_year_count(self, catalog, make_request):
        history = [
            make_request(created_at=datetime(2025, 12, 31, 23, 59, 59)),
            make_request(created_at=datetime(2027, 1, 1, 0, 0)),
        ]

        snapshot = UsageWindowIndex(catalog).build(1, 2026, history)

        assert snapshot.used_count(ONCE) == 0

    def test_active_loan_ignores_year(self, catalog, make_request):
        """An approved advance from last year still blocks."""
        history = [make_request(status=RequestStatus.APPROVED, created_at=datetime(2025, 11, 3))]

        snapshot = UsageWindowIndex(catalog).build(1, 2026, history)

        assert snapshot.has_active_loan is True
        assert snapshot.used_count(ONCE) == 0
        assert snapshot.active_request_ids == (history[0].id,)

    def test_other_requesters_ignored(self, catalog, make_request):
        history = [make_request(requester_id=2, status=RequestStatus.PENDING)]

        snapshot = UsageWindowIndex(catalog).build(1, 2026, history)

        assert snapshot.has_active_loan is False
        assert snapshot.used_count(ONCE) == 0

    def test_counts_under_stored_policy_type(self, catalog, make_request):
        """A request whose policy left the catalog still counts under its own type."""
        history = [make_request(policy_type="retired-policy")]

        snapshot = UsageWindowIndex(catalog).build(1, 2026, history)

        assert snapshot.used_count("retired-policy") == 1
        assert snapshot.used_count(ONCE) == 0


@pytest.fixture
def dubai_time(monkeypatch):
    """Pin local time to UTC+4 for the duration of the test."""
    monkeypatch.setenv("TZ", "Asia/Dubai")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.mark.skipif(not hasattr(time, "tzset"), reason="needs time.tzset")
class TestLocalCalendarYear:
    """Aware timestamps are bucketed in local time, like month windows."""

    NEW_YEARS_EVE_UTC = datetime(2026, 12, 31, 22, 0, tzinfo=timezone.utc)

    def test_counts_in_local_year(self, catalog, make_request, dubai_time):
        history = [make_request(created_at=self.NEW_YEARS_EVE_UTC)]

        index = UsageWindowIndex(catalog)

        assert index.build(1, 2027, history).used_count(ONCE) == 1
        assert index.build(1, 2026, history).used_count(ONCE) == 0

    def test_quota_year_matches_report_month(self, catalog, make_request, dubai_time):
        request = make_request(created_at=self.NEW_YEARS_EVE_UTC)
        profile = RequesterProfile(id=1, base_salary=Decimal("10000.00"), calendar_year=2027)

        summary = EligibilityEvaluator(catalog).evaluate(profile, [request])

        assert in_month(request.created_at, "2027-01") is True
        assert summary[ONCE].used_count == 1
        assert summary[ONCE].blocked is True

    def test_store_year_filter_uses_local_year(self, store, make_request, dubai_time):
        store.save(make_request(created_at=self.NEW_YEARS_EVE_UTC))

        assert len(store.list_requests_for_requester(1, year=2027)) == 1
        assert store.list_requests_for_requester(1, year=2026) == []
