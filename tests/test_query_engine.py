"""
Tests for dashboard filtering and KPI aggregation.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from salary_advance.models import QueryFilters, RequestStatus
from salary_advance.query_engine import (
    ApprovalQueryEngine,
    QueryView,
    amount_text,
    in_month,
    month_range,
    newest_first,
)


@pytest.fixture
def rows(make_request):
    return [
        make_request(id=1, requester_id=1, requester_name="Omar Khaled", status=RequestStatus.APPROVED,
                     amount="1500.00", created_at=datetime(2026, 3, 2, 9, 0)),
        make_request(id=2, requester_id=2, requester_name="Sara Nabil", status=RequestStatus.REJECTED,
                     amount="800.50", created_at=datetime(2026, 3, 31, 23, 59, 59, 999999)),
        make_request(id=3, requester_id=1, requester_name="Omar Khaled", status=RequestStatus.PENDING,
                     amount="2000.00", created_at=datetime(2026, 4, 1, 0, 0), note="car repair"),
        make_request(id=4, requester_id=2, requester_name="Sara Nabil", status=RequestStatus.APPROVED,
                     amount="300.00", created_at=datetime(2026, 3, 10, 12, 0),
                     decision_note="fine by HR"),
    ]


class TestMonthWindow:
    def test_half_open_range(self):
        assert month_range("2026-12") == (datetime(2026, 12, 1), datetime(2027, 1, 1))

    def test_last_instant_belongs_to_month(self):
        assert in_month(datetime(2026, 3, 31, 23, 59, 59, 999999), "2026-03") is True
        assert in_month(datetime(2026, 4, 1, 0, 0), "2026-03") is False

    @pytest.mark.parametrize("month", ["", None, "2026-13", "March", "2026-3"])
    def test_empty_or_malformed_month_matches_all(self, month):
        assert in_month(datetime(2020, 1, 1), month) is True


class TestFilter:
    def test_month_filter(self, rows):
        result = ApprovalQueryEngine().filter(rows, QueryFilters(month="2026-03"))
        assert [r.id for r in result] == [1, 2, 4]

    def test_filters_combine(self, rows):
        filters = QueryFilters(month="2026-03", status=RequestStatus.APPROVED, requester_id=2)
        assert [r.id for r in ApprovalQueryEngine().filter(rows, filters)] == [4]

    def test_manager_text_matches_name(self, rows):
        result = ApprovalQueryEngine().filter(rows, QueryFilters(text="sara"))
        assert [r.id for r in result] == [2, 4]

    def test_manager_text_matches_amount(self, rows):
        result = ApprovalQueryEngine().filter(rows, QueryFilters(text="1500"))
        assert [r.id for r in result] == [1]

    def test_manager_text_ignores_notes(self, rows):
        assert ApprovalQueryEngine().filter(rows, QueryFilters(text="car repair")) == []

    def test_requester_text_matches_notes(self, rows):
        engine = ApprovalQueryEngine(QueryView.REQUESTER)

        assert [r.id for r in engine.filter(rows, QueryFilters(text="CAR"))] == [3]
        assert [r.id for r in engine.filter(rows, QueryFilters(text="hr"))] == [4]

    def test_requester_text_ignores_name(self, rows):
        engine = ApprovalQueryEngine(QueryView.REQUESTER)
        assert engine.filter(rows, QueryFilters(text="omar")) == []

    def test_filter_preserves_order(self, rows):
        reversed_rows = list(reversed(rows))
        assert ApprovalQueryEngine().filter(reversed_rows) == reversed_rows


class TestKpi:
    def test_march_totals(self, rows):
        report = ApprovalQueryEngine().kpi(rows, month="2026-03")

        assert report.count_all == 3
        assert report.sum_all == Decimal("2600.50")
        assert report.count(RequestStatus.APPROVED) == 2
        assert report.total(RequestStatus.APPROVED) == Decimal("1800.00")
        assert report.count(RequestStatus.REJECTED) == 1
        assert report.count(RequestStatus.PENDING) == 0
        assert report.approval_rate == pytest.approx(2 / 3)
        assert report.approval_rate_percent == 67

    def test_kpi_scoped_to_requester(self, rows):
        report = ApprovalQueryEngine().kpi(rows, requester_id=1)

        assert report.count_all == 2
        assert report.approval_rate == pytest.approx(0.5)

    def test_empty_scope_has_zero_rate(self, rows):
        report = ApprovalQueryEngine().kpi(rows, month="2025-01")

        assert report.count_all == 0
        assert report.sum_all == Decimal("0")
        assert report.approval_rate == 0.0

    def test_to_dict_has_per_status_keys(self, rows):
        data = ApprovalQueryEngine().kpi(rows).to_dict()

        assert data["count_all"] == 4
        assert data["count_pending"] == 1
        assert data["sum_rejected"] == Decimal("800.50")
        assert "count_cancelled" in data


class TestHelpers:
    def test_requesters_sorted_by_name(self, rows):
        assert ApprovalQueryEngine().requesters(rows) == [
            {"id": 1, "name": "Omar Khaled"},
            {"id": 2, "name": "Sara Nabil"},
        ]

    def test_newest_first(self, rows):
        assert [r.id for r in newest_first(rows)] == [3, 2, 4, 1]

    def test_amount_text_forms(self):
        assert amount_text(Decimal("1500.00")) == ["1500.00", "1500"]
        assert amount_text(Decimal("800.50")) == ["800.50", "800.5"]
