"""
Filtering and KPI aggregation over request lists.

Everything here is local, order-preserving filtering over rows the store
already returned. Callers sort separately (newest_first) before rendering.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

from dateutil.relativedelta import relativedelta

from salary_advance.models import (
    BenefitRequest,
    QueryFilters,
    RequestStatus,
    StatusTotals,
    local_naive,
)

MONTH_PATTERN = re.compile(r"^(\d{4})-(\d{2})$")
NUMERIC_PATTERN = re.compile(r"^[0-9]+(\.[0-9]+)?$")


class QueryView(str, Enum):
    """Who is looking at the rows decides which fields free text searches."""

    MANAGER = "manager"
    REQUESTER = "requester"


def month_range(month: str) -> tuple[datetime, datetime] | None:
    """Half-open [first-of-month, first-of-next-month) for a YYYY-MM value."""
    match = MONTH_PATTERN.match(month or "")
    if not match:
        return None

    year, month_number = int(match.group(1)), int(match.group(2))
    if not year or not 1 <= month_number <= 12:
        return None

    start = datetime(year, month_number, 1)
    return start, start + relativedelta(months=1)


def in_month(moment: datetime, month: str | None) -> bool:
    """True when moment falls inside month; an empty or malformed month matches everything."""
    if not month:
        return True
    bounds = month_range(month)
    if bounds is None:
        return True
    start, end = bounds
    return start <= local_naive(moment) < end


def looks_numeric(text: str | None) -> bool:
    return bool(text) and bool(NUMERIC_PATTERN.match(text.strip()))


def amount_text(amount: Decimal) -> list[str]:
    """String forms an amount is searchable by: as stored and without trailing zeros."""
    forms = [str(amount)]
    if amount == amount.to_integral_value():
        forms.append(str(int(amount)))
    else:
        forms.append(format(amount.normalize(), "f"))
    return forms


def newest_first(requests: Iterable[BenefitRequest]) -> list[BenefitRequest]:
    return sorted(requests, key=lambda r: local_naive(r.created_at), reverse=True)


@dataclass
class KpiReport:
    count_all: int = 0
    sum_all: Decimal = field(default_factory=lambda: Decimal("0"))
    by_status: dict[str, StatusTotals] = field(default_factory=dict)
    approval_rate: float = 0.0

    @property
    def approval_rate_percent(self) -> int:
        return round(self.approval_rate * 100)

    def count(self, status: RequestStatus) -> int:
        return self.by_status[status.value].count

    def total(self, status: RequestStatus) -> Decimal:
        return self.by_status[status.value].amount

    def to_dict(self) -> dict:
        result = {
            "count_all": self.count_all,
            "sum_all": self.sum_all,
            "approval_rate": self.approval_rate,
            "approval_rate_percent": self.approval_rate_percent,
        }
        for status, totals in self.by_status.items():
            result[f"count_{status}"] = totals.count
            result[f"sum_{status}"] = totals.amount
        return result


class ApprovalQueryEngine:
    """
    Filters and aggregates benefit requests for dashboards.

    Free text is matched case-insensitively:
    - manager view: request id, requester name, amount
    - requester view: request id, amount, request note, decision note
    """

    def __init__(self, view: QueryView = QueryView.MANAGER):
        self.view = view

    def filter(
        self, requests: Iterable[BenefitRequest], filters: QueryFilters | None = None
    ) -> list[BenefitRequest]:
        filters = filters or QueryFilters()
        status = RequestStatus(filters.status) if filters.status else None
        text = (filters.text or "").strip().lower()

        rows = []
        for request in requests:
            if status is not None and request.status != status:
                continue
            if filters.requester_id is not None and request.requester_id != filters.requester_id:
                continue
            if not in_month(request.created_at, filters.month):
                continue
            if text and not self._matches_text(request, text):
                continue
            rows.append(request)
        return rows

    def kpi(
        self,
        requests: Iterable[BenefitRequest],
        month: str | None = None,
        requester_id: int | None = None,
    ) -> KpiReport:
        """
        Aggregate over month + requester scope.

        Status is not a parameter here: KPIs always cover
        every status inside the scope.
        """
        scope = self.filter(requests, QueryFilters(month=month, requester_id=requester_id))

        report = KpiReport(by_status={status.value: StatusTotals() for status in RequestStatus})
        for request in scope:
            totals = report.by_status[RequestStatus(request.status).value]
            totals.count += 1
            totals.amount += request.amount
            report.count_all += 1
            report.sum_all += request.amount

        if report.count_all:
            report.approval_rate = report.count(RequestStatus.APPROVED) / report.count_all
        return report

    def requesters(self, requests: Iterable[BenefitRequest]) -> list[dict]:
        """Unique requesters in the rows, sorted by display name."""
        names: dict[int, str] = {}
        for request in requests:
            names[request.requester_id] = request.requester_name or "-"
        return [
            {"id": requester_id, "name": name}
            for requester_id, name in sorted(names.items(), key=lambda item: item[1].lower())
        ]

    def _matches_text(self, request: BenefitRequest, text: str) -> bool:
        haystack: Sequence[str]
        if self.view == QueryView.MANAGER:
            haystack = [str(request.id), request.requester_name or "", *amount_text(request.amount)]
        else:
            haystack = [
                str(request.id),
                *amount_text(request.amount),
                request.note or "",
                request.decision_note or "",
            ]
        return any(text in value.lower() for value in haystack)
