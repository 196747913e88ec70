"""
Domain records for benefit requests.

Records are plain dataclasses. BenefitRequest is frozen: the state machine
hands back a replaced copy instead of mutating in place, so a transition
either produces a whole new record or nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class RequestStatus(str, Enum):
    """Lifecycle states of a benefit request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CLOSED = "closed"
    CANCELLED = "cancelled"


# Pending and approved requests are obligations that block new submissions
ACTIVE_STATUSES = frozenset({RequestStatus.PENDING, RequestStatus.APPROVED})

# Rejected and cancelled requests never consumed a quota slot
NON_CONSUMING_STATUSES = frozenset({RequestStatus.REJECTED, RequestStatus.CANCELLED})

TERMINAL_STATUSES = frozenset(
    {RequestStatus.REJECTED, RequestStatus.CLOSED, RequestStatus.CANCELLED}
)


def local_naive(moment: datetime) -> datetime:
    """Express a timestamp in local calendar time without tzinfo."""
    if moment.tzinfo is not None:
        return moment.astimezone().replace(tzinfo=None)
    return moment


class Role(str, Enum):
    """Roles supplied by the identity context."""

    REQUESTER = "requester"
    MANAGER = "manager"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True)
class PolicyDefinition:
    policy_type: str
    max_percent_of_salary: Decimal
    max_occurrences_per_year: int
    allowed_installment_counts: tuple[int, ...]
    description: str = ""

    def __post_init__(self):
        if self.max_occurrences_per_year < 1:
            raise ValueError(
                f"{self.policy_type}: max_occurrences_per_year must be >= 1"
            )
        if not self.allowed_installment_counts:
            raise ValueError(f"{self.policy_type}: allowed_installment_counts is empty")
        if any(count < 1 for count in self.allowed_installment_counts):
            raise ValueError(
                f"{self.policy_type}: installment counts must be positive integers"
            )
        if not Decimal(0) <= self.max_percent_of_salary <= Decimal(1):
            raise ValueError(f"{self.policy_type}: max_percent_of_salary must be within 0..1")

    @property
    def once_per_year(self) -> bool:
        return self.max_occurrences_per_year == 1


@dataclass(frozen=True)
class RequesterProfile:
    id: int
    base_salary: Decimal | None
    calendar_year: int
    name: str | None = None
    role: Role = Role.REQUESTER

    @property
    def salary_known(self) -> bool:
        return self.base_salary is not None and self.base_salary > 0


@dataclass(frozen=True)
class BenefitRequest:
    requester_id: int
    policy_type: str
    amount: Decimal
    installment_count: int
    created_at: datetime
    status: RequestStatus = RequestStatus.PENDING
    id: int | None = None
    note: str | None = None
    requester_name: str | None = None
    decision_note: str | None = None
    decided_by: int | None = None
    decided_at: datetime | None = None
    start_month: date | None = None
    needs_manual_review: bool = False

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def created_year(self) -> int:
        """Calendar year of creation, in local time like month windows."""
        return local_naive(self.created_at).year


@dataclass(frozen=True)
class Submission:
    """What a requester asks for, before validation."""

    requester_id: int
    policy_type: str
    amount: Decimal
    installment_count: int
    note: str | None = None
    requester_name: str | None = None


@dataclass(frozen=True)
class Transition:
    """A validated status change, ready to be persisted atomically."""

    request_id: int
    from_status: RequestStatus
    to_status: RequestStatus
    actor_id: int | None
    decision_note: str | None = None
    decided_at: datetime | None = None
    start_month: date | None = None

    def apply(self, request: BenefitRequest) -> BenefitRequest:
        changes = {"status": self.to_status}
        if self.decision_note is not None:
            changes["decision_note"] = self.decision_note
        if self.decided_at is not None:
            changes["decided_at"] = self.decided_at
            changes["decided_by"] = self.actor_id
        if self.start_month is not None:
            changes["start_month"] = self.start_month
        return replace(request, **changes)


@dataclass
class QueryFilters:
    status: RequestStatus | None = None
    requester_id: int | None = None
    month: str | None = None
    text: str | None = None


@dataclass
class StatusTotals:
    count: int = 0
    amount: Decimal = field(default_factory=lambda: Decimal("0"))
