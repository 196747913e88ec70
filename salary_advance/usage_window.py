"""
Per-policy usage counting over a calendar year.

The index never fetches history itself; the caller passes in whatever the
request store returned for the requester.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from salary_advance.models import (
    ACTIVE_STATUSES,
    NON_CONSUMING_STATUSES,
    BenefitRequest,
)
from salary_advance.policy_catalog import PolicyCatalog


@dataclass(frozen=True)
class UsageSnapshot:
    requester_id: int
    calendar_year: int
    used_counts: dict[str, int] = field(default_factory=dict)
    has_active_loan: bool = False
    active_request_ids: tuple[int, ...] = ()

    def used_count(self, policy_type: str) -> int:
        return self.used_counts.get(policy_type, 0)


class UsageWindowIndex:
    """
    Buckets a requester's history per policy for one calendar year.

    Quota consumption:
    - pending, approved and closed requests count against the quota
    - rejected and cancelled requests do not
    - only requests created inside the calendar year count

    The active-loan flag ignores the year: an approved advance from last
    December still blocks a new request in January until it is closed.
    """

    def __init__(self, catalog: PolicyCatalog):
        self.catalog = catalog

    def build(
        self, requester_id: int, calendar_year: int, history: Iterable[BenefitRequest]
    ) -> UsageSnapshot:
        # Seed every catalog policy so callers always see a count
        used = Counter({policy.policy_type: 0 for policy in self.catalog.all()})
        active_ids = []

        for request in history:
            if request.requester_id != requester_id:
                continue

            if request.status in ACTIVE_STATUSES:
                active_ids.append(request.id)

            if request.status in NON_CONSUMING_STATUSES:
                continue
            if request.created_year != calendar_year:
                continue

            # Counted under the type stored on the request, even if the
            # catalog has since dropped or redefined it
            used[request.policy_type] += 1

        return UsageSnapshot(
            requester_id=requester_id,
            calendar_year=calendar_year,
            used_counts=dict(used),
            has_active_loan=bool(active_ids),
            active_request_ids=tuple(active_ids),
        )
