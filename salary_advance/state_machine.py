"""
Lifecycle state machine for benefit requests.

    pending  -> approved   (manager, admin)
    pending  -> rejected   (manager, admin)
    approved -> closed     (manager, admin, system)
    pending  -> cancelled  (owning requester, admin)
    approved -> cancelled  (owning requester, admin)

rejected, closed and cancelled are terminal. What triggers approved -> closed
(repayment completion) lives outside this module; only the guard is here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime

from salary_advance.errors import IllegalTransition, NotPermitted
from salary_advance.models import (
    TERMINAL_STATUSES,
    BenefitRequest,
    RequestStatus,
    Role,
    Transition,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionRule:
    allowed_roles: frozenset[Role]
    default_note: str | None = None
    records_note: bool = False
    stamps_decision: bool = False
    owner_may_trigger: bool = False


class RequestStateMachine:
    """Plans legal transitions; persisting them is the store's job."""

    def __init__(self, default_approve_note: str = "Approved", default_reject_note: str = "Rejected"):
        managers = frozenset({Role.MANAGER, Role.ADMIN})
        self.rules: dict[tuple[RequestStatus, RequestStatus], TransitionRule] = {
            (RequestStatus.PENDING, RequestStatus.APPROVED): TransitionRule(
                managers, default_note=default_approve_note, records_note=True, stamps_decision=True
            ),
            (RequestStatus.PENDING, RequestStatus.REJECTED): TransitionRule(
                managers, default_note=default_reject_note, records_note=True, stamps_decision=True
            ),
            (RequestStatus.APPROVED, RequestStatus.CLOSED): TransitionRule(
                managers | {Role.SYSTEM}
            ),
            (RequestStatus.PENDING, RequestStatus.CANCELLED): TransitionRule(
                frozenset({Role.ADMIN}), stamps_decision=True, owner_may_trigger=True
            ),
            (RequestStatus.APPROVED, RequestStatus.CANCELLED): TransitionRule(
                frozenset({Role.ADMIN}), stamps_decision=True, owner_may_trigger=True
            ),
        }

    def can_transition(self, current: RequestStatus, target: RequestStatus) -> bool:
        if current in TERMINAL_STATUSES:
            return False
        return (current, target) in self.rules

    def allowed_targets(self, current: RequestStatus) -> list[RequestStatus]:
        return [
            target
            for (source, target) in self.rules
            if source == current and current not in TERMINAL_STATUSES
        ]

    def plan(
        self,
        request: BenefitRequest,
        target: RequestStatus,
        actor_id: int | None,
        actor_role: Role,
        note: str | None = None,
        start_month: date | None = None,
        now: datetime | None = None,
    ) -> Transition | IllegalTransition:
        """
        Build the transition that moves request to target.

        Returns IllegalTransition when the move is not in the table.
        Raises NotPermitted when the move is legal but this actor may not make it.
        """
        current = RequestStatus(request.status)
        target = RequestStatus(target)

        if not self.can_transition(current, target):
            logger.warning(
                f"Illegal transition on request {request.id}: "
                f"{current.value} -> {target.value}"
            )
            return IllegalTransition(current=current.value, attempted=target.value)

        rule = self.rules[(current, target)]
        is_owner = actor_id is not None and actor_id == request.requester_id
        if actor_role not in rule.allowed_roles and not (rule.owner_may_trigger and is_owner):
            raise NotPermitted(
                f"Role {actor_role.value} may not move request {request.id} to {target.value}"
            )

        # Only decisions write decision_note; cancel and close keep the stored one
        decision_note = None
        if rule.records_note:
            decision_note = (note or "").strip() or rule.default_note
        decided_at = None
        if rule.stamps_decision and request.decided_at is None:
            decided_at = now or datetime.now()

        return Transition(
            request_id=request.id,
            from_status=current,
            to_status=target,
            actor_id=actor_id,
            decision_note=decision_note,
            decided_at=decided_at,
            start_month=start_month if target == RequestStatus.APPROVED else None,
        )

    def apply(self, request: BenefitRequest, *args, **kwargs) -> BenefitRequest | IllegalTransition:
        """Plan and apply in memory, returning the updated record."""
        planned = self.plan(request, *args, **kwargs)
        if isinstance(planned, IllegalTransition):
            return planned
        return planned.apply(request)
