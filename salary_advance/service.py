"""
Benefit request operations exposed to the HTTP layer.

Each operation:
1. checks the caller's identity context
2. reads fresh snapshots from the store
3. delegates the decision to the pure engine components
4. persists the outcome through the store

All eligibility and approval decisions come from the engine components;
nothing in this module decides on its own whether a request is allowed.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from salary_advance.config import settings
from salary_advance.eligibility import EligibilityEvaluator, EligibilitySummary
from salary_advance.errors import (
    ActiveRequestConflict,
    IllegalTransition,
    NotPermitted,
    Rejected,
    RejectionReason,
    RequestNotFound,
    TransitionConflict,
    UnknownRequester,
)
from salary_advance.models import (
    BenefitRequest,
    QueryFilters,
    RequesterProfile,
    RequestStatus,
    Role,
    Submission,
)
from salary_advance.observability import trace_span
from salary_advance.policy_catalog import PolicyCatalog
from salary_advance.query_engine import (
    ApprovalQueryEngine,
    KpiReport,
    QueryView,
    looks_numeric,
    newest_first,
)
from salary_advance.request_store import RequesterDirectory, RequestStore
from salary_advance.state_machine import RequestStateMachine
from salary_advance.utils.request_context import current_requester_id, current_role
from salary_advance.validator import RequestValidator

logger = logging.getLogger(__name__)

MANAGER_ROLES = frozenset({Role.MANAGER, Role.ADMIN})


@dataclass
class Report:
    rows: list[BenefitRequest]
    kpi: KpiReport
    requesters: list[dict[str, Any]] = field(default_factory=list)


class BenefitRequestService:
    """
    Facade over the advance engine.

    The catalog is injected once and shared, read-only, by every
    evaluation. The store doubles as requester directory and salary source.
    """

    def __init__(
        self,
        catalog: PolicyCatalog,
        store: RequestStore,
        directory: RequesterDirectory | None = None,
        clock=datetime.now,
    ):
        self.catalog = catalog
        self.store = store
        self.directory = directory or store
        self.clock = clock

        self.evaluator = EligibilityEvaluator(catalog, settings.currency_precision)
        self.validator = RequestValidator()
        self.state_machine = RequestStateMachine(
            default_approve_note=settings.default_approve_note,
            default_reject_note=settings.default_reject_note,
        )
        self.manager_queries = ApprovalQueryEngine(QueryView.MANAGER)
        self.requester_queries = ApprovalQueryEngine(QueryView.REQUESTER)

    # ---- identity gates ----

    def _require_self_or_admin(self, requester_id: int) -> None:
        role = current_role()
        if role == Role.ADMIN:
            return
        if role in (Role.REQUESTER, Role.MANAGER) and current_requester_id() == requester_id:
            return
        raise NotPermitted(f"Not allowed to act for requester {requester_id}")

    def _require_manager(self) -> Role:
        role = current_role()
        if role not in MANAGER_ROLES:
            raise NotPermitted("This view is for managers and admins only")
        return role

    # ---- requester side ----

    def load_profile(self, requester_id: int, year: int | None = None) -> RequesterProfile:
        record = self.directory.get_requester(requester_id)
        if record is None:
            raise UnknownRequester(f"Requester {requester_id} not found")

        return RequesterProfile(
            id=record.id,
            base_salary=self.directory.base_salary_for(requester_id),
            calendar_year=year or self.clock().year,
            name=record.name,
            role=record.role,
        )

    def _evaluate(self, profile: RequesterProfile) -> EligibilitySummary:
        # Full history: the active-request flag is not limited to the year
        history = self.store.list_requests_for_requester(profile.id)
        return self.evaluator.evaluate(profile, history)

    def request_eligibility(self, requester_id: int, year: int | None = None) -> EligibilitySummary:
        """Eligibility summary for every policy in the catalog."""
        self._require_self_or_admin(requester_id)

        with trace_span("request_eligibility", requester=requester_id):
            profile = self.load_profile(requester_id, year)
            return self._evaluate(profile)

    def submit_request(
        self,
        requester_id: int,
        policy_type: str,
        amount: Decimal,
        installment_count: int,
        note: str | None = None,
    ) -> BenefitRequest | Rejected:
        """
        Validate and store a new advance request.

        Returns the stored pending request, or Rejected carrying the first
        failed check. Raises UnknownPolicy for a policy type the catalog does
        not define.
        """
        self._require_self_or_admin(requester_id)

        with trace_span("submit_request", requester=requester_id, policy=policy_type) as span:
            self.catalog.get(policy_type)

            profile = self.load_profile(requester_id)
            summary = self._evaluate(profile)
            submission = Submission(
                requester_id=requester_id,
                requester_name=profile.name,
                policy_type=policy_type,
                amount=amount,
                installment_count=installment_count,
                note=note,
            )

            result = self.validator.validate(submission, summary, now=self.clock())
            if isinstance(result, Rejected):
                span["outcome"] = result.reason.name.lower()
                return result

            try:
                saved = self.store.save(result.request)
            except ActiveRequestConflict as e:
                # Lost the race against a concurrent submission
                logger.warning(f"Store refused submission: {e}")
                span["outcome"] = "active_request_conflict"
                return Rejected(RejectionReason.ACTIVE_REQUEST_EXISTS)

            span["outcome"] = "accepted"
            logger.info(
                f"Request {saved.id} submitted: requester={requester_id}, "
                f"policy={policy_type}, amount={saved.amount}"
            )
            return saved

    def my_requests(self, requester_id: int, filters: QueryFilters | None = None) -> Report:
        """The requester's own requests plus KPIs for the selected month."""
        self._require_self_or_admin(requester_id)
        filters = filters or QueryFilters()

        with trace_span("my_requests", requester=requester_id):
            history = newest_first(self.store.list_requests_for_requester(requester_id))
            scoped = QueryFilters(
                status=filters.status,
                requester_id=requester_id,
                month=filters.month,
                text=filters.text,
            )
            return Report(
                rows=self.requester_queries.filter(history, scoped),
                kpi=self.requester_queries.kpi(history, month=filters.month),
            )

    def cancel(self, request_id: int) -> BenefitRequest | IllegalTransition:
        """Withdraw a pending or approved request. Any decision note already stored is kept."""
        return self._transition(request_id, RequestStatus.CANCELLED)

    # ---- manager side ----

    def decide(
        self,
        request_id: int,
        approve: bool,
        note: str | None = None,
        start_month: date | None = None,
    ) -> BenefitRequest | IllegalTransition:
        """Approve or reject a pending request."""
        self._require_manager()
        target = RequestStatus.APPROVED if approve else RequestStatus.REJECTED
        return self._transition(request_id, target, note=note, start_month=start_month)

    def close(self, request_id: int) -> BenefitRequest | IllegalTransition:
        """Mark an approved request as fully settled."""
        return self._transition(request_id, RequestStatus.CLOSED)

    def pending_requests(self) -> list[BenefitRequest]:
        self._require_manager()
        with trace_span("pending_requests"):
            return newest_first(self.store.list_requests(status=RequestStatus.PENDING))

    def report(self, filters: QueryFilters | None = None) -> Report:
        """
        Manager dashboard rows and KPIs.

        Only the requester filter is pushed to the store: KPIs must see every
        status, and numeric free text (ids, amounts) is matched locally.
        """
        self._require_manager()
        filters = filters or QueryFilters()

        with trace_span("report", month=filters.month or "all") as span:
            rows = newest_first(self.store.list_requests(requester_id=filters.requester_id))
            filtered = self.manager_queries.filter(rows, filters)
            kpi = self.manager_queries.kpi(
                rows, month=filters.month, requester_id=filters.requester_id
            )
            span["rows"] = len(filtered)
            span["numeric_search"] = looks_numeric(filters.text)

            return Report(
                rows=filtered,
                kpi=kpi,
                requesters=self.manager_queries.requesters(rows),
            )

    # ---- shared ----

    def _transition(
        self,
        request_id: int,
        target: RequestStatus,
        note: str | None = None,
        start_month: date | None = None,
    ) -> BenefitRequest | IllegalTransition:
        with trace_span("transition", request=request_id, target=target.value) as span:
            request = self.store.get_request(request_id)
            if request is None:
                raise RequestNotFound(f"Request {request_id} not found")

            role = current_role()
            if role is None:
                raise NotPermitted("No identity bound to this request")

            planned = self.state_machine.plan(
                request,
                target,
                actor_id=current_requester_id(),
                actor_role=role,
                note=note,
                start_month=start_month,
                now=self.clock(),
            )
            if isinstance(planned, IllegalTransition):
                span["outcome"] = "illegal"
                return planned

            try:
                updated = self.store.update_status(request_id, planned)
            except TransitionConflict as e:
                span["outcome"] = "conflict"
                current = RequestStatus(e.current_status)
                return IllegalTransition(current=current.value, attempted=target.value)

            span["outcome"] = updated.status.value
            return updated
