"""
Snowflake-backed request store with circuit breaker protection.

Values always travel through the Snowpark DataFrame API, so no user input is
ever spliced into SQL text; only configured identifiers (the id sequence) are.
Every Snowpark or connector failure surfaces as StoreUnavailable; there is no
silent fallback to mock data for writes or history reads.
"""

import logging
from contextlib import contextmanager
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from dateutil import parser
from snowflake.connector.errors import Error as ConnectorError
from snowflake.snowpark import Session
from snowflake.snowpark.exceptions import SnowparkClientException
from snowflake.snowpark.functions import col, lit, when_not_matched

from salary_advance.circuit_breaker import CircuitBreaker
from salary_advance.config import settings
from salary_advance.errors import (
    ActiveRequestConflict,
    RequestNotFound,
    StoreUnavailable,
    TransitionConflict,
)
from salary_advance.models import ACTIVE_STATUSES, BenefitRequest, RequestStatus, Transition
from salary_advance.request_store import (
    InMemoryRequestStore,
    RequesterDirectory,
    RequesterRecord,
    RequestStore,
    requester_from_row,
)

logger = logging.getLogger(__name__)

# Failures that mean the store is unreachable or broken, not a domain answer
STORE_ERRORS = (SnowparkClientException, ConnectorError, ConnectionError)

REQUEST_COLUMNS = [
    "id",
    "requester_id",
    "requester_name",
    "policy_type",
    "amount",
    "installment_count",
    "note",
    "status",
    "decision_note",
    "decided_by",
    "created_at",
    "decided_at",
    "start_month",
    "needs_manual_review",
]


def _as_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return parser.parse(str(value))


def _as_date(value: Any) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parser.parse(str(value)).date()


def request_from_row(row: dict[str, Any]) -> BenefitRequest:
    """Map a Snowflake row (any key case) to a BenefitRequest."""
    data = {key.lower(): value for key, value in row.items()}
    return BenefitRequest(
        id=int(data["id"]),
        requester_id=int(data["requester_id"]),
        requester_name=data.get("requester_name"),
        policy_type=data["policy_type"],
        amount=Decimal(str(data["amount"])),
        installment_count=int(data["installment_count"]),
        note=data.get("note"),
        status=RequestStatus(str(data["status"]).lower()),
        decision_note=data.get("decision_note"),
        decided_by=int(data["decided_by"]) if data.get("decided_by") is not None else None,
        created_at=_as_datetime(data["created_at"]),
        decided_at=_as_datetime(data.get("decided_at")),
        start_month=_as_date(data.get("start_month")),
        needs_manual_review=bool(data.get("needs_manual_review")),
    )


def request_to_row(request: BenefitRequest) -> list[Any]:
    return [
        request.id,
        request.requester_id,
        request.requester_name,
        request.policy_type,
        request.amount,
        request.installment_count,
        request.note,
        request.status.value,
        request.decision_note,
        request.decided_by,
        request.created_at,
        request.decided_at,
        request.start_month,
        request.needs_manual_review,
    ]


class SnowflakeRequestStore(RequestStore, RequesterDirectory):
    """
    Request store and requester directory on Snowflake.

    save() first locks the requester row, so concurrent submissions for one
    requester run one at a time, then inserts with a MERGE that only fires
    when no pending or approved row exists. Ids come from a sequence.
    update_status() is a conditional UPDATE keyed on the expected current
    status.
    """

    def __init__(self, session: Session | None = None):
        self.session = session
        self.requests_table = settings.requests_table
        self.requesters_table = settings.requesters_table
        self.id_sequence = settings.requests_id_sequence

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            timeout=settings.circuit_breaker_timeout,
            name="SnowflakeCircuitBreaker",
            trip_on=STORE_ERRORS,
        )

        if self.session is None:
            self._initialize_session()

    def _initialize_session(self):
        """Initialize Snowflake session."""
        connection_params = {
            "account": settings.snowflake_account,
            "user": settings.snowflake_user,
            "password": settings.snowflake_password,
            "warehouse": settings.snowflake_warehouse,
            "database": settings.snowflake_database,
            "schema": settings.snowflake_schema,
        }

        try:
            self.session = Session.builder.configs(connection_params).create()
            logger.info("Snowflake session initialized successfully")
        except STORE_ERRORS as e:
            logger.error(f"Failed to initialize Snowflake session: {e}")
            self.session = None

    @contextmanager
    def get_session(self):
        """Yield the live session or fail with StoreUnavailable."""
        if self.session is None:
            raise StoreUnavailable("Snowflake session not available")
        yield self.session

    @contextmanager
    def transaction(self, session: Session):
        session.sql("BEGIN").collect()
        try:
            yield
        except BaseException:
            session.sql("ROLLBACK").collect()
            raise
        session.sql("COMMIT").collect()

    def _call(self, func, *args):
        try:
            return self.circuit_breaker.call(func, *args)
        except STORE_ERRORS as e:
            raise StoreUnavailable(f"Request store call failed: {e}") from e

    # ---- requester directory ----

    def get_requester(self, requester_id: int) -> RequesterRecord | None:
        return self._call(self._query_requester, requester_id)

    def _query_requester(self, requester_id: int) -> RequesterRecord | None:
        with self.get_session() as session:
            rows = (
                session.table(self.requesters_table)
                .select("id", "name", "email", "role", "base_salary")
                .filter(col("id") == requester_id)
                .collect()
            )
            if not rows:
                logger.warning(f"Requester {requester_id} not found in Snowflake")
                return None
            return requester_from_row({k.lower(): v for k, v in rows[0].as_dict().items()})

    # ---- requests ----

    def list_requests_for_requester(
        self, requester_id: int, year: int | None = None
    ) -> list[BenefitRequest]:
        requests = self.list_requests(requester_id=requester_id)
        if year is None:
            return requests
        return [request for request in requests if request.created_year == year]

    def list_requests(
        self, requester_id: int | None = None, status: RequestStatus | None = None
    ) -> list[BenefitRequest]:
        return self._call(self._query_requests, requester_id, status)

    def _query_requests(
        self, requester_id: int | None, status: RequestStatus | None
    ) -> list[BenefitRequest]:
        with self.get_session() as session:
            df = session.table(self.requests_table).select(*REQUEST_COLUMNS)
            if requester_id is not None:
                df = df.filter(col("requester_id") == requester_id)
            if status is not None:
                df = df.filter(col("status") == RequestStatus(status).value)
            return [request_from_row(row.as_dict()) for row in df.collect()]

    def get_request(self, request_id: int) -> BenefitRequest | None:
        return self._call(self._query_request, request_id)

    def _query_request(self, request_id: int) -> BenefitRequest | None:
        with self.get_session() as session:
            rows = (
                session.table(self.requests_table)
                .select(*REQUEST_COLUMNS)
                .filter(col("id") == request_id)
                .collect()
            )
            return request_from_row(rows[0].as_dict()) if rows else None

    def save(self, request: BenefitRequest) -> BenefitRequest:
        return self._call(self._insert_request, request)

    def _insert_request(self, request: BenefitRequest) -> BenefitRequest:
        with self.get_session() as session, self.transaction(session):
            active = request.status in ACTIVE_STATUSES
            if active:
                self._lock_requester(session, request.requester_id)

            if request.id is None:
                next_id = session.sql(f"SELECT {self.id_sequence}.NEXTVAL").collect()[0][0]
                request = replace(request, id=int(next_id))

            if not active:
                session.create_dataframe(
                    [request_to_row(request)], schema=REQUEST_COLUMNS
                ).write.save_as_table(self.requests_table, mode="append")
                logger.info(f"Inserted request {request.id} via Snowpark")
                return request

            # One statement: insert only when the requester has no active row
            target = session.table(self.requests_table)
            candidate = session.create_dataframe(
                [[request.requester_id]], schema=["candidate_requester_id"]
            )
            result = target.merge(
                candidate,
                (target["requester_id"] == candidate["candidate_requester_id"])
                & target["status"].isin([s.value for s in ACTIVE_STATUSES]),
                [when_not_matched().insert(dict(zip(REQUEST_COLUMNS, request_to_row(request))))],
            )
            if result.rows_inserted == 0:
                raise ActiveRequestConflict(
                    f"Requester {request.requester_id} already has an active request"
                )

            logger.info(f"Inserted request {request.id} via Snowpark")
            return request

    def _lock_requester(self, session: Session, requester_id: int) -> None:
        """Take the requester row lock; held until the transaction ends."""
        session.table(self.requesters_table).update(
            {"id": col("id")}, col("id") == requester_id
        )

    def update_status(self, request_id: int, transition: Transition) -> BenefitRequest:
        return self._call(self._update_request_status, request_id, transition)

    def _update_request_status(self, request_id: int, transition: Transition) -> BenefitRequest:
        with self.get_session() as session, self.transaction(session):
            current = self._query_request(request_id)
            if current is None:
                raise RequestNotFound(f"Request {request_id} not found")

            updated = transition.apply(current)
            assignments = {
                "status": lit(updated.status.value),
                "decision_note": lit(updated.decision_note),
                "decided_by": lit(updated.decided_by),
                "decided_at": lit(updated.decided_at),
                "start_month": lit(updated.start_month),
            }
            result = session.table(self.requests_table).update(
                assignments,
                (col("id") == request_id) & (col("status") == transition.from_status.value),
            )
            if result.rows_updated == 0:
                raise TransitionConflict(current.status)

            return updated

    def get_circuit_breaker_state(self) -> dict:
        """Get circuit breaker state for monitoring."""
        return self.circuit_breaker.get_state()

    def close(self):
        """Close Snowflake session."""
        if self.session:
            self.session.close()
            logger.info("Snowflake session closed")


def build_store() -> RequestStore:
    """Snowflake when an account is configured, otherwise the in-memory store."""
    if settings.snowflake_account:
        return SnowflakeRequestStore()
    logger.info("No Snowflake account configured; using in-memory request store")
    return InMemoryRequestStore()
