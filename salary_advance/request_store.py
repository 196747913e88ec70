"""
Request store and requester directory contracts, plus the in-memory store
used in development and tests.

Store obligations the engine relies on:
- save() refuses a second pending/approved request for the same requester,
  atomically, raising ActiveRequestConflict
- update_status() is a compare-and-set on the expected current status,
  raising TransitionConflict when another writer got there first
- any infrastructure failure surfaces as StoreUnavailable
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from decimal import Decimal

from data.benefit_policies import get_requester_data
from salary_advance.errors import (
    ActiveRequestConflict,
    RequestNotFound,
    TransitionConflict,
)
from salary_advance.models import (
    ACTIVE_STATUSES,
    BenefitRequest,
    RequestStatus,
    Role,
    Transition,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RequesterRecord:
    id: int
    name: str
    role: Role
    base_salary: Decimal | None
    email: str | None = None


def requester_from_row(row: dict) -> RequesterRecord:
    salary = row.get("base_salary")
    return RequesterRecord(
        id=int(row["id"]),
        name=row.get("name") or "",
        role=Role(str(row.get("role") or Role.REQUESTER.value).lower()),
        base_salary=Decimal(str(salary)) if salary not in (None, "") else None,
        email=row.get("email"),
    )


class RequesterDirectory(ABC):
    """Who requesters are and what they earn."""

    @abstractmethod
    def get_requester(self, requester_id: int) -> RequesterRecord | None: ...

    def base_salary_for(self, requester_id: int) -> Decimal | None:
        record = self.get_requester(requester_id)
        return record.base_salary if record else None


class RequestStore(ABC):
    """Persistence boundary for benefit requests."""

    @abstractmethod
    def list_requests_for_requester(
        self, requester_id: int, year: int | None = None
    ) -> list[BenefitRequest]: ...

    @abstractmethod
    def list_requests(
        self, requester_id: int | None = None, status: RequestStatus | None = None
    ) -> list[BenefitRequest]: ...

    @abstractmethod
    def get_request(self, request_id: int) -> BenefitRequest | None: ...

    @abstractmethod
    def save(self, request: BenefitRequest) -> BenefitRequest: ...

    @abstractmethod
    def update_status(self, request_id: int, transition: Transition) -> BenefitRequest: ...


class InMemoryRequestStore(RequestStore, RequesterDirectory):
    """
    Thread-safe store backed by a dict.

    Requester records fall back to the mock directory in
    data/benefit_policies.py unless explicitly registered.
    """

    def __init__(self, requesters: dict[int, dict] | None = None):
        self._lock = threading.RLock()
        self._requests: dict[int, BenefitRequest] = {}
        self._next_id = 1
        self._requesters = dict(requesters or {})

    def register_requester(self, row: dict) -> None:
        with self._lock:
            self._requesters[int(row["id"])] = dict(row)

    def get_requester(self, requester_id: int) -> RequesterRecord | None:
        row = self._requesters.get(requester_id) or get_requester_data(requester_id)
        return requester_from_row(row) if row else None

    def list_requests_for_requester(
        self, requester_id: int, year: int | None = None
    ) -> list[BenefitRequest]:
        with self._lock:
            return [
                request
                for request in self._requests.values()
                if request.requester_id == requester_id
                and (year is None or request.created_year == year)
            ]

    def list_requests(
        self, requester_id: int | None = None, status: RequestStatus | None = None
    ) -> list[BenefitRequest]:
        with self._lock:
            return [
                request
                for request in self._requests.values()
                if (requester_id is None or request.requester_id == requester_id)
                and (status is None or request.status == status)
            ]

    def get_request(self, request_id: int) -> BenefitRequest | None:
        with self._lock:
            return self._requests.get(request_id)

    def save(self, request: BenefitRequest) -> BenefitRequest:
        with self._lock:
            if request.status in ACTIVE_STATUSES:
                for existing in self._requests.values():
                    if (
                        existing.requester_id == request.requester_id
                        and existing.status in ACTIVE_STATUSES
                        and existing.id != request.id
                    ):
                        raise ActiveRequestConflict(
                            f"Requester {request.requester_id} already has "
                            f"active request {existing.id}"
                        )

            if request.id is None:
                request = replace(request, id=self._next_id)
                self._next_id += 1
            else:
                self._next_id = max(self._next_id, request.id + 1)

            self._requests[request.id] = request
            logger.info(f"Saved request {request.id} for requester {request.requester_id}")
            return request

    def update_status(self, request_id: int, transition: Transition) -> BenefitRequest:
        with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                raise RequestNotFound(f"Request {request_id} not found")
            if current.status != transition.from_status:
                raise TransitionConflict(current.status)

            updated = transition.apply(current)
            self._requests[request_id] = updated
            logger.info(
                f"Request {request_id}: {transition.from_status.value} -> "
                f"{transition.to_status.value}"
            )
            return updated
