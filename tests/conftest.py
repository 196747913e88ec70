"""
Pytest configuration and fixtures.
Shared test utilities and synthetic request histories.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from data.benefit_policies import BENEFIT_POLICIES, MOCK_REQUESTERS
from salary_advance.models import BenefitRequest, RequestStatus, Role
from salary_advance.policy_catalog import PolicyCatalog, default_catalog
from salary_advance.request_store import InMemoryRequestStore
from salary_advance.service import BenefitRequestService
from salary_advance.utils.request_context import clear_request_context, set_request_context

NOW = datetime(2026, 6, 15, 10, 30)

ONCE = "capped-annual-once"
THRICE = "capped-periodic-thrice"


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def catalog() -> PolicyCatalog:
    """Catalog built from the bundled policy data."""
    return default_catalog()


@pytest.fixture
def mock_benefit_policies():
    """Return bundled policy data for testing."""
    return BENEFIT_POLICIES.copy()


@pytest.fixture
def mock_requesters():
    """Return mock requester directory for testing."""
    return MOCK_REQUESTERS.copy()


@pytest.fixture
def make_request():
    """Factory for synthetic history entries."""
    counter = {"next": 1000}

    def _make(
        requester_id=1,
        policy_type=ONCE,
        status=RequestStatus.CLOSED,
        created_at=NOW,
        amount="1000.00",
        installment_count=1,
        **extra,
    ):
        counter["next"] += 1
        return BenefitRequest(
            id=extra.pop("id", counter["next"]),
            requester_id=requester_id,
            policy_type=policy_type,
            amount=Decimal(amount),
            installment_count=installment_count,
            status=status,
            created_at=created_at,
            **extra,
        )

    return _make


@pytest.fixture
def store() -> InMemoryRequestStore:
    return InMemoryRequestStore()


@pytest.fixture
def service(catalog, store) -> BenefitRequestService:
    return BenefitRequestService(catalog, store, clock=lambda: NOW)


@pytest.fixture
def as_identity():
    """Bind an identity for the test; cleared afterwards."""

    def _bind(requester_id, role):
        set_request_context(requester_id, role)

    yield _bind
    clear_request_context()


@pytest.fixture
def as_requester(as_identity):
    as_identity(1, Role.REQUESTER)


@pytest.fixture
def as_manager(as_identity):
    as_identity(10, Role.MANAGER)
