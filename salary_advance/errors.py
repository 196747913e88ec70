"""
Error kinds for the advance engine.

Programming and infrastructure failures are exceptions. User-facing outcomes
(a rejected submission, an illegal transition) are plain values so callers can
render them without special control flow.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class UnknownPolicy(KeyError):
    """Raised when a policy type is not registered in the catalog."""

    def __init__(self, policy_type: str):
        super().__init__(policy_type)
        self.policy_type = policy_type

    def __str__(self) -> str:
        return f"Unknown benefit policy: {self.policy_type!r}"


class StoreUnavailable(RuntimeError):
    """Raised when the request store cannot be reached. Safe to retry."""


class NotPermitted(PermissionError):
    """Raised when the current identity may not perform an operation."""


class UnknownRequester(LookupError):
    """Raised when the requester directory has no record for an id."""


class RequestNotFound(LookupError):
    """Raised when a benefit request id does not exist."""


class ActiveRequestConflict(RuntimeError):
    """Raised by a store when saving would create a second active request."""


class TransitionConflict(RuntimeError):
    """Raised by a store when the stored status no longer matches the expected one."""

    def __init__(self, current_status):
        super().__init__(f"Stored status is {getattr(current_status, 'value', current_status)}")
        self.current_status = current_status


class RejectionReason(str, Enum):
    """Single user-facing reason a submission was refused."""

    ACTIVE_REQUEST_EXISTS = "active request exists"
    QUOTA_EXHAUSTED = "quota exhausted"
    AMOUNT_NOT_POSITIVE = "amount must be positive"
    AMOUNT_EXCEEDS_MAXIMUM = "amount exceeds maximum allowed"
    INSTALLMENTS_NOT_PERMITTED = "installment count not permitted for this policy"


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason

    @property
    def message(self) -> str:
        return self.reason.value


@dataclass(frozen=True)
class IllegalTransition:
    current: str
    attempted: str

    @property
    def message(self) -> str:
        return f"Cannot move a {self.current} request to {self.attempted}"
