"""
Submission validation against an eligibility summary.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from salary_advance.eligibility import EligibilitySummary
from salary_advance.errors import Rejected, RejectionReason
from salary_advance.models import BenefitRequest, RequestStatus, Submission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Accepted:
    request: BenefitRequest


class RequestValidator:
    """
    Validates a submission and, on success, builds the pending request.

    Checks run in a fixed order and the first failure is the only reason
    reported:
    1. active request exists
    2. policy blocked (quota exhausted)
    3. amount must be positive
    4. amount exceeds maximum allowed
    5. installment count not permitted for this policy

    The active-request check here is a pre-check. The store is what
    enforces one active request per requester.
    """

    def validate(
        self,
        submission: Submission,
        summary: EligibilitySummary,
        now: datetime | None = None,
    ) -> Accepted | Rejected:
        # Raises UnknownPolicy for a type the catalog does not know
        eligibility = summary[submission.policy_type]

        if summary.has_active_loan:
            return self._reject(submission, RejectionReason.ACTIVE_REQUEST_EXISTS)

        if eligibility.blocked:
            return self._reject(
                submission, RejectionReason(eligibility.block_reason or "quota exhausted")
            )

        amount = submission.amount
        if not isinstance(amount, Decimal):
            amount = Decimal(str(amount))
        if not amount.is_finite() or amount <= 0:
            return self._reject(submission, RejectionReason.AMOUNT_NOT_POSITIVE)

        maximum = eligibility.max_amount_allowed
        if maximum is not None and amount > maximum:
            return self._reject(submission, RejectionReason.AMOUNT_EXCEEDS_MAXIMUM)

        if submission.installment_count not in eligibility.allowed_installment_counts:
            return self._reject(submission, RejectionReason.INSTALLMENTS_NOT_PERMITTED)

        request = BenefitRequest(
            requester_id=submission.requester_id,
            requester_name=submission.requester_name,
            policy_type=submission.policy_type,
            amount=amount,
            installment_count=submission.installment_count,
            note=(submission.note or "").strip() or None,
            status=RequestStatus.PENDING,
            created_at=now or datetime.now(),
            needs_manual_review=maximum is None,
        )

        if request.needs_manual_review:
            logger.warning(
                f"Requester {submission.requester_id} has no known salary; "
                f"request flagged for manual review"
            )
        return Accepted(request)

    def _reject(self, submission: Submission, reason: RejectionReason) -> Rejected:
        logger.info(
            f"Submission rejected: requester={submission.requester_id}, "
            f"policy={submission.policy_type}, reason={reason.value}"
        )
        return Rejected(reason)


def default_installment_count(allowed: Sequence[int], previous: int | None = None) -> int:
    """Keep a previous choice while it is still legal, otherwise the smallest legal count."""
    if previous is not None and previous in allowed:
        return previous
    return min(allowed)
