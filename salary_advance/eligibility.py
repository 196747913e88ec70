"""
Eligibility evaluation: which policies a requester may use right now,
how much they may ask for, and how it may be repaid.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from salary_advance.errors import RejectionReason, UnknownPolicy
from salary_advance.models import BenefitRequest, PolicyDefinition, RequesterProfile
from salary_advance.policy_catalog import PolicyCatalog
from salary_advance.usage_window import UsageSnapshot, UsageWindowIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicyEligibility:
    policy_type: str
    used_count: int
    remaining: int
    max_amount_allowed: Decimal | None
    allowed_installment_counts: tuple[int, ...]
    blocked: bool
    block_reason: str | None = None
    requires_manual_review: bool = False
    once_per_year: bool = False

    @property
    def used(self) -> bool:
        return self.used_count >= 1


@dataclass(frozen=True)
class EligibilitySummary:
    requester_id: int
    year: int
    has_active_loan: bool
    policies: dict[str, PolicyEligibility] = field(default_factory=dict)

    def __getitem__(self, policy_type: str) -> PolicyEligibility:
        try:
            return self.policies[policy_type]
        except KeyError:
            raise UnknownPolicy(policy_type) from None

    @property
    def any_available(self) -> bool:
        return any(not entry.blocked for entry in self.policies.values())


def round_currency(value: Decimal, precision: int) -> Decimal:
    """Round half-up to the currency's minor unit."""
    quantum = Decimal(1).scaleb(-precision)
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


class EligibilityEvaluator:
    """
    Pure evaluation of a requester's eligibility.

    evaluate() makes no external calls: the profile and history are
    snapshots fetched by the caller, so the evaluator can be exercised with
    synthetic histories.
    """

    def __init__(self, catalog: PolicyCatalog, currency_precision: int = 2):
        self.catalog = catalog
        self.currency_precision = currency_precision
        self.usage_index = UsageWindowIndex(catalog)

    def evaluate(
        self,
        profile: RequesterProfile,
        history: Iterable[BenefitRequest],
        year: int | None = None,
    ) -> EligibilitySummary:
        year = year if year is not None else profile.calendar_year
        usage = self.usage_index.build(profile.id, year, history)

        policies = {
            policy.policy_type: self._evaluate_policy(policy, profile, usage)
            for policy in self.catalog.all()
        }

        logger.debug(
            f"Evaluated eligibility: requester={profile.id}, year={year}, "
            f"active_loan={usage.has_active_loan}"
        )
        return EligibilitySummary(
            requester_id=profile.id,
            year=year,
            has_active_loan=usage.has_active_loan,
            policies=policies,
        )

    def _evaluate_policy(
        self, policy: PolicyDefinition, profile: RequesterProfile, usage: UsageSnapshot
    ) -> PolicyEligibility:
        used_count = usage.used_count(policy.policy_type)
        remaining = max(policy.max_occurrences_per_year - used_count, 0)
        installments = policy.allowed_installment_counts
        manual_review = not profile.salary_known

        # 1. An open obligation blocks every policy at once
        if usage.has_active_loan:
            return PolicyEligibility(
                policy_type=policy.policy_type,
                used_count=used_count,
                remaining=remaining,
                max_amount_allowed=None,
                allowed_installment_counts=installments,
                blocked=True,
                block_reason=RejectionReason.ACTIVE_REQUEST_EXISTS.value,
                requires_manual_review=manual_review,
                once_per_year=policy.once_per_year,
            )

        # 2. Yearly quota
        blocked = used_count >= policy.max_occurrences_per_year

        # 3. Salary cap; unknown salary leaves the cap undefined, never unlimited
        max_amount = None
        if profile.salary_known:
            max_amount = round_currency(
                profile.base_salary * policy.max_percent_of_salary, self.currency_precision
            )

        return PolicyEligibility(
            policy_type=policy.policy_type,
            used_count=used_count,
            remaining=remaining,
            max_amount_allowed=max_amount,
            allowed_installment_counts=installments,
            blocked=blocked,
            block_reason=RejectionReason.QUOTA_EXHAUSTED.value if blocked else None,
            requires_manual_review=manual_review,
            once_per_year=policy.once_per_year,
        )
