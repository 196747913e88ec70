"""
Tests for submission validation ordering and outcomes.
"""

from decimal import Decimal

import pytest

from salary_advance.eligibility import EligibilityEvaluator
from salary_advance.errors import Rejected, RejectionReason, UnknownPolicy
from salary_advance.models import RequesterProfile, RequestStatus, Submission
from salary_advance.validator import Accepted, RequestValidator, default_installment_count

ONCE = "capped-annual-once"
THRICE = "capped-periodic-thrice"


@pytest.fixture
def summary_for(catalog):
    evaluator = EligibilityEvaluator(catalog)

    def _summary(history=(), salary="10000.00"):
        profile = RequesterProfile(
            id=1,
            base_salary=Decimal(salary) if salary is not None else None,
            calendar_year=2026,
        )
        return evaluator.evaluate(profile, list(history))

    return _summary


def submission(amount="1000.00", policy_type=ONCE, installments=1, note=None):
    return Submission(
        requester_id=1,
        policy_type=policy_type,
        amount=Decimal(amount),
        installment_count=installments,
        note=note,
    )


class TestRequestValidator:
    """Each check, in order, with a single reported reason."""

    def test_accepts_at_exact_maximum(self, summary_for, now):
        result = RequestValidator().validate(submission("7500.00", installments=3), summary_for(), now)

        assert isinstance(result, Accepted)
        assert result.request.status == RequestStatus.PENDING
        assert result.request.amount == Decimal("7500.00")
        assert result.request.created_at == now
        assert result.request.decided_at is None
        assert result.request.decision_note is None
        assert result.request.id is None

    def test_rejects_one_cent_over_maximum(self, summary_for, now):
        result = RequestValidator().validate(submission("7500.01"), summary_for(), now)

        assert result == Rejected(RejectionReason.AMOUNT_EXCEEDS_MAXIMUM)
        assert result.message == "amount exceeds maximum allowed"

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_rejects_non_positive_amount(self, summary_for, now, amount):
        result = RequestValidator().validate(submission(amount), summary_for(), now)

        assert result == Rejected(RejectionReason.AMOUNT_NOT_POSITIVE)

    def test_rejects_installments_outside_policy(self, summary_for, now):
        result = RequestValidator().validate(
            submission("500.00", policy_type=THRICE, installments=3), summary_for(), now
        )

        assert result == Rejected(RejectionReason.INSTALLMENTS_NOT_PERMITTED)

    def test_active_request_reported_first(self, summary_for, make_request, now):
        """Every check would fail; only the first is reported."""
        history = [make_request(status=RequestStatus.PENDING)]

        result = RequestValidator().validate(
            submission("-1", installments=9), summary_for(history), now
        )

        assert result == Rejected(RejectionReason.ACTIVE_REQUEST_EXISTS)

    def test_quota_before_amount(self, summary_for, make_request, now):
        history = [make_request(status=RequestStatus.CLOSED)]

        result = RequestValidator().validate(submission("99999"), summary_for(history), now)

        assert result == Rejected(RejectionReason.QUOTA_EXHAUSTED)

    def test_amount_before_installments(self, summary_for, now):
        result = RequestValidator().validate(
            submission("99999", installments=9), summary_for(), now
        )

        assert result.reason == RejectionReason.AMOUNT_EXCEEDS_MAXIMUM

    def test_unknown_salary_accepted_for_review(self, summary_for, now):
        result = RequestValidator().validate(submission("50000"), summary_for(salary=None), now)

        assert isinstance(result, Accepted)
        assert result.request.needs_manual_review is True

    def test_unknown_salary_still_checks_installments(self, summary_for, now):
        result = RequestValidator().validate(
            submission("50000", installments=7), summary_for(salary=None), now
        )

        assert result.reason == RejectionReason.INSTALLMENTS_NOT_PERMITTED

    def test_note_trimmed_and_blank_dropped(self, summary_for, now):
        kept = RequestValidator().validate(submission(note="  school fees "), summary_for(), now)
        blank = RequestValidator().validate(submission(note="   "), summary_for(), now)

        assert kept.request.note == "school fees"
        assert blank.request.note is None

    def test_unknown_policy_raises(self, summary_for, now):
        with pytest.raises(UnknownPolicy):
            RequestValidator().validate(submission(policy_type="payday"), summary_for(), now)


class TestDefaultInstallmentCount:
    def test_keeps_previous_choice_when_legal(self):
        assert default_installment_count((1, 2, 3), previous=2) == 2

    def test_falls_back_to_smallest(self):
        assert default_installment_count((1, 2), previous=3) == 1
        assert default_installment_count((2, 4)) == 2
