"""
Tests for the policy catalog.
"""

from decimal import Decimal

import pytest

from salary_advance.errors import UnknownPolicy
from salary_advance.models import PolicyDefinition
from salary_advance.policy_catalog import PolicyCatalog


class TestPolicyCatalog:
    """Lookup, ordering and immutability."""

    def test_default_catalog_policies(self, catalog):
        """Both bundled policies are loaded with their limits."""
        once = catalog.get("capped-annual-once")
        thrice = catalog.get("capped-periodic-thrice")

        assert once.max_percent_of_salary == Decimal("0.75")
        assert once.max_occurrences_per_year == 1
        assert once.allowed_installment_counts == (1, 2, 3)
        assert once.once_per_year is True

        assert thrice.max_percent_of_salary == Decimal("0.30")
        assert thrice.max_occurrences_per_year == 3
        assert thrice.once_per_year is False

    def test_all_preserves_declaration_order(self, catalog):
        types = [policy.policy_type for policy in catalog.all()]
        assert types == ["capped-annual-once", "capped-periodic-thrice"]

    def test_unknown_policy_raises(self, catalog):
        with pytest.raises(UnknownPolicy) as exc_info:
            catalog.get("payday-loan")
        assert "payday-loan" in str(exc_info.value)

    def test_catalog_cannot_be_mutated(self, catalog):
        with pytest.raises(TypeError):
            catalog._policies["new"] = catalog.get("capped-annual-once")

    def test_new_policy_is_data_only(self, mock_benefit_policies):
        """Adding a policy needs a catalog entry and nothing else."""
        mock_benefit_policies["capped-quarterly"] = {
            "max_percent_of_salary": "0.20",
            "max_occurrences_per_year": 4,
            "allowed_installment_counts": [4, 1, 6],
        }

        catalog = PolicyCatalog.from_mapping(mock_benefit_policies)

        assert len(catalog) == 3
        assert catalog.get("capped-quarterly").allowed_installment_counts == (1, 4, 6)
        assert "capped-quarterly" in catalog

    def test_duplicate_policy_type_rejected(self):
        policy = PolicyDefinition("dup", Decimal("0.5"), 1, (1,))
        with pytest.raises(ValueError):
            PolicyCatalog([policy, policy])

    @pytest.mark.parametrize(
        "percent, occurrences, installments",
        [
            (Decimal("0.5"), 0, (1,)),
            (Decimal("0.5"), 1, ()),
            (Decimal("0.5"), 1, (0, 1)),
            (Decimal("1.5"), 1, (1,)),
        ],
    )
    def test_invalid_definitions(self, percent, occurrences, installments):
        with pytest.raises(ValueError):
            PolicyDefinition("bad", percent, occurrences, installments)
