"""
Immutable catalog of benefit policies.

Policies are data. Adding a policy means adding an entry to
data/benefit_policies.py; nothing in the evaluator or validator branches on
a policy type.
"""

import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal
from types import MappingProxyType

from data.benefit_policies import get_benefit_policy_data
from salary_advance.errors import UnknownPolicy
from salary_advance.models import PolicyDefinition

logger = logging.getLogger(__name__)


class PolicyCatalog:
    """Read-only lookup of PolicyDefinition by policy type, in declaration order."""

    def __init__(self, policies: Iterable[PolicyDefinition]):
        by_type: dict[str, PolicyDefinition] = {}
        for policy in policies:
            if policy.policy_type in by_type:
                raise ValueError(f"Duplicate policy type: {policy.policy_type}")
            by_type[policy.policy_type] = policy

        self._policies = MappingProxyType(by_type)

    def get(self, policy_type: str) -> PolicyDefinition:
        try:
            return self._policies[policy_type]
        except KeyError:
            raise UnknownPolicy(policy_type) from None

    def all(self) -> tuple[PolicyDefinition, ...]:
        return tuple(self._policies.values())

    def __contains__(self, policy_type: object) -> bool:
        return policy_type in self._policies

    def __len__(self) -> int:
        return len(self._policies)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Mapping]) -> "PolicyCatalog":
        """Build a catalog from plain policy data keyed by policy type."""
        policies = [
            PolicyDefinition(
                policy_type=policy_type,
                max_percent_of_salary=Decimal(str(entry["max_percent_of_salary"])),
                max_occurrences_per_year=int(entry["max_occurrences_per_year"]),
                allowed_installment_counts=tuple(
                    sorted(int(c) for c in entry["allowed_installment_counts"])
                ),
                description=entry.get("description", ""),
            )
            for policy_type, entry in raw.items()
        ]
        logger.info(f"Loaded {len(policies)} benefit policies")
        return cls(policies)


def default_catalog() -> PolicyCatalog:
    """Catalog built from the bundled policy data."""
    return PolicyCatalog.from_mapping(get_benefit_policy_data())
