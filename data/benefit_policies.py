"""
Benefit policy definitions and mock directory data.
In production, requester records and request history come from Snowflake.
"""

BENEFIT_POLICIES = {
    "capped-annual-once": {
        "max_percent_of_salary": "0.75",
        "max_occurrences_per_year": 1,
        "allowed_installment_counts": [1, 2, 3],
        "description": "One advance per calendar year, up to 75% of base salary",
    },
    "capped-periodic-thrice": {
        "max_percent_of_salary": "0.30",
        "max_occurrences_per_year": 3,
        "allowed_installment_counts": [1, 2],
        "description": "Up to three advances per calendar year, each up to 30% of base salary",
    },
}

# Mock requester directory (in production, this is in Snowflake)
MOCK_REQUESTERS = {
    1: {
        "id": 1,
        "name": "Omar Khaled",
        "email": "omar.khaled@company.com",
        "role": "requester",
        "base_salary": "10000.00",
    },
    2: {
        "id": 2,
        "name": "Sara Nabil",
        "email": "sara.nabil@company.com",
        "role": "requester",
        "base_salary": "6400.00",
    },
    3: {
        "id": 3,
        "name": "Hany Adel",
        "email": "hany.adel@company.com",
        "role": "requester",
        "base_salary": None,
    },
    10: {
        "id": 10,
        "name": "Mona Fathy",
        "email": "mona.fathy@company.com",
        "role": "manager",
        "base_salary": "18000.00",
    },
    99: {
        "id": 99,
        "name": "System Admin",
        "email": "admin@company.com",
        "role": "admin",
        "base_salary": None,
    },
}


def get_benefit_policy_data(policy_type: str = None):
    """Get a benefit policy by type, or all policies."""
    if policy_type:
        return BENEFIT_POLICIES.get(policy_type)

    return BENEFIT_POLICIES


def get_requester_data(requester_id: int):
    """Get requester data by ID."""
    return MOCK_REQUESTERS.get(requester_id)
