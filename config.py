"""
Configuration for the SettleUp engine and API
"""
import os
from decimal import Decimal

POLICIES = ("ignore", "warn", "strict")


def read_policy(name: str, default: str) -> str:
    """Read an aggregation policy from the environment"""
    value = os.getenv(name, default).strip().lower()
    if value not in POLICIES:
        raise ValueError(f"{name} must be one of {', '.join(POLICIES)}, got {value!r}")
    return value


# Amounts at or below this are treated as settled
SETTLEMENT_EPSILON = Decimal(os.getenv("SETTLEMENT_EPSILON", "0.01"))

# Smallest currency unit used when splitting expenses
MONEY_QUANTUM = Decimal(os.getenv("MONEY_QUANTUM", "0.01"))

# Aggregation policies
UNKNOWN_MEMBER_POLICY = read_policy("UNKNOWN_MEMBER_POLICY", "warn")
SPLIT_TOTAL_POLICY = read_policy("SPLIT_TOTAL_POLICY", "ignore")
NEGATIVE_AMOUNT_POLICY = read_policy("NEGATIVE_AMOUNT_POLICY", "ignore")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
