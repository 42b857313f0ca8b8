"""
Business constants for the IB partner network.

Single source of truth for commission depth, default plan schedule
and the default level ladder.
"""

from decimal import Decimal

# Commissions are never paid deeper than five hops above the trader
MAX_COMMISSION_DEPTH = 5
COMMISSION_LEVELS = tuple(range(1, MAX_COMMISSION_DEPTH + 1))

# Bound for unbounded tree walks (cycle checks)
MAX_TREE_DEPTH = 1000

# Ledger amounts are stored as DECIMAL(18, 8)
MONEY_QUANTUM = Decimal("0.00000001")

# Characters used for generated referral codes
REFERRAL_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
REFERRAL_CODE_MAX_ATTEMPTS = 20

# Default plan created when the registry is empty
DEFAULT_PLAN_NAME = "Default"
DEFAULT_PLAN_MAX_LEVELS = 3
DEFAULT_PLAN_RATES = {
    1: Decimal("5"),
    2: Decimal("3"),
    3: Decimal("1"),
}

# Default level ladder: (name, order, referral_target, commission_rate, downline rates)
DEFAULT_LEVELS = [
    ("Standard", 1, 0, Decimal("2"),
     (Decimal("2"), Decimal("1"), Decimal("0.5"), Decimal("0.25"), Decimal("0.1"))),
    ("Bronze", 2, 5, Decimal("3"),
     (Decimal("3"), Decimal("1.5"), Decimal("0.75"), Decimal("0.35"), Decimal("0.15"))),
    ("Silver", 3, 15, Decimal("4"),
     (Decimal("4"), Decimal("2"), Decimal("1"), Decimal("0.5"), Decimal("0.25"))),
    ("Gold", 4, 30, Decimal("5"),
     (Decimal("5"), Decimal("2.5"), Decimal("1.25"), Decimal("0.6"), Decimal("0.3"))),
    ("Platinum", 5, 50, Decimal("7"),
     (Decimal("7"), Decimal("3.5"), Decimal("1.75"), Decimal("0.85"), Decimal("0.4"))),
]

# Program defaults for the ib_settings singleton
DEFAULT_MIN_WITHDRAWAL_AMOUNT = Decimal("50")

# Bounded retries for optimistic-lock conflicts
CONFLICT_RETRY_ATTEMPTS = 3

# Dramatiq actor time limits (milliseconds)
DRAMATIQ_TIME_LIMIT_SHORT = 60_000
DRAMATIQ_TIME_LIMIT_STANDARD = 300_000
