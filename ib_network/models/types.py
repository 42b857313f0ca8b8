"""
Standard type definitions for database models.

Provides consistent types for monetary and rate fields across all models.
"""

from sqlalchemy import DECIMAL

# Standard money type for ledger amounts, balances, withdrawals
# Precision: 18 digits total, 8 after decimal point
# Range: up to 9,999,999,999.99999999
MoneyType = DECIMAL(18, 8)

# Commission rate: $ per lot (PER_LOT) or percent of notional (PERCENTAGE)
# Precision: 12 digits total, 4 after decimal point
RateType = DECIMAL(12, 4)

# Trade volume in lots
LotsType = DECIMAL(18, 4)
