"""Credit ledger package."""

from getanswer.ledger.credit_ledger import (
    CreditLedger,
    InsufficientCreditsError,
    InvalidTransactionError,
    LedgerError,
    LedgerUnavailableError,
)
from getanswer.ledger.grants import (
    AD_REWARD_CREDITS,
    CREDIT_PACKS,
    UnknownProductError,
    grant_ad_reward,
    grant_purchase,
)
from getanswer.ledger.store import (
    BALANCE_KEY,
    OPENING_BALANCE_KEY,
    TRANSACTIONS_KEY,
    CorruptLedgerDataError,
    LedgerStore,
)

__all__ = [
    # Ledger
    "CreditLedger",
    "LedgerStore",
    # Errors
    "CorruptLedgerDataError",
    "InsufficientCreditsError",
    "InvalidTransactionError",
    "LedgerError",
    "LedgerUnavailableError",
    "UnknownProductError",
    # Grants
    "AD_REWARD_CREDITS",
    "CREDIT_PACKS",
    "grant_ad_reward",
    "grant_purchase",
    # Storage keys
    "BALANCE_KEY",
    "OPENING_BALANCE_KEY",
    "TRANSACTIONS_KEY",
]
