"""
Credit Grants

Turns completed purchases and watched reward ads into ledger credits.
Verifying the purchase with the store is the purchase flow's job;
by the time these functions run the purchase has been acknowledged.
"""

from getanswer.ledger.credit_ledger import CreditLedger, LedgerError
from getanswer.models.result import Failure, Result

# Store product id -> credits granted
CREDIT_PACKS: dict[str, int] = {
    "credits_50": 50,
    "credits_100": 100,
}

AD_REWARD_CREDITS = 10


class UnknownProductError(LedgerError):
    """Purchase of a product id that is not a credit pack."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Unknown credit pack: {product_id!r}")


async def grant_purchase(
    ledger: CreditLedger,
    product_id: str,
) -> Result[str, LedgerError]:
    """
    Credit the ledger for a purchased credit pack.

    Returns:
        Success(transaction_id), or Failure(UnknownProductError) for an
        unknown product, or the ledger's Failure if it cannot be written
    """
    credits = CREDIT_PACKS.get(product_id)
    if credits is None:
        return Failure(UnknownProductError(product_id))
    return await ledger.add(credits, f"purchase:{product_id}")


async def grant_ad_reward(ledger: CreditLedger) -> Result[str, LedgerError]:
    """Credit the ledger for a watched rewarded ad."""
    return await ledger.add(AD_REWARD_CREDITS, "ad_reward")
