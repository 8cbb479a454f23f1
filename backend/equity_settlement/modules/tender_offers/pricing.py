"""
Equilibrium (clearing) price discovery for tender offers.

Bids are grouped into price tiers and walked from the highest price down:
1. A tier whose cumulative demand fits the share budget at that price is
   taken in full and the walk continues.
2. The first tier that overflows the budget becomes the clearing price;
   the allocation engine pro-rates within it.
3. If every tier fits, the lowest bid price clears.

Every accepted share settles at the clearing price, so the share budget
at a price P is what the money budget buys at P.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
import logging

from equity_settlement.modules.tender_offers.errors import NoEquilibriumPriceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuybackBudget:
    """Money and/or share cap on a buyback. Unbounded when both are None."""
    total_amount_cents: Optional[int] = None
    max_shares: Optional[int] = None

    @classmethod
    def for_tender_offer(cls, tender_offer) -> "BuybackBudget":
        return cls(
            total_amount_cents=tender_offer.total_amount_in_cents,
            max_shares=tender_offer.number_of_shares,
        )

    @property
    def is_bounded(self) -> bool:
        return self.total_amount_cents is not None or self.max_shares is not None

    def shares_at(self, price_cents: int) -> Optional[int]:
        """Maximum number of shares purchasable at a uniform price."""
        if price_cents <= 0:
            raise ValueError("price_cents must be positive")

        limits = []
        if self.total_amount_cents is not None:
            limits.append(self.total_amount_cents // price_cents)
        if self.max_shares is not None:
            limits.append(self.max_shares)
        return min(limits) if limits else None


@dataclass
class PriceTier:
    """All bids at one price, with demand at that price and above."""
    price_cents: int
    shares: int
    cumulative_shares: int


@dataclass
class EquilibriumPrice:
    """Result of price discovery."""
    clearing_price_cents: int
    tiers: List[PriceTier] = field(default_factory=list)
    oversubscribed: bool = False  # True when the clearing tier must be pro-rated


def build_price_tiers(bids: Sequence) -> List[PriceTier]:
    """Group bids by price, highest first, with cumulative demand."""
    shares_by_price: Dict[int, int] = {}
    for bid in bids:
        price = int(bid.share_price_cents)
        shares_by_price[price] = shares_by_price.get(price, 0) + int(bid.number_of_shares)

    tiers = []
    cumulative = 0
    for price in sorted(shares_by_price, reverse=True):
        cumulative += shares_by_price[price]
        tiers.append(PriceTier(price_cents=price, shares=shares_by_price[price], cumulative_shares=cumulative))
    return tiers


def calculate_equilibrium_price(bids: Sequence, budget: BuybackBudget) -> EquilibriumPrice:
    """
    Find the single clearing price for a set of bids.

    Args:
        bids: Objects with ``number_of_shares`` and ``share_price_cents``
        budget: Money and share limits of the buyback

    Returns:
        EquilibriumPrice with the clearing price and the demand curve

    Raises:
        NoEquilibriumPriceError: when there are no bids
    """
    tiers = build_price_tiers(bids)
    if not tiers:
        raise NoEquilibriumPriceError()

    for tier in tiers:
        capacity = budget.shares_at(tier.price_cents)
        if capacity is not None and tier.cumulative_shares > capacity:
            logger.info(
                f"[PRICING] Clearing at {tier.price_cents}c: demand {tier.cumulative_shares} "
                f"exceeds capacity {capacity}"
            )
            return EquilibriumPrice(clearing_price_cents=tier.price_cents, tiers=tiers, oversubscribed=True)

    lowest = tiers[-1]
    logger.info(
        f"[PRICING] All {lowest.cumulative_shares} shares fit the budget; clearing at lowest bid {lowest.price_cents}c"
    )
    return EquilibriumPrice(clearing_price_cents=lowest.price_cents, tiers=tiers, oversubscribed=False)
