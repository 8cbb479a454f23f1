"""
Allocation engine: turns a clearing price into accepted shares per bid.

- Bids above the clearing price are accepted in full.
- Bids at the clearing price share what is left of the budget pro-rata:
  floor(offered * remaining / tier_demand).
- Bids below the clearing price get nothing.

Integer division leaves at most (tied bids - 1) shares unassigned. Those
are handed out one share at a time by ascending bid id, skipping bids that
are already filled.

If the clearing price was fixed up front (single stock buybacks, or a
price persisted by an earlier attempt) and higher tiers alone overflow
the budget, tiers are filled highest price first and the first tier that
does not fit is the one pro-rated.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import logging

from equity_settlement.modules.tender_offers.pricing import BuybackBudget

logger = logging.getLogger(__name__)


@dataclass
class Allocation:
    """Accepted shares for a single bid."""
    bid_id: int
    company_investor_id: int
    share_class: str
    share_price_cents: int
    offered_shares: int
    accepted_shares: int = 0

    @property
    def fully_accepted(self) -> bool:
        return self.accepted_shares == self.offered_shares


@dataclass
class AllocationResult:
    """All allocations for a tender offer at one clearing price."""
    clearing_price_cents: int
    allocations: List[Allocation] = field(default_factory=list)

    @property
    def total_shares(self) -> int:
        return sum(a.accepted_shares for a in self.allocations)

    @property
    def total_amount_cents(self) -> int:
        return self.total_shares * self.clearing_price_cents

    def for_bid(self, bid_id: int) -> Optional[Allocation]:
        for allocation in self.allocations:
            if allocation.bid_id == bid_id:
                return allocation
        return None

    def by_investor_and_class(self) -> "OrderedDict[Tuple[int, str], int]":
        """Accepted shares summed per (investor, share class), non-zero only."""
        totals: "OrderedDict[Tuple[int, str], int]" = OrderedDict()
        for allocation in sorted(self.allocations, key=lambda a: a.bid_id):
            if allocation.accepted_shares <= 0:
                continue
            key = (allocation.company_investor_id, allocation.share_class)
            totals[key] = totals.get(key, 0) + allocation.accepted_shares
        return totals


def _pro_rate(allocations: List[Allocation], remaining: int) -> None:
    """Split ``remaining`` shares across one price tier."""
    demand = sum(a.offered_shares for a in allocations)
    if remaining >= demand:
        for allocation in allocations:
            allocation.accepted_shares = allocation.offered_shares
        return

    for allocation in allocations:
        allocation.accepted_shares = allocation.offered_shares * remaining // demand

    leftover = remaining - sum(a.accepted_shares for a in allocations)
    ordered = sorted(allocations, key=lambda a: a.bid_id)
    while leftover > 0:
        progressed = False
        for allocation in ordered:
            if leftover == 0:
                break
            if allocation.fully_accepted:
                continue
            allocation.accepted_shares += 1
            leftover -= 1
            progressed = True
        if not progressed:
            break


def allocate(bids: Sequence, clearing_price_cents: int, budget: BuybackBudget) -> AllocationResult:
    """
    Allocate accepted shares to bids at a uniform clearing price.

    Args:
        bids: Objects with ``id``, ``company_investor_id``, ``share_class``,
            ``number_of_shares`` and ``share_price_cents``
        clearing_price_cents: Price every accepted share settles at
        budget: Money and share limits of the buyback

    Returns:
        AllocationResult with one Allocation per bid
    """
    allocations = [
        Allocation(
            bid_id=bid.id,
            company_investor_id=bid.company_investor_id,
            share_class=bid.share_class,
            share_price_cents=int(bid.share_price_cents),
            offered_shares=int(bid.number_of_shares),
        )
        for bid in bids
    ]

    tiers: Dict[int, List[Allocation]] = {}
    for allocation in allocations:
        if allocation.share_price_cents >= clearing_price_cents:
            tiers.setdefault(allocation.share_price_cents, []).append(allocation)

    capacity = budget.shares_at(clearing_price_cents)
    for price in sorted(tiers, reverse=True):
        tier = tiers[price]
        if capacity is None:
            _pro_rate(tier, sum(a.offered_shares for a in tier))
            continue

        _pro_rate(tier, capacity)
        capacity -= sum(a.accepted_shares for a in tier)

    result = AllocationResult(clearing_price_cents=clearing_price_cents, allocations=allocations)
    logger.info(
        f"[ALLOCATION] {len(allocations)} bids at {clearing_price_cents}c: "
        f"{result.total_shares} shares accepted, {result.total_amount_cents}c total"
    )
    return result
