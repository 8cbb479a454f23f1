"""
Cap table services: applies an allocation to holdings and records the buyback round.

Nothing here commits. settle() only flushes, so the caller owns the
transaction and a rollback discards the round, the buybacks and every
holding decrement together.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
import logging

from equity_settlement.modules.cap_table.models import (
    ShareClass,
    ShareHolding,
    EquityGrant,
    EquityBuybackRound,
    EquityBuyback,
)
from equity_settlement.modules.tender_offers.models import TenderOffer, TenderOfferBid, VESTED_SHARES_CLASS
from equity_settlement.modules.tender_offers.allocation import AllocationResult
from equity_settlement.modules.tender_offers.errors import BuybackRoundExistsError, InsufficientSharesError

logger = logging.getLogger(__name__)


def get_buyback_round(db: Session, tender_offer_id: int) -> Optional[EquityBuybackRound]:
    return db.query(EquityBuybackRound).filter(
        EquityBuybackRound.tender_offer_id == tender_offer_id
    ).first()


def get_investor_share_count(db: Session, company_investor_id: int, share_class: str) -> int:
    """Shares of a class currently held by an investor."""
    if share_class == VESTED_SHARES_CLASS:
        rows = _vested_grants(db, company_investor_id)
        return sum(g.vested_shares for g in rows)
    rows = _holdings(db, company_investor_id, share_class)
    return sum(h.number_of_shares for h in rows)


def _holdings(db: Session, company_investor_id: int, share_class: str) -> List[ShareHolding]:
    return db.query(ShareHolding).join(
        ShareClass, ShareHolding.share_class_id == ShareClass.id
    ).filter(
        ShareHolding.company_investor_id == company_investor_id,
        ShareClass.name == share_class,
        ShareHolding.number_of_shares > 0,
    ).order_by(ShareHolding.issued_at, ShareHolding.id).all()


def _vested_grants(db: Session, company_investor_id: int) -> List[EquityGrant]:
    return db.query(EquityGrant).filter(
        EquityGrant.company_investor_id == company_investor_id,
        EquityGrant.vested_shares > 0,
    ).order_by(EquityGrant.issued_at, EquityGrant.id).all()


def decrement_holdings(db: Session, company_investor_id: int, share_class: str, shares: int) -> None:
    """
    Remove ``shares`` of a class from an investor, oldest certificate first.

    Raises:
        InsufficientSharesError: if the investor holds fewer shares
    """
    if share_class == VESTED_SHARES_CLASS:
        rows = _vested_grants(db, company_investor_id)
        attribute = "vested_shares"
    else:
        rows = _holdings(db, company_investor_id, share_class)
        attribute = "number_of_shares"

    available = sum(getattr(row, attribute) for row in rows)
    if available < shares:
        raise InsufficientSharesError(
            f"Investor {company_investor_id} holds {available} {share_class} shares, "
            f"cannot buy back {shares}"
        )

    remaining = shares
    for row in rows:
        if remaining == 0:
            break
        taken = min(getattr(row, attribute), remaining)
        setattr(row, attribute, getattr(row, attribute) - taken)
        remaining -= taken

    logger.debug(f"[CAP_TABLE] Investor {company_investor_id}: -{shares} {share_class}")


def settle(
    db: Session,
    tender_offer: TenderOffer,
    allocation: AllocationResult,
    now: Optional[datetime] = None,
) -> EquityBuybackRound:
    """
    Record a buyback round and debit the cap table.

    Args:
        db: Session whose transaction the caller commits or rolls back
        tender_offer: Offer being settled
        allocation: Accepted shares per bid at the clearing price

    Returns:
        The new EquityBuybackRound

    Raises:
        BuybackRoundExistsError: if the offer already has a round
        InsufficientSharesError: if an investor no longer holds the allocated shares
    """
    now = now or datetime.utcnow()

    if get_buyback_round(db, tender_offer.id) is not None:
        raise BuybackRoundExistsError(f"Tender offer {tender_offer.id} already has an equity buyback round")

    price = allocation.clearing_price_cents
    buyback_round = EquityBuybackRound(
        tender_offer_id=tender_offer.id,
        status="issued",
        issued_at=now,
    )
    db.add(buyback_round)
    db.flush()

    bids = {
        bid.id: bid
        for bid in db.query(TenderOfferBid).filter(TenderOfferBid.tender_offer_id == tender_offer.id).all()
    }
    for bid_allocation in allocation.allocations:
        bid = bids.get(bid_allocation.bid_id)
        if bid is not None:
            bid.accepted_shares = bid_allocation.accepted_shares

    investor_ids = set()
    for (company_investor_id, share_class), shares in allocation.by_investor_and_class().items():
        decrement_holdings(db, company_investor_id, share_class, shares)
        buyback_round.equity_buybacks.append(EquityBuyback(
            company_investor_id=company_investor_id,
            share_class=share_class,
            number_of_shares=shares,
            share_price_cents=price,
            total_amount_cents=shares * price,
            status="issued",
        ))
        investor_ids.add(company_investor_id)

    if tender_offer.accepted_price_cents is None:
        tender_offer.accepted_price_cents = price
    tender_offer.implied_valuation = tender_offer.accepted_price_cents * (tender_offer.company.fully_diluted_shares or 0) // 100

    buyback_round.number_of_shares = allocation.total_shares
    buyback_round.total_amount_cents = allocation.total_amount_cents
    buyback_round.number_of_eligible_investors = len(investor_ids)
    db.flush()

    logger.info(
        f"[CAP_TABLE] Round {buyback_round.id} for tender offer {tender_offer.id}: "
        f"{allocation.total_shares} shares from {len(investor_ids)} investors at {price}c"
    )
    return buyback_round
