"""
Bid ledger: read access for settlement, plus bid placement and cancellation.
"""

from datetime import datetime
from typing import List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from equity_settlement.modules.cap_table.services import get_buyback_round
from equity_settlement.modules.tender_offers.models import TenderOffer, TenderOfferBid
from equity_settlement.modules.tender_offers.errors import BidValidationError
from equity_settlement.shared.services.notifications import format_cents

logger = logging.getLogger(__name__)

FINALIZED_MESSAGE = "Tender offer has already been finalized"


def list_bids(db: Session, tender_offer_id: int) -> List[TenderOfferBid]:
    """All bids on a tender offer. Callers must not rely on the order."""
    return db.query(TenderOfferBid).filter(
        TenderOfferBid.tender_offer_id == tender_offer_id
    ).all()


def list_bids_for_investor(db: Session, tender_offer_id: int, company_investor_id: int) -> List[TenderOfferBid]:
    return db.query(TenderOfferBid).filter(
        TenderOfferBid.tender_offer_id == tender_offer_id,
        TenderOfferBid.company_investor_id == company_investor_id,
    ).order_by(TenderOfferBid.id).all()


def _validate_bid(
    db: Session,
    tender_offer: TenderOffer,
    company_investor,
    share_class: str,
    number_of_shares: int,
    share_price_cents: int,
    now: datetime,
) -> List[str]:
    errors = []

    if get_buyback_round(db, tender_offer.id) is not None:
        errors.append(FINALIZED_MESSAGE)
    if not tender_offer.is_open(now):
        errors.append("Tender offer is not open")

    # Remaining rules need positive amounts
    if not number_of_shares or number_of_shares <= 0:
        errors.append("Number of shares must be greater than 0")
    if not share_price_cents or share_price_cents <= 0:
        errors.append("Share price must be greater than 0")
    if not number_of_shares or not share_price_cents or number_of_shares <= 0 or share_price_cents <= 0:
        return errors

    if share_price_cents < (tender_offer.minimum_share_price_cents or 0):
        errors.append(f"Must be equal to or greater than {format_cents(tender_offer.minimum_share_price_cents)}")

    if tender_offer.accepted_price_cents is not None and share_price_cents != tender_offer.accepted_price_cents:
        errors.append("Must match the accepted share price")

    # Cumulative bids on a class may not exceed what the investor holds
    available = {
        s["class_name"]: s["count"]
        for s in tender_offer.securities_available_for_purchase(db, company_investor)
    }
    already_bid = db.query(func.coalesce(func.sum(TenderOfferBid.number_of_shares), 0)).filter(
        TenderOfferBid.tender_offer_id == tender_offer.id,
        TenderOfferBid.company_investor_id == company_investor.id,
        TenderOfferBid.share_class == share_class,
    ).scalar()
    if already_bid + number_of_shares > available.get(share_class, 0):
        errors.append(f"Insufficient {share_class} shares")

    if tender_offer.buyback_type == "single_stock" and tender_offer.total_amount_in_cents is not None:
        existing_amount = db.query(
            func.coalesce(func.sum(TenderOfferBid.number_of_shares * TenderOfferBid.share_price_cents), 0)
        ).filter(TenderOfferBid.tender_offer_id == tender_offer.id).scalar()
        if existing_amount + number_of_shares * share_price_cents > tender_offer.total_amount_in_cents:
            errors.append("Total bid amount cannot exceed the tender offer's total amount")

    return errors


def place_bid(
    db: Session,
    tender_offer: TenderOffer,
    company_investor,
    share_class: str,
    number_of_shares: int,
    share_price_cents: int,
    now: Optional[datetime] = None,
) -> TenderOfferBid:
    """
    Validate and add a bid. The caller commits.

    Raises:
        BidValidationError: with every failed rule
    """
    now = now or datetime.utcnow()
    errors = _validate_bid(
        db, tender_offer, company_investor, share_class, number_of_shares, share_price_cents, now
    )
    if errors:
        raise BidValidationError(errors)

    bid = TenderOfferBid(
        tender_offer_id=tender_offer.id,
        company_investor_id=company_investor.id,
        share_class=share_class,
        number_of_shares=number_of_shares,
        share_price_cents=share_price_cents,
        accepted_shares=0,
    )
    db.add(bid)
    db.flush()

    logger.info(
        f"[BIDS] Investor {company_investor.id} bid {number_of_shares} {share_class} "
        f"at {share_price_cents}c on tender offer {tender_offer.id}"
    )
    return bid


def cancel_bid(db: Session, bid: TenderOfferBid, now: Optional[datetime] = None) -> None:
    """Remove a bid. Only allowed while the tender offer is open and unsettled."""
    now = now or datetime.utcnow()
    if get_buyback_round(db, bid.tender_offer_id) is not None:
        raise BidValidationError([FINALIZED_MESSAGE])
    if not bid.tender_offer.is_open(now):
        raise BidValidationError(["Tender offer is not open"])

    db.delete(bid)
    db.flush()
    logger.info(f"[BIDS] Bid {bid.id} cancelled on tender offer {bid.tender_offer_id}")
