"""
Tender offer services: creation, lookup and summaries.
"""

from typing import Any, Dict, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from equity_settlement.modules.companies.models import Company, CompanyInvestor
from equity_settlement.modules.cap_table.models import EquityBuybackRound
from equity_settlement.modules.tender_offers.models import (
    TenderOffer,
    TenderOfferBid,
    TenderOfferInvestor,
    BUYBACK_TYPES,
)
from equity_settlement.modules.tender_offers.errors import TenderOfferValidationError

logger = logging.getLogger(__name__)


def get_tender_offer(db: Session, tender_offer_id: int) -> Optional[TenderOffer]:
    """Get a tender offer by ID."""
    return db.query(TenderOffer).filter(TenderOffer.id == tender_offer_id).first()


def list_tender_offers(db: Session, company_id: int) -> List[TenderOffer]:
    """Tender offers of a company, newest first."""
    return db.query(TenderOffer).filter(
        TenderOffer.company_id == company_id
    ).order_by(TenderOffer.created_at.desc(), TenderOffer.id.desc()).all()


def validate_tender_offer(tender_offer: TenderOffer, investor_count: int) -> List[str]:
    errors = []

    if not tender_offer.name:
        errors.append("Name can't be blank")
    if tender_offer.buyback_type not in BUYBACK_TYPES:
        errors.append("Buyback type is not included in the list")
    if tender_offer.starts_at is None:
        errors.append("Starts at can't be blank")
    if tender_offer.ends_at is None:
        errors.append("Ends at can't be blank")
    if tender_offer.starts_at and tender_offer.ends_at and tender_offer.ends_at < tender_offer.starts_at:
        errors.append("Ends at must be after starts at")
    if not tender_offer.attachment_key:
        errors.append("Attachment can't be blank")

    if tender_offer.minimum_share_price_cents is None or tender_offer.minimum_share_price_cents < 0:
        errors.append("Minimum share price cents must be greater than or equal to 0")
    for field in ("total_amount_in_cents", "accepted_price_cents"):
        value = getattr(tender_offer, field)
        if value is not None and value <= 0:
            errors.append(f"{field.replace('_', ' ').capitalize()} must be greater than 0")
    if tender_offer.number_of_shares is not None and tender_offer.number_of_shares < 0:
        errors.append("Number of shares must be greater than or equal to 0")

    if investor_count == 0:
        errors.append("At least one investor must be selected")
    elif tender_offer.buyback_type == "single_stock" and investor_count != 1:
        errors.append("Single stock repurchases can only have one investor")

    if tender_offer.buyback_type == "single_stock" and tender_offer.accepted_price_cents is None:
        errors.append("Accepted price cents is required for single stock buybacks")

    return errors


def create_tender_offer(
    db: Session,
    company: Company,
    attributes: Dict[str, Any],
    investor_ids: List[int],
    notifier=None,
) -> Dict[str, Any]:
    """
    Create a tender offer, invite investors and notify them.

    Returns:
        {"success": True, "tender_offer": TenderOffer} or
        {"success": False, "error_message": str}
    """
    investors = []
    if investor_ids:
        investors = db.query(CompanyInvestor).filter(
            CompanyInvestor.company_id == company.id,
            CompanyInvestor.id.in_(investor_ids),
        ).order_by(CompanyInvestor.id).all()

    tender_offer = TenderOffer(
        company_id=company.id,
        buyback_type=attributes.get("buyback_type") or "tender_offer",
        minimum_share_price_cents=attributes.get("minimum_share_price_cents") or 0,
        **{
            key: attributes.get(key)
            for key in (
                "name",
                "starts_at",
                "ends_at",
                "minimum_valuation",
                "starting_valuation_cents",
                "total_amount_in_cents",
                "number_of_shares",
                "accepted_price_cents",
                "attachment_key",
                "letter_of_transmittal_key",
            )
        },
    )

    try:
        errors = validate_tender_offer(tender_offer, len(investors))
        if errors:
            raise TenderOfferValidationError(errors)

        db.add(tender_offer)
        db.flush()
        for investor in investors:
            db.add(TenderOfferInvestor(tender_offer_id=tender_offer.id, company_investor_id=investor.id))
        db.commit()
    except Exception as e:
        db.rollback()
        logger.warning(f"[TENDER_OFFERS] Could not create tender offer for company {company.id}: {e}")
        return {"success": False, "error_message": str(e)}

    logger.info(
        f"[TENDER_OFFERS] Created tender offer {tender_offer.id} '{tender_offer.name}' "
        f"with {len(investors)} investor(s)"
    )

    if notifier is None:
        from equity_settlement.shared.services.notifications import get_notification_service
        notifier = get_notification_service()
    for investor in investors:
        notifier.tender_offer_opened(investor, tender_offer)

    return {"success": True, "tender_offer": tender_offer}


def get_tender_offer_summary(
    db: Session,
    tender_offer: TenderOffer,
    company_investor_id: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Summary counts for listings.

    With ``company_investor_id`` the bid count and participation only cover
    that investor's bids; the investor count is then 0.
    """
    bids = db.query(TenderOfferBid).filter(TenderOfferBid.tender_offer_id == tender_offer.id)
    if company_investor_id is not None:
        bids = bids.filter(TenderOfferBid.company_investor_id == company_investor_id)

    bid_count = bids.count()
    investor_count = 0
    if company_investor_id is None:
        investor_count = db.query(func.count(func.distinct(TenderOfferBid.company_investor_id))).filter(
            TenderOfferBid.tender_offer_id == tender_offer.id
        ).scalar() or 0

    accepted_shares = sum(bid.accepted_shares or 0 for bid in bids.all())
    participation_cents = accepted_shares * (tender_offer.accepted_price_cents or 0)

    round_count = db.query(EquityBuybackRound).filter(
        EquityBuybackRound.tender_offer_id == tender_offer.id
    ).count()

    return {
        "id": tender_offer.id,
        "name": tender_offer.name,
        "buyback_type": tender_offer.buyback_type,
        "starts_at": tender_offer.starts_at.isoformat() if tender_offer.starts_at else None,
        "ends_at": tender_offer.ends_at.isoformat() if tender_offer.ends_at else None,
        "minimum_valuation": float(tender_offer.minimum_valuation) if tender_offer.minimum_valuation is not None else None,
        "minimum_share_price_cents": tender_offer.minimum_share_price_cents,
        "total_amount_in_cents": tender_offer.total_amount_in_cents,
        "number_of_shares": tender_offer.number_of_shares,
        "accepted_price_cents": tender_offer.accepted_price_cents,
        "implied_valuation": tender_offer.implied_valuation,
        "open": tender_offer.is_open(),
        "bid_count": bid_count,
        "investor_count": investor_count,
        "equity_buyback_round_count": round_count,
        "participation_cents": participation_cents,
    }
