"""
Tender offer API routes.
Handles buyback windows, investor bids and settlement.
"""

from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from equity_settlement.core.database import get_db
from equity_settlement.modules.companies.models import Company, CompanyInvestor
from equity_settlement.modules.tender_offers.models import TenderOfferBid
from equity_settlement.modules.tender_offers.bid_ledger import (
    cancel_bid,
    list_bids,
    list_bids_for_investor,
    place_bid,
)
from equity_settlement.modules.tender_offers.errors import BidValidationError
from equity_settlement.modules.tender_offers.finalize import FinalizeBuyback
from equity_settlement.modules.tender_offers.services import (
    create_tender_offer,
    get_tender_offer,
    get_tender_offer_summary,
    list_tender_offers,
)

router = APIRouter()


# Pydantic models for request/response
class TenderOfferCreate(BaseModel):
    company_id: int
    name: str
    buyback_type: str = 'tender_offer'  # 'tender_offer' or 'single_stock'
    starts_at: datetime
    ends_at: datetime
    minimum_valuation: Optional[float] = None
    starting_valuation_cents: Optional[int] = None
    minimum_share_price_cents: int = 0
    total_amount_in_cents: Optional[int] = None
    number_of_shares: Optional[int] = None
    accepted_price_cents: Optional[int] = None
    attachment_key: str
    letter_of_transmittal_key: Optional[str] = None
    investor_ids: List[int]


class BidCreate(BaseModel):
    company_investor_id: int
    share_class: str
    number_of_shares: int
    share_price_cents: int


def _bid_dict(bid: TenderOfferBid) -> dict:
    return {
        "id": bid.id,
        "company_investor_id": bid.company_investor_id,
        "share_class": bid.share_class,
        "number_of_shares": bid.number_of_shares,
        "share_price_cents": bid.share_price_cents,
        "accepted_shares": bid.accepted_shares,
    }


def _get_tender_offer_or_404(db: Session, tender_offer_id: int):
    tender_offer = get_tender_offer(db, tender_offer_id)
    if not tender_offer:
        raise HTTPException(status_code=404, detail="Tender offer not found")
    return tender_offer


@router.post("")
def add_tender_offer(data: TenderOfferCreate, db: Session = Depends(get_db)):
    """Create a tender offer and invite investors."""
    company = db.query(Company).filter(Company.id == data.company_id).first()
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    if not company.tender_offers_enabled:
        raise HTTPException(status_code=403, detail="Tender offers are not enabled for this company")

    attributes = data.model_dump(exclude={"company_id", "investor_ids"})
    result = create_tender_offer(db, company, attributes, data.investor_ids)
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["error_message"])

    tender_offer = result["tender_offer"]
    return {
        "success": True,
        "tender_offer": {
            "id": tender_offer.id,
            "name": tender_offer.name,
        }
    }


@router.get("")
def get_tender_offers(
    company_id: int,
    company_investor_id: Optional[int] = None,
    db: Session = Depends(get_db)
):
    """List a company's tender offers with bid and participation totals."""
    return {
        "tender_offers": [
            get_tender_offer_summary(db, t, company_investor_id)
            for t in list_tender_offers(db, company_id)
        ]
    }


@router.get("/{tender_offer_id}")
def get_tender_offer_detail(tender_offer_id: int, db: Session = Depends(get_db)):
    """Get a tender offer."""
    tender_offer = _get_tender_offer_or_404(db, tender_offer_id)
    return get_tender_offer_summary(db, tender_offer)


@router.get("/{tender_offer_id}/bids")
def get_bids(
    tender_offer_id: int,
    company_investor_id: Optional[int] = None,
    db: Session = Depends(get_db)
):
    """List bids, optionally for one investor."""
    _get_tender_offer_or_404(db, tender_offer_id)
    if company_investor_id is not None:
        bids = list_bids_for_investor(db, tender_offer_id, company_investor_id)
    else:
        bids = sorted(list_bids(db, tender_offer_id), key=lambda b: b.id)
    return {"bids": [_bid_dict(b) for b in bids]}


@router.post("/{tender_offer_id}/bids")
def add_bid(tender_offer_id: int, data: BidCreate, db: Session = Depends(get_db)):
    """Place a bid on an open tender offer."""
    tender_offer = _get_tender_offer_or_404(db, tender_offer_id)
    company_investor = db.query(CompanyInvestor).filter(
        CompanyInvestor.id == data.company_investor_id,
        CompanyInvestor.company_id == tender_offer.company_id,
    ).first()
    if not company_investor:
        raise HTTPException(status_code=404, detail="Investor not found")

    try:
        bid = place_bid(
            db,
            tender_offer,
            company_investor,
            data.share_class,
            data.number_of_shares,
            data.share_price_cents,
        )
        db.commit()
    except BidValidationError as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=e.errors)
    except Exception as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=str(e))

    return {"success": True, "bid": _bid_dict(bid)}


@router.delete("/{tender_offer_id}/bids/{bid_id}")
def delete_bid(tender_offer_id: int, bid_id: int, db: Session = Depends(get_db)):
    """Cancel a bid while the tender offer is open."""
    bid = db.query(TenderOfferBid).filter(
        TenderOfferBid.id == bid_id,
        TenderOfferBid.tender_offer_id == tender_offer_id,
    ).first()
    if not bid:
        raise HTTPException(status_code=404, detail="Bid not found")

    try:
        cancel_bid(db, bid)
        db.commit()
    except BidValidationError as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=e.errors)

    return {"success": True, "message": "Bid cancelled"}


@router.post("/{tender_offer_id}/finalize")
def finalize_tender_offer(tender_offer_id: int, db: Session = Depends(get_db)):
    """
    Settle a tender offer: price, allocate, update the cap table,
    schedule payouts and notify bidders.
    """
    tender_offer = _get_tender_offer_or_404(db, tender_offer_id)

    result = FinalizeBuyback(db, tender_offer).perform()
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["error_message"])

    return {
        "success": True,
        "accepted_price_cents": tender_offer.accepted_price_cents,
        "implied_valuation": tender_offer.implied_valuation,
    }
