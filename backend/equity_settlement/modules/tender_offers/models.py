"""
Tender offer database models: offers, invited investors and bids.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Numeric, ForeignKey, Index, CheckConstraint, func
from sqlalchemy.orm import Session, relationship

from equity_settlement.shared.models.base import BaseModel
from equity_settlement.modules.companies.models import Company, CompanyInvestor  # noqa: F401
from equity_settlement.modules.cap_table.models import ShareClass, ShareHolding, EquityGrant


VESTED_SHARES_CLASS = "Vested shares from equity grants"

BUYBACK_TYPES = ("tender_offer", "single_stock")


class TenderOffer(BaseModel):
    """A window in which a company offers to buy back its shares."""

    __tablename__ = "tender_offers"

    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)

    name = Column(String(200), nullable=False)
    buyback_type = Column(String(20), nullable=False, default="tender_offer")  # 'tender_offer', 'single_stock'

    # Bidding window
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)

    # Pricing
    minimum_valuation = Column(Numeric(18, 2), nullable=True)
    starting_valuation_cents = Column(BigInteger, nullable=True)
    minimum_share_price_cents = Column(BigInteger, nullable=False, default=0)
    accepted_price_cents = Column(BigInteger, nullable=True)  # set once, at settlement
    implied_valuation = Column(BigInteger, nullable=True)  # dollars

    # Budget
    total_amount_in_cents = Column(BigInteger, nullable=True)
    number_of_shares = Column(BigInteger, nullable=True)

    # Document package
    attachment_key = Column(String(255), nullable=True)
    letter_of_transmittal_key = Column(String(255), nullable=True)

    company = relationship("Company")
    bids = relationship("TenderOfferBid", back_populates="tender_offer", order_by="TenderOfferBid.id")
    tender_offer_investors = relationship("TenderOfferInvestor", back_populates="tender_offer")
    equity_buyback_round = relationship("EquityBuybackRound", back_populates="tender_offer", uselist=False)

    __table_args__ = (
        Index("idx_tender_offers_company", "company_id"),
    )

    def is_open(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return self.starts_at <= now <= self.ends_at

    def securities_available_for_purchase(self, db: Session, company_investor) -> List[Dict[str, Any]]:
        """Shares the investor could tender, grouped by share class name."""
        securities = []

        rows = db.query(
            ShareClass.name,
            func.sum(ShareHolding.number_of_shares),
        ).join(
            ShareHolding, ShareHolding.share_class_id == ShareClass.id
        ).filter(
            ShareHolding.company_investor_id == company_investor.id
        ).group_by(ShareClass.name).order_by(ShareClass.name).all()

        for class_name, total_shares in rows:
            securities.append({"class_name": class_name, "count": int(total_shares or 0)})

        vested_shares = db.query(func.sum(EquityGrant.vested_shares)).filter(
            EquityGrant.company_investor_id == company_investor.id,
            EquityGrant.vested_shares > 0,
        ).scalar() or 0
        if vested_shares > 0:
            securities.append({"class_name": VESTED_SHARES_CLASS, "count": int(vested_shares)})

        return securities


class TenderOfferInvestor(BaseModel):
    """An investor invited to participate in a tender offer."""

    __tablename__ = "tender_offer_investors"

    tender_offer_id = Column(Integer, ForeignKey("tender_offers.id"), nullable=False)
    company_investor_id = Column(Integer, ForeignKey("company_investors.id"), nullable=False)

    tender_offer = relationship("TenderOffer", back_populates="tender_offer_investors")
    company_investor = relationship("CompanyInvestor")


class TenderOfferBid(BaseModel):
    """An investor's offer to sell shares of a class at a price."""

    __tablename__ = "tender_offer_bids"

    tender_offer_id = Column(Integer, ForeignKey("tender_offers.id"), nullable=False)
    company_investor_id = Column(Integer, ForeignKey("company_investors.id"), nullable=False)

    share_class = Column(String(100), nullable=False)
    number_of_shares = Column(BigInteger, nullable=False)
    share_price_cents = Column(BigInteger, nullable=False)

    # Written by settlement
    accepted_shares = Column(BigInteger, nullable=False, default=0)

    tender_offer = relationship("TenderOffer", back_populates="bids")
    company_investor = relationship("CompanyInvestor")

    __table_args__ = (
        Index("idx_tender_offer_bids_offer", "tender_offer_id"),
        CheckConstraint("number_of_shares > 0", name="ck_tender_offer_bids_shares_positive"),
        CheckConstraint("share_price_cents > 0", name="ck_tender_offer_bids_price_positive"),
    )
