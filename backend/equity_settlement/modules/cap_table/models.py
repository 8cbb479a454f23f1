"""
Cap table database models: holdings, vested grants and buyback records.
"""

from sqlalchemy import Column, Integer, BigInteger, String, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship

from equity_settlement.shared.models.base import BaseModel


class ShareClass(BaseModel):
    """A named class of shares (e.g. 'Common', 'Series A Preferred')."""

    __tablename__ = "share_classes"
    __table_args__ = (
        UniqueConstraint("company_id", "name", name="uq_share_classes_company_name"),
    )

    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    name = Column(String(100), nullable=False)


class ShareHolding(BaseModel):
    """Shares of one class held by an investor under one certificate."""

    __tablename__ = "share_holdings"

    company_investor_id = Column(Integer, ForeignKey("company_investors.id"), nullable=False)
    share_class_id = Column(Integer, ForeignKey("share_classes.id"), nullable=False)

    name = Column(String(50), nullable=True)  # certificate id, e.g. "CS-12"
    issued_at = Column(DateTime, nullable=True)
    number_of_shares = Column(BigInteger, nullable=False, default=0)

    share_class = relationship("ShareClass")
    company_investor = relationship("CompanyInvestor")

    __table_args__ = (
        Index("idx_share_holdings_investor", "company_investor_id"),
    )


class EquityGrant(BaseModel):
    """Option grant whose vested shares can be tendered."""

    __tablename__ = "equity_grants"

    company_investor_id = Column(Integer, ForeignKey("company_investors.id"), nullable=False)
    name = Column(String(50), nullable=True)  # e.g. "E9-2"
    issued_at = Column(DateTime, nullable=True)
    vested_shares = Column(BigInteger, nullable=False, default=0)

    company_investor = relationship("CompanyInvestor")


class EquityBuybackRound(BaseModel):
    """Settlement artifact of a finalized tender offer. One per offer."""

    __tablename__ = "equity_buyback_rounds"

    tender_offer_id = Column(Integer, ForeignKey("tender_offers.id"), nullable=False, unique=True)
    status = Column(String(20), nullable=False, default="issued")
    number_of_shares = Column(BigInteger, nullable=False, default=0)
    number_of_eligible_investors = Column(Integer, nullable=False, default=0)
    total_amount_cents = Column(BigInteger, nullable=False, default=0)
    issued_at = Column(DateTime, nullable=True)

    tender_offer = relationship("TenderOffer", back_populates="equity_buyback_round")
    equity_buybacks = relationship(
        "EquityBuyback",
        back_populates="equity_buyback_round",
        order_by="EquityBuyback.id",
    )


class EquityBuyback(BaseModel):
    """Shares of one class bought back from one investor in a round."""

    __tablename__ = "equity_buybacks"

    equity_buyback_round_id = Column(Integer, ForeignKey("equity_buyback_rounds.id"), nullable=False)
    company_investor_id = Column(Integer, ForeignKey("company_investors.id"), nullable=False)

    share_class = Column(String(100), nullable=False)
    number_of_shares = Column(BigInteger, nullable=False)
    share_price_cents = Column(BigInteger, nullable=False)
    total_amount_cents = Column(BigInteger, nullable=False)

    status = Column(String(20), nullable=False, default="issued")  # 'issued', 'processing', 'paid'

    equity_buyback_round = relationship("EquityBuybackRound", back_populates="equity_buybacks")
    company_investor = relationship("CompanyInvestor")

    __table_args__ = (
        Index("idx_equity_buybacks_investor", "company_investor_id"),
    )
