"""
Payment records for buyback payouts.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship

from equity_settlement.shared.models.base import BaseModel


class EquityBuybackPayment(BaseModel):
    """One payout to an investor covering all of their issued buybacks."""

    __tablename__ = "equity_buyback_payments"

    company_investor_id = Column(Integer, ForeignKey("company_investors.id"), nullable=False)
    total_amount_cents = Column(BigInteger, nullable=False)
    status = Column(String(20), nullable=False, default="initial")  # 'initial', 'submitted', 'failed'

    transfer_id = Column(String(100), nullable=True)  # payout provider reference
    equity_buyback_ids = Column(JSON, nullable=False, default=list)
    error_message = Column(Text, nullable=True)

    company_investor = relationship("CompanyInvestor")
