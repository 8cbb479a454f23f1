"""
Company, user and investor models.

These are owned by the surrounding application; the settlement pipeline
reads them for budget context and payout eligibility.
"""

from typing import Iterable, Optional
from sqlalchemy import Column, Integer, BigInteger, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from equity_settlement.core.config import settings
from equity_settlement.shared.models.base import BaseModel


class Company(BaseModel):
    """A company running buybacks of its own shares."""

    __tablename__ = "companies"

    name = Column(String(200), nullable=False)
    fully_diluted_shares = Column(BigInteger, nullable=False, default=0)
    tender_offers_enabled = Column(Boolean, nullable=False, default=True)

    investors = relationship("CompanyInvestor", back_populates="company")


class User(BaseModel):
    """A person who may hold equity in one or more companies."""

    __tablename__ = "users"

    email = Column(String(255), nullable=False, unique=True)
    legal_name = Column(String(255), nullable=True)
    country_code = Column(String(2), nullable=True)  # ISO 3166-1 alpha-2

    # Tax status
    tax_id_status = Column(String(20), nullable=True)  # 'verified', 'invalid', None
    tax_information_confirmed_at = Column(DateTime, nullable=True)

    investments = relationship("CompanyInvestor", back_populates="user")

    def has_verified_tax_id(self) -> bool:
        return self.tax_id_status == "verified"

    def restricted_payout_country_resident(self, country_codes: Optional[Iterable[str]] = None) -> bool:
        codes = settings.RESTRICTED_PAYOUT_COUNTRY_CODES if country_codes is None else country_codes
        return self.country_code is not None and self.country_code.upper() in codes

    def sanctioned_country_resident(self, country_codes: Optional[Iterable[str]] = None) -> bool:
        codes = settings.SANCTIONED_COUNTRY_CODES if country_codes is None else country_codes
        return self.country_code is not None and self.country_code.upper() in codes


class CompanyInvestor(BaseModel):
    """A user's investor seat in a company's cap table."""

    __tablename__ = "company_investors"
    __table_args__ = (
        UniqueConstraint("company_id", "user_id", name="uq_company_investors_company_user"),
    )

    company_id = Column(Integer, ForeignKey("companies.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    onboarding_completed_at = Column(DateTime, nullable=True)

    company = relationship("Company", back_populates="investors")
    user = relationship("User", back_populates="investments")

    def completed_onboarding(self) -> bool:
        return self.onboarding_completed_at is not None
