"""
Shared fixtures: an in-memory SQLite database and small factories for
companies, investors, holdings, tender offers and bids.
"""

import os

# Must be set before equity_settlement.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from equity_settlement.core.database import Base
from equity_settlement.modules.companies.models import Company, User, CompanyInvestor
from equity_settlement.modules.cap_table.models import (  # noqa: F401
    ShareClass,
    ShareHolding,
    EquityGrant,
    EquityBuybackRound,
    EquityBuyback,
)
from equity_settlement.modules.tender_offers.models import TenderOffer, TenderOfferInvestor, TenderOfferBid  # noqa: F401
from equity_settlement.modules.payments.models import EquityBuybackPayment  # noqa: F401


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def company(db):
    company = Company(name="Acme Robotics", fully_diluted_shares=1_000_000, tender_offers_enabled=True)
    db.add(company)
    db.commit()
    return company


@pytest.fixture
def make_investor(db, company):
    """Build a payout-eligible investor unless told otherwise."""
    counter = {"n": 0}

    def _make(
        country_code: str = "US",
        tax_id_status: str = "verified",
        tax_confirmed: bool = True,
        onboarded: bool = True,
        legal_name: str = None,
    ) -> CompanyInvestor:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=f"investor{n}@example.com",
            legal_name=legal_name or f"Investor {n}",
            country_code=country_code,
            tax_id_status=tax_id_status,
            tax_information_confirmed_at=datetime(2025, 1, 15) if tax_confirmed else None,
        )
        db.add(user)
        db.flush()

        investor = CompanyInvestor(
            company_id=company.id,
            user_id=user.id,
            onboarding_completed_at=datetime(2025, 1, 10) if onboarded else None,
        )
        db.add(investor)
        db.commit()
        return investor

    return _make


@pytest.fixture
def make_holding(db, company):
    def _make(investor, shares: int, class_name: str = "Common", issued_at: datetime = None) -> ShareHolding:
        share_class = db.query(ShareClass).filter(
            ShareClass.company_id == company.id,
            ShareClass.name == class_name,
        ).first()
        if share_class is None:
            share_class = ShareClass(company_id=company.id, name=class_name)
            db.add(share_class)
            db.flush()

        holding = ShareHolding(
            company_investor_id=investor.id,
            share_class_id=share_class.id,
            name=f"CS-{investor.id}-{shares}",
            issued_at=issued_at or datetime(2022, 1, 1),
            number_of_shares=shares,
        )
        db.add(holding)
        db.commit()
        return holding

    return _make


@pytest.fixture
def make_grant(db):
    def _make(investor, vested_shares: int, issued_at: datetime = None) -> EquityGrant:
        grant = EquityGrant(
            company_investor_id=investor.id,
            name=f"GR-{investor.id}",
            issued_at=issued_at or datetime(2023, 1, 1),
            vested_shares=vested_shares,
        )
        db.add(grant)
        db.commit()
        return grant

    return _make


@pytest.fixture
def make_tender_offer(db, company):
    """Open tender offer; keyword arguments override any column."""

    def _make(**overrides) -> TenderOffer:
        now = datetime.utcnow()
        attributes = dict(
            company_id=company.id,
            name="2026 Tender Offer",
            buyback_type="tender_offer",
            starts_at=now - timedelta(days=1),
            ends_at=now + timedelta(days=7),
            minimum_share_price_cents=100,
            attachment_key="tender-offers/2026.zip",
        )
        attributes.update(overrides)
        tender_offer = TenderOffer(**attributes)
        db.add(tender_offer)
        db.commit()
        return tender_offer

    return _make


@pytest.fixture
def make_bid(db):
    """Insert a bid directly, skipping bid validation."""

    def _make(tender_offer, investor, shares: int, price_cents: int, share_class: str = "Common") -> TenderOfferBid:
        bid = TenderOfferBid(
            tender_offer_id=tender_offer.id,
            company_investor_id=investor.id,
            share_class=share_class,
            number_of_shares=shares,
            share_price_cents=price_cents,
            accepted_shares=0,
        )
        db.add(bid)
        db.commit()
        return bid

    return _make


@pytest.fixture
def job_queue():
    return MagicMock()


@pytest.fixture
def notifier():
    return MagicMock()
