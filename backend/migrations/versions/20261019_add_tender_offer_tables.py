"""Add company, cap table, tender offer and buyback payment tables

Revision ID: 3f1c9a7d2b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7d2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps():
    return [
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table('companies',
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('fully_diluted_shares', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('tender_offers_enabled', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('users',
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('legal_name', sa.String(length=255), nullable=True),
        sa.Column('country_code', sa.String(length=2), nullable=True),
        sa.Column('tax_id_status', sa.String(length=20), nullable=True),
        sa.Column('tax_information_confirmed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    op.create_table('company_investors',
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('onboarding_completed_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'user_id', name='uq_company_investors_company_user')
    )

    op.create_table('share_classes',
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('company_id', 'name', name='uq_share_classes_company_name')
    )

    op.create_table('share_holdings',
        sa.Column('company_investor_id', sa.Integer(), nullable=False),
        sa.Column('share_class_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=True),
        sa.Column('issued_at', sa.DateTime(), nullable=True),
        sa.Column('number_of_shares', sa.BigInteger(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_investor_id'], ['company_investors.id']),
        sa.ForeignKeyConstraint(['share_class_id'], ['share_classes.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_share_holdings_investor', 'share_holdings', ['company_investor_id'], unique=False)

    op.create_table('equity_grants',
        sa.Column('company_investor_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=True),
        sa.Column('issued_at', sa.DateTime(), nullable=True),
        sa.Column('vested_shares', sa.BigInteger(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_investor_id'], ['company_investors.id']),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('tender_offers',
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('buyback_type', sa.String(length=20), nullable=False, server_default='tender_offer'),
        sa.Column('starts_at', sa.DateTime(), nullable=False),
        sa.Column('ends_at', sa.DateTime(), nullable=False),
        sa.Column('minimum_valuation', sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column('starting_valuation_cents', sa.BigInteger(), nullable=True),
        sa.Column('minimum_share_price_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('accepted_price_cents', sa.BigInteger(), nullable=True),
        sa.Column('implied_valuation', sa.BigInteger(), nullable=True),
        sa.Column('total_amount_in_cents', sa.BigInteger(), nullable=True),
        sa.Column('number_of_shares', sa.BigInteger(), nullable=True),
        sa.Column('attachment_key', sa.String(length=255), nullable=True),
        sa.Column('letter_of_transmittal_key', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_tender_offers_company', 'tender_offers', ['company_id'], unique=False)

    op.create_table('tender_offer_investors',
        sa.Column('tender_offer_id', sa.Integer(), nullable=False),
        sa.Column('company_investor_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tender_offer_id'], ['tender_offers.id']),
        sa.ForeignKeyConstraint(['company_investor_id'], ['company_investors.id']),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('tender_offer_bids',
        sa.Column('tender_offer_id', sa.Integer(), nullable=False),
        sa.Column('company_investor_id', sa.Integer(), nullable=False),
        sa.Column('share_class', sa.String(length=100), nullable=False),
        sa.Column('number_of_shares', sa.BigInteger(), nullable=False),
        sa.Column('share_price_cents', sa.BigInteger(), nullable=False),
        sa.Column('accepted_shares', sa.BigInteger(), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tender_offer_id'], ['tender_offers.id']),
        sa.ForeignKeyConstraint(['company_investor_id'], ['company_investors.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('number_of_shares > 0', name='ck_tender_offer_bids_shares_positive'),
        sa.CheckConstraint('share_price_cents > 0', name='ck_tender_offer_bids_price_positive')
    )
    op.create_index('idx_tender_offer_bids_offer', 'tender_offer_bids', ['tender_offer_id'], unique=False)

    op.create_table('equity_buyback_rounds',
        sa.Column('tender_offer_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='issued'),
        sa.Column('number_of_shares', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('number_of_eligible_investors', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('issued_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['tender_offer_id'], ['tender_offers.id']),
        sa.PrimaryKeyConstraint('id'),
        # One settlement per tender offer
        sa.UniqueConstraint('tender_offer_id')
    )

    op.create_table('equity_buybacks',
        sa.Column('equity_buyback_round_id', sa.Integer(), nullable=False),
        sa.Column('company_investor_id', sa.Integer(), nullable=False),
        sa.Column('share_class', sa.String(length=100), nullable=False),
        sa.Column('number_of_shares', sa.BigInteger(), nullable=False),
        sa.Column('share_price_cents', sa.BigInteger(), nullable=False),
        sa.Column('total_amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='issued'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['equity_buyback_round_id'], ['equity_buyback_rounds.id']),
        sa.ForeignKeyConstraint(['company_investor_id'], ['company_investors.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_equity_buybacks_investor', 'equity_buybacks', ['company_investor_id'], unique=False)

    op.create_table('equity_buyback_payments',
        sa.Column('company_investor_id', sa.Integer(), nullable=False),
        sa.Column('total_amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='initial'),
        sa.Column('transfer_id', sa.String(length=100), nullable=True),
        sa.Column('equity_buyback_ids', sa.JSON(), nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['company_investor_id'], ['company_investors.id']),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    op.drop_table('equity_buyback_payments')
    op.drop_index('idx_equity_buybacks_investor', table_name='equity_buybacks')
    op.drop_table('equity_buybacks')
    op.drop_table('equity_buyback_rounds')
    op.drop_index('idx_tender_offer_bids_offer', table_name='tender_offer_bids')
    op.drop_table('tender_offer_bids')
    op.drop_table('tender_offer_investors')
    op.drop_index('idx_tender_offers_company', table_name='tender_offers')
    op.drop_table('tender_offers')
    op.drop_table('equity_grants')
    op.drop_index('idx_share_holdings_investor', table_name='share_holdings')
    op.drop_table('share_holdings')
    op.drop_table('share_classes')
    op.drop_table('company_investors')
    op.drop_table('users')
    op.drop_table('companies')
