"""
Buyback payment scheduling and the payout job.

Payout jobs are staggered: the n-th eligible investor's job runs
n * PAYMENT_DELAY_SECONDS after settlement. This is client-side pacing for
the payout API, not a queue with admission control.
"""

from datetime import datetime
from typing import Callable, Iterable, List, Optional
from sqlalchemy.orm import Session
import logging

from equity_settlement.core.config import settings
from equity_settlement.core.database import SessionLocal
from equity_settlement.modules.cap_table.models import EquityBuybackRound, EquityBuyback
from equity_settlement.modules.payments.models import EquityBuybackPayment
from equity_settlement.modules.payments.payout_client import PayoutClient, PayoutError

logger = logging.getLogger(__name__)


def payout_ineligibility_reason(
    company_investor,
    restricted_country_codes: Optional[Iterable[str]] = None,
    sanctioned_country_codes: Optional[Iterable[str]] = None,
) -> Optional[str]:
    """Why an investor cannot be paid yet, or None if they can."""
    user = company_investor.user

    if not user.has_verified_tax_id():
        return "tax ID not verified"
    if user.restricted_payout_country_resident(restricted_country_codes):
        return "restricted payout country resident"
    if user.sanctioned_country_resident(sanctioned_country_codes):
        return "sanctioned country resident"
    if user.tax_information_confirmed_at is None:
        return "tax information not confirmed"
    if not company_investor.completed_onboarding():
        return "onboarding incomplete"
    return None


def schedule_payments(
    buyback_round: EquityBuybackRound,
    job_queue,
    delay_seconds: Optional[int] = None,
) -> List[int]:
    """
    Enqueue one payout job per eligible investor in a buyback round.

    Ineligible investors are skipped and logged; their buybacks stay
    'issued' so they can be paid once eligible.

    Returns:
        company_investor ids that had a job scheduled, in order
    """
    delay_seconds = settings.PAYMENT_DELAY_SECONDS if delay_seconds is None else delay_seconds
    scheduled: List[int] = []
    seen = set()

    for equity_buyback in buyback_round.equity_buybacks:
        company_investor = equity_buyback.company_investor
        if company_investor.id in seen:
            continue
        seen.add(company_investor.id)

        reason = payout_ineligibility_reason(company_investor)
        if reason:
            logger.info(f"[PAYMENTS] Skipping investor {company_investor.id}: {reason}")
            continue

        delay = (len(scheduled) + 1) * delay_seconds
        job_queue.perform_in(
            delay,
            pay_investor_equity_buybacks,
            company_investor.id,
            job_id=f"equity_buyback_payment_{buyback_round.id}_{company_investor.id}",
        )
        scheduled.append(company_investor.id)

    logger.info(
        f"[PAYMENTS] Scheduled {len(scheduled)} payout(s) for round {buyback_round.id} "
        f"({len(seen) - len(scheduled)} skipped)"
    )
    return scheduled


def create_buyback_payment(db: Session, company_investor_id: int) -> Optional[EquityBuybackPayment]:
    """Bundle an investor's issued buybacks into one payment record. Caller commits."""
    buybacks = db.query(EquityBuyback).filter(
        EquityBuyback.company_investor_id == company_investor_id,
        EquityBuyback.status == "issued",
    ).order_by(EquityBuyback.id).all()

    if not buybacks:
        return None

    payment = EquityBuybackPayment(
        company_investor_id=company_investor_id,
        total_amount_cents=sum(b.total_amount_cents for b in buybacks),
        status="initial",
        equity_buyback_ids=[b.id for b in buybacks],
    )
    db.add(payment)
    for buyback in buybacks:
        buyback.status = "processing"
    db.flush()
    return payment


def pay_investor_equity_buybacks(
    company_investor_id: int,
    session_factory: Callable[[], Session] = SessionLocal,
    payout_client: Optional[PayoutClient] = None,
) -> Optional[int]:
    """
    Payout job: pay everything an investor is owed from buybacks.

    Returns:
        The EquityBuybackPayment id, or None when nothing was owed
    """
    payout_client = payout_client or PayoutClient()
    db = session_factory()
    try:
        payment = create_buyback_payment(db, company_investor_id)
        if payment is None:
            logger.info(f"[PAYMENTS] Investor {company_investor_id} has no issued buybacks")
            return None
        db.commit()

        try:
            result = payout_client.create_transfer(
                reference=f"equity-buyback-payment-{payment.id}",
                company_investor_id=company_investor_id,
                amount_cents=payment.total_amount_cents,
                description="Equity buyback",
            )
            payment.transfer_id = str(result.get("id")) if result.get("id") is not None else None
            payment.status = "submitted"
        except PayoutError as e:
            logger.error(f"[PAYMENTS] Payout for investor {company_investor_id} failed: {e}")
            payment.status = "failed"
            payment.error_message = str(e)

        payment.updated_at = datetime.utcnow()
        db.commit()
        return payment.id
    except Exception as e:
        logger.error(f"[PAYMENTS] Error paying investor {company_investor_id}: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()
