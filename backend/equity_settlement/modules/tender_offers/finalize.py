"""
FinalizeBuyback: settles a tender offer end to end.

Bid ledger -> equilibrium price -> allocation -> cap table -> payments -> notices.

The cap table step runs in one transaction. Payments are only scheduled
after it commits, since payout jobs read the persisted buybacks.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session
import logging

from equity_settlement.modules.cap_table.models import EquityBuybackRound
from equity_settlement.modules.cap_table.services import get_buyback_round, settle
from equity_settlement.modules.payments.services import schedule_payments
from equity_settlement.modules.tender_offers.allocation import allocate
from equity_settlement.modules.tender_offers.bid_ledger import list_bids
from equity_settlement.modules.tender_offers.errors import BuybackRoundExistsError
from equity_settlement.modules.tender_offers.models import TenderOffer, TenderOfferBid
from equity_settlement.modules.tender_offers.pricing import BuybackBudget, calculate_equilibrium_price

logger = logging.getLogger(__name__)


class FinalizeBuyback:
    """
    Settle a tender offer and report the outcome as a result dict.

    perform() returns {"success": True} or
    {"success": False, "error_message": "..."}; it does not raise.
    """

    def __init__(
        self,
        db: Session,
        tender_offer: TenderOffer,
        job_queue=None,
        notifier=None,
        now: Optional[datetime] = None,
    ):
        self.db = db
        self.tender_offer = tender_offer
        self.now = now

        if job_queue is None:
            from equity_settlement.core.scheduler import get_job_queue
            job_queue = get_job_queue()
        if notifier is None:
            from equity_settlement.shared.services.notifications import get_notification_service
            notifier = get_notification_service()
        self.job_queue = job_queue
        self.notifier = notifier

    def perform(self) -> Dict[str, Any]:
        try:
            buyback_round = self._settle()
            scheduled = schedule_payments(buyback_round, self.job_queue)
            notified = self._notify_bidders()
        except Exception as e:
            self.db.rollback()
            logger.error(f"[FINALIZE] Tender offer {self.tender_offer.id} failed: {e}", exc_info=True)
            return {"success": False, "error_message": str(e)}

        logger.info(
            f"[FINALIZE] Tender offer {self.tender_offer.id} settled at "
            f"{self.tender_offer.accepted_price_cents}c: round {buyback_round.id}, "
            f"{len(scheduled)} payout(s) scheduled, {len(notified)} investor(s) notified"
        )
        return {"success": True}

    def _settle(self) -> EquityBuybackRound:
        tender_offer = self.tender_offer

        if get_buyback_round(self.db, tender_offer.id) is not None:
            raise BuybackRoundExistsError(f"Tender offer {tender_offer.id} has already been finalized")

        bids = list_bids(self.db, tender_offer.id)
        budget = BuybackBudget.for_tender_offer(tender_offer)

        if tender_offer.accepted_price_cents is not None:
            price = tender_offer.accepted_price_cents
            logger.info(f"[FINALIZE] Using accepted price {price}c for tender offer {tender_offer.id}")
        else:
            price = calculate_equilibrium_price(bids, budget).clearing_price_cents

        allocation = allocate(bids, price, budget)

        try:
            buyback_round = settle(self.db, tender_offer, allocation, now=self.now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return buyback_round

    def _notify_bidders(self) -> List[int]:
        """Send the closing notice once to every investor who bid, accepted or not."""
        bids = self.db.query(TenderOfferBid).filter(
            TenderOfferBid.tender_offer_id == self.tender_offer.id
        ).order_by(TenderOfferBid.id).all()

        notified: List[int] = []
        for bid in bids:
            if bid.company_investor_id in notified:
                continue
            self.notifier.tender_offer_closed(bid.company_investor, self.tender_offer)
            notified.append(bid.company_investor_id)
        return notified
