"""
FinalizeBuyback end to end: price, allocate, settle, schedule payouts, notify.
"""

from unittest.mock import patch

import pytest

from equity_settlement.modules.cap_table.models import EquityBuyback, EquityBuybackRound
from equity_settlement.modules.cap_table.services import get_investor_share_count
from equity_settlement.modules.tender_offers.finalize import FinalizeBuyback
from equity_settlement.modules.tender_offers.models import TenderOfferBid


NO_BIDS_MESSAGE = "No equilibrium price could be calculated. There are no bids on this tender offer."


@pytest.fixture
def finalize(db, job_queue, notifier):
    def _finalize(tender_offer):
        return FinalizeBuyback(db, tender_offer, job_queue=job_queue, notifier=notifier).perform()

    return _finalize


@pytest.fixture
def two_bidders(make_investor, make_holding, make_tender_offer, make_bid):
    """A bids 100 @ $10, B bids 200 @ $9, with a $1,500 budget."""
    alice = make_investor()
    bob = make_investor()
    make_holding(alice, 100)
    make_holding(bob, 200)
    tender_offer = make_tender_offer(total_amount_in_cents=150_000)
    make_bid(tender_offer, alice, 100, 1000)
    make_bid(tender_offer, bob, 200, 900)
    return tender_offer, alice, bob


class TestFinalizeBuyback:

    def test_settles_two_tier_offer(self, db, finalize, two_bidders, job_queue, notifier):
        tender_offer, alice, bob = two_bidders

        result = finalize(tender_offer)

        assert result == {"success": True}
        assert tender_offer.accepted_price_cents == 900
        accepted = {
            b.company_investor_id: b.accepted_shares
            for b in db.query(TenderOfferBid).all()
        }
        assert accepted == {alice.id: 100, bob.id: 66}

        buyback_round = db.query(EquityBuybackRound).one()
        assert buyback_round.number_of_shares == 166
        assert buyback_round.total_amount_cents == 149_400
        assert get_investor_share_count(db, bob.id, "Common") == 134

        assert [c.args[0] for c in job_queue.perform_in.call_args_list] == [2, 4]
        assert [c.args[0].id for c in notifier.tender_offer_closed.call_args_list] == [alice.id, bob.id]

    def test_no_bids(self, db, finalize, make_tender_offer, job_queue, notifier):
        tender_offer = make_tender_offer(total_amount_in_cents=150_000)

        result = finalize(tender_offer)

        assert result == {"success": False, "error_message": NO_BIDS_MESSAGE}
        assert db.query(EquityBuybackRound).count() == 0
        assert tender_offer.accepted_price_cents is None
        job_queue.perform_in.assert_not_called()
        notifier.tender_offer_closed.assert_not_called()

    def test_settling_twice_fails_without_changes(self, db, finalize, two_bidders, job_queue):
        tender_offer, alice, bob = two_bidders
        assert finalize(tender_offer)["success"]
        jobs_after_first = job_queue.perform_in.call_count

        result = finalize(tender_offer)

        assert result["success"] is False
        assert "already been finalized" in result["error_message"]
        assert db.query(EquityBuybackRound).count() == 1
        assert db.query(EquityBuyback).count() == 2
        assert get_investor_share_count(db, alice.id, "Common") == 0
        assert get_investor_share_count(db, bob.id, "Common") == 134
        assert job_queue.perform_in.call_count == jobs_after_first

    def test_accepted_price_skips_price_discovery(self, db, finalize, make_investor, make_holding,
                                                  make_tender_offer, make_bid):
        investor = make_investor()
        make_holding(investor, 100)
        tender_offer = make_tender_offer(accepted_price_cents=1000, total_amount_in_cents=50_000)
        make_bid(tender_offer, investor, 80, 1000)

        with patch("equity_settlement.modules.tender_offers.finalize.calculate_equilibrium_price") as mock_price:
            result = finalize(tender_offer)

        assert result == {"success": True}
        mock_price.assert_not_called()
        assert tender_offer.accepted_price_cents == 1000
        assert db.query(TenderOfferBid).one().accepted_shares == 50

    def test_accepted_price_without_bids_settles_empty_round(self, db, finalize, make_tender_offer, job_queue):
        tender_offer = make_tender_offer(accepted_price_cents=1000)

        assert finalize(tender_offer) == {"success": True}
        assert db.query(EquityBuybackRound).one().number_of_shares == 0
        job_queue.perform_in.assert_not_called()

    @pytest.mark.parametrize("overrides", [
        {"country_code": "IR"},
        {"tax_id_status": "invalid"},
    ], ids=["sanctioned country", "unverified tax id"])
    def test_ineligible_investor_is_debited_but_not_paid(self, db, finalize, make_investor, make_holding,
                                                        make_tender_offer, make_bid, job_queue, overrides):
        eligible = make_investor()
        blocked = make_investor(**overrides)
        make_holding(eligible, 50)
        make_holding(blocked, 50)
        tender_offer = make_tender_offer()
        make_bid(tender_offer, eligible, 50, 1000)
        make_bid(tender_offer, blocked, 50, 1000)

        assert finalize(tender_offer) == {"success": True}

        blocked_buyback = db.query(EquityBuyback).filter(EquityBuyback.company_investor_id == blocked.id).one()
        assert blocked_buyback.number_of_shares == 50
        assert get_investor_share_count(db, blocked.id, "Common") == 0
        scheduled = [c.args[2] for c in job_queue.perform_in.call_args_list]
        assert scheduled == [eligible.id]

    def test_every_bidder_notified_once(self, finalize, make_investor, make_holding, make_tender_offer, make_bid,
                                        notifier):
        winner = make_investor()
        loser = make_investor()
        make_holding(winner, 100)
        make_holding(loser, 100)
        tender_offer = make_tender_offer(total_amount_in_cents=50_000)
        make_bid(tender_offer, winner, 60, 1000)
        make_bid(tender_offer, winner, 40, 1000)
        make_bid(tender_offer, loser, 100, 500)

        assert finalize(tender_offer)["success"]
        assert tender_offer.accepted_price_cents == 1000

        notified = [c.args[0].id for c in notifier.tender_offer_closed.call_args_list]
        assert notified == [winner.id, loser.id]

    def test_failure_rolls_back_everything(self, db, finalize, make_investor, make_holding, make_tender_offer,
                                           make_bid, job_queue, notifier):
        solvent = make_investor()
        short = make_investor()
        make_holding(solvent, 100)
        make_holding(short, 10)
        tender_offer = make_tender_offer()
        make_bid(tender_offer, solvent, 100, 1000)
        make_bid(tender_offer, short, 50, 1000)

        result = finalize(tender_offer)

        assert result["success"] is False
        assert "cannot buy back 50" in result["error_message"]
        assert db.query(EquityBuybackRound).count() == 0
        assert db.query(EquityBuyback).count() == 0
        assert get_investor_share_count(db, solvent.id, "Common") == 100
        assert all(b.accepted_shares == 0 for b in db.query(TenderOfferBid).all())
        assert tender_offer.accepted_price_cents is None
        job_queue.perform_in.assert_not_called()
        notifier.tender_offer_closed.assert_not_called()

    def test_errors_after_commit_are_reported(self, finalize, two_bidders, job_queue):
        tender_offer, _, _ = two_bidders
        job_queue.perform_in.side_effect = RuntimeError("scheduler unavailable")

        result = finalize(tender_offer)

        assert result == {"success": False, "error_message": "scheduler unavailable"}

    def test_defaults_to_global_job_queue_and_notifier(self, db, make_tender_offer):
        tender_offer = make_tender_offer()

        with patch("equity_settlement.core.scheduler.get_job_queue") as mock_queue, \
             patch("equity_settlement.shared.services.notifications.get_notification_service") as mock_notifier:
            service = FinalizeBuyback(db, tender_offer)

        assert service.job_queue is mock_queue.return_value
        assert service.notifier is mock_notifier.return_value
