"""
Tender offer HTTP routes.
"""

import inspect
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from equity_settlement.core.database import get_db
from equity_settlement.main import create_app
from equity_settlement.modules.tender_offers import router as tender_offer_routes


@pytest.fixture
def client(db, job_queue, notifier):
    app = create_app()

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with patch("equity_settlement.core.scheduler.get_job_queue", return_value=job_queue), \
         patch("equity_settlement.shared.services.notifications.get_notification_service", return_value=notifier):
        yield TestClient(app)


def offer_payload(company_id, investor_ids, **overrides):
    now = datetime.utcnow()
    payload = {
        "company_id": company_id,
        "name": "Spring buyback",
        "starts_at": (now - timedelta(hours=1)).isoformat(),
        "ends_at": (now + timedelta(days=14)).isoformat(),
        "minimum_share_price_cents": 500,
        "total_amount_in_cents": 150_000,
        "attachment_key": "tender-offers/spring.zip",
        "investor_ids": investor_ids,
    }
    payload.update(overrides)
    return payload


class TestHealth:

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "healthy"}


class TestTenderOfferRoutes:

    def test_create_and_list(self, client, company, make_investor, notifier):
        investor = make_investor()

        response = client.post("/api/v1/tender-offers", json=offer_payload(company.id, [investor.id]))

        assert response.status_code == 200
        tender_offer_id = response.json()["tender_offer"]["id"]
        notifier.tender_offer_opened.assert_called_once()

        listing = client.get("/api/v1/tender-offers", params={"company_id": company.id}).json()
        assert [t["id"] for t in listing["tender_offers"]] == [tender_offer_id]
        assert listing["tender_offers"][0]["open"] is True

        detail = client.get(f"/api/v1/tender-offers/{tender_offer_id}").json()
        assert detail["name"] == "Spring buyback"

    def test_create_without_investors(self, client, company):
        response = client.post("/api/v1/tender-offers", json=offer_payload(company.id, []))

        assert response.status_code == 400
        assert response.json()["detail"] == "At least one investor must be selected"

    def test_create_for_unknown_company(self, client):
        response = client.post("/api/v1/tender-offers", json=offer_payload(999, [1]))

        assert response.status_code == 404

    def test_create_when_disabled(self, db, client, company, make_investor):
        company.tender_offers_enabled = False
        db.commit()

        response = client.post("/api/v1/tender-offers", json=offer_payload(company.id, [make_investor().id]))

        assert response.status_code == 403

    def test_unknown_tender_offer(self, client):
        assert client.get("/api/v1/tender-offers/999").status_code == 404


class TestBidRoutes:

    def test_place_list_and_cancel(self, client, make_investor, make_holding, make_tender_offer):
        investor = make_investor()
        make_holding(investor, 100)
        tender_offer = make_tender_offer()
        url = f"/api/v1/tender-offers/{tender_offer.id}/bids"

        response = client.post(url, json={
            "company_investor_id": investor.id,
            "share_class": "Common",
            "number_of_shares": 40,
            "share_price_cents": 1000,
        })
        assert response.status_code == 200
        bid_id = response.json()["bid"]["id"]

        bids = client.get(url, params={"company_investor_id": investor.id}).json()["bids"]
        assert [b["id"] for b in bids] == [bid_id]

        assert client.delete(f"{url}/{bid_id}").status_code == 200
        assert client.get(url).json()["bids"] == []

    def test_invalid_bid(self, client, make_investor, make_holding, make_tender_offer):
        investor = make_investor()
        make_holding(investor, 10)
        tender_offer = make_tender_offer()

        response = client.post(f"/api/v1/tender-offers/{tender_offer.id}/bids", json={
            "company_investor_id": investor.id,
            "share_class": "Common",
            "number_of_shares": 11,
            "share_price_cents": 1000,
        })

        assert response.status_code == 422
        assert response.json()["detail"] == ["Insufficient Common shares"]

    def test_unknown_investor(self, client, make_tender_offer):
        response = client.post(f"/api/v1/tender-offers/{make_tender_offer().id}/bids", json={
            "company_investor_id": 999,
            "share_class": "Common",
            "number_of_shares": 1,
            "share_price_cents": 1000,
        })

        assert response.status_code == 404


class TestFinalizeRoute:

    def test_finalize(self, client, make_investor, make_holding, make_tender_offer, make_bid, job_queue):
        alice = make_investor()
        bob = make_investor()
        make_holding(alice, 100)
        make_holding(bob, 200)
        tender_offer = make_tender_offer(total_amount_in_cents=150_000)
        make_bid(tender_offer, alice, 100, 1000)
        make_bid(tender_offer, bob, 200, 900)

        response = client.post(f"/api/v1/tender-offers/{tender_offer.id}/finalize")

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "accepted_price_cents": 900,
            "implied_valuation": 9_000_000,
        }
        assert job_queue.perform_in.call_count == 2

    def test_finalize_without_bids(self, client, make_tender_offer):
        response = client.post(f"/api/v1/tender-offers/{make_tender_offer().id}/finalize")

        assert response.status_code == 400
        assert response.json()["detail"] == (
            "No equilibrium price could be calculated. There are no bids on this tender offer."
        )

    def test_routes_run_in_the_threadpool(self):
        # Settlement blocks on the database, SMTP and the payout API
        for endpoint in (
            tender_offer_routes.finalize_tender_offer,
            tender_offer_routes.add_bid,
            tender_offer_routes.add_tender_offer,
        ):
            assert not inspect.iscoroutinefunction(endpoint)

    def test_finalized_offer_rejects_bids(self, client, make_investor, make_holding, make_tender_offer, make_bid):
        alice = make_investor()
        bob = make_investor()
        make_holding(alice, 100)
        make_holding(bob, 100)
        tender_offer = make_tender_offer()
        bid = make_bid(tender_offer, alice, 100, 1000)
        bid_id = bid.id
        url = f"/api/v1/tender-offers/{tender_offer.id}/bids"

        assert client.post(f"/api/v1/tender-offers/{tender_offer.id}/finalize").status_code == 200

        response = client.post(url, json={
            "company_investor_id": bob.id,
            "share_class": "Common",
            "number_of_shares": 10,
            "share_price_cents": 1000,
        })
        assert response.status_code == 422
        assert response.json()["detail"] == ["Tender offer has already been finalized"]

        response = client.delete(f"{url}/{bid_id}")
        assert response.status_code == 422
        assert [b["id"] for b in client.get(url).json()["bids"]] == [bid_id]
