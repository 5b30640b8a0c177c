from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from sqlalchemy import select

from models import Offer, UserType
from routers.offers.helpers import offer_helpers
from conftest import Factory, post_demand, approve_demand


class TestCommission:

    @pytest.mark.parametrize("price, rate, expected", [
        (7500, 10, Decimal("75.0000")),
        (1000, "2.5", Decimal("2.5000")),
        (199.99, 15, Decimal("2.9999")),
        (0, 10, Decimal("0.0000")),
        (5000, None, Decimal("0.0000")),
    ])
    def test_per_mille_commission(self, price, rate, expected):
        assert offer_helpers.calculate_commission(price, rate) == expected

    def test_rounds_half_up(self):
        assert offer_helpers.calculate_commission(1, "0.33335") == Decimal("0.0003")
        assert offer_helpers.calculate_commission(10, "0.00005") == Decimal("0.0000")
        assert offer_helpers.calculate_commission(10, "0.0005") == Decimal("0.0000")
        assert offer_helpers.calculate_commission(10, "0.005") == Decimal("0.0001")


@pytest_asyncio.fixture
async def marketplace(client, factory):
    """An approved demand in a 10 per-mille category plus the three parties"""
    admin = await factory.admin()
    receiver = await factory.user(UserType.RECEIVER)
    category = await factory.category("Catering", commission_rate="10")
    demand = await post_demand(client, receiver, category)
    await approve_demand(client, admin, demand["id"])
    return {"admin": admin, "receiver": receiver, "category": category, "demand": demand}


async def submit(client, provider, demand_id, price=7500):
    return await client.post(
        "/api/offers",
        json={"demandId": demand_id, "price": price, "estimatedTime": "3 days", "message": "Full service"},
        headers=Factory.headers(provider)
    )


class TestOfferSubmission:

    @pytest.mark.asyncio
    async def test_commission_debited_from_balance(self, client, factory, db, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="100")

        response = await submit(client, provider, marketplace["demand"]["id"])

        assert response.status_code == 201, response.text
        data = response.json()["data"]
        assert data["commissionAmount"] == 75.0
        assert data["newBalance"] == 25.0
        assert data["offer"]["status"] == "PENDING"
        assert data["offer"]["price"] == 7500.0

        await db.refresh(provider)
        assert provider.balance == Decimal("25")

    @pytest.mark.asyncio
    async def test_insufficient_balance_leaves_no_trace(self, client, factory, db, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="50")

        response = await submit(client, provider, marketplace["demand"]["id"])

        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Insufficient balance. Required: 75.00 TL, Available: 50.00 TL"

        await db.refresh(provider)
        assert provider.balance == Decimal("50")
        offers = (await db.execute(select(Offer).where(Offer.provider_id == provider.id))).scalars().all()
        assert offers == []

    @pytest.mark.asyncio
    async def test_exact_balance_is_enough(self, client, factory, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="75")
        response = await submit(client, provider, marketplace["demand"]["id"])
        assert response.status_code == 201
        assert response.json()["data"]["newBalance"] == 0.0

    @pytest.mark.asyncio
    async def test_duplicate_offer_rejected_without_second_charge(self, client, factory, db, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="1000")

        first = await submit(client, provider, marketplace["demand"]["id"])
        second = await submit(client, provider, marketplace["demand"]["id"], price=6000)

        assert first.status_code == 201
        assert second.status_code == 400
        assert second.json()["message"] == "You have already made an offer on this demand"
        await db.refresh(provider)
        assert provider.balance == Decimal("925")

    @pytest.mark.asyncio
    async def test_receivers_cannot_submit(self, client, factory, marketplace):
        receiver = await factory.user(UserType.RECEIVER, balance="1000")
        response = await submit(client, receiver, marketplace["demand"]["id"])
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_rejects_negative_price(self, client, factory, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="1000")
        response = await submit(client, provider, marketplace["demand"]["id"], price=-5)
        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_demand_owner_is_notified(self, client, factory, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="1000", name="Usta Mehmet")
        await submit(client, provider, marketplace["demand"]["id"])

        response = await client.get("/api/notifications", headers=factory.headers(marketplace["receiver"]))
        body = response.json()
        types = [notification["type"] for notification in body["data"]]
        assert "NEW_OFFER" in types
        assert body["unreadCount"] >= 1


class TestOfferLifecycle:

    @pytest.mark.asyncio
    async def test_accept_closes_demand_and_leaves_siblings(self, client, factory, marketplace):
        demand_id = marketplace["demand"]["id"]
        first = await factory.user(UserType.PROVIDER, balance="1000")
        second = await factory.user(UserType.PROVIDER, balance="1000")
        offer_a = (await submit(client, first, demand_id)).json()["data"]["offer"]
        offer_b = (await submit(client, second, demand_id, price=8000)).json()["data"]["offer"]

        response = await client.patch(
            f"/api/offers/{offer_a['id']}/status",
            json={"status": "ACCEPTED"},
            headers=factory.headers(marketplace["receiver"])
        )

        assert response.status_code == 200, response.text
        assert response.json()["data"]["status"] == "ACCEPTED"

        demand = await client.get(f"/api/demands/{demand_id}", headers=factory.headers(marketplace["receiver"]))
        assert demand.json()["data"]["status"] == "CLOSED"

        sibling = await client.get(f"/api/offers/{offer_b['id']}", headers=factory.headers(second))
        assert sibling.json()["data"]["status"] == "PENDING"

    @pytest.mark.asyncio
    async def test_closed_demand_takes_no_more_offers(self, client, factory, marketplace):
        demand_id = marketplace["demand"]["id"]
        provider = await factory.user(UserType.PROVIDER, balance="1000")
        late = await factory.user(UserType.PROVIDER, balance="1000")
        offer = (await submit(client, provider, demand_id)).json()["data"]["offer"]
        await client.patch(
            f"/api/offers/{offer['id']}/status",
            json={"status": "ACCEPTED"},
            headers=factory.headers(marketplace["receiver"])
        )

        response = await submit(client, late, demand_id)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_only_owner_decides(self, client, factory, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="1000")
        stranger = await factory.user(UserType.RECEIVER)
        offer = (await submit(client, provider, marketplace["demand"]["id"])).json()["data"]["offer"]

        response = await client.patch(
            f"/api/offers/{offer['id']}/status",
            json={"status": "REJECTED"},
            headers=factory.headers(stranger)
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_decided_offer_cannot_change(self, client, factory, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="1000")
        offer = (await submit(client, provider, marketplace["demand"]["id"])).json()["data"]["offer"]
        headers = factory.headers(marketplace["receiver"])

        rejected = await client.patch(f"/api/offers/{offer['id']}/status", json={"status": "REJECTED"}, headers=headers)
        again = await client.patch(f"/api/offers/{offer['id']}/status", json={"status": "ACCEPTED"}, headers=headers)

        assert rejected.status_code == 200
        assert again.status_code == 400

    @pytest.mark.asyncio
    async def test_completion_is_one_shot(self, client, factory, db, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="1000")
        offer = (await submit(client, provider, marketplace["demand"]["id"])).json()["data"]["offer"]
        await client.patch(
            f"/api/offers/{offer['id']}/status",
            json={"status": "ACCEPTED"},
            headers=factory.headers(marketplace["receiver"])
        )

        first = await client.patch(f"/api/offers/{offer['id']}/complete", headers=factory.headers(provider))
        second = await client.patch(f"/api/offers/{offer['id']}/complete", headers=factory.headers(provider))

        assert first.status_code == 200
        assert first.json()["data"]["status"] == "COMPLETED"
        assert first.json()["data"]["providerCompleted"] is True
        assert second.status_code == 400

        await db.refresh(provider)
        assert provider.completed_jobs == 1

    @pytest.mark.asyncio
    async def test_pending_offer_cannot_be_completed(self, client, factory, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="1000")
        offer = (await submit(client, provider, marketplace["demand"]["id"])).json()["data"]["offer"]

        response = await client.patch(f"/api/offers/{offer['id']}/complete", headers=factory.headers(provider))
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_only_provider_completes(self, client, factory, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="1000")
        offer = (await submit(client, provider, marketplace["demand"]["id"])).json()["data"]["offer"]
        await client.patch(
            f"/api/offers/{offer['id']}/status",
            json={"status": "ACCEPTED"},
            headers=factory.headers(marketplace["receiver"])
        )

        response = await client.patch(
            f"/api/offers/{offer['id']}/complete",
            headers=factory.headers(marketplace["receiver"])
        )
        assert response.status_code == 403


class TestDuplicateOfferGuard:

    @pytest.mark.asyncio
    async def test_unique_constraint_rejects_when_precheck_misses(self, client, factory, db, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="1000")
        first = await submit(client, provider, marketplace["demand"]["id"])
        assert first.status_code == 201

        # Simulates two requests that both passed the existence check
        with patch.object(offer_helpers, "has_offer", AsyncMock(return_value=False)):
            second = await submit(client, provider, marketplace["demand"]["id"], price=6000)

        assert second.status_code == 400
        assert second.json()["message"] == "You have already made an offer on this demand"

        await db.refresh(provider)
        assert provider.balance == Decimal("925")
        offers = (await db.execute(select(Offer).where(Offer.provider_id == provider.id))).scalars().all()
        assert len(offers) == 1
        assert offers[0].price == Decimal("7500.00")


class TestOfferPrice:

    @pytest.mark.parametrize("price, expected", [
        (0.005, Decimal("0.01")),
        (12.345, Decimal("12.35")),
        (7500, Decimal("7500.00")),
    ])
    def test_price_rounded_to_cents(self, price, expected):
        assert offer_helpers.quantize_price(price) == expected

    @pytest.mark.asyncio
    async def test_commission_priced_on_stored_price(self, client, factory, db, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="100")

        response = await submit(client, provider, marketplace["demand"]["id"], price=12.345)

        assert response.status_code == 201, response.text
        data = response.json()["data"]
        assert data["offer"]["price"] == 12.35
        assert data["commissionAmount"] == 0.1235
        stored = (await db.execute(select(Offer).where(Offer.provider_id == provider.id))).scalar_one()
        assert stored.price == Decimal("12.35")

    @pytest.mark.asyncio
    async def test_price_beyond_column_range_rejected(self, client, factory, marketplace):
        provider = await factory.user(UserType.PROVIDER, balance="1000000000")
        response = await submit(client, provider, marketplace["demand"]["id"], price=10_000_000_000)
        assert response.status_code == 400
        assert response.json()["success"] is False
