from decimal import Decimal
from unittest.mock import patch

import pytest

from models import UserType
from conftest import Factory, post_demand, approve_demand


class TestAccessControl:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", [
        "/api/admin/users",
        "/api/admin/demands",
        "/api/admin/offers",
        "/api/admin/reviews",
        "/api/admin/statistics",
        "/api/admin/notifications/users",
    ])
    async def test_non_admins_are_refused(self, client, factory, path):
        provider = await factory.user(UserType.PROVIDER)
        response = await client.get(path, headers=Factory.headers(provider))
        assert response.status_code == 403
        assert response.json()["success"] is False
        assert "Access denied" in response.json()["message"]


class TestDemandModeration:

    @pytest.mark.asyncio
    async def test_pending_queue_and_approval(self, client, factory):
        admin = await factory.admin()
        receiver = await factory.user(UserType.RECEIVER)
        category = await factory.category("Catering")
        demand = await post_demand(client, receiver, category)
        headers = Factory.headers(admin)

        count = await client.get("/api/admin/demands/pending/count", headers=headers)
        assert count.json()["data"]["count"] == 1

        pending = await client.get("/api/admin/demands/pending", headers=headers)
        assert [d["id"] for d in pending.json()["data"]] == [demand["id"]]

        approved = await approve_demand(client, admin, demand["id"])
        assert approved["isApproved"] is True

        count = await client.get("/api/admin/demands/pending/count", headers=headers)
        assert count.json()["data"]["count"] == 0

        notifications = await client.get("/api/notifications", headers=Factory.headers(receiver))
        assert notifications.json()["data"][0]["type"] == "DEMAND_APPROVED"
        assert notifications.json()["data"][0]["data"]["demandId"] == demand["id"]

    @pytest.mark.asyncio
    async def test_rejection_notifies_owner(self, client, factory):
        admin = await factory.admin()
        receiver = await factory.user(UserType.RECEIVER)
        category = await factory.category("Catering")
        demand = await post_demand(client, receiver, category)

        response = await client.patch(
            f"/api/admin/demands/{demand['id']}/approval",
            json={"isApproved": False},
            headers=Factory.headers(admin)
        )

        assert response.status_code == 200
        notifications = await client.get("/api/notifications", headers=Factory.headers(receiver))
        assert notifications.json()["data"][0]["type"] == "DEMAND_REJECTED"

    @pytest.mark.asyncio
    async def test_create_on_behalf_of_user(self, client, factory):
        admin = await factory.admin()
        receiver = await factory.user(UserType.RECEIVER)
        category = await factory.category("Catering")

        response = await client.post(
            "/api/admin/demands",
            json={"userId": str(receiver.id), "title": "Phoned-in request", "category": "Catering", "isApproved": True},
            headers=Factory.headers(admin)
        )

        assert response.status_code == 201, response.text
        data = response.json()["data"]
        assert data["userId"] == str(receiver.id)
        assert data["isApproved"] is True

    @pytest.mark.asyncio
    async def test_admin_listing_puts_urgent_first(self, client, factory):
        admin = await factory.admin()
        receiver = await factory.user(UserType.RECEIVER)
        category = await factory.category("Catering")
        await post_demand(client, receiver, category, title="Routine")
        await client.post(
            "/api/demands",
            json={"title": "Emergency", "category": str(category.id), "isUrgent": True},
            headers=Factory.headers(receiver)
        )

        response = await client.get("/api/admin/demands", headers=Factory.headers(admin))
        assert [d["title"] for d in response.json()["data"]] == ["Emergency", "Routine"]


class TestAdminOffers:

    async def open_demand(self, client, factory, admin):
        receiver = await factory.user(UserType.RECEIVER)
        category = await factory.category("Catering", commission_rate="10")
        demand = await post_demand(client, receiver, category)
        await approve_demand(client, admin, demand["id"])
        return receiver, demand

    async def create(self, client, admin, demand_id, provider, **extra):
        return await client.post(
            "/api/admin/offers",
            json={
                "demandId": demand_id,
                "providerId": str(provider.id),
                "price": 7500,
                "estimatedTime": "2 days",
                **extra,
            },
            headers=Factory.headers(admin)
        )

    @pytest.mark.asyncio
    async def test_admin_offer_is_commission_free(self, client, factory, db):
        admin = await factory.admin()
        receiver, demand = await self.open_demand(client, factory, admin)
        provider = await factory.user(UserType.PROVIDER, balance="0")

        response = await self.create(client, admin, demand["id"], provider)

        assert response.status_code == 201, response.text
        offer = response.json()["data"]
        assert offer["status"] == "PENDING"
        assert offer["providerId"] == str(provider.id)
        await db.refresh(provider)
        assert provider.balance == Decimal("0")

        notifications = await client.get("/api/notifications", headers=Factory.headers(receiver))
        assert "NEW_OFFER" in [n["type"] for n in notifications.json()["data"]]

    @pytest.mark.asyncio
    async def test_accepted_admin_offer_closes_demand(self, client, factory):
        admin = await factory.admin()
        _, demand = await self.open_demand(client, factory, admin)
        provider = await factory.user(UserType.PROVIDER)

        response = await self.create(client, admin, demand["id"], provider, status="ACCEPTED")

        assert response.status_code == 201, response.text
        assert response.json()["data"]["status"] == "ACCEPTED"
        fetched = await client.get(f"/api/admin/demands/{demand['id']}", headers=Factory.headers(admin))
        assert fetched.json()["data"]["status"] == "CLOSED"

    @pytest.mark.asyncio
    async def test_admin_offer_keeps_offer_rules(self, client, factory):
        admin = await factory.admin()
        _, demand = await self.open_demand(client, factory, admin)
        provider = await factory.user(UserType.PROVIDER)
        receiver = await factory.user(UserType.RECEIVER)

        assert (await self.create(client, admin, demand["id"], provider)).status_code == 201
        duplicate = await self.create(client, admin, demand["id"], provider)
        not_provider = await self.create(client, admin, demand["id"], receiver)

        assert duplicate.status_code == 400
        assert not_provider.status_code == 400
        assert not_provider.json()["message"] == "Only providers can make offers"

    @pytest.mark.asyncio
    async def test_non_admin_cannot_enter_offers(self, client, factory):
        admin = await factory.admin()
        _, demand = await self.open_demand(client, factory, admin)
        provider = await factory.user(UserType.PROVIDER, balance="1000")

        response = await self.create(client, provider, demand["id"], provider)
        assert response.status_code == 403


class TestAdminCharity:

    def payload(self, provider, category, **extra):
        return {
            "providerId": str(provider.id),
            "categoryId": str(category.id),
            "title": "Winter coat drive",
            "description": "Collecting coats for students in need",
            "latitude": 41.0370,
            "longitude": 28.9850,
            "address": "Istiklal Caddesi No 1",
            **extra,
        }

    @pytest.mark.asyncio
    async def test_create_get_update_for_provider(self, client, factory):
        admin = await factory.admin()
        provider = await factory.user(UserType.PROVIDER)
        category = await factory.category("Donations")
        headers = Factory.headers(admin)

        created = await client.post("/api/admin/charity-activities", json=self.payload(provider, category), headers=headers)
        assert created.status_code == 201, created.text
        activity = created.json()["data"]
        assert activity["providerId"] == str(provider.id)

        fetched = await client.get(f"/api/admin/charity-activities/{activity['id']}", headers=headers)
        assert fetched.json()["data"]["title"] == "Winter coat drive"

        updated = await client.put(
            f"/api/admin/charity-activities/{activity['id']}",
            json={"title": "Winter coat and boot drive"},
            headers=headers
        )
        assert updated.status_code == 200, updated.text
        assert updated.json()["data"]["title"] == "Winter coat and boot drive"
        assert updated.json()["data"]["providerId"] == str(provider.id)

    @pytest.mark.asyncio
    async def test_owner_must_be_provider(self, client, factory):
        admin = await factory.admin()
        receiver = await factory.user(UserType.RECEIVER)
        category = await factory.category("Donations")

        response = await client.post(
            "/api/admin/charity-activities",
            json=self.payload(receiver, category),
            headers=Factory.headers(admin)
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_inactive_category_rejected(self, client, factory):
        admin = await factory.admin()
        provider = await factory.user(UserType.PROVIDER)
        category = await factory.category("Archived", is_active=False)

        response = await client.post(
            "/api/admin/charity-activities",
            json=self.payload(provider, category),
            headers=Factory.headers(admin)
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_activity(self, client, factory):
        admin = await factory.admin()
        response = await client.get(
            "/api/admin/charity-activities/00000000-0000-0000-0000-000000000000",
            headers=Factory.headers(admin)
        )
        assert response.status_code == 404


class TestUserManagement:

    @pytest.mark.asyncio
    async def test_top_up_balance_and_deactivate(self, client, factory, db):
        admin = await factory.admin()
        provider = await factory.user(UserType.PROVIDER, balance="10")

        response = await client.patch(
            f"/api/admin/users/{provider.id}",
            json={"balance": 250.5, "isActive": False},
            headers=Factory.headers(admin)
        )

        assert response.status_code == 200, response.text
        assert response.json()["data"]["balance"] == 250.5
        assert response.json()["data"]["isActive"] is False
        await db.refresh(provider)
        assert provider.balance == Decimal("250.5")

        blocked = await client.get("/api/users/me", headers=Factory.headers(provider))
        assert blocked.status_code == 403

    @pytest.mark.asyncio
    async def test_set_password_enables_phone_login(self, client, factory):
        admin = await factory.admin()
        user = await factory.user(UserType.RECEIVER)

        await client.patch(
            f"/api/admin/users/{user.id}", json={"password": "newpass1"}, headers=Factory.headers(admin)
        )
        response = await client.post("/api/auth/login", json={"phoneNumber": user.phone_number, "password": "newpass1"})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_phone_number_must_be_unique(self, client, factory):
        admin = await factory.admin()
        first = await factory.user(UserType.RECEIVER)
        second = await factory.user(UserType.RECEIVER)

        response = await client.patch(
            f"/api/admin/users/{second.id}",
            json={"phoneNumber": first.phone_number},
            headers=Factory.headers(admin)
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_admin_cannot_delete_self(self, client, factory):
        admin = await factory.admin()
        response = await client.delete(f"/api/admin/users/{admin.id}", headers=Factory.headers(admin))
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_delete_user_removes_their_demands(self, client, factory):
        admin = await factory.admin()
        receiver = await factory.user(UserType.RECEIVER)
        category = await factory.category("Catering")
        await post_demand(client, receiver, category)

        response = await client.delete(f"/api/admin/users/{receiver.id}", headers=Factory.headers(admin))
        assert response.status_code == 200

        demands = await client.get("/api/admin/demands", headers=Factory.headers(admin))
        assert demands.json()["pagination"]["total"] == 0

    @pytest.mark.asyncio
    async def test_listing_carries_activity_counts(self, client, factory):
        admin = await factory.admin()
        receiver = await factory.user(UserType.RECEIVER, name="Zeynep")
        category = await factory.category("Catering")
        await post_demand(client, receiver, category)

        response = await client.get("/api/admin/users?search=Zeynep", headers=Factory.headers(admin))
        users = response.json()["data"]
        assert len(users) == 1
        assert users[0]["demandCount"] == 1


class TestStatistics:

    @pytest.mark.asyncio
    async def test_counts(self, client, factory):
        admin = await factory.admin()
        receiver = await factory.user(UserType.RECEIVER)
        await factory.user(UserType.PROVIDER)
        category = await factory.category("Catering")
        await post_demand(client, receiver, category)

        response = await client.get("/api/admin/statistics", headers=Factory.headers(admin))

        assert response.status_code == 200, response.text
        stats = response.json()["data"]["statistics"]
        assert stats["totalUsers"] == 3
        assert stats["totalProviders"] == 1
        assert stats["totalAdmins"] == 1
        assert stats["totalDemands"] == 1
        assert stats["pendingApprovalDemands"] == 1
        assert stats["totalOffers"] == 0
        assert len(response.json()["data"]["lastTenUsers"]) == 3


class TestBroadcasts:

    @pytest.mark.asyncio
    async def test_send_single_stores_notification(self, client, factory):
        admin = await factory.admin()
        user = await factory.user(UserType.PROVIDER, fcm_token="device-token-1")

        with patch("routers.admin.broadcasts.send_to_user", return_value={"success": True, "message_id": "m-1"}) as push:
            response = await client.post(
                "/api/admin/notifications/send-single",
                json={"userId": str(user.id), "title": "Hello", "body": "Welcome aboard"},
                headers=Factory.headers(admin)
            )

        assert response.status_code == 200, response.text
        assert response.json()["data"]["fcmMessageId"] == "m-1"
        assert push.call_args.args[0] == "device-token-1"

        inbox = await client.get("/api/notifications", headers=Factory.headers(user))
        assert inbox.json()["data"][0]["type"] == "ADMIN_NOTIFICATION"

    @pytest.mark.asyncio
    async def test_send_single_requires_device(self, client, factory):
        admin = await factory.admin()
        user = await factory.user(UserType.PROVIDER)

        response = await client.post(
            "/api/admin/notifications/send-single",
            json={"userId": str(user.id), "title": "Hello", "body": "Welcome aboard"},
            headers=Factory.headers(admin)
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_send_all_filters_by_user_type(self, client, factory):
        admin = await factory.admin()
        await factory.user(UserType.PROVIDER, fcm_token="provider-token")
        await factory.user(UserType.RECEIVER, fcm_token="receiver-token")
        await factory.user(UserType.PROVIDER)

        outcome = {"success_count": 1, "failure_count": 0, "errors": []}
        with patch("routers.admin.broadcasts.send_to_multiple", return_value=outcome) as push:
            response = await client.post(
                "/api/admin/notifications/send-all",
                json={"title": "Campaign", "body": "Commission-free week", "userType": "PROVIDER"},
                headers=Factory.headers(admin)
            )

        assert response.status_code == 200, response.text
        assert push.call_args.args[0] == ["provider-token"]
        assert response.json()["data"]["totalUsers"] == 1
        assert response.json()["data"]["notificationsCreated"] == 1

    @pytest.mark.asyncio
    async def test_send_multiple_without_recipients(self, client, factory):
        admin = await factory.admin()
        user = await factory.user(UserType.RECEIVER)

        response = await client.post(
            "/api/admin/notifications/send-multiple",
            json={"title": "Hi", "body": "There", "userIds": [str(user.id)]},
            headers=Factory.headers(admin)
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_send_topic(self, client, factory):
        admin = await factory.admin()
        with patch("routers.admin.broadcasts.send_to_topic", return_value={"success": True, "message_id": "t-1"}):
            response = await client.post(
                "/api/admin/notifications/send-topic",
                json={"topic": "providers", "title": "Hi", "body": "There"},
                headers=Factory.headers(admin)
            )
        assert response.status_code == 200
        assert response.json()["data"] == {"topic": "providers", "messageId": "t-1"}


class TestEnvelopeAndHealth:

    @pytest.mark.asyncio
    async def test_validation_errors_use_envelope(self, client, factory):
        receiver = await factory.user(UserType.RECEIVER)
        response = await client.post("/api/demands", json={"title": "x"}, headers=Factory.headers(receiver))

        assert response.status_code == 400
        body = response.json()
        assert set(body) == {"success", "message"}
        assert body["success"] is False

    @pytest.mark.asyncio
    async def test_unknown_route(self, client):
        response = await client.get("/api/does-not-exist")
        assert response.status_code == 404
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["database"] == "connected"
