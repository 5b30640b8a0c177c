import pytest

from models import Notification, UserType
from conftest import Factory


class TestProfile:

    @pytest.mark.asyncio
    async def test_update_replaces_subscriptions(self, client, factory):
        events = await factory.category("Events")
        plumbing = await factory.category("Plumbing")
        provider = await factory.user(UserType.PROVIDER, categories=[events])

        response = await client.put(
            "/api/users/me",
            json={"categories": [str(plumbing.id)], "bio": "Twenty years of experience"},
            headers=Factory.headers(provider)
        )

        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["categories"] == [str(plumbing.id)]
        assert data["bio"] == "Twenty years of experience"

    @pytest.mark.asyncio
    async def test_inactive_city_rejected(self, client, factory):
        city = await factory.city("Bursa", is_active=False)
        user = await factory.user(UserType.RECEIVER)

        response = await client.put("/api/users/me", json={"cityId": str(city.id)}, headers=Factory.headers(user))
        assert response.status_code == 400
        assert response.json()["message"] == "Selected city is not active"

    @pytest.mark.asyncio
    async def test_public_profile_hides_private_fields(self, client, factory):
        viewer = await factory.user(UserType.RECEIVER)
        provider = await factory.user(UserType.PROVIDER, balance="99", email="usta@ihale-test.com")

        response = await client.get(f"/api/users/{provider.id}", headers=Factory.headers(viewer))
        data = response.json()["data"]
        assert "balance" not in data
        assert "phoneNumber" not in data
        assert "email" not in data


class TestCities:

    @pytest.mark.asyncio
    async def test_public_list_shows_active_only(self, client, factory):
        admin = await factory.admin()
        await client.post("/api/settings/admin/cities", json={"name": "Izmir", "isActive": True}, headers=Factory.headers(admin))
        await client.post("/api/settings/admin/cities", json={"name": "Van"}, headers=Factory.headers(admin))

        public = await client.get("/api/settings/cities")
        everything = await client.get("/api/settings/admin/cities", headers=Factory.headers(admin))

        assert [c["name"] for c in public.json()["data"]] == ["Izmir"]
        assert [c["name"] for c in everything.json()["data"]] == ["Izmir", "Van"]

    @pytest.mark.asyncio
    async def test_only_admin_manages_cities(self, client, factory):
        receiver = await factory.user(UserType.RECEIVER)
        response = await client.post("/api/settings/admin/cities", json={"name": "Izmir"}, headers=Factory.headers(receiver))
        assert response.status_code == 403


class TestNotifications:

    async def seed(self, db, user, count):
        for index in range(count):
            db.add(Notification(user_id=user.id, title=f"Title {index}", message="Body", type="ADMIN_NOTIFICATION"))
        await db.commit()

    @pytest.mark.asyncio
    async def test_mark_one_and_all_read(self, client, factory, db):
        user = await factory.user(UserType.RECEIVER)
        await self.seed(db, user, 3)
        headers = Factory.headers(user)

        listing = await client.get("/api/notifications", headers=headers)
        assert listing.json()["unreadCount"] == 3

        first_id = listing.json()["data"][0]["id"]
        marked = await client.patch(f"/api/notifications/{first_id}/read", headers=headers)
        assert marked.json()["data"]["isRead"] is True
        assert (await client.get("/api/notifications", headers=headers)).json()["unreadCount"] == 2

        await client.patch("/api/notifications/read-all", headers=headers)
        assert (await client.get("/api/notifications", headers=headers)).json()["unreadCount"] == 0

    @pytest.mark.asyncio
    async def test_cannot_read_someone_elses(self, client, factory, db):
        owner = await factory.user(UserType.RECEIVER)
        other = await factory.user(UserType.RECEIVER)
        await self.seed(db, owner, 1)

        listing = await client.get("/api/notifications", headers=Factory.headers(owner))
        notification_id = listing.json()["data"][0]["id"]

        response = await client.patch(f"/api/notifications/{notification_id}/read", headers=Factory.headers(other))
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_notification(self, client, factory):
        user = await factory.user(UserType.RECEIVER)
        response = await client.patch(
            "/api/notifications/00000000-0000-0000-0000-000000000000/read",
            headers=Factory.headers(user)
        )
        assert response.status_code == 404
