from datetime import datetime, timedelta, timezone

import pytest

from models import UserType
from routers.charity.helpers import haversine_distance
from conftest import Factory

TAKSIM = (41.0370, 28.9850)
KADIKOY = (40.9909, 29.0303)
ANKARA = (39.9334, 32.8597)


def test_haversine_istanbul_to_ankara():
    distance = haversine_distance(41.0082, 28.9784, *ANKARA)
    assert 340 < distance < 360


def test_haversine_same_point():
    assert haversine_distance(*TAKSIM, *TAKSIM) == 0


async def publish(client, provider, category, title, point, **extra):
    response = await client.post(
        "/api/charity-activities",
        json={
            "categoryId": str(category.id),
            "title": title,
            "description": "Free soup and bread for everyone",
            "latitude": point[0],
            "longitude": point[1],
            "address": "Istiklal Caddesi No 1",
            **extra,
        },
        headers=Factory.headers(provider)
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestNearby:

    @pytest.mark.asyncio
    async def test_radius_filter_and_order(self, client, factory):
        provider = await factory.user(UserType.PROVIDER)
        category = await factory.category("Food Aid")
        await publish(client, provider, category, "Kadikoy kitchen", KADIKOY)
        await publish(client, provider, category, "Taksim kitchen", TAKSIM)
        await publish(client, provider, category, "Ankara kitchen", ANKARA)

        near = await client.get(
            "/api/charity-activities/nearby",
            params={"latitude": TAKSIM[0], "longitude": TAKSIM[1], "radius": 5},
            headers=Factory.headers(provider)
        )
        wider = await client.get(
            "/api/charity-activities/nearby",
            params={"latitude": TAKSIM[0], "longitude": TAKSIM[1], "radius": 10},
            headers=Factory.headers(provider)
        )

        assert [a["title"] for a in near.json()["data"]] == ["Taksim kitchen"]
        assert near.json()["data"][0]["distance"] == 0
        assert [a["title"] for a in wider.json()["data"]] == ["Taksim kitchen", "Kadikoy kitchen"]

    @pytest.mark.asyncio
    async def test_finished_activities_excluded(self, client, factory):
        provider = await factory.user(UserType.PROVIDER)
        category = await factory.category("Food Aid")
        ended = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
        running = (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()
        await publish(client, provider, category, "Yesterday", TAKSIM, estimatedEndTime=ended)
        await publish(client, provider, category, "Tonight", TAKSIM, estimatedEndTime=running)

        response = await client.get(
            "/api/charity-activities/nearby",
            params={"latitude": TAKSIM[0], "longitude": TAKSIM[1]},
            headers=Factory.headers(provider)
        )
        assert [a["title"] for a in response.json()["data"]] == ["Tonight"]

    @pytest.mark.asyncio
    async def test_radius_bounds(self, client, factory):
        provider = await factory.user(UserType.PROVIDER)
        response = await client.get(
            "/api/charity-activities/nearby",
            params={"latitude": TAKSIM[0], "longitude": TAKSIM[1], "radius": 51},
            headers=Factory.headers(provider)
        )
        assert response.status_code == 400


class TestCharityWrites:

    @pytest.mark.asyncio
    async def test_receivers_cannot_publish(self, client, factory):
        receiver = await factory.user(UserType.RECEIVER)
        category = await factory.category("Food Aid")
        response = await client.post(
            "/api/charity-activities",
            json={
                "categoryId": str(category.id),
                "title": "Soup",
                "description": "Free soup and bread for everyone",
                "latitude": TAKSIM[0],
                "longitude": TAKSIM[1],
                "address": "Istiklal Caddesi No 1",
            },
            headers=Factory.headers(receiver)
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_inactive_category_rejected(self, client, factory):
        provider = await factory.user(UserType.PROVIDER)
        category = await factory.category("Retired", is_active=False)
        response = await client.post(
            "/api/charity-activities",
            json={
                "categoryId": str(category.id),
                "title": "Soup",
                "description": "Free soup and bread for everyone",
                "latitude": TAKSIM[0],
                "longitude": TAKSIM[1],
                "address": "Istiklal Caddesi No 1",
            },
            headers=Factory.headers(provider)
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_owner_edits_and_others_cannot(self, client, factory):
        owner = await factory.user(UserType.PROVIDER)
        other = await factory.user(UserType.PROVIDER)
        admin = await factory.admin()
        category = await factory.category("Food Aid")
        activity = await publish(client, owner, category, "Soup kitchen", TAKSIM)

        forbidden = await client.put(
            f"/api/charity-activities/{activity['id']}", json={"title": "Taken over"}, headers=Factory.headers(other)
        )
        updated = await client.put(
            f"/api/charity-activities/{activity['id']}", json={"title": "Soup and tea"}, headers=Factory.headers(owner)
        )
        denied_delete = await client.delete(f"/api/charity-activities/{activity['id']}", headers=Factory.headers(other))
        admin_delete = await client.delete(f"/api/charity-activities/{activity['id']}", headers=Factory.headers(admin))

        assert forbidden.status_code == 403
        assert updated.json()["data"]["title"] == "Soup and tea"
        assert denied_delete.status_code == 403
        assert admin_delete.status_code == 200
