import pytest

from models import UserType
from conftest import Factory, post_demand


async def create(client, admin, name, parent_id=None, **extra):
    body = {"name": name, **extra}
    if parent_id:
        body["parentId"] = parent_id
    response = await client.post("/api/categories", json=body, headers=Factory.headers(admin))
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestCategoryTree:

    @pytest.mark.asyncio
    async def test_create_child_and_read_tree(self, client, factory):
        admin = await factory.admin()
        root = await create(client, admin, "Events", commissionRate=12.5)
        child = await create(client, admin, "Weddings", parent_id=root["id"])

        assert root["commissionRate"] == 12.5
        assert child["parent"]["id"] == root["id"]

        response = await client.get(f"/api/categories/{root['id']}")
        assert [c["name"] for c in response.json()["data"]["children"]] == ["Weddings"]

        roots = await client.get("/api/categories?onlyRoot=true")
        assert [c["name"] for c in roots.json()["data"]] == ["Events"]

    @pytest.mark.asyncio
    async def test_cannot_be_own_parent(self, client, factory):
        admin = await factory.admin()
        root = await create(client, admin, "Events")

        response = await client.patch(
            f"/api/categories/{root['id']}", json={"parentId": root["id"]}, headers=Factory.headers(admin)
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_cannot_move_under_descendant(self, client, factory):
        admin = await factory.admin()
        a = await create(client, admin, "Events")
        b = await create(client, admin, "Weddings", parent_id=a["id"])
        c = await create(client, admin, "Henna Nights", parent_id=b["id"])

        response = await client.patch(
            f"/api/categories/{a['id']}", json={"parentId": c["id"]}, headers=Factory.headers(admin)
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Category cannot be moved under one of its own subcategories"

    @pytest.mark.asyncio
    async def test_explicit_null_parent_moves_to_root(self, client, factory):
        admin = await factory.admin()
        a = await create(client, admin, "Events")
        b = await create(client, admin, "Weddings", parent_id=a["id"])

        response = await client.patch(
            f"/api/categories/{b['id']}", json={"parentId": None}, headers=Factory.headers(admin)
        )
        assert response.status_code == 200
        assert response.json()["data"]["parentId"] is None

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, client, factory):
        admin = await factory.admin()
        await create(client, admin, "Events")
        response = await client.post("/api/categories", json={"name": "Events"}, headers=Factory.headers(admin))
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_only_admins_write(self, client, factory):
        provider = await factory.user(UserType.PROVIDER)
        response = await client.post("/api/categories", json={"name": "Events"}, headers=Factory.headers(provider))
        assert response.status_code == 403


class TestCategoryDeletion:

    @pytest.mark.asyncio
    async def test_blocked_while_subcategories_exist(self, client, factory):
        admin = await factory.admin()
        a = await create(client, admin, "Events")
        b = await create(client, admin, "Weddings", parent_id=a["id"])

        blocked = await client.delete(f"/api/categories/{a['id']}", headers=Factory.headers(admin))
        assert blocked.status_code == 400
        assert "subcategories" in blocked.json()["message"]

        assert (await client.delete(f"/api/categories/{b['id']}", headers=Factory.headers(admin))).status_code == 200
        assert (await client.delete(f"/api/categories/{a['id']}", headers=Factory.headers(admin))).status_code == 200

    @pytest.mark.asyncio
    async def test_blocked_while_demands_exist(self, client, factory):
        admin = await factory.admin()
        receiver = await factory.user(UserType.RECEIVER)
        category = await factory.category("Plumbing")
        await post_demand(client, receiver, category)

        response = await client.delete(f"/api/categories/{category.id}", headers=Factory.headers(admin))
        assert response.status_code == 400
        assert "demands" in response.json()["message"]

    @pytest.mark.asyncio
    async def test_blocked_while_providers_subscribe(self, client, factory):
        admin = await factory.admin()
        category = await factory.category("Plumbing")
        await factory.user(UserType.PROVIDER, categories=[category])

        response = await client.delete(f"/api/categories/{category.id}", headers=Factory.headers(admin))
        assert response.status_code == 400
        assert "subscribed users" in response.json()["message"]


class TestAdminCategories:

    @pytest.mark.asyncio
    async def test_admin_listing_includes_inactive(self, client, factory):
        admin = await factory.admin()
        await factory.category("Active One")
        await factory.category("Retired", is_active=False)

        public = await client.get("/api/categories")
        listing = await client.get("/api/admin/categories?includeInactive=true", headers=Factory.headers(admin))

        assert [c["name"] for c in public.json()["data"]] == ["Active One"]
        assert listing.status_code == 200
        assert {c["name"] for c in listing.json()["data"]} == {"Active One", "Retired"}
        assert listing.json()["pagination"]["total"] == 2
