"""
Shared fixtures for the API tests.

Each test gets a fresh in-memory SQLite database behind the real FastAPI app.
Users are inserted directly and authenticate with locally signed JWTs; SMS and
push delivery are patched out.
"""
import os

os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["ENVIRONMENT"] = "dev"
os.environ["DATABASE_URL"] = ""
os.environ["FIREBASE_SERVICE_ACCOUNT"] = ""

import pytest_asyncio
import logging
from decimal import Decimal
from typing import Dict, List, Optional
from unittest.mock import patch
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_db
from main import app
from models import Base, User, UserType, UserCategory, Category, City
from routers.auth.helpers import auth_helpers

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    with patch("utils.notifications.send_to_user") as mock_push, \
            patch("routers.auth.helpers.send_sms", return_value="SM-test"):
        mock_push.return_value = {"success": True, "message_id": "test-message"}
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
            yield http_client
    app.dependency_overrides.clear()


class Factory:
    """Inserts rows directly and issues tokens for them"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._phone_counter = 5550000000

    async def user(
        self,
        user_type: UserType = UserType.RECEIVER,
        balance: str = "0",
        is_admin: bool = False,
        categories: Optional[List[Category]] = None,
        **fields
    ) -> User:
        self._phone_counter += 1
        user = User(
            phone_number=f"+90{self._phone_counter}",
            name=fields.pop("name", f"User {self._phone_counter}"),
            user_type=user_type.value,
            balance=Decimal(balance),
            is_admin=is_admin,
            **fields
        )
        self.db.add(user)
        await self.db.flush()
        for category in categories or []:
            self.db.add(UserCategory(user_id=user.id, category_id=category.id))
        await self.db.commit()
        return user

    async def admin(self, **fields) -> User:
        return await self.user(UserType.RECEIVER, is_admin=True, **fields)

    async def category(
        self,
        name: str,
        parent: Optional[Category] = None,
        commission_rate: Optional[str] = None,
        is_active: bool = True
    ) -> Category:
        category = Category(
            name=name,
            parent_id=parent.id if parent else None,
            commission_rate=Decimal(commission_rate) if commission_rate is not None else None,
            is_active=is_active
        )
        self.db.add(category)
        await self.db.commit()
        return category

    async def city(self, name: str = "Istanbul", is_active: bool = True) -> City:
        city = City(name=name, is_active=is_active)
        self.db.add(city)
        await self.db.commit()
        return city

    @staticmethod
    def headers(user: User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {auth_helpers.create_access_token(user)}"}


@pytest_asyncio.fixture
async def factory(db):
    return Factory(db)


async def post_demand(client: AsyncClient, receiver: User, category: Category, title: str = "Wedding catering") -> Dict:
    response = await client.post(
        "/api/demands",
        json={"title": title, "category": str(category.id), "description": "Dinner for 120 guests"},
        headers=Factory.headers(receiver)
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def approve_demand(client: AsyncClient, admin: User, demand_id: str) -> Dict:
    response = await client.patch(
        f"/api/admin/demands/{demand_id}/approval",
        json={"isApproved": True},
        headers=Factory.headers(admin)
    )
    assert response.status_code == 200, response.text
    return response.json()["data"]
