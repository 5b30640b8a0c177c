from unittest.mock import patch

import pytest

from models import UserType
from routers.auth.helpers import auth_helpers
from utils.otp_store import OtpStore

PHONE = "+905321234567"


@pytest.fixture
def fixed_code():
    with patch.object(OtpStore, "generate_code", return_value="123456"):
        yield "123456"


class TestPhoneHelpers:

    @pytest.mark.parametrize("raw, expected", [
        ("+905321234567", "5321234567"),
        ("905321234567", "5321234567"),
        ("05321234567", "5321234567"),
        ("5321234567", "5321234567"),
    ])
    def test_otp_key_strips_country_and_trunk_prefix(self, raw, expected):
        assert auth_helpers.otp_key(raw) == expected

    def test_normalize_phone_adds_plus(self):
        assert auth_helpers.normalize_phone("90 532 123 4567") == "+905321234567"

    def test_password_hash_round_trip(self):
        password_hash = auth_helpers.hash_password("s3cret!")
        assert auth_helpers.verify_password("s3cret!", password_hash)
        assert not auth_helpers.verify_password("wrong", password_hash)
        assert not auth_helpers.verify_password("s3cret!", None)


class TestOtpLogin:

    @pytest.mark.asyncio
    async def test_send_then_register_provider(self, client, fixed_code):
        response = await client.post("/api/auth/send-otp", json={"phoneNumber": PHONE})
        assert response.status_code == 200
        assert response.json()["success"] is True

        response = await client.post("/api/auth/verify-otp", json={
            "phoneNumber": PHONE,
            "otp": fixed_code,
            "userType": "PROVIDER",
            "name": "Ayse Yilmaz",
        })
        assert response.status_code == 200, response.text
        data = response.json()["data"]
        assert data["token"]
        assert data["user"]["phoneNumber"] == PHONE
        assert data["user"]["userType"] == "PROVIDER"
        assert data["user"]["balance"] == 0

        me = await client.get("/api/users/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.status_code == 200
        assert me.json()["data"]["name"] == "Ayse Yilmaz"

    @pytest.mark.asyncio
    async def test_code_is_single_use(self, client, fixed_code):
        await client.post("/api/auth/send-otp", json={"phoneNumber": PHONE})
        body = {"phoneNumber": PHONE, "otp": fixed_code, "userType": "RECEIVER"}

        first = await client.post("/api/auth/verify-otp", json=body)
        second = await client.post("/api/auth/verify-otp", json=body)

        assert first.status_code == 200
        assert second.status_code == 400
        assert second.json() == {"success": False, "message": "Invalid or expired OTP code"}

    @pytest.mark.asyncio
    async def test_wrong_code_rejected(self, client, fixed_code):
        await client.post("/api/auth/send-otp", json={"phoneNumber": PHONE})
        response = await client.post("/api/auth/verify-otp", json={"phoneNumber": PHONE, "otp": "000000"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_number_without_user_type(self, client, fixed_code):
        await client.post("/api/auth/send-otp", json={"phoneNumber": PHONE})
        response = await client.post("/api/auth/verify-otp", json={"phoneNumber": PHONE, "otp": fixed_code})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_existing_user_logs_in(self, client, factory, fixed_code):
        user = await factory.user(UserType.RECEIVER)
        await client.post("/api/auth/send-otp", json={"phoneNumber": user.phone_number})

        response = await client.post("/api/auth/verify-otp", json={"phoneNumber": user.phone_number, "otp": fixed_code})
        assert response.status_code == 200
        assert response.json()["data"]["user"]["id"] == str(user.id)


class TestPasswordLogin:

    @pytest.mark.asyncio
    async def test_login_with_password(self, client, factory):
        user = await factory.user(password_hash=auth_helpers.hash_password("hunter22"))

        check = await client.post("/api/auth/check-user", json={"phoneNumber": user.phone_number})
        assert check.json()["data"]["hasPassword"] is True

        response = await client.post("/api/auth/login", json={"phoneNumber": user.phone_number, "password": "hunter22"})
        assert response.status_code == 200

        response = await client.post("/api/auth/login", json={"phoneNumber": user.phone_number, "password": "nope"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_admin_login_requires_admin(self, client, factory):
        await factory.user(email="plain@ihale-test.com", password_hash=auth_helpers.hash_password("password1"))
        await factory.admin(email="boss@ihale-test.com", password_hash=auth_helpers.hash_password("password1"))

        denied = await client.post("/api/auth/admin/login", json={"email": "plain@ihale-test.com", "password": "password1"})
        allowed = await client.post("/api/auth/admin/login", json={"email": "boss@ihale-test.com", "password": "password1"})

        assert denied.status_code == 403
        assert allowed.status_code == 200
        assert allowed.json()["data"]["user"]["isAdmin"] is True


class TestTokens:

    @pytest.mark.asyncio
    async def test_missing_token(self, client):
        response = await client.get("/api/users/me")
        assert response.status_code in (401, 403)
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_garbage_token(self, client):
        response = await client.get("/api/users/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json() == {"success": False, "message": "Invalid token"}

    @pytest.mark.asyncio
    async def test_inactive_user_rejected(self, client, factory):
        user = await factory.user(is_active=False)
        response = await client.get("/api/users/me", headers=factory.headers(user))
        assert response.status_code == 403
