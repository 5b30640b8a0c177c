from fastapi import HTTPException, status
from starlette.concurrency import run_in_threadpool
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from config import JWT_SECRET_KEY, JWT_ALGORITHM, JWT_ACCESS_TOKEN_EXPIRE_DAYS, DEBUG
from models import Category, User
from utils.notifications import send_sms
from utils.otp_store import OtpStore
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
import bcrypt
import jwt
import re
import uuid
import logging

logger = logging.getLogger(__name__)


class AuthHelpers:
    """Helper functions for authentication operations"""

    @staticmethod
    def normalize_phone(phone_number: str) -> str:
        """Stored form of a phone number: digits with a leading +"""
        phone_number = phone_number.strip().replace(" ", "")
        return phone_number if phone_number.startswith("+") else f"+{phone_number}"

    @staticmethod
    def otp_key(phone_number: str) -> str:
        """Local form used to key OTP codes: drop the +90 country code and the trunk 0"""
        cleaned = re.sub(r"^\+?90", "", phone_number.strip().replace(" ", ""))
        return re.sub(r"^0", "", cleaned)

    def create_access_token(self, user: User) -> str:
        if not JWT_SECRET_KEY:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Authentication is not configured"
            )
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user.id),
            "user_type": user.user_type,
            "iat": now,
            "exp": now + timedelta(days=JWT_ACCESS_TOKEN_EXPIRE_DAYS),
        }
        return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify a locally issued JWT and return its claims
        """
        try:
            payload = jwt.decode(
                token,
                JWT_SECRET_KEY,
                algorithms=[JWT_ALGORITHM],
                options={
                    "verify_exp": True,
                    "verify_iat": True,
                    "verify_signature": True,
                    "verify_aud": False
                }
            )

            if not payload.get("sub"):
                raise HTTPException(
                    status_code=status.HTTP_401_UNAUTHORIZED,
                    detail="Invalid token: missing user ID"
                )
            return payload

        except HTTPException:
            raise
        except jwt.ExpiredSignatureError:
            logger.warning("JWT token expired")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token expired"
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid JWT token: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )
        except Exception as e:
            logger.error(f"JWT verification failed: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token verification failed"
            )

    @staticmethod
    def hash_password(password: str) -> str:
        return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: Optional[str]) -> bool:
        if not password_hash:
            return False
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    async def send_otp(self, otp_store: OtpStore, phone_number: str) -> Dict[str, Any]:
        """Issue a code and deliver it by SMS. Returns {success, jobid?, error?}."""
        key = self.otp_key(phone_number)
        code = otp_store.issue(key)

        if DEBUG:
            logger.info(f"[SMS] Phone: {key}, OTP: {code}")
            return {"success": True, "jobid": f"dev-{int(datetime.now(timezone.utc).timestamp())}"}

        sid = await run_in_threadpool(
            send_sms,
            self.normalize_phone(phone_number),
            f"Your Ihale verification code is {code}"
        )
        if sid is None:
            return {"success": False, "error": "SMS delivery failed"}
        return {"success": True, "jobid": sid}

    def verify_otp(self, otp_store: OtpStore, phone_number: str, code: str) -> bool:
        is_valid = otp_store.verify(self.otp_key(phone_number), code)
        if not is_valid:
            logger.warning(f"OTP verification failed for {self.otp_key(phone_number)}")
        return is_valid

    async def resolve_category_ids(self, refs: Optional[List[str]], db: AsyncSession) -> List[uuid.UUID]:
        """Map category references (ids or names) to ids of active categories"""
        if not refs:
            return []

        ids = []
        names = []
        for ref in refs:
            try:
                ids.append(uuid.UUID(str(ref)))
            except ValueError:
                names.append(str(ref))

        result = await db.execute(
            select(Category.id).where(
                or_(Category.id.in_(ids), Category.name.in_(names)),
                Category.is_active == True
            )
        )
        return list(dict.fromkeys(result.scalars().all()))


auth_helpers = AuthHelpers()
