from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from config import get_db
from models import User, UserCategory
from routers.users.helpers import user_helpers
from routers.users.schemas import UserResponse, UserEnvelope
from utils.otp_store import OtpStore
from utils.response_helpers import safe_model_validate
from .schemas import (
    SendOtpRequest,
    SendOtpResponse,
    SendOtpData,
    VerifyOtpRequest,
    CheckUserRequest,
    CheckUserResponse,
    CheckUserData,
    PhoneLoginRequest,
    AdminLoginRequest,
    AuthResponse,
    AuthData,
)
from .helpers import auth_helpers
import uuid
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

security = HTTPBearer()


def get_otp_store(request: Request) -> OtpStore:
    return request.app.state.otp_store


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
):
    """Get current user from JWT token"""
    payload = auth_helpers.verify_token(credentials.credentials)

    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        logger.warning(f"Token for unknown user {user_id}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found"
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account is inactive"
        )

    current_user = {
        "user_id": user.id,
        "user_type": user.user_type,
        "is_admin": user.is_admin,
        "role": "admin" if user.is_admin else user.user_type
    }

    request.state.current_user = current_user
    return current_user


async def _auth_response(user: User, db: AsyncSession, message: str) -> AuthResponse:
    token = auth_helpers.create_access_token(user)
    user_data = await user_helpers.to_dict(user, db)
    return AuthResponse(
        message=message,
        data=AuthData(token=token, user=safe_model_validate(UserResponse, user_data))
    )


@router.post("/send-otp", response_model=SendOtpResponse)
async def send_otp(
    otp_request: SendOtpRequest,
    otp_store: OtpStore = Depends(get_otp_store)
):
    """Send a 6 digit login code by SMS"""
    result = await auth_helpers.send_otp(otp_store, otp_request.phone_number)
    if not result["success"]:
        logger.error(f"OTP delivery failed for {otp_request.phone_number}: {result.get('error')}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send OTP"
        )

    return SendOtpResponse(
        message="OTP sent successfully",
        data=SendOtpData(phone_number=otp_request.phone_number, jobid=result.get("jobid"))
    )


@router.post("/verify-otp", response_model=AuthResponse)
async def verify_otp(
    verify_request: VerifyOtpRequest,
    otp_store: OtpStore = Depends(get_otp_store),
    db: AsyncSession = Depends(get_db)
):
    """
    Verify an OTP and log the user in.
    Unknown numbers are registered when userType is supplied.
    """
    if not auth_helpers.verify_otp(otp_store, verify_request.phone_number, verify_request.otp):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired OTP code"
        )

    try:
        phone_number = auth_helpers.normalize_phone(verify_request.phone_number)
        result = await db.execute(select(User).where(User.phone_number == phone_number))
        user = result.scalar_one_or_none()

        if user and not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Your account is inactive"
            )

        if not user:
            if not verify_request.user_type:
                raise HTTPException(
                    status_code=status.HTTP_404_NOT_FOUND,
                    detail="No user is registered with this phone number. Please sign up."
                )

            city_id = None
            if verify_request.city_id:
                city_id = await user_helpers.validate_city(verify_request.city_id, db)
            if verify_request.email:
                await user_helpers.ensure_email_available(verify_request.email, uuid.uuid4(), db)

            category_ids = await auth_helpers.resolve_category_ids(verify_request.categories, db)

            user = User(
                phone_number=phone_number,
                user_type=verify_request.user_type.value,
                name=verify_request.name,
                email=verify_request.email,
                company_name=verify_request.company_name,
                address=verify_request.address,
                city_id=city_id
            )
            db.add(user)
            await db.flush()
            for category_id in category_ids:
                db.add(UserCategory(user_id=user.id, category_id=category_id))

            await db.commit()
            await db.refresh(user)
            logger.info(f"Registered {user.user_type} user {user.id}")

        return await _auth_response(user, db, "Login successful")

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"OTP login failed: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Login failed"
        )


@router.post("/check-user", response_model=CheckUserResponse)
async def check_user(
    check_request: CheckUserRequest,
    db: AsyncSession = Depends(get_db)
):
    """Tell the client whether a phone number can log in with a password"""
    phone_number = auth_helpers.normalize_phone(check_request.phone_number)
    result = await db.execute(select(User).where(User.phone_number == phone_number))
    user = result.scalar_one_or_none()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No user is registered with this phone number"
        )
    return CheckUserResponse(data=CheckUserData(has_password=bool(user.password_hash)))


@router.post("/login", response_model=AuthResponse)
async def login(
    login_request: PhoneLoginRequest,
    db: AsyncSession = Depends(get_db)
):
    phone_number = auth_helpers.normalize_phone(login_request.phone_number)
    result = await db.execute(select(User).where(User.phone_number == phone_number))
    user = result.scalar_one_or_none()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid phone number or password"
        )
    if not user.password_hash:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="No password is set for this account. Please log in with SMS."
        )
    if not auth_helpers.verify_password(login_request.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid phone number or password"
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account is inactive"
        )

    return await _auth_response(user, db, "Login successful")


@router.post("/admin/login", response_model=AuthResponse)
async def admin_login(
    login_request: AdminLoginRequest,
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(select(User).where(User.email == login_request.email))
    user = result.scalar_one_or_none()

    if not user or not auth_helpers.verify_password(login_request.password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )
    if not user.is_admin:
        logger.warning(f"Non-admin user {user.id} attempted admin login")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Your account is inactive"
        )

    return await _auth_response(user, db, "Admin login successful")


@router.get("/admin/me", response_model=UserEnvelope)
async def admin_me(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    if not current_user["is_admin"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    user = await user_helpers.get_user_or_404(current_user["user_id"], db)
    user_data = await user_helpers.to_dict(user, db)
    return UserEnvelope(data=safe_model_validate(UserResponse, user_data))
