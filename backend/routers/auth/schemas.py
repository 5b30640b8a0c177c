from pydantic import EmailStr, Field
from typing import Optional, List
from models import UserType
from routers.users.schemas import UserResponse
from utils.response_helpers import CamelModel

PHONE_PATTERN = r"^\+?[0-9]{10,15}$"


# Request schemas
class SendOtpRequest(CamelModel):
    phone_number: str = Field(pattern=PHONE_PATTERN)


class VerifyOtpRequest(CamelModel):
    phone_number: str = Field(pattern=PHONE_PATTERN)
    otp: str = Field(min_length=6, max_length=6)
    user_type: Optional[UserType] = None
    name: Optional[str] = Field(default=None, max_length=150)
    email: Optional[EmailStr] = None
    company_name: Optional[str] = Field(default=None, max_length=200)
    address: Optional[str] = None
    categories: Optional[List[str]] = None
    city_id: Optional[str] = None


class CheckUserRequest(CamelModel):
    phone_number: str = Field(pattern=PHONE_PATTERN)


class PhoneLoginRequest(CamelModel):
    phone_number: str = Field(pattern=PHONE_PATTERN)
    password: str = Field(min_length=1)


class AdminLoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=6)


# Response schemas
class SendOtpData(CamelModel):
    phone_number: str
    jobid: Optional[str] = None


class SendOtpResponse(CamelModel):
    success: bool = True
    message: str
    data: SendOtpData


class AuthData(CamelModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse


class AuthResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: AuthData


class CheckUserData(CamelModel):
    has_password: bool


class CheckUserResponse(CamelModel):
    success: bool = True
    data: CheckUserData
