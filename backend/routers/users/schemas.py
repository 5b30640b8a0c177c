from pydantic import EmailStr, Field
from typing import Optional, List
from datetime import datetime
from models import UserType
from utils.response_helpers import CamelModel


class UserSummary(CamelModel):
    """Public card embedded in demands, offers and reviews"""
    id: str
    name: Optional[str] = None
    profile_image: Optional[str] = None
    user_type: UserType
    rating: float = 0.0
    rating_count: int = 0
    company_name: Optional[str] = None


class UserPublicResponse(CamelModel):
    id: str
    name: Optional[str] = None
    user_type: UserType
    profile_image: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    company_name: Optional[str] = None
    response_time: Optional[str] = None
    rating: float = 0.0
    rating_count: int = 0
    completed_jobs: int = 0
    city_id: Optional[str] = None
    categories: List[str] = []
    created_at: datetime


class UserResponse(UserPublicResponse):
    phone_number: str
    email: Optional[str] = None
    address: Optional[str] = None
    is_admin: bool = False
    is_active: bool = True
    balance: float = 0.0
    has_password: bool = False
    updated_at: datetime


class UserProfileUpdate(CamelModel):
    """Fields a user may change on their own profile; categories replace the set"""
    name: Optional[str] = Field(default=None, max_length=150)
    email: Optional[EmailStr] = None
    bio: Optional[str] = None
    location: Optional[str] = Field(default=None, max_length=255)
    profile_image: Optional[str] = Field(default=None, max_length=500)
    company_name: Optional[str] = Field(default=None, max_length=200)
    address: Optional[str] = None
    response_time: Optional[str] = Field(default=None, max_length=50)
    fcm_token: Optional[str] = None
    city_id: Optional[str] = None
    categories: Optional[List[str]] = None


class UserEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: UserResponse


class UserPublicEnvelope(CamelModel):
    success: bool = True
    data: UserPublicResponse
