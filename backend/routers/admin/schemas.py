from pydantic import EmailStr, Field
from typing import Optional, List, Any, Dict, Literal
from datetime import datetime
import uuid
from models import UserType, OfferStatus
from routers.categories.schemas import CategoryWithChildrenResponse
from routers.demands.schemas import DemandCreate, DemandUpdate, DemandResponse, Pagination
from routers.offers.helpers import MAX_OFFER_PRICE
from routers.offers.schemas import OfferResponse
from routers.reviews.schemas import ReviewResponse
from routers.charity.schemas import CharityActivityCreate, CharityActivityResponse
from routers.users.schemas import UserResponse, UserSummary
from utils.response_helpers import CamelModel


class PaginatedCategoryResponse(CamelModel):
    success: bool = True
    data: List[CategoryWithChildrenResponse]
    pagination: Pagination


# Users

class AdminUserResponse(UserResponse):
    demand_count: int = 0
    offer_count: int = 0
    review_count: int = 0


class AdminUserUpdate(CamelModel):
    name: Optional[str] = Field(default=None, max_length=150)
    email: Optional[EmailStr] = None
    phone_number: Optional[str] = Field(default=None, pattern=r"^\+?[0-9]{10,15}$")
    user_type: Optional[UserType] = None
    bio: Optional[str] = None
    location: Optional[str] = Field(default=None, max_length=255)
    profile_image: Optional[str] = Field(default=None, max_length=500)
    company_name: Optional[str] = Field(default=None, max_length=200)
    address: Optional[str] = None
    response_time: Optional[str] = Field(default=None, max_length=50)
    city_id: Optional[uuid.UUID] = None
    balance: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    is_active: Optional[bool] = None
    is_admin: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=6)
    categories: Optional[List[str]] = None


class AdminUserEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: AdminUserResponse


class AdminUserListResponse(CamelModel):
    success: bool = True
    data: List[AdminUserResponse]
    pagination: Pagination


# Demands

class AdminDemandCreate(DemandCreate):
    user_id: uuid.UUID
    is_approved: bool = False


class AdminDemandUpdate(DemandUpdate):
    is_approved: Optional[bool] = None


class DemandApprovalUpdate(CamelModel):
    is_approved: bool


class AdminDemandListResponse(CamelModel):
    success: bool = True
    data: List[DemandResponse]
    pagination: Pagination


class PendingCount(CamelModel):
    count: int


class PendingCountResponse(CamelModel):
    success: bool = True
    data: PendingCount


# Offers

class AdminOfferUpdate(CamelModel):
    price: Optional[float] = Field(default=None, ge=0, le=float(MAX_OFFER_PRICE), allow_inf_nan=False)
    estimated_time: Optional[str] = Field(default=None, min_length=1, max_length=100)
    message: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[OfferStatus] = None


class AdminOfferCreate(CamelModel):
    demand_id: uuid.UUID
    provider_id: uuid.UUID
    price: float = Field(ge=0, le=float(MAX_OFFER_PRICE), allow_inf_nan=False)
    estimated_time: str = Field(min_length=1, max_length=100)
    message: Optional[str] = Field(default=None, max_length=1000)
    status: Literal["PENDING", "ACCEPTED"] = "PENDING"


class AdminOfferListResponse(CamelModel):
    success: bool = True
    data: List[OfferResponse]
    pagination: Pagination


# Reviews and charity

class AdminReviewResponse(ReviewResponse):
    reviewed_user: Optional[UserSummary] = None


class AdminReviewListResponse(CamelModel):
    success: bool = True
    data: List[AdminReviewResponse]
    pagination: Pagination


class AdminCharityActivityCreate(CharityActivityCreate):
    provider_id: uuid.UUID


class AdminCharityListResponse(CamelModel):
    success: bool = True
    data: List[CharityActivityResponse]
    pagination: Pagination


# Statistics

class RecentUser(CamelModel):
    id: str
    name: Optional[str] = None
    phone_number: str
    email: Optional[str] = None
    user_type: UserType
    profile_image: Optional[str] = None
    is_active: bool
    is_admin: bool
    created_at: datetime


class StatisticsData(CamelModel):
    statistics: Dict[str, Any]
    last_ten_users: List[RecentUser]


class StatisticsResponse(CamelModel):
    success: bool = True
    data: StatisticsData


# Broadcast notifications

class SingleNotificationRequest(CamelModel):
    user_id: uuid.UUID
    title: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1)
    data: Optional[Dict[str, Any]] = None


class BroadcastFilter(CamelModel):
    title: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1)
    data: Optional[Dict[str, Any]] = None
    user_type: Optional[UserType] = None
    city_id: Optional[uuid.UUID] = None


class MultipleNotificationRequest(BroadcastFilter):
    user_ids: List[uuid.UUID] = []


class SingleNotificationData(CamelModel):
    notification_id: str
    fcm_message_id: Optional[str] = None


class SingleNotificationResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: SingleNotificationData


class BroadcastResult(CamelModel):
    total_users: int
    success_count: int
    failure_count: int
    notifications_created: int
    errors: List[str] = []


class BroadcastResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: BroadcastResult


class PushRecipient(CamelModel):
    id: str
    name: Optional[str] = None
    phone_number: str
    email: Optional[str] = None
    user_type: UserType
    profile_image: Optional[str] = None
    has_fcm_token: bool
    city_id: Optional[str] = None


class PushRecipientListResponse(CamelModel):
    success: bool = True
    data: List[PushRecipient]


class TopicNotificationRequest(CamelModel):
    topic: str = Field(min_length=1, max_length=900, pattern=r"^[a-zA-Z0-9\-_.~%]+$")
    title: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1)
    data: Optional[Dict[str, Any]] = None


class TopicNotificationResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: Dict[str, Optional[str]]
