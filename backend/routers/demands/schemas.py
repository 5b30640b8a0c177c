from pydantic import Field
from typing import Optional, List, Any, Dict
from datetime import datetime
import uuid
from models import DemandStatus
from routers.categories.schemas import CategorySummary
from routers.users.schemas import UserSummary
from routers.settings.schemas import CityResponse
from utils.response_helpers import CamelModel


class DemandCreate(CamelModel):
    title: str = Field(min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    category: str = Field(min_length=1, description="Category id or name")
    location: Optional[str] = Field(default=None, max_length=255)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    images: Optional[List[str]] = None
    people_count: Optional[int] = Field(default=None, ge=1)
    event_date: Optional[datetime] = None
    event_time: Optional[str] = Field(default=None, max_length=20)
    deadline: Optional[datetime] = None
    address: Optional[str] = None
    question_responses: Optional[Dict[str, Any]] = None
    is_urgent: bool = False
    city_id: Optional[uuid.UUID] = None
    county: Optional[str] = Field(default=None, max_length=100)


class DemandUpdate(CamelModel):
    """Owner edits; absent fields are left alone, explicit nulls clear optional fields"""
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)
    category: Optional[str] = None
    status: Optional[DemandStatus] = None
    location: Optional[str] = Field(default=None, max_length=255)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    images: Optional[List[str]] = None
    people_count: Optional[int] = Field(default=None, ge=1)
    event_date: Optional[datetime] = None
    event_time: Optional[str] = Field(default=None, max_length=20)
    deadline: Optional[datetime] = None
    address: Optional[str] = None
    question_responses: Optional[Dict[str, Any]] = None
    is_urgent: Optional[bool] = None
    city_id: Optional[uuid.UUID] = None
    county: Optional[str] = Field(default=None, max_length=100)


class DemandOfferItem(CamelModel):
    id: str
    provider_id: str
    price: float
    estimated_time: str
    message: Optional[str] = None
    status: str
    provider_completed: bool
    provider: UserSummary
    created_at: datetime


class DemandResponse(CamelModel):
    id: str
    demand_number: int
    user_id: str
    category_id: str
    city_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    status: DemandStatus
    is_approved: bool
    is_urgent: bool = False
    location: Optional[str] = None
    county: Optional[str] = None
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    images: List[str] = []
    people_count: Optional[int] = None
    event_date: Optional[datetime] = None
    event_time: Optional[str] = None
    deadline: Optional[datetime] = None
    question_responses: Optional[Dict[str, Any]] = None
    user: UserSummary
    category: CategorySummary
    city: Optional[CityResponse] = None
    offer_count: Optional[int] = None
    offers: Optional[List[DemandOfferItem]] = None
    created_at: datetime
    updated_at: datetime


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class DemandListData(CamelModel):
    demands: List[DemandResponse]


class DemandListResponse(CamelModel):
    success: bool = True
    data: DemandListData
    pagination: Pagination


class DemandEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: DemandResponse


class DemandCollectionResponse(CamelModel):
    success: bool = True
    data: List[DemandResponse]
