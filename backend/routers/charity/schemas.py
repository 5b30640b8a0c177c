from pydantic import Field
from typing import Optional, List
from datetime import datetime
import uuid
from routers.categories.schemas import CategorySummary
from routers.users.schemas import UserSummary
from utils.response_helpers import CamelModel


class CharityActivityCreate(CamelModel):
    category_id: uuid.UUID
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(min_length=10, max_length=2000)
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    address: str = Field(min_length=5, max_length=500)
    estimated_end_time: Optional[datetime] = None


class CharityActivityUpdate(CamelModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, min_length=10, max_length=2000)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    address: Optional[str] = Field(default=None, min_length=5, max_length=500)
    estimated_end_time: Optional[datetime] = None


class CharityActivityResponse(CamelModel):
    id: str
    provider_id: str
    category_id: str
    title: str
    description: str
    latitude: float
    longitude: float
    address: str
    estimated_end_time: Optional[datetime] = None
    distance: Optional[float] = None
    provider: UserSummary
    category: CategorySummary
    created_at: datetime
    updated_at: datetime


class CharityActivityEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: CharityActivityResponse


class CharityActivityListResponse(CamelModel):
    success: bool = True
    data: List[CharityActivityResponse]
