from pydantic import Field
from typing import Optional, List
from datetime import datetime
import uuid
from utils.response_helpers import CamelModel


class CityCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    is_active: bool = False


class CityActivationUpdate(CamelModel):
    is_active: bool


class CityBulkActivation(CamelModel):
    """The listed cities become active; every other city is deactivated"""
    city_ids: List[uuid.UUID]


class CityResponse(CamelModel):
    id: str
    name: str
    is_active: bool
    created_at: datetime
    updated_at: datetime


class CityEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: CityResponse


class CityListResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: List[CityResponse]
