from pydantic import Field
from typing import Optional, List, Literal
from datetime import datetime
import uuid
from models import OfferStatus
from routers.offers.helpers import MAX_OFFER_PRICE
from routers.users.schemas import UserSummary
from routers.demands.schemas import DemandResponse
from utils.response_helpers import CamelModel


class OfferCreate(CamelModel):
    demand_id: uuid.UUID
    price: float = Field(ge=0, le=float(MAX_OFFER_PRICE), allow_inf_nan=False)
    estimated_time: str = Field(min_length=1, max_length=100)
    message: Optional[str] = Field(default=None, max_length=1000)


class OfferStatusUpdate(CamelModel):
    status: Literal["ACCEPTED", "REJECTED"]


class OfferDemandSummary(CamelModel):
    id: str
    demand_number: int
    title: str
    status: str
    user_id: str


class OfferResponse(CamelModel):
    id: str
    demand_id: str
    provider_id: str
    price: float
    estimated_time: str
    message: Optional[str] = None
    status: OfferStatus
    provider_completed: bool
    is_approved: bool
    provider: UserSummary
    demand: Optional[OfferDemandSummary] = None
    created_at: datetime
    updated_at: datetime


class OfferEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: OfferResponse


class OfferCreateData(CamelModel):
    offer: OfferResponse
    commission_amount: float
    new_balance: float


class OfferCreateResponse(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: OfferCreateData


class OfferListResponse(CamelModel):
    success: bool = True
    data: List[OfferResponse]


class MyOffersData(CamelModel):
    """Providers get their offers; receivers get their demands that have offers"""
    offers: List[OfferResponse] = []
    demands: List[DemandResponse] = []


class MyOffersResponse(CamelModel):
    success: bool = True
    data: MyOffersData
