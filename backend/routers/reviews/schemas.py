from pydantic import Field
from typing import Optional, List
from datetime import datetime
import uuid
from routers.users.schemas import UserSummary
from utils.response_helpers import CamelModel


class ReviewCreate(CamelModel):
    reviewed_user_id: uuid.UUID
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = Field(default=None, max_length=500)
    offer_id: Optional[uuid.UUID] = None


class ReviewResponse(CamelModel):
    id: str
    reviewer_id: str
    reviewed_user_id: str
    offer_id: Optional[str] = None
    rating: int
    comment: Optional[str] = None
    reviewer: UserSummary
    created_at: datetime
    updated_at: datetime


class ReviewEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: ReviewResponse


class ReviewListResponse(CamelModel):
    success: bool = True
    data: List[ReviewResponse]
