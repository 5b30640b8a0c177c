from pydantic import Field
from typing import Optional, List, Any
from datetime import datetime
import uuid
from utils.response_helpers import CamelModel


class CategorySummary(CamelModel):
    id: str
    name: str
    icon: Optional[str] = None


class CategoryCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    icon: Optional[str] = None
    parent_id: Optional[uuid.UUID] = None
    commission_rate: Optional[float] = Field(default=None, ge=0, le=1000)
    is_active: bool = True
    questions: Optional[List[Any]] = None
    rank: int = 0


class CategoryUpdate(CamelModel):
    """Partial update; an explicit null parentId moves the category to the root"""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    icon: Optional[str] = None
    parent_id: Optional[uuid.UUID] = None
    commission_rate: Optional[float] = Field(default=None, ge=0, le=1000)
    is_active: Optional[bool] = None
    questions: Optional[List[Any]] = None
    rank: Optional[int] = None


class CategoryResponse(CamelModel):
    id: str
    name: str
    icon: Optional[str] = None
    parent_id: Optional[str] = None
    commission_rate: Optional[float] = None
    is_active: bool
    questions: Optional[List[Any]] = None
    rank: int = 0
    created_at: datetime
    updated_at: datetime


class CategoryWithChildrenResponse(CategoryResponse):
    parent: Optional[CategorySummary] = None
    children: List[CategoryResponse] = []


class CategoryEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: CategoryWithChildrenResponse


class CategoryListResponse(CamelModel):
    success: bool = True
    data: List[CategoryWithChildrenResponse]
