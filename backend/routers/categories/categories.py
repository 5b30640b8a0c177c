from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from config import get_db
from models import Category
from routers.auth.auth import get_current_user
from dependencies.rbac import require_category_write, require_category_delete
from utils.response_helpers import safe_model_validate, safe_model_validate_list, category_to_dict
from .schemas import (
    CategoryCreate, CategoryUpdate, CategoryWithChildrenResponse,
    CategoryEnvelope, CategoryListResponse
)
from .helpers import category_helpers
from typing import Optional
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("", response_model=CategoryListResponse)
async def list_categories(
    include_children: bool = Query(False, alias="includeChildren"),
    parent_id: Optional[uuid.UUID] = Query(None, alias="parentId"),
    only_root: bool = Query(False, alias="onlyRoot"),
    db: AsyncSession = Depends(get_db)
):
    """
    Public: active categories. Filter by parent or restrict to roots;
    includeChildren embeds each category's active children.
    """
    query = select(Category).where(Category.is_active == True)
    if parent_id:
        query = query.where(Category.parent_id == parent_id)
    elif only_root:
        query = query.where(Category.parent_id.is_(None))

    result = await db.execute(query.order_by(Category.rank, Category.name))
    categories = result.scalars().all()

    if include_children:
        items = [
            await category_helpers.to_detail_dict(category, db, active_children_only=True)
            for category in categories
        ]
    else:
        items = [category_to_dict(category) for category in categories]

    return CategoryListResponse(data=safe_model_validate_list(CategoryWithChildrenResponse, items))


@router.get("/{category_id}", response_model=CategoryEnvelope)
async def get_category(
    category_id: uuid.UUID,
    db: AsyncSession = Depends(get_db)
):
    category = await category_helpers.get_category_or_404(category_id, db)
    data = await category_helpers.to_detail_dict(category, db, active_children_only=True)
    return CategoryEnvelope(data=safe_model_validate(CategoryWithChildrenResponse, data))


@router.get("/{category_id}/children", response_model=CategoryListResponse)
async def get_category_children(
    category_id: uuid.UUID,
    db: AsyncSession = Depends(get_db)
):
    await category_helpers.get_category_or_404(category_id, db)
    result = await db.execute(
        select(Category)
        .where(Category.parent_id == category_id, Category.is_active == True)
        .order_by(Category.rank, Category.name)
    )
    children = result.scalars().all()
    return CategoryListResponse(
        data=safe_model_validate_list(CategoryWithChildrenResponse, [category_to_dict(child) for child in children])
    )


@router.post("", response_model=CategoryEnvelope, status_code=status.HTTP_201_CREATED)
async def create_category(
    category_data: CategoryCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_category_write)
):
    """Admin only: create category"""
    try:
        category = await category_helpers.create_category(category_data.model_dump(), db)
        data = await category_helpers.to_detail_dict(category, db)
        return CategoryEnvelope(
            message="Category created successfully",
            data=safe_model_validate(CategoryWithChildrenResponse, data)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating category: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create category"
        )


@router.patch("/{category_id}", response_model=CategoryEnvelope)
async def update_category(
    category_id: uuid.UUID,
    category_update: CategoryUpdate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_category_write)
):
    """Admin only: update category"""
    try:
        category = await category_helpers.get_category_or_404(category_id, db)
        category = await category_helpers.update_category(
            category, category_update.model_dump(exclude_unset=True), db
        )
        data = await category_helpers.to_detail_dict(category, db)
        return CategoryEnvelope(
            message="Category updated successfully",
            data=safe_model_validate(CategoryWithChildrenResponse, data)
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating category: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update category"
        )


@router.delete("/{category_id}")
async def delete_category(
    category_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_category_delete)
):
    """Admin only: delete an unreferenced category"""
    try:
        category = await category_helpers.get_category_or_404(category_id, db)
        await category_helpers.delete_category(category, db)
        return {"success": True, "message": "Category deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting category: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete category"
        )
