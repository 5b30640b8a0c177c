from fastapi import HTTPException, status
from sqlalchemy import select, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from models import Category, CharityActivity, Demand, UserCategory
from utils.response_helpers import category_to_dict
from decimal import Decimal
from typing import Any, Dict, Optional
import uuid
import logging

logger = logging.getLogger(__name__)

# Guards the ancestor walk against a tree corrupted outside the API
MAX_CATEGORY_DEPTH = 32


class CategoryHelpers:
    """Category tree operations shared by the public and admin routers"""

    async def get_category_or_404(self, category_id: uuid.UUID, db: AsyncSession) -> Category:
        result = await db.execute(select(Category).where(Category.id == category_id))
        category = result.scalar_one_or_none()
        if not category:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Category not found"
            )
        return category

    async def find_by_ref(self, ref: str, db: AsyncSession) -> Optional[Category]:
        """Look a category up by id or, failing that, by exact name"""
        try:
            condition = or_(Category.id == uuid.UUID(str(ref)), Category.name == ref)
        except ValueError:
            condition = Category.name == ref
        result = await db.execute(select(Category).where(condition).limit(1))
        return result.scalar_one_or_none()

    async def ensure_name_available(self, name: str, db: AsyncSession, exclude_id: Optional[uuid.UUID] = None):
        query = select(Category.id).where(Category.name == name)
        if exclude_id:
            query = query.where(Category.id != exclude_id)
        result = await db.execute(query)
        if result.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Category name already exists"
            )

    async def validate_parent(self, parent_id: uuid.UUID, db: AsyncSession, category_id: Optional[uuid.UUID] = None):
        """
        Parent must exist, and for an existing category the parent's ancestor
        chain must not pass through the category itself.
        """
        if category_id and parent_id == category_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Category cannot be its own parent"
            )

        parent = await db.get(Category, parent_id)
        if not parent:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Parent category not found"
            )

        if not category_id:
            return

        visited = set()
        current_id = parent.parent_id
        depth = 0
        while current_id and current_id not in visited and depth < MAX_CATEGORY_DEPTH:
            if current_id == category_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Category cannot be moved under one of its own subcategories"
                )
            visited.add(current_id)
            result = await db.execute(select(Category.parent_id).where(Category.id == current_id))
            current_id = result.scalar_one_or_none()
            depth += 1

    async def ensure_deletable(self, category: Category, db: AsyncSession):
        """Refuse deletion while anything still points at the category"""
        references = {
            "demands": select(func.count(Demand.id)).where(Demand.category_id == category.id),
            "subscribed users": select(func.count(UserCategory.id)).where(UserCategory.category_id == category.id),
            "charity activities": select(func.count(CharityActivity.id)).where(CharityActivity.category_id == category.id),
            "subcategories": select(func.count(Category.id)).where(Category.parent_id == category.id),
        }
        for label, query in references.items():
            count = (await db.execute(query)).scalar() or 0
            if count:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Category cannot be deleted while it has {count} {label}"
                )

    async def create_category(self, data: Dict[str, Any], db: AsyncSession) -> Category:
        await self.ensure_name_available(data["name"], db)
        if data.get("parent_id"):
            await self.validate_parent(data["parent_id"], db)
        if data.get("commission_rate") is not None:
            data["commission_rate"] = Decimal(str(data["commission_rate"]))

        category = Category(**data)
        db.add(category)
        await db.commit()
        await db.refresh(category)
        logger.info(f"Category {category.id} ({category.name}) created")
        return category

    async def update_category(self, category: Category, data: Dict[str, Any], db: AsyncSession) -> Category:
        # Only nullable columns may be cleared with an explicit null
        data = {
            field: value for field, value in data.items()
            if value is not None or field in ("icon", "parent_id", "commission_rate", "questions")
        }
        if data.get("name") and data["name"] != category.name:
            await self.ensure_name_available(data["name"], db, exclude_id=category.id)
        if data.get("parent_id"):
            await self.validate_parent(data["parent_id"], db, category_id=category.id)
        if data.get("commission_rate") is not None:
            data["commission_rate"] = Decimal(str(data["commission_rate"]))

        for field, value in data.items():
            setattr(category, field, value)

        await db.commit()
        await db.refresh(category)
        logger.info(f"Category {category.id} updated: {', '.join(data.keys())}")
        return category

    async def delete_category(self, category: Category, db: AsyncSession):
        await self.ensure_deletable(category, db)
        await db.execute(delete(Category).where(Category.id == category.id))
        await db.commit()
        logger.info(f"Category {category.id} deleted")

    async def to_detail_dict(self, category: Category, db: AsyncSession, active_children_only: bool = False) -> Dict[str, Any]:
        """Category with its parent summary and direct children"""
        query = select(Category).where(Category.parent_id == category.id)
        if active_children_only:
            query = query.where(Category.is_active == True)
        children = (await db.execute(query.order_by(Category.rank, Category.name))).scalars().all()
        parent = await db.get(Category, category.parent_id) if category.parent_id else None
        return category_to_dict(category, children=children, parent=parent)


category_helpers = CategoryHelpers()
