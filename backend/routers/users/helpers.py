from fastapi import HTTPException, status
from models import City, User, UserCategory, Review
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func
from utils.response_helpers import user_to_dict
from typing import Any, Dict, List
import uuid
import logging

logger = logging.getLogger(__name__)


class UserHelpers:
    """Helper functions for user operations"""

    async def get_user_or_404(self, user_id: uuid.UUID, db: AsyncSession) -> User:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )
        return user

    async def get_category_ids(self, user_id: uuid.UUID, db: AsyncSession) -> List[uuid.UUID]:
        result = await db.execute(
            select(UserCategory.category_id).where(UserCategory.user_id == user_id)
        )
        return list(result.scalars().all())

    async def replace_categories(self, user_id: uuid.UUID, category_ids: List[uuid.UUID], db: AsyncSession):
        """Swap the whole subscription set; caller commits"""
        await db.execute(delete(UserCategory).where(UserCategory.user_id == user_id))
        for category_id in category_ids:
            db.add(UserCategory(user_id=user_id, category_id=category_id))

    async def validate_city(self, city_id: Any, db: AsyncSession) -> uuid.UUID:
        """An assignable city must exist and be active"""
        try:
            city_uuid = uuid.UUID(str(city_id))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid city ID"
            )
        result = await db.execute(select(City).where(City.id == city_uuid))
        city = result.scalar_one_or_none()
        if not city:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid city ID"
            )
        if not city.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Selected city is not active"
            )
        return city.id

    async def ensure_email_available(self, email: str, user_id: uuid.UUID, db: AsyncSession):
        result = await db.execute(
            select(User.id).where(User.email == email, User.id != user_id)
        )
        if result.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email is already in use"
            )

    async def to_dict(self, user: User, db: AsyncSession, private: bool = True) -> Dict[str, Any]:
        category_ids = await self.get_category_ids(user.id, db)
        return user_to_dict(user, category_ids=category_ids, private=private)

    async def update_user_rating(self, user_id: uuid.UUID, db: AsyncSession):
        """
        Recompute a user's rating as the mean of every review they received.
        No reviews means rating 0. Runs inside the caller's transaction.
        """
        result = await db.execute(
            select(func.avg(Review.rating), func.count(Review.id))
            .where(Review.reviewed_user_id == user_id)
        )
        avg_rating, total_reviews = result.first()

        user = await db.get(User, user_id)
        if user:
            user.rating = float(avg_rating or 0.0)
            user.rating_count = int(total_reviews or 0)
            logger.info(f"Rating for user {user_id} recomputed: {user.rating} ({user.rating_count} reviews)")


user_helpers = UserHelpers()
