from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from config import get_db
from models import Review
from routers.auth.auth import get_current_user
from routers.auth.helpers import auth_helpers
from routers.reviews.schemas import ReviewResponse, ReviewListResponse
from utils.response_helpers import safe_model_validate, safe_model_validate_list, review_to_dict
from .schemas import (
    UserProfileUpdate, UserResponse, UserPublicResponse, UserEnvelope, UserPublicEnvelope,
)
from .helpers import user_helpers
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserEnvelope)
async def get_current_user_profile(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Get current user's profile with subscribed category ids
    """
    user = await user_helpers.get_user_or_404(current_user["user_id"], db)
    user_data = await user_helpers.to_dict(user, db)
    return UserEnvelope(data=safe_model_validate(UserResponse, user_data))


@router.put("/me", response_model=UserEnvelope)
async def update_current_user_profile(
    profile_update: UserProfileUpdate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """
    Update current user's profile. Only fields present in the body change;
    categories, when present, replace the whole subscription set.
    """
    try:
        user = await user_helpers.get_user_or_404(current_user["user_id"], db)
        update_data = profile_update.model_dump(exclude_unset=True)

        category_refs = update_data.pop("categories", None)
        if "city_id" in update_data:
            city_id = update_data.pop("city_id")
            user.city_id = await user_helpers.validate_city(city_id, db) if city_id else None
        if update_data.get("email"):
            await user_helpers.ensure_email_available(update_data["email"], user.id, db)

        for field, value in update_data.items():
            setattr(user, field, value)

        if category_refs is not None:
            category_ids = await auth_helpers.resolve_category_ids(category_refs, db)
            await user_helpers.replace_categories(user.id, category_ids, db)

        await db.commit()
        await db.refresh(user)

        user_data = await user_helpers.to_dict(user, db)
        return UserEnvelope(
            message="Profile updated successfully",
            data=safe_model_validate(UserResponse, user_data)
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating profile for {current_user['user_id']}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update profile"
        )


@router.get("/{user_id}", response_model=UserPublicEnvelope)
async def get_user_profile(
    user_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    user = await user_helpers.get_user_or_404(user_id, db)
    user_data = await user_helpers.to_dict(user, db, private=False)
    return UserPublicEnvelope(data=safe_model_validate(UserPublicResponse, user_data))


@router.get("/{user_id}/reviews", response_model=ReviewListResponse)
async def get_user_reviews(
    user_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Reviews a user has received, newest first"""
    await user_helpers.get_user_or_404(user_id, db)
    result = await db.execute(
        select(Review)
        .options(selectinload(Review.reviewer))
        .where(Review.reviewed_user_id == user_id)
        .order_by(Review.created_at.desc())
    )
    reviews = result.scalars().all()
    return ReviewListResponse(
        data=safe_model_validate_list(ReviewResponse, [review_to_dict(review) for review in reviews])
    )
