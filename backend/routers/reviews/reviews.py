from fastapi import APIRouter, Depends, HTTPException, status, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from config import get_db
from models import Review, Offer, OfferStatus
from routers.auth.auth import get_current_user
from routers.users.helpers import user_helpers
from dependencies.rbac import require_review_write
from utils.notifications import notify_user, NEW_REVIEW
from utils.response_helpers import safe_model_validate, safe_model_validate_list, review_to_dict
from .schemas import ReviewCreate, ReviewResponse, ReviewEnvelope, ReviewListResponse
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["Reviews"])


async def load_review(review_id: uuid.UUID, db: AsyncSession):
    result = await db.execute(
        select(Review)
        .options(selectinload(Review.reviewer))
        .where(Review.id == review_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _check_offer_scope(review_data: ReviewCreate, reviewer_id: uuid.UUID, db: AsyncSession):
    """An offer-scoped review needs a completed offer between the two parties"""
    result = await db.execute(
        select(Offer)
        .options(selectinload(Offer.demand))
        .where(Offer.id == review_data.offer_id)
    )
    offer = result.scalar_one_or_none()
    if not offer:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Offer not found"
        )
    if offer.status != OfferStatus.COMPLETED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only completed offers can be reviewed"
        )

    parties = {offer.provider_id, offer.demand.user_id}
    if reviewer_id not in parties or review_data.reviewed_user_id not in parties:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only review the other party of this offer"
        )

    existing = await db.execute(
        select(Review.id).where(
            Review.reviewer_id == reviewer_id,
            Review.offer_id == offer.id
        )
    )
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You have already reviewed this offer"
        )


@router.post("", response_model=ReviewEnvelope, status_code=status.HTTP_201_CREATED)
async def create_review(
    review_data: ReviewCreate,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_review_write)
):
    """
    Rate another user. The reviewed user's aggregate rating is recomputed in
    the same transaction.
    """
    reviewer_id = current_user["user_id"]
    if review_data.reviewed_user_id == reviewer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot review yourself"
        )

    try:
        await user_helpers.get_user_or_404(review_data.reviewed_user_id, db)

        if review_data.offer_id:
            await _check_offer_scope(review_data, reviewer_id, db)
        else:
            existing = await db.execute(
                select(Review.id).where(
                    Review.reviewer_id == reviewer_id,
                    Review.reviewed_user_id == review_data.reviewed_user_id,
                    Review.offer_id.is_(None)
                )
            )
            if existing.scalar_one_or_none():
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="You have already reviewed this user"
                )

        review = Review(
            reviewer_id=reviewer_id,
            reviewed_user_id=review_data.reviewed_user_id,
            offer_id=review_data.offer_id,
            rating=review_data.rating,
            comment=review_data.comment
        )
        db.add(review)
        await db.flush()
        await user_helpers.update_user_rating(review_data.reviewed_user_id, db)
        await db.commit()

    except HTTPException:
        raise
    except IntegrityError:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You have already reviewed this user"
        )
    except Exception as e:
        logger.error(f"Error creating review: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create review"
        )

    review = await load_review(review.id, db)
    await notify_user(
        db,
        review_data.reviewed_user_id,
        "New Review",
        f"You received a {review_data.rating} star review",
        NEW_REVIEW,
        {"reviewId": str(review.id), "rating": review_data.rating},
        background_tasks
    )

    return ReviewEnvelope(
        message="Review created successfully",
        data=safe_model_validate(ReviewResponse, review_to_dict(review))
    )


@router.get("/user/{user_id}", response_model=ReviewListResponse)
async def get_reviews_for_user(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db)
):
    """Public: reviews a user has received"""
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
