"""
Admin moderation of user content: demand approval and editing, offers
entered or overridden by admins, review removal and charity listings.
"""
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status, Query
from dependencies.rbac import require_admin, require_admin_write, require_admin_delete
from routers.auth.auth import get_current_user
from routers.demands.helpers import demand_helpers
from routers.demands.schemas import DemandResponse, DemandEnvelope, Pagination
from routers.offers.helpers import offer_helpers
from routers.offers.schemas import OfferResponse, OfferEnvelope
from routers.reviews.reviews import load_review
from routers.users.helpers import user_helpers
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import select, func, delete, or_
from config import get_db
from models import Demand, DemandStatus, Offer, OfferStatus, Review, CharityActivity, UserType
from routers.charity.helpers import charity_helpers
from routers.charity.schemas import CharityActivityUpdate, CharityActivityResponse, CharityActivityEnvelope
from utils.notifications import notify_user, DEMAND_APPROVED, DEMAND_REJECTED, NEW_OFFER
from utils.response_helpers import (
    safe_model_validate,
    safe_model_validate_list,
    demand_to_dict,
    offer_to_dict,
    review_to_dict,
    user_summary_to_dict,
    charity_activity_to_dict,
    build_pagination,
)
from .schemas import (
    AdminDemandCreate,
    AdminDemandUpdate,
    DemandApprovalUpdate,
    AdminDemandListResponse,
    PendingCount,
    PendingCountResponse,
    AdminOfferCreate,
    AdminOfferUpdate,
    AdminOfferListResponse,
    AdminReviewResponse,
    AdminReviewListResponse,
    AdminCharityActivityCreate,
    AdminCharityListResponse,
)
from typing import Optional
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin Moderation"])


async def _count(db: AsyncSession, column, *conditions) -> int:
    result = await db.execute(select(func.count(column)).where(*conditions))
    return result.scalar() or 0


async def _demand_page(filters, page: int, limit: int, db: AsyncSession) -> AdminDemandListResponse:
    total = await _count(db, Demand.id, *filters)
    result = await db.execute(
        select(Demand)
        .options(selectinload(Demand.user), selectinload(Demand.category), selectinload(Demand.city))
        .where(*filters)
        .order_by(Demand.is_urgent.desc(), Demand.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    demands = result.scalars().all()
    offer_counts = await demand_helpers.count_offers([demand.id for demand in demands], db)
    items = [demand_to_dict(demand, offer_count=offer_counts.get(demand.id, 0)) for demand in demands]
    return AdminDemandListResponse(
        data=safe_model_validate_list(DemandResponse, items),
        pagination=Pagination(**build_pagination(page, limit, total))
    )


# =================
# DEMANDS
# =================

@router.get("/demands", response_model=AdminDemandListResponse)
async def list_demands(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    demand_status: Optional[DemandStatus] = Query(None, alias="status"),
    category_id: Optional[uuid.UUID] = Query(None, alias="categoryId"),
    user_id: Optional[uuid.UUID] = Query(None, alias="userId"),
    is_urgent: Optional[bool] = Query(None, alias="isUrgent"),
    is_approved: Optional[bool] = Query(None, alias="isApproved"),
    search: Optional[str] = Query(None),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    """Admin only: all demands, urgent first"""
    filters = []
    if demand_status:
        filters.append(Demand.status == demand_status.value)
    if category_id:
        filters.append(Demand.category_id == category_id)
    if user_id:
        filters.append(Demand.user_id == user_id)
    if is_urgent is not None:
        filters.append(Demand.is_urgent == is_urgent)
    if is_approved is not None:
        filters.append(Demand.is_approved == is_approved)
    if search:
        pattern = f"%{search}%"
        filters.append(or_(Demand.title.ilike(pattern), Demand.description.ilike(pattern)))
    return await _demand_page(filters, page, limit, db)


@router.get("/demands/pending/count", response_model=PendingCountResponse)
async def count_pending_demands(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    count = await _count(db, Demand.id, Demand.is_approved == False)
    return PendingCountResponse(data=PendingCount(count=count))


@router.get("/demands/pending", response_model=AdminDemandListResponse)
async def list_pending_demands(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    """Admin only: demands waiting for approval"""
    return await _demand_page([Demand.is_approved == False], page, limit, db)


@router.get("/demands/{demand_id}", response_model=DemandEnvelope)
async def get_demand(
    demand_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    demand = await demand_helpers.get_demand_or_404(demand_id, db, with_offers=True)
    data = demand_to_dict(demand, offer_count=len(demand.offers), offers=demand.offers)
    return DemandEnvelope(data=safe_model_validate(DemandResponse, data))


@router.post("/demands", response_model=DemandEnvelope, status_code=status.HTTP_201_CREATED)
async def create_demand(
    demand_data: AdminDemandCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_write)
):
    """Admin only: post a demand on behalf of a user"""
    try:
        await user_helpers.get_user_or_404(demand_data.user_id, db)
        fields = demand_data.model_dump(exclude={"user_id", "is_approved"})
        demand = await demand_helpers.create_demand(
            fields, demand_data.user_id, db, is_approved=demand_data.is_approved
        )
        return DemandEnvelope(
            message="Demand created successfully",
            data=safe_model_validate(DemandResponse, demand_to_dict(demand, offer_count=0))
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating demand for {demand_data.user_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create demand"
        )


@router.patch("/demands/{demand_id}", response_model=DemandEnvelope)
async def update_demand(
    demand_id: uuid.UUID,
    demand_update: AdminDemandUpdate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_write)
):
    try:
        demand = await demand_helpers.get_demand_or_404(demand_id, db)
        demand = await demand_helpers.apply_update(demand, demand_update.model_dump(exclude_unset=True), db)
        return DemandEnvelope(
            message="Demand updated successfully",
            data=safe_model_validate(DemandResponse, demand_to_dict(demand))
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating demand {demand_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update demand"
        )


@router.patch("/demands/{demand_id}/approval", response_model=DemandEnvelope)
async def set_demand_approval(
    demand_id: uuid.UUID,
    approval: DemandApprovalUpdate,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_write)
):
    """Admin only: approve or reject a demand and tell its owner"""
    try:
        demand = await demand_helpers.get_demand_or_404(demand_id, db)
        demand.is_approved = approval.is_approved
        await db.commit()
        logger.info(f"Demand {demand.demand_number} {'approved' if approval.is_approved else 'rejected'} by {current_user['user_id']}")
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating approval of demand {demand_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update demand approval"
        )

    if approval.is_approved:
        title = "Demand Approved"
        message = f'Your demand "{demand.title}" was approved and is now visible to providers.'
    else:
        title = "Demand Rejected"
        message = f'Your demand "{demand.title}" was rejected.'
    await notify_user(
        db,
        demand.user_id,
        title,
        message,
        DEMAND_APPROVED if approval.is_approved else DEMAND_REJECTED,
        {"demandId": str(demand.id), "isApproved": approval.is_approved},
        background_tasks
    )

    demand = await demand_helpers.load_demand(demand_id, db)
    return DemandEnvelope(
        message="Demand approved" if approval.is_approved else "Demand rejected",
        data=safe_model_validate(DemandResponse, demand_to_dict(demand))
    )


@router.delete("/demands/{demand_id}")
async def delete_demand(
    demand_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_delete)
):
    try:
        await demand_helpers.get_demand_or_404(demand_id, db)
        await db.execute(delete(Offer).where(Offer.demand_id == demand_id))
        await db.execute(delete(Demand).where(Demand.id == demand_id))
        await db.commit()
        logger.info(f"Demand {demand_id} deleted by admin {current_user['user_id']}")
        return {"success": True, "message": "Demand deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting demand {demand_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete demand"
        )


# =================
# OFFERS
# =================

@router.get("/offers", response_model=AdminOfferListResponse)
async def list_offers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    offer_status: Optional[OfferStatus] = Query(None, alias="status"),
    demand_id: Optional[uuid.UUID] = Query(None, alias="demandId"),
    provider_id: Optional[uuid.UUID] = Query(None, alias="providerId"),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    filters = []
    if offer_status:
        filters.append(Offer.status == offer_status.value)
    if demand_id:
        filters.append(Offer.demand_id == demand_id)
    if provider_id:
        filters.append(Offer.provider_id == provider_id)

    total = await _count(db, Offer.id, *filters)
    result = await db.execute(
        select(Offer)
        .options(selectinload(Offer.provider), selectinload(Offer.demand))
        .where(*filters)
        .order_by(Offer.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    offers = result.scalars().all()
    return AdminOfferListResponse(
        data=safe_model_validate_list(OfferResponse, [offer_to_dict(offer, demand=offer.demand) for offer in offers]),
        pagination=Pagination(**build_pagination(page, limit, total))
    )


@router.post("/offers", response_model=OfferEnvelope, status_code=status.HTTP_201_CREATED)
async def create_offer(
    offer_data: AdminOfferCreate,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_write)
):
    """
    Enter an offer on behalf of a provider, e.g. one agreed by phone.
    No commission is charged; starting as ACCEPTED closes the demand.
    """
    try:
        offer, demand, _commission, _balance = await offer_helpers.submit_offer(
            provider_id=offer_data.provider_id,
            demand_id=offer_data.demand_id,
            price=offer_data.price,
            estimated_time=offer_data.estimated_time,
            message=offer_data.message,
            db=db,
            charge_commission=False,
            initial_status=offer_data.status
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating offer as admin: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create offer"
        )

    offer = await offer_helpers.load_offer(offer.id, db)
    logger.info(f"Offer {offer.id} created by admin {current_user['user_id']} for provider {offer.provider_id}")
    await notify_user(
        db,
        demand.user_id,
        "New Offer",
        f"{offer.provider.name or 'A provider'} made an offer on your demand",
        NEW_OFFER,
        offer_helpers.notification_data(offer),
        background_tasks
    )
    return OfferEnvelope(
        message="Offer created successfully",
        data=safe_model_validate(OfferResponse, offer_to_dict(offer, demand=offer.demand))
    )


@router.get("/offers/{offer_id}", response_model=OfferEnvelope)
async def get_offer(
    offer_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    offer = await offer_helpers.get_offer_or_404(offer_id, db)
    return OfferEnvelope(data=safe_model_validate(OfferResponse, offer_to_dict(offer, demand=offer.demand)))


@router.patch("/offers/{offer_id}", response_model=OfferEnvelope)
async def update_offer(
    offer_id: uuid.UUID,
    offer_update: AdminOfferUpdate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_write)
):
    """Admin override of price, wording or status; the commission is not recharged"""
    try:
        offer = await offer_helpers.get_offer_or_404(offer_id, db)
        update_data = {
            field: value for field, value in offer_update.model_dump(exclude_unset=True).items()
            if value is not None or field == "message"
        }
        if "price" in update_data:
            update_data["price"] = offer_helpers.quantize_price(update_data["price"])
        if "status" in update_data:
            update_data["status"] = OfferStatus(update_data["status"]).value

        for field, value in update_data.items():
            setattr(offer, field, value)
        await db.commit()

        offer = await offer_helpers.load_offer(offer_id, db)
        logger.info(f"Offer {offer_id} updated by admin {current_user['user_id']}: {', '.join(update_data.keys())}")
        return OfferEnvelope(
            message="Offer updated successfully",
            data=safe_model_validate(OfferResponse, offer_to_dict(offer, demand=offer.demand))
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating offer {offer_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update offer"
        )


@router.delete("/offers/{offer_id}")
async def delete_offer(
    offer_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_delete)
):
    try:
        await offer_helpers.get_offer_or_404(offer_id, db)
        await db.execute(delete(Offer).where(Offer.id == offer_id))
        await db.commit()
        logger.info(f"Offer {offer_id} deleted by admin {current_user['user_id']}")
        return {"success": True, "message": "Offer deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting offer {offer_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete offer"
        )


# =================
# REVIEWS
# =================

@router.get("/reviews", response_model=AdminReviewListResponse)
async def list_reviews(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    reviewed_user_id: Optional[uuid.UUID] = Query(None, alias="reviewedUserId"),
    rating: Optional[int] = Query(None, ge=1, le=5),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    filters = []
    if reviewed_user_id:
        filters.append(Review.reviewed_user_id == reviewed_user_id)
    if rating:
        filters.append(Review.rating == rating)

    total = await _count(db, Review.id, *filters)
    result = await db.execute(
        select(Review)
        .options(selectinload(Review.reviewer), selectinload(Review.reviewed_user))
        .where(*filters)
        .order_by(Review.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = []
    for review in result.scalars().all():
        data = review_to_dict(review)
        data["reviewed_user"] = user_summary_to_dict(review.reviewed_user)
        items.append(data)
    return AdminReviewListResponse(
        data=safe_model_validate_list(AdminReviewResponse, items),
        pagination=Pagination(**build_pagination(page, limit, total))
    )


@router.delete("/reviews/{review_id}")
async def delete_review(
    review_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_delete)
):
    """Admin only: remove a review and recompute the reviewed user's rating"""
    try:
        review = await load_review(review_id, db)
        if not review:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Review not found"
            )
        reviewed_user_id = review.reviewed_user_id

        await db.execute(delete(Review).where(Review.id == review_id))
        await user_helpers.update_user_rating(reviewed_user_id, db)
        await db.commit()
        logger.info(f"Review {review_id} deleted by admin {current_user['user_id']}")
        return {"success": True, "message": "Review deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting review {review_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete review"
        )


# =================
# CHARITY ACTIVITIES
# =================

@router.get("/charity-activities", response_model=AdminCharityListResponse)
async def list_charity_activities(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    provider_id: Optional[uuid.UUID] = Query(None, alias="providerId"),
    category_id: Optional[uuid.UUID] = Query(None, alias="categoryId"),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    filters = []
    if provider_id:
        filters.append(CharityActivity.provider_id == provider_id)
    if category_id:
        filters.append(CharityActivity.category_id == category_id)

    total = await _count(db, CharityActivity.id, *filters)
    result = await db.execute(
        charity_helpers.base_query()
        .where(*filters)
        .order_by(CharityActivity.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    activities = result.scalars().all()
    return AdminCharityListResponse(
        data=safe_model_validate_list(CharityActivityResponse, [charity_activity_to_dict(a) for a in activities]),
        pagination=Pagination(**build_pagination(page, limit, total))
    )


@router.get("/charity-activities/{activity_id}", response_model=CharityActivityEnvelope)
async def get_charity_activity(
    activity_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    activity = await charity_helpers.get_activity_or_404(activity_id, db)
    return CharityActivityEnvelope(data=safe_model_validate(CharityActivityResponse, charity_activity_to_dict(activity)))


@router.post("/charity-activities", response_model=CharityActivityEnvelope, status_code=status.HTTP_201_CREATED)
async def create_charity_activity(
    activity_data: AdminCharityActivityCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_write)
):
    """List a charity activity under a provider's name"""
    try:
        provider = await user_helpers.get_user_or_404(activity_data.provider_id, db)
        if provider.user_type != UserType.PROVIDER.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Charity activities can only belong to providers"
            )
        await charity_helpers.ensure_active_category(activity_data.category_id, db)

        activity = CharityActivity(**activity_data.model_dump())
        db.add(activity)
        await db.commit()

        activity = await charity_helpers.get_activity_or_404(activity.id, db)
        logger.info(f"Charity activity {activity.id} created by admin {current_user['user_id']} for {provider.id}")
        return CharityActivityEnvelope(
            message="Charity activity created successfully",
            data=safe_model_validate(CharityActivityResponse, charity_activity_to_dict(activity))
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating charity activity as admin: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create charity activity"
        )


@router.put("/charity-activities/{activity_id}", response_model=CharityActivityEnvelope)
async def update_charity_activity(
    activity_id: uuid.UUID,
    activity_update: CharityActivityUpdate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_write)
):
    try:
        activity = await charity_helpers.get_activity_or_404(activity_id, db)
        charity_helpers.apply_update(activity, activity_update.model_dump(exclude_unset=True))
        await db.commit()

        activity = await charity_helpers.get_activity_or_404(activity_id, db)
        logger.info(f"Charity activity {activity_id} updated by admin {current_user['user_id']}")
        return CharityActivityEnvelope(
            message="Charity activity updated successfully",
            data=safe_model_validate(CharityActivityResponse, charity_activity_to_dict(activity))
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating charity activity {activity_id} as admin: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update charity activity"
        )


@router.delete("/charity-activities/{activity_id}")
async def delete_charity_activity(
    activity_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_delete)
):
    try:
        await charity_helpers.get_activity_or_404(activity_id, db)
        await db.execute(delete(CharityActivity).where(CharityActivity.id == activity_id))
        await db.commit()
        logger.info(f"Charity activity {activity_id} deleted by admin {current_user['user_id']}")
        return {"success": True, "message": "Charity activity deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting charity activity {activity_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete charity activity"
        )
