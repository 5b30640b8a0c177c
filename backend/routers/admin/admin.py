from fastapi import APIRouter, Depends, HTTPException, status, Query
from dependencies.rbac import (
    require_admin,
    require_admin_write,
    require_admin_delete,
    require_analytics,
    require_category_write,
    require_category_delete,
)
from routers.auth.auth import get_current_user
from routers.auth.helpers import auth_helpers
from routers.categories.helpers import category_helpers
from routers.categories.schemas import (
    CategoryCreate, CategoryUpdate, CategoryWithChildrenResponse, CategoryEnvelope
)
from routers.demands.schemas import Pagination
from routers.users.helpers import user_helpers
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, delete, or_
from config import get_db
from models import (
    User, UserType, Category, Demand, DemandStatus, Offer, OfferStatus,
    Review, CharityActivity, Notification
)
from utils.response_helpers import (
    safe_model_validate, safe_model_validate_list, build_pagination
)
from .schemas import (
    PaginatedCategoryResponse,
    AdminUserResponse,
    AdminUserUpdate,
    AdminUserEnvelope,
    AdminUserListResponse,
    RecentUser,
    StatisticsData,
    StatisticsResponse,
)
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


async def _count(db: AsyncSession, column, *conditions) -> int:
    result = await db.execute(select(func.count(column)).where(*conditions))
    return result.scalar() or 0


async def _admin_user_dicts(users: List[User], db: AsyncSession) -> List[Dict[str, Any]]:
    """Private user dicts with demand, offer and received review counts"""
    user_ids = [user.id for user in users]
    if not user_ids:
        return []

    async def grouped(column, key):
        result = await db.execute(
            select(key, func.count(column)).where(key.in_(user_ids)).group_by(key)
        )
        return dict(result.all())

    demand_counts = await grouped(Demand.id, Demand.user_id)
    offer_counts = await grouped(Offer.id, Offer.provider_id)
    review_counts = await grouped(Review.id, Review.reviewed_user_id)

    items = []
    for user in users:
        data = await user_helpers.to_dict(user, db)
        data.update({
            "demand_count": demand_counts.get(user.id, 0),
            "offer_count": offer_counts.get(user.id, 0),
            "review_count": review_counts.get(user.id, 0),
        })
        items.append(data)
    return items


# =================
# CATEGORY MANAGEMENT ROUTES
# =================

@router.get("/categories", response_model=PaginatedCategoryResponse)
async def list_categories(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None),
    parent_id: Optional[uuid.UUID] = Query(None, alias="parentId"),
    include_inactive: bool = Query(True, alias="includeInactive"),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    """Admin only: every category, searchable, with parent and children"""
    try:
        filters = []
        if search:
            filters.append(Category.name.ilike(f"%{search}%"))
        if parent_id:
            filters.append(Category.parent_id == parent_id)
        if not include_inactive:
            filters.append(Category.is_active == True)

        total = await _count(db, Category.id, *filters)
        result = await db.execute(
            select(Category)
            .where(*filters)
            .order_by(Category.rank, Category.name)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        categories = result.scalars().all()
        items = [await category_helpers.to_detail_dict(category, db) for category in categories]

        return PaginatedCategoryResponse(
            data=safe_model_validate_list(CategoryWithChildrenResponse, items),
            pagination=Pagination(**build_pagination(page, limit, total))
        )
    except Exception as e:
        logger.error(f"Error listing categories: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list categories"
        )


@router.get("/categories/{category_id}", response_model=CategoryEnvelope)
async def get_category(
    category_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    category = await category_helpers.get_category_or_404(category_id, db)
    data = await category_helpers.to_detail_dict(category, db)
    return CategoryEnvelope(data=safe_model_validate(CategoryWithChildrenResponse, data))


@router.post("/categories", response_model=CategoryEnvelope, status_code=status.HTTP_201_CREATED)
async def create_category(
    category_data: CategoryCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_category_write)
):
    """Admin only: Create a new service category"""
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


@router.patch("/categories/{category_id}", response_model=CategoryEnvelope)
async def update_category(
    category_id: uuid.UUID,
    category_update: CategoryUpdate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_category_write)
):
    """Admin only: Update category; moving it under its own subtree is rejected"""
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


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_category_delete)
):
    """Admin only: Delete category (only if nothing references it)"""
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


# =================
# USER MANAGEMENT ROUTES
# =================

@router.get("/users", response_model=AdminUserListResponse)
async def list_all_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_type: Optional[UserType] = Query(None, alias="userType"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    is_admin: Optional[bool] = Query(None, alias="isAdmin"),
    search: Optional[str] = Query(None),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    """
    Admin only: List all users with pagination and optional filters
    """
    try:
        filters = []
        if user_type:
            filters.append(User.user_type == user_type.value)
        if is_active is not None:
            filters.append(User.is_active == is_active)
        if is_admin is not None:
            filters.append(User.is_admin == is_admin)
        if search:
            pattern = f"%{search}%"
            filters.append(or_(
                User.name.ilike(pattern),
                User.email.ilike(pattern),
                User.phone_number.ilike(pattern)
            ))

        total = await _count(db, User.id, *filters)
        result = await db.execute(
            select(User)
            .where(*filters)
            .order_by(User.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        users = result.scalars().all()
        items = await _admin_user_dicts(users, db)

        return AdminUserListResponse(
            data=safe_model_validate_list(AdminUserResponse, items),
            pagination=Pagination(**build_pagination(page, limit, total))
        )
    except Exception as e:
        logger.error(f"List users failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve users"
        )


@router.get("/users/{user_id}", response_model=AdminUserEnvelope)
async def get_user(
    user_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    user = await user_helpers.get_user_or_404(user_id, db)
    items = await _admin_user_dicts([user], db)
    return AdminUserEnvelope(data=safe_model_validate(AdminUserResponse, items[0]))


@router.patch("/users/{user_id}", response_model=AdminUserEnvelope)
async def update_user(
    user_id: uuid.UUID,
    user_update: AdminUserUpdate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_write)
):
    """
    Admin only: Update any account field, including balance, activation,
    admin flag and password. Categories replace the subscription set.
    """
    try:
        user = await user_helpers.get_user_or_404(user_id, db)
        update_data = user_update.model_dump(exclude_unset=True)

        category_refs = update_data.pop("categories", None)
        password = update_data.pop("password", None)

        if "city_id" in update_data:
            city_id = update_data.pop("city_id")
            user.city_id = await user_helpers.validate_city(city_id, db) if city_id else None
        if update_data.get("email"):
            await user_helpers.ensure_email_available(update_data["email"], user.id, db)
        if update_data.get("phone_number"):
            phone_number = auth_helpers.normalize_phone(update_data["phone_number"])
            existing = await db.execute(
                select(User.id).where(User.phone_number == phone_number, User.id != user.id)
            )
            if existing.scalar_one_or_none():
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Phone number is already in use"
                )
            update_data["phone_number"] = phone_number
        if update_data.get("user_type"):
            update_data["user_type"] = UserType(update_data["user_type"]).value
        if update_data.get("balance") is not None:
            update_data["balance"] = Decimal(str(update_data["balance"]))

        # Flags and balance cannot be nulled
        for field in ("user_type", "balance", "is_active", "is_admin", "phone_number"):
            if field in update_data and update_data[field] is None:
                del update_data[field]

        for field, value in update_data.items():
            setattr(user, field, value)
        if password:
            user.password_hash = auth_helpers.hash_password(password)

        if category_refs is not None:
            category_ids = await auth_helpers.resolve_category_ids(category_refs, db)
            await user_helpers.replace_categories(user.id, category_ids, db)

        await db.commit()
        await db.refresh(user)
        logger.info(f"User {user_id} updated by admin {current_user['user_id']}: {', '.join(user_update.model_fields_set)}")

        items = await _admin_user_dicts([user], db)
        return AdminUserEnvelope(
            message="User updated successfully",
            data=safe_model_validate(AdminUserResponse, items[0])
        )
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Update user failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update user"
        )


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_delete)
):
    """Admin only: delete an account with everything it owns"""
    try:
        if user_id == current_user["user_id"]:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You cannot delete your own account"
            )
        await user_helpers.get_user_or_404(user_id, db)

        await db.execute(delete(User).where(User.id == user_id))
        await db.commit()
        logger.info(f"User {user_id} deleted by admin {current_user['user_id']}")
        return {"success": True, "message": "User deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        await db.rollback()
        logger.error(f"Delete user failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete user"
        )


# =================
# STATISTICS
# =================

def _growth(current: int, previous: int) -> float:
    if previous > 0:
        return round((current - previous) / previous * 100, 2)
    return 100.0 if current > 0 else 0.0


@router.get("/statistics", response_model=StatisticsResponse)
async def get_statistics(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_analytics)
):
    """Admin only: dashboard counters, offer value totals and growth"""
    try:
        now = datetime.now(timezone.utc)
        start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        start_of_month = start_of_today.replace(day=1)
        if start_of_month.month == 1:
            start_of_last_month = start_of_month.replace(year=start_of_month.year - 1, month=12)
        else:
            start_of_last_month = start_of_month.replace(month=start_of_month.month - 1)

        new_users_this_month = await _count(db, User.id, User.created_at >= start_of_month)
        new_users_last_month = await _count(
            db, User.id, User.created_at >= start_of_last_month, User.created_at < start_of_month
        )
        new_demands_this_month = await _count(db, Demand.id, Demand.created_at >= start_of_month)
        new_demands_last_month = await _count(
            db, Demand.id, Demand.created_at >= start_of_last_month, Demand.created_at < start_of_month
        )

        async def offer_total(offer_status: OfferStatus) -> float:
            result = await db.execute(
                select(func.coalesce(func.sum(Offer.price), 0)).where(Offer.status == offer_status.value)
            )
            return float(result.scalar() or 0)

        average_rating = (await db.execute(select(func.avg(Review.rating)))).scalar()

        statistics = {
            # Users
            "total_users": await _count(db, User.id),
            "active_users": await _count(db, User.id, User.is_active == True),
            "total_providers": await _count(db, User.id, User.user_type == UserType.PROVIDER.value),
            "total_receivers": await _count(db, User.id, User.user_type == UserType.RECEIVER.value),
            "total_admins": await _count(db, User.id, User.is_admin == True),
            "new_users_today": await _count(db, User.id, User.created_at >= start_of_today),
            "new_users_this_month": new_users_this_month,
            "user_growth_percentage": _growth(new_users_this_month, new_users_last_month),

            # Demands
            "total_demands": await _count(db, Demand.id),
            "active_demands": await _count(db, Demand.id, Demand.status == DemandStatus.ACTIVE.value),
            "closed_demands": await _count(db, Demand.id, Demand.status == DemandStatus.CLOSED.value),
            "completed_demands": await _count(db, Demand.id, Demand.status == DemandStatus.COMPLETED.value),
            "cancelled_demands": await _count(db, Demand.id, Demand.status == DemandStatus.CANCELLED.value),
            "pending_approval_demands": await _count(db, Demand.id, Demand.is_approved == False),
            "urgent_demands": await _count(
                db, Demand.id, Demand.is_urgent == True, Demand.status == DemandStatus.ACTIVE.value
            ),
            "new_demands_this_month": new_demands_this_month,
            "demand_growth_percentage": _growth(new_demands_this_month, new_demands_last_month),

            # Offers
            "total_offers": await _count(db, Offer.id),
            "pending_offers": await _count(db, Offer.id, Offer.status == OfferStatus.PENDING.value),
            "accepted_offers": await _count(db, Offer.id, Offer.status == OfferStatus.ACCEPTED.value),
            "rejected_offers": await _count(db, Offer.id, Offer.status == OfferStatus.REJECTED.value),
            "completed_offers": await _count(db, Offer.id, Offer.status == OfferStatus.COMPLETED.value),
            "total_accepted_price": await offer_total(OfferStatus.ACCEPTED),
            "total_completed_price": await offer_total(OfferStatus.COMPLETED),

            # Categories, reviews, charity, notifications
            "total_categories": await _count(db, Category.id),
            "active_categories": await _count(db, Category.id, Category.is_active == True),
            "total_reviews": await _count(db, Review.id),
            "average_rating": round(float(average_rating), 2) if average_rating is not None else 0,
            "total_charity_activities": await _count(db, CharityActivity.id),
            "total_notifications": await _count(db, Notification.id),
            "unread_notifications": await _count(db, Notification.id, Notification.is_read == False),
        }

        result = await db.execute(select(User).order_by(User.created_at.desc()).limit(10))
        last_ten_users = [
            RecentUser(
                id=str(user.id),
                name=user.name,
                phone_number=user.phone_number,
                email=user.email,
                user_type=user.user_type,
                profile_image=user.profile_image,
                is_active=user.is_active,
                is_admin=user.is_admin,
                created_at=user.created_at
            )
            for user in result.scalars().all()
        ]

        statistics = {to_camel(key): value for key, value in statistics.items()}
        return StatisticsResponse(data=StatisticsData(statistics=statistics, last_ten_users=last_ten_users))
    except Exception as e:
        logger.error(f"Error building statistics: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load statistics"
        )
