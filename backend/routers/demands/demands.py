from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import select, delete, func, false
from config import get_db
from models import Demand, DemandStatus, Offer, UserType
from routers.auth.auth import get_current_user
from routers.categories.helpers import category_helpers
from dependencies.rbac import require_demand_read, require_demand_write, require_demand_delete
from utils.response_helpers import (
    safe_model_validate,
    safe_model_validate_list,
    demand_to_dict,
    build_pagination,
)
from .schemas import (
    DemandCreate,
    DemandUpdate,
    DemandResponse,
    DemandEnvelope,
    DemandListResponse,
    DemandListData,
    DemandCollectionResponse,
    Pagination,
)
from .helpers import demand_helpers
from typing import Optional
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/demands", tags=["Demands"])


@router.get("", response_model=DemandListResponse)
async def list_demands(
    category: Optional[str] = Query(None, description="Category id or name"),
    demand_status: Optional[DemandStatus] = Query(None, alias="status"),
    city_id: Optional[uuid.UUID] = Query(None, alias="cityId"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_demand_read)
):
    """
    Demands visible to the caller.
    Receivers get their own demands; providers get approved demands in the
    closure of their subscribed categories, or every category when they have
    no subscriptions.
    """
    try:
        filters = []
        is_provider = current_user["user_type"] == UserType.PROVIDER and not current_user["is_admin"]
        allowed = None

        if is_provider:
            filters.append(Demand.is_approved == True)
            allowed = await demand_helpers.get_allowed_category_ids(current_user, db)
            if allowed is not None:
                filters.append(Demand.category_id.in_(allowed))
        elif not current_user["is_admin"]:
            filters.append(Demand.user_id == current_user["user_id"])

        if category:
            selected = await category_helpers.find_by_ref(category, db)
            if selected:
                # Outside the allowed set this simply matches nothing
                filters.append(Demand.category_id == selected.id)
            elif allowed is not None:
                filters.append(false())
            else:
                logger.info(f"Ignoring unknown category filter '{category}'")
        if demand_status:
            filters.append(Demand.status == demand_status.value)
        if city_id:
            filters.append(Demand.city_id == city_id)

        total = (await db.execute(select(func.count(Demand.id)).where(*filters))).scalar() or 0

        result = await db.execute(
            select(Demand)
            .options(
                selectinload(Demand.user),
                selectinload(Demand.category),
                selectinload(Demand.city)
            )
            .where(*filters)
            .order_by(Demand.created_at.desc(), Demand.demand_number.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        demands = result.scalars().all()
        offer_counts = await demand_helpers.count_offers([demand.id for demand in demands], db)

        items = [demand_to_dict(demand, offer_count=offer_counts.get(demand.id, 0)) for demand in demands]
        return DemandListResponse(
            data=DemandListData(demands=safe_model_validate_list(DemandResponse, items)),
            pagination=Pagination(**build_pagination(page, limit, total))
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error listing demands: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch demands"
        )


@router.get("/user/me", response_model=DemandCollectionResponse)
async def get_my_demands(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_demand_read)
):
    """The caller's own demands, newest first, with their offers"""
    result = await db.execute(
        select(Demand)
        .options(
            selectinload(Demand.user),
            selectinload(Demand.category),
            selectinload(Demand.city),
            selectinload(Demand.offers).selectinload(Offer.provider)
        )
        .where(Demand.user_id == current_user["user_id"])
        .order_by(Demand.created_at.desc(), Demand.demand_number.desc())
    )
    demands = result.scalars().all()
    items = [
        demand_to_dict(demand, offer_count=len(demand.offers), offers=demand.offers)
        for demand in demands
    ]
    return DemandCollectionResponse(data=safe_model_validate_list(DemandResponse, items))


@router.get("/{demand_id}", response_model=DemandEnvelope)
async def get_demand(
    demand_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_demand_read)
):
    demand = await demand_helpers.get_demand_or_404(demand_id, db, with_offers=True)
    await demand_helpers.check_visibility(demand, current_user, db)

    # Only the owner and admins see the competing offers
    if demand.user_id == current_user["user_id"] or current_user["is_admin"]:
        data = demand_to_dict(demand, offer_count=len(demand.offers), offers=demand.offers)
    else:
        data = demand_to_dict(demand, offer_count=len(demand.offers))
    return DemandEnvelope(data=safe_model_validate(DemandResponse, data))


@router.post("", response_model=DemandEnvelope, status_code=status.HTTP_201_CREATED)
async def create_demand(
    demand_data: DemandCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_demand_write)
):
    """Receivers post a demand; it stays hidden from providers until approved"""
    try:
        demand = await demand_helpers.create_demand(demand_data.model_dump(), current_user["user_id"], db)
        return DemandEnvelope(
            message="Demand created successfully and is awaiting approval",
            data=safe_model_validate(DemandResponse, demand_to_dict(demand, offer_count=0))
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating demand: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create demand"
        )


@router.put("/{demand_id}", response_model=DemandEnvelope)
async def update_demand(
    demand_id: uuid.UUID,
    demand_update: DemandUpdate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_demand_write)
):
    """Owner only: apply the supplied fields"""
    try:
        demand = await demand_helpers.get_demand_or_404(demand_id, db)
        if demand.user_id != current_user["user_id"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only update your own demands"
            )

        demand = await demand_helpers.apply_update(demand, demand_update.model_dump(exclude_unset=True), db)
        logger.info(f"Demand {demand_id} updated: {', '.join(demand_update.model_fields_set)}")
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


@router.delete("/{demand_id}")
async def delete_demand(
    demand_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_demand_delete)
):
    """Owner only; offers on the demand go with it"""
    try:
        result = await db.execute(select(Demand.user_id).where(Demand.id == demand_id))
        owner_id = result.scalar_one_or_none()
        if owner_id is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Demand not found"
            )
        if owner_id != current_user["user_id"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only delete your own demands"
            )

        await db.execute(delete(Offer).where(Offer.demand_id == demand_id))
        await db.execute(delete(Demand).where(Demand.id == demand_id))
        await db.commit()
        logger.info(f"Demand {demand_id} deleted by {current_user['user_id']}")
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
