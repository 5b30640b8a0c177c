from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete
from config import get_db
from models import CharityActivity
from routers.auth.auth import get_current_user
from dependencies.rbac import require_charity_write, require_charity_delete
from utils.response_helpers import safe_model_validate, safe_model_validate_list, charity_activity_to_dict
from .schemas import (
    CharityActivityCreate,
    CharityActivityUpdate,
    CharityActivityResponse,
    CharityActivityEnvelope,
    CharityActivityListResponse,
)
from .helpers import charity_helpers
from typing import Optional
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/charity-activities", tags=["Charity Activities"])


@router.get("", response_model=CharityActivityListResponse)
async def list_activities(
    category_id: Optional[uuid.UUID] = Query(None, alias="categoryId"),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    query = charity_helpers.base_query()
    if category_id:
        query = query.where(CharityActivity.category_id == category_id)
    result = await db.execute(query.order_by(CharityActivity.created_at.desc()))
    activities = result.scalars().all()
    return CharityActivityListResponse(
        data=safe_model_validate_list(CharityActivityResponse, [charity_activity_to_dict(a) for a in activities])
    )


@router.get("/nearby", response_model=CharityActivityListResponse)
async def list_nearby_activities(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius: float = Query(5.0, ge=0.1, le=50, description="Search radius in km"),
    category_id: Optional[uuid.UUID] = Query(None, alias="categoryId"),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Activities within radius km of the point, closest first"""
    nearby = await charity_helpers.find_nearby(latitude, longitude, radius, db, category_id=category_id)
    return CharityActivityListResponse(
        data=safe_model_validate_list(
            CharityActivityResponse,
            [charity_activity_to_dict(activity, distance=distance) for activity, distance in nearby]
        )
    )


@router.post("", response_model=CharityActivityEnvelope, status_code=status.HTTP_201_CREATED)
async def create_activity(
    activity_data: CharityActivityCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_charity_write)
):
    try:
        await charity_helpers.ensure_active_category(activity_data.category_id, db)

        activity = CharityActivity(provider_id=current_user["user_id"], **activity_data.model_dump())
        db.add(activity)
        await db.commit()

        activity = await charity_helpers.get_activity_or_404(activity.id, db)
        logger.info(f"Charity activity {activity.id} created by {current_user['user_id']}")
        return CharityActivityEnvelope(
            message="Charity activity created successfully",
            data=safe_model_validate(CharityActivityResponse, charity_activity_to_dict(activity))
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating charity activity: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create charity activity"
        )


@router.get("/{activity_id}", response_model=CharityActivityEnvelope)
async def get_activity(
    activity_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    activity = await charity_helpers.get_activity_or_404(activity_id, db)
    return CharityActivityEnvelope(data=safe_model_validate(CharityActivityResponse, charity_activity_to_dict(activity)))


@router.put("/{activity_id}", response_model=CharityActivityEnvelope)
async def update_activity(
    activity_id: uuid.UUID,
    activity_update: CharityActivityUpdate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_charity_write)
):
    """Owner only"""
    try:
        activity = await charity_helpers.get_activity_or_404(activity_id, db)
        if activity.provider_id != current_user["user_id"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only update your own charity activities"
            )

        charity_helpers.apply_update(activity, activity_update.model_dump(exclude_unset=True))

        await db.commit()
        activity = await charity_helpers.get_activity_or_404(activity_id, db)
        return CharityActivityEnvelope(
            message="Charity activity updated successfully",
            data=safe_model_validate(CharityActivityResponse, charity_activity_to_dict(activity))
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating charity activity {activity_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update charity activity"
        )


@router.delete("/{activity_id}")
async def delete_activity(
    activity_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_charity_delete)
):
    """Owner or admin"""
    try:
        activity = await db.get(CharityActivity, activity_id)
        if not activity:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Charity activity not found"
            )
        if activity.provider_id != current_user["user_id"] and not current_user["is_admin"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You can only delete your own charity activities"
            )

        await db.execute(delete(CharityActivity).where(CharityActivity.id == activity_id))
        await db.commit()
        logger.info(f"Charity activity {activity_id} deleted by {current_user['user_id']}")
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
