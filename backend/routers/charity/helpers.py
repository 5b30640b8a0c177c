from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from models import Category, CharityActivity
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import math
import uuid

EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres"""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _is_over(activity: CharityActivity, now: datetime) -> bool:
    end = activity.estimated_end_time
    if end is None:
        return False
    # SQLite hands back naive datetimes
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    return end < now


class CharityHelpers:

    def base_query(self):
        return select(CharityActivity).options(
            selectinload(CharityActivity.provider),
            selectinload(CharityActivity.category)
        )

    async def get_activity_or_404(self, activity_id: uuid.UUID, db: AsyncSession) -> CharityActivity:
        result = await db.execute(
            self.base_query()
            .where(CharityActivity.id == activity_id)
            .execution_options(populate_existing=True)
        )
        activity = result.scalar_one_or_none()
        if not activity:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Charity activity not found"
            )
        return activity

    async def ensure_active_category(self, category_id: uuid.UUID, db: AsyncSession) -> Category:
        category = await db.get(Category, category_id)
        if not category or not category.is_active:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Category not found or not active"
            )
        return category

    def apply_update(self, activity: CharityActivity, update_data: Dict[str, Any]):
        for field, value in update_data.items():
            # Only the end time may be cleared
            if value is None and field != "estimated_end_time":
                continue
            setattr(activity, field, value)

    async def find_nearby(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
        db: AsyncSession,
        category_id: Optional[uuid.UUID] = None
    ) -> List[Tuple[CharityActivity, float]]:
        """Running activities within radius_km, closest first"""
        query = self.base_query()
        if category_id:
            query = query.where(CharityActivity.category_id == category_id)
        activities = (await db.execute(query)).scalars().all()

        now = datetime.now(timezone.utc)
        nearby = []
        for activity in activities:
            if _is_over(activity, now):
                continue
            distance = haversine_distance(latitude, longitude, activity.latitude, activity.longitude)
            if distance <= radius_km:
                nearby.append((activity, distance))
        nearby.sort(key=lambda item: item[1])
        return nearby


charity_helpers = CharityHelpers()
