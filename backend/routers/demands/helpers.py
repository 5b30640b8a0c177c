"""
Demand visibility.

A provider sees approved demands whose category lies in the closure of their
subscribed categories (each subscription plus every descendant). A provider
with no subscriptions is unrestricted. Receivers only ever see their own
demands and never go through the closure.
"""
from fastapi import HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from models import Category, Demand, DemandStatus, Offer, UserType
from routers.categories.helpers import MAX_CATEGORY_DEPTH, category_helpers
from routers.users.helpers import user_helpers
from typing import Any, Dict, Iterable, List, Optional, Set
import uuid
import logging

logger = logging.getLogger(__name__)

FIRST_DEMAND_NUMBER = 1000000
LAST_DEMAND_NUMBER = 9999999
DEMAND_NUMBER_ATTEMPTS = 3


class DemandHelpers:
    """Visibility resolution and demand loading"""

    async def get_descendant_ids(self, root_ids: Iterable[uuid.UUID], db: AsyncSession) -> Set[uuid.UUID]:
        """
        Category closure: the roots plus all transitive children, found one
        tree level per query. Already-seen ids are never expanded twice and the
        walk stops after MAX_CATEGORY_DEPTH levels.
        """
        closure = set(root_ids)
        frontier = list(closure)
        depth = 0

        while frontier:
            if depth >= MAX_CATEGORY_DEPTH:
                logger.warning(f"Category closure stopped at depth {depth}; tree may contain a cycle")
                break
            result = await db.execute(select(Category.id).where(Category.parent_id.in_(frontier)))
            frontier = [child_id for child_id in result.scalars().all() if child_id not in closure]
            closure.update(frontier)
            depth += 1

        return closure

    async def get_allowed_category_ids(self, current_user: Dict[str, Any], db: AsyncSession) -> Optional[Set[uuid.UUID]]:
        """
        Category ids the user may see demands in, or None when no category
        filter applies (receivers, and providers without subscriptions).
        """
        if current_user["user_type"] != UserType.PROVIDER:
            return None

        subscribed = await user_helpers.get_category_ids(current_user["user_id"], db)
        if not subscribed:
            return None

        return await self.get_descendant_ids(subscribed, db)

    async def load_demand(self, demand_id: uuid.UUID, db: AsyncSession, with_offers: bool = False) -> Optional[Demand]:
        options = [
            selectinload(Demand.user),
            selectinload(Demand.category),
            selectinload(Demand.city),
        ]
        if with_offers:
            options.append(selectinload(Demand.offers).selectinload(Offer.provider))
        result = await db.execute(
            select(Demand)
            .options(*options)
            .where(Demand.id == demand_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_demand_or_404(self, demand_id: uuid.UUID, db: AsyncSession, with_offers: bool = False) -> Demand:
        demand = await self.load_demand(demand_id, db, with_offers=with_offers)
        if not demand:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Demand not found"
            )
        return demand

    async def check_visibility(self, demand: Demand, current_user: Dict[str, Any], db: AsyncSession):
        """Single-demand gate: approval first, then the provider's category closure"""
        is_owner = demand.user_id == current_user["user_id"]
        if is_owner or current_user["is_admin"]:
            return

        if not demand.is_approved:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="This demand has not been approved yet"
            )

        allowed = await self.get_allowed_category_ids(current_user, db)
        if allowed is not None and demand.category_id not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not allowed to view this demand"
            )

    async def count_offers(self, demand_ids: List[uuid.UUID], db: AsyncSession) -> Dict[uuid.UUID, int]:
        if not demand_ids:
            return {}
        result = await db.execute(
            select(Offer.demand_id, func.count(Offer.id))
            .where(Offer.demand_id.in_(demand_ids))
            .group_by(Offer.demand_id)
        )
        return {demand_id: count for demand_id, count in result.all()}

    async def resolve_category(self, ref: str, db: AsyncSession) -> Category:
        category = await category_helpers.find_by_ref(ref, db)
        if not category:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Category not found"
            )
        if not category.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Category is not active"
            )
        return category

    async def create_demand(
        self,
        data: Dict[str, Any],
        user_id: uuid.UUID,
        db: AsyncSession,
        is_approved: bool = False
    ) -> Demand:
        """
        Insert a demand under the next free number. A number taken by a
        concurrent insert is retried a few times before giving up.
        """
        category = await self.resolve_category(data.pop("category"), db)
        city_id = data.pop("city_id", None)
        if city_id:
            city_id = await user_helpers.validate_city(city_id, db)

        for attempt in range(1, DEMAND_NUMBER_ATTEMPTS + 1):
            demand_number = await self.next_demand_number(db)
            demand = Demand(
                **data,
                user_id=user_id,
                category_id=category.id,
                city_id=city_id,
                demand_number=demand_number,
                status=DemandStatus.ACTIVE.value,
                is_approved=is_approved
            )
            db.add(demand)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                logger.warning(f"Demand number {demand_number} taken, retrying (attempt {attempt})")
                continue
            logger.info(f"Demand {demand_number} created for user {user_id}")
            return await self.load_demand(demand.id, db)

        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to allocate a demand number"
        )

    async def apply_update(self, demand: Demand, update_data: Dict[str, Any], db: AsyncSession) -> Demand:
        """Apply a partial update; title, status, urgency and category cannot be cleared"""
        for field in ("title", "status", "is_urgent", "category", "is_approved"):
            if field in update_data and update_data[field] is None:
                del update_data[field]

        if "category" in update_data:
            category = await self.resolve_category(update_data.pop("category"), db)
            demand.category_id = category.id
        if "city_id" in update_data:
            city_id = update_data.pop("city_id")
            demand.city_id = await user_helpers.validate_city(city_id, db) if city_id else None
        if "status" in update_data:
            update_data["status"] = DemandStatus(update_data["status"]).value

        for field, value in update_data.items():
            setattr(demand, field, value)

        await db.commit()
        return await self.load_demand(demand.id, db)

    async def next_demand_number(self, db: AsyncSession) -> int:
        """Highest number so far plus one; the unique constraint settles races"""
        result = await db.execute(select(func.max(Demand.demand_number)))
        current = result.scalar()
        next_number = (current + 1) if current else FIRST_DEMAND_NUMBER
        if next_number > LAST_DEMAND_NUMBER:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Demand numbers are exhausted"
            )
        return next_number


demand_helpers = DemandHelpers()
