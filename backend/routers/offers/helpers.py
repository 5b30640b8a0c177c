"""
Offer settlement: pricing the commission, charging the provider and moving
offers through PENDING -> ACCEPTED -> COMPLETED (or PENDING -> REJECTED).
"""
from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from models import Demand, DemandStatus, Offer, OfferStatus, User, UserType
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional, Tuple
import uuid
import logging

logger = logging.getLogger(__name__)

PER_MILLE = Decimal("1000")
BALANCE_PRECISION = Decimal("0.0001")
PRICE_PRECISION = Decimal("0.01")
# offers.price is Numeric(12, 2)
MAX_OFFER_PRICE = Decimal("9999999999.99")


class OfferHelpers:
    """Commission pricing and offer state transitions"""

    @staticmethod
    def calculate_commission(price: Any, commission_rate: Optional[Any]) -> Decimal:
        """commission = price / 1000 * rate; a category without a rate charges nothing"""
        rate = Decimal(str(commission_rate)) if commission_rate is not None else Decimal("0")
        commission = Decimal(str(price)) / PER_MILLE * rate
        return commission.quantize(BALANCE_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def quantize_price(price: Any) -> Decimal:
        return Decimal(str(price)).quantize(PRICE_PRECISION, rounding=ROUND_HALF_UP)

    async def has_offer(self, demand_id: uuid.UUID, provider_id: uuid.UUID, db: AsyncSession) -> bool:
        result = await db.execute(
            select(Offer.id).where(Offer.demand_id == demand_id, Offer.provider_id == provider_id)
        )
        return result.scalar_one_or_none() is not None

    async def load_offer(self, offer_id: uuid.UUID, db: AsyncSession) -> Optional[Offer]:
        result = await db.execute(
            select(Offer)
            .options(selectinload(Offer.provider), selectinload(Offer.demand))
            .where(Offer.id == offer_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_offer_or_404(self, offer_id: uuid.UUID, db: AsyncSession) -> Offer:
        offer = await self.load_offer(offer_id, db)
        if not offer:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Offer not found"
            )
        return offer

    async def submit_offer(
        self,
        provider_id: uuid.UUID,
        demand_id: uuid.UUID,
        price: float,
        estimated_time: str,
        message: Optional[str],
        db: AsyncSession,
        charge_commission: bool = True,
        initial_status: str = OfferStatus.PENDING.value
    ) -> Tuple[Offer, Demand, Decimal, Decimal]:
        """
        Charge the commission and record the offer in one transaction.
        Returns (offer, demand, commission, new_balance). The caller owns the
        post-commit notification.

        Admin-entered offers pass charge_commission=False and may start as
        ACCEPTED, which closes the demand in the same commit.
        """
        result = await db.execute(
            select(Demand)
            .options(selectinload(Demand.category))
            .where(Demand.id == demand_id)
        )
        demand = result.scalar_one_or_none()
        if not demand:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Demand not found"
            )

        if demand.status != DemandStatus.ACTIVE.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Cannot make an offer on an inactive demand"
            )

        # Fast path only; the unique constraint is what actually holds
        if await self.has_offer(demand_id, provider_id, db):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You have already made an offer on this demand"
            )

        result = await db.execute(
            select(User).where(User.id == provider_id).with_for_update()
        )
        provider = result.scalar_one_or_none()
        if not provider:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Provider not found"
            )
        if provider.user_type != UserType.PROVIDER.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only providers can make offers"
            )

        price = self.quantize_price(price)
        if charge_commission:
            commission = self.calculate_commission(price, demand.category.commission_rate)
        else:
            commission = Decimal("0").quantize(BALANCE_PRECISION)
        balance = Decimal(str(provider.balance or 0))
        if balance < commission:
            await db.rollback()
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Insufficient balance. Required: {commission:.2f} TL, Available: {balance:.2f} TL"
            )

        new_balance = balance - commission
        provider.balance = new_balance
        offer = Offer(
            demand_id=demand_id,
            provider_id=provider_id,
            price=price,
            estimated_time=estimated_time,
            message=message,
            status=initial_status,
            is_approved=True
        )
        db.add(offer)
        if initial_status == OfferStatus.ACCEPTED.value:
            demand.status = DemandStatus.CLOSED.value

        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning(f"Concurrent duplicate offer by {provider_id} on demand {demand_id} rejected")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="You have already made an offer on this demand"
            )

        logger.info(
            f"Offer {offer.id} by {provider_id} on demand {demand.demand_number}: "
            f"price {price}, commission {commission}, balance {balance} -> {new_balance}"
        )
        return offer, demand, commission, new_balance

    async def set_status(self, offer: Offer, new_status: str, db: AsyncSession) -> Offer:
        """
        Accept or reject a pending offer. Acceptance closes the demand in the
        same transaction; other offers on the demand keep their status.
        """
        if offer.status != OfferStatus.PENDING.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Only pending offers can be accepted or rejected (current status: {offer.status})"
            )

        offer.status = new_status
        if new_status == OfferStatus.ACCEPTED.value:
            offer.demand.status = DemandStatus.CLOSED.value
        await db.commit()
        logger.info(f"Offer {offer.id} {new_status.lower()}; demand {offer.demand_id} status {offer.demand.status}")
        return offer

    async def mark_completed(self, offer: Offer, provider_id: uuid.UUID, db: AsyncSession) -> Offer:
        if offer.provider_id != provider_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only the provider can mark this offer as completed"
            )
        if offer.status != OfferStatus.ACCEPTED.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only accepted offers can be marked as completed"
            )
        if offer.provider_completed:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Offer already marked as completed by provider"
            )

        offer.provider_completed = True
        offer.status = OfferStatus.COMPLETED.value
        offer.provider.completed_jobs = (offer.provider.completed_jobs or 0) + 1
        await db.commit()
        logger.info(f"Offer {offer.id} completed by provider {provider_id}")
        return offer

    def notification_data(self, offer: Offer, **extra) -> Dict[str, Any]:
        data = {"offerId": str(offer.id), "demandId": str(offer.demand_id)}
        data.update(extra)
        return data


offer_helpers = OfferHelpers()
