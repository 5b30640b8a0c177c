from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import select
from config import get_db
from models import Demand, Offer, OfferStatus, UserType
from routers.auth.auth import get_current_user
from dependencies.rbac import require_offer_read, require_offer_write, require_offer_submit
from utils.notifications import notify_user, NEW_OFFER, OFFER_STATUS, OFFER_COMPLETED
from utils.response_helpers import (
    safe_model_validate,
    safe_model_validate_list,
    offer_to_dict,
    demand_to_dict,
)
from routers.demands.schemas import DemandResponse
from .schemas import (
    OfferCreate,
    OfferStatusUpdate,
    OfferResponse,
    OfferEnvelope,
    OfferCreateData,
    OfferCreateResponse,
    OfferListResponse,
    MyOffersData,
    MyOffersResponse,
)
from .helpers import offer_helpers
from typing import Optional
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/offers", tags=["Offers"])


@router.post("", response_model=OfferCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_offer(
    offer_data: OfferCreate,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_offer_submit)
):
    """
    Providers bid on an active demand. The category commission is taken
    from the provider's balance together with the insert.
    """
    try:
        offer, demand, commission, new_balance = await offer_helpers.submit_offer(
            provider_id=current_user["user_id"],
            demand_id=offer_data.demand_id,
            price=offer_data.price,
            estimated_time=offer_data.estimated_time,
            message=offer_data.message,
            db=db
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating offer: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create offer"
        )

    offer = await offer_helpers.load_offer(offer.id, db)
    await notify_user(
        db,
        demand.user_id,
        "New Offer",
        f"{offer.provider.name or 'A provider'} made an offer on your demand",
        NEW_OFFER,
        offer_helpers.notification_data(offer),
        background_tasks
    )

    return OfferCreateResponse(
        message="Offer created successfully",
        data=OfferCreateData(
            offer=safe_model_validate(OfferResponse, offer_to_dict(offer, demand=offer.demand)),
            commission_amount=float(commission),
            new_balance=float(new_balance)
        )
    )


@router.get("", response_model=OfferListResponse)
async def list_offers(
    offer_status: Optional[OfferStatus] = Query(None, alias="status"),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_offer_read)
):
    """Providers see their own offers; receivers see offers on their demands"""
    query = (
        select(Offer)
        .options(selectinload(Offer.provider), selectinload(Offer.demand))
        .order_by(Offer.created_at.desc())
    )
    if current_user["is_admin"]:
        pass
    elif current_user["user_type"] == UserType.PROVIDER:
        query = query.where(Offer.provider_id == current_user["user_id"])
    else:
        query = query.join(Demand, Offer.demand_id == Demand.id).where(Demand.user_id == current_user["user_id"])
    if offer_status:
        query = query.where(Offer.status == offer_status.value)

    result = await db.execute(query)
    offers = result.scalars().all()
    return OfferListResponse(
        data=safe_model_validate_list(OfferResponse, [offer_to_dict(offer, demand=offer.demand) for offer in offers])
    )


@router.get("/user/me", response_model=MyOffersResponse)
async def get_my_offers(
    offer_status: Optional[OfferStatus] = Query(None, alias="status"),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_offer_read)
):
    """
    Providers: offers they made, with the demand.
    Receivers: their approved demands that received offers, with the offers.
    """
    if current_user["user_type"] == UserType.PROVIDER:
        query = (
            select(Offer)
            .options(selectinload(Offer.provider), selectinload(Offer.demand))
            .where(Offer.provider_id == current_user["user_id"])
            .order_by(Offer.created_at.desc())
        )
        if offer_status:
            query = query.where(Offer.status == offer_status.value)
        offers = (await db.execute(query)).scalars().all()
        return MyOffersResponse(data=MyOffersData(
            offers=safe_model_validate_list(OfferResponse, [offer_to_dict(offer, demand=offer.demand) for offer in offers])
        ))

    result = await db.execute(
        select(Demand)
        .options(
            selectinload(Demand.user),
            selectinload(Demand.category),
            selectinload(Demand.city),
            selectinload(Demand.offers).selectinload(Offer.provider)
        )
        .where(Demand.user_id == current_user["user_id"], Demand.is_approved == True)
        .order_by(Demand.created_at.desc())
    )
    items = []
    for demand in result.scalars().all():
        offers = [
            offer for offer in sorted(demand.offers, key=lambda o: o.created_at, reverse=True)
            if not offer_status or offer.status == offer_status.value
        ]
        if offers:
            items.append(demand_to_dict(demand, offer_count=len(demand.offers), offers=offers))
    return MyOffersResponse(data=MyOffersData(demands=safe_model_validate_list(DemandResponse, items)))


@router.get("/{offer_id}", response_model=OfferEnvelope)
async def get_offer(
    offer_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_offer_read)
):
    offer = await offer_helpers.get_offer_or_404(offer_id, db)
    if (
        not current_user["is_admin"]
        and offer.provider_id != current_user["user_id"]
        and offer.demand.user_id != current_user["user_id"]
    ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not authorized to view this offer"
        )
    return OfferEnvelope(data=safe_model_validate(OfferResponse, offer_to_dict(offer, demand=offer.demand)))


@router.patch("/{offer_id}/status", response_model=OfferEnvelope)
async def update_offer_status(
    offer_id: uuid.UUID,
    status_update: OfferStatusUpdate,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_offer_write)
):
    """Demand owner accepts or rejects a pending offer"""
    try:
        offer = await offer_helpers.get_offer_or_404(offer_id, db)
        if offer.demand.user_id != current_user["user_id"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not authorized to update this offer"
            )
        offer = await offer_helpers.set_status(offer, status_update.status, db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating offer {offer_id} status: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update offer"
        )

    accepted = status_update.status == OfferStatus.ACCEPTED.value
    await notify_user(
        db,
        offer.provider_id,
        "Offer Accepted" if accepted else "Offer Rejected",
        f"Your offer was {'accepted' if accepted else 'rejected'}",
        OFFER_STATUS,
        offer_helpers.notification_data(offer, status=status_update.status),
        background_tasks
    )

    offer = await offer_helpers.load_offer(offer_id, db)
    return OfferEnvelope(
        message=f"Offer {status_update.status.lower()} successfully",
        data=safe_model_validate(OfferResponse, offer_to_dict(offer, demand=offer.demand))
    )


@router.patch("/{offer_id}/complete", response_model=OfferEnvelope)
async def complete_offer(
    offer_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_offer_write)
):
    """Provider marks an accepted offer as done; the demand owner is asked for a review"""
    try:
        offer = await offer_helpers.get_offer_or_404(offer_id, db)
        offer = await offer_helpers.mark_completed(offer, current_user["user_id"], db)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error completing offer {offer_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to complete offer"
        )

    await notify_user(
        db,
        offer.demand.user_id,
        "Service Completed",
        f"{offer.provider.name or 'Your provider'} marked the job as completed. Please rate the service.",
        OFFER_COMPLETED,
        offer_helpers.notification_data(offer, providerId=str(offer.provider_id)),
        background_tasks
    )

    offer = await offer_helpers.load_offer(offer_id, db)
    return OfferEnvelope(
        message="Offer marked as completed successfully",
        data=safe_model_validate(OfferResponse, offer_to_dict(offer, demand=offer.demand))
    )
