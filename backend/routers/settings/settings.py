from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from config import get_db
from models import City
from routers.auth.auth import get_current_user
from dependencies.rbac import require_settings_write, require_settings_delete
from utils.response_helpers import safe_model_validate, safe_model_validate_list, city_to_dict
from .schemas import (
    CityCreate, CityActivationUpdate, CityBulkActivation,
    CityResponse, CityEnvelope, CityListResponse
)
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/settings", tags=["Settings"])


async def _list_cities(db: AsyncSession, active_only: bool):
    query = select(City)
    if active_only:
        query = query.where(City.is_active == True)
    result = await db.execute(query.order_by(City.name).execution_options(populate_existing=True))
    return result.scalars().all()


@router.get("/cities", response_model=CityListResponse)
async def list_active_cities(db: AsyncSession = Depends(get_db)):
    """Public: cities users and demands can be assigned to"""
    cities = await _list_cities(db, active_only=True)
    return CityListResponse(data=safe_model_validate_list(CityResponse, [city_to_dict(city) for city in cities]))


@router.get("/admin/cities", response_model=CityListResponse)
async def list_all_cities(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_settings_write)
):
    cities = await _list_cities(db, active_only=False)
    return CityListResponse(data=safe_model_validate_list(CityResponse, [city_to_dict(city) for city in cities]))


@router.post("/admin/cities", response_model=CityEnvelope, status_code=status.HTTP_201_CREATED)
async def create_city(
    city_data: CityCreate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_settings_write)
):
    try:
        name = city_data.name.strip()
        existing = await db.execute(select(City.id).where(City.name == name))
        if existing.scalar_one_or_none():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="City already exists"
            )

        city = City(name=name, is_active=city_data.is_active)
        db.add(city)
        await db.commit()
        await db.refresh(city)
        logger.info(f"City {city.name} created")
        return CityEnvelope(message="City created successfully", data=safe_model_validate(CityResponse, city_to_dict(city)))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error creating city: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create city"
        )


@router.put("/admin/cities/bulk", response_model=CityListResponse)
async def bulk_activate_cities(
    activation: CityBulkActivation,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_settings_write)
):
    """Activate exactly the listed cities"""
    try:
        await db.execute(update(City).values(is_active=False))
        if activation.city_ids:
            await db.execute(
                update(City).where(City.id.in_(activation.city_ids)).values(is_active=True)
            )
        await db.commit()

        cities = await _list_cities(db, active_only=False)
        return CityListResponse(
            message=f"{len(activation.city_ids)} cities activated",
            data=safe_model_validate_list(CityResponse, [city_to_dict(city) for city in cities])
        )
    except Exception as e:
        logger.error(f"Error activating cities: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update cities"
        )


@router.put("/admin/cities/{city_id}", response_model=CityEnvelope)
async def set_city_activation(
    city_id: uuid.UUID,
    activation: CityActivationUpdate,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_settings_write)
):
    try:
        city = await db.get(City, city_id)
        if not city:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="City not found"
            )
        city.is_active = activation.is_active
        await db.commit()
        await db.refresh(city)
        return CityEnvelope(message="City updated successfully", data=safe_model_validate(CityResponse, city_to_dict(city)))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error updating city {city_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update city"
        )


@router.delete("/admin/cities/{city_id}")
async def delete_city(
    city_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_settings_delete)
):
    try:
        city = await db.get(City, city_id)
        if not city:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="City not found"
            )
        await db.execute(delete(City).where(City.id == city_id))
        await db.commit()
        return {"success": True, "message": "City deleted successfully"}
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error deleting city {city_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete city"
        )
