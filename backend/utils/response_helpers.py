"""
Response helper utilities: UUID/Decimal conversion, model-to-dict converters
and the JSON error envelope used for every failed request
"""
from typing import Any, Dict, List, Optional
from decimal import Decimal
import math
import uuid
import logging
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class CamelModel(BaseModel):
    """
    Base schema: snake_case attributes, camelCase on the wire.
    Request bodies accept either form.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True
    )


def convert_uuids_to_strings(obj: Any) -> Any:
    """
    Recursively convert UUID objects to strings and Decimals to floats
    """
    if isinstance(obj, uuid.UUID):
        return str(obj)
    elif isinstance(obj, Decimal):
        return float(obj)
    elif isinstance(obj, dict):
        return {key: convert_uuids_to_strings(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [convert_uuids_to_strings(item) for item in obj]
    return obj


def safe_model_validate(model_class: BaseModel, data: Any) -> BaseModel:
    """
    Validate a plain dict produced by one of the *_to_dict helpers
    """
    return model_class.model_validate(convert_uuids_to_strings(data))


def safe_model_validate_list(model_class: BaseModel, data_list: List[Any]) -> List[BaseModel]:
    return [safe_model_validate(model_class, item) for item in data_list]


def build_pagination(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


def _uuid_or_none(value) -> Optional[str]:
    return str(value) if value else None


def city_to_dict(city) -> Dict[str, Any]:
    return {
        'id': str(city.id),
        'name': city.name,
        'is_active': city.is_active,
        'created_at': city.created_at,
        'updated_at': city.updated_at
    }


def category_summary_to_dict(category) -> Dict[str, Any]:
    return {
        'id': str(category.id),
        'name': category.name,
        'icon': category.icon,
    }


def category_to_dict(category, children: Optional[list] = None, parent=None) -> Dict[str, Any]:
    """Convert Category model to dict; children/parent only when explicitly loaded"""
    data = {
        'id': str(category.id),
        'name': category.name,
        'icon': category.icon,
        'parent_id': _uuid_or_none(category.parent_id),
        'commission_rate': float(category.commission_rate) if category.commission_rate is not None else None,
        'is_active': category.is_active,
        'questions': category.questions,
        'rank': category.rank,
        'created_at': category.created_at,
        'updated_at': category.updated_at
    }
    if children is not None:
        data['children'] = [category_to_dict(child) for child in children]
    if parent is not None:
        data['parent'] = category_summary_to_dict(parent)
    return data


def user_summary_to_dict(user) -> Dict[str, Any]:
    """Public card shown next to demands, offers and reviews"""
    return {
        'id': str(user.id),
        'name': user.name,
        'profile_image': user.profile_image,
        'user_type': user.user_type,
        'rating': user.rating,
        'rating_count': user.rating_count,
        'company_name': user.company_name,
    }


def user_to_dict(user, category_ids: Optional[List[Any]] = None, private: bool = True) -> Dict[str, Any]:
    """Convert User model to dict. private=False strips contact and account fields."""
    data = {
        'id': str(user.id),
        'name': user.name,
        'user_type': user.user_type,
        'profile_image': user.profile_image,
        'bio': user.bio,
        'location': user.location,
        'company_name': user.company_name,
        'response_time': user.response_time,
        'rating': user.rating,
        'rating_count': user.rating_count,
        'completed_jobs': user.completed_jobs,
        'city_id': _uuid_or_none(user.city_id),
        'categories': [str(category_id) for category_id in (category_ids or [])],
        'created_at': user.created_at,
    }
    if private:
        data.update({
            'phone_number': user.phone_number,
            'email': user.email,
            'address': user.address,
            'is_admin': user.is_admin,
            'is_active': user.is_active,
            'balance': float(user.balance or 0),
            'has_password': bool(user.password_hash),
            'updated_at': user.updated_at,
        })
    return data


def demand_to_dict(demand, offer_count: Optional[int] = None, offers: Optional[list] = None) -> Dict[str, Any]:
    """Convert Demand model to dict; user/category/city must be eagerly loaded"""
    data = {
        'id': str(demand.id),
        'demand_number': demand.demand_number,
        'user_id': str(demand.user_id),
        'category_id': str(demand.category_id),
        'city_id': _uuid_or_none(demand.city_id),
        'title': demand.title,
        'description': demand.description,
        'status': demand.status,
        'is_approved': demand.is_approved,
        'is_urgent': demand.is_urgent,
        'location': demand.location,
        'county': demand.county,
        'address': demand.address,
        'latitude': demand.latitude,
        'longitude': demand.longitude,
        'images': demand.images or [],
        'people_count': demand.people_count,
        'event_date': demand.event_date,
        'event_time': demand.event_time,
        'deadline': demand.deadline,
        'question_responses': demand.question_responses,
        'user': user_summary_to_dict(demand.user),
        'category': category_summary_to_dict(demand.category),
        'city': city_to_dict(demand.city) if demand.city else None,
        'created_at': demand.created_at,
        'updated_at': demand.updated_at
    }
    if offer_count is not None:
        data['offer_count'] = offer_count
    if offers is not None:
        data['offers'] = [offer_to_dict(offer) for offer in offers]
    return data


def offer_to_dict(offer, demand=None) -> Dict[str, Any]:
    """Convert Offer model to dict; provider must be eagerly loaded"""
    data = {
        'id': str(offer.id),
        'demand_id': str(offer.demand_id),
        'provider_id': str(offer.provider_id),
        'price': float(offer.price),
        'estimated_time': offer.estimated_time,
        'message': offer.message,
        'status': offer.status,
        'provider_completed': offer.provider_completed,
        'is_approved': offer.is_approved,
        'provider': user_summary_to_dict(offer.provider),
        'created_at': offer.created_at,
        'updated_at': offer.updated_at
    }
    if demand is not None:
        data['demand'] = {
            'id': str(demand.id),
            'demand_number': demand.demand_number,
            'title': demand.title,
            'status': demand.status,
            'user_id': str(demand.user_id),
        }
    return data


def notification_to_dict(notification) -> Dict[str, Any]:
    return {
        'id': str(notification.id),
        'user_id': str(notification.user_id),
        'title': notification.title,
        'message': notification.message,
        'type': notification.type,
        'data': notification.data or {},
        'is_read': notification.is_read,
        'created_at': notification.created_at
    }


def review_to_dict(review) -> Dict[str, Any]:
    """Convert Review model to dict; reviewer must be eagerly loaded"""
    return {
        'id': str(review.id),
        'reviewer_id': str(review.reviewer_id),
        'reviewed_user_id': str(review.reviewed_user_id),
        'offer_id': _uuid_or_none(review.offer_id),
        'rating': review.rating,
        'comment': review.comment,
        'reviewer': user_summary_to_dict(review.reviewer),
        'created_at': review.created_at,
        'updated_at': review.updated_at
    }


def charity_activity_to_dict(activity, distance: Optional[float] = None) -> Dict[str, Any]:
    """Convert CharityActivity model to dict; provider/category must be eagerly loaded"""
    data = {
        'id': str(activity.id),
        'provider_id': str(activity.provider_id),
        'category_id': str(activity.category_id),
        'title': activity.title,
        'description': activity.description,
        'latitude': activity.latitude,
        'longitude': activity.longitude,
        'address': activity.address,
        'estimated_end_time': activity.estimated_end_time,
        'provider': user_summary_to_dict(activity.provider),
        'category': category_summary_to_dict(activity.category),
        'created_at': activity.created_at,
        'updated_at': activity.updated_at
    }
    if distance is not None:
        data['distance'] = round(distance, 2)
    return data


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def register_exception_handlers(app: FastAPI) -> None:
    """Route every error through the {success: false, message} envelope"""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = "Invalid request"
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{location}: {first.get('msg')}" if location else first.get("msg", message)
        logger.info(f"Validation failed on {request.method} {request.url.path}: {message}")
        return error_response(status.HTTP_400_BAD_REQUEST, message)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}")
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
