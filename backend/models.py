from sqlalchemy import (
    Boolean,
    String,
    Text,
    DateTime,
    CheckConstraint,
    UniqueConstraint,
    Index,
    text,
    ForeignKey,
    Float,
    Integer,
    Numeric,
    JSON,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.orm import declarative_base
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
import enum
import uuid

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON on other dialects
JSONType = JSON().with_variant(JSONB(), "postgresql")


class UserType(str, enum.Enum):
    PROVIDER = "PROVIDER"
    RECEIVER = "RECEIVER"


class DemandStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OfferStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class TimestampMixin:
    __mapper_args__ = {"eager_defaults": True}

    created_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class City(TimestampMixin, Base):
    """
    Cities a user or a demand can be attached to; admins toggle availability
    """
    __tablename__ = "cities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class User(TimestampMixin, Base):
    """
    Marketplace account: a receiver posting demands, a provider posting offers,
    or an admin (any user type with is_admin set)
    """
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("user_type IN ('PROVIDER', 'RECEIVER')", name="user_type_check"),
        CheckConstraint("rating_count >= 0", name="rating_count_non_negative_check"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False, unique=True, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(150))
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    password_hash: Mapped[Optional[str]] = mapped_column(String(255))

    user_type: Mapped[str] = mapped_column(String(20), default=UserType.RECEIVER.value, nullable=False)
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Mutated only when a provider submits an offer
    balance: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=Decimal("0"), nullable=False)
    rating: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    rating_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    fcm_token: Mapped[Optional[str]] = mapped_column(Text)
    profile_image: Mapped[Optional[str]] = mapped_column(String(500))
    bio: Mapped[Optional[str]] = mapped_column(Text)
    location: Mapped[Optional[str]] = mapped_column(String(255))
    company_name: Mapped[Optional[str]] = mapped_column(String(200))
    address: Mapped[Optional[str]] = mapped_column(Text)
    response_time: Mapped[Optional[str]] = mapped_column(String(50))
    completed_jobs: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    city_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("cities.id", ondelete="SET NULL")
    )

    city: Mapped[Optional["City"]] = relationship("City")
    categories: Mapped[List["UserCategory"]] = relationship(
        "UserCategory",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True
    )


class Category(TimestampMixin, Base):
    """
    Node in the service category tree. commission_rate is per-mille and
    treated as zero when unset.
    """
    __tablename__ = "categories"
    __table_args__ = (
        CheckConstraint("parent_id IS NULL OR parent_id != id", name="category_not_own_parent_check"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    icon: Mapped[Optional[str]] = mapped_column(String(255))

    parent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("categories.id"),
        index=True
    )

    commission_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(8, 2))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    questions: Mapped[Optional[list]] = mapped_column(JSONType)
    rank: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    parent: Mapped[Optional["Category"]] = relationship(
        "Category",
        remote_side="Category.id",
        back_populates="children"
    )
    children: Mapped[List["Category"]] = relationship(
        "Category",
        back_populates="parent"
    )


class UserCategory(Base):
    """
    A provider's subscription to a category
    """
    __tablename__ = "user_categories"
    __table_args__ = (
        UniqueConstraint("user_id", "category_id", name="unique_user_category"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    user: Mapped["User"] = relationship("User", back_populates="categories")
    category: Mapped["Category"] = relationship("Category")


class Demand(TimestampMixin, Base):
    """
    A receiver's service request. Hidden from providers until approved.
    """
    __tablename__ = "demands"
    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'CLOSED', 'COMPLETED', 'CANCELLED')",
            name="demand_status_check"
        ),
        CheckConstraint(
            "demand_number >= 1000000 AND demand_number <= 9999999",
            name="demand_number_range_check"
        ),
        Index("ix_demands_category_approved", "category_id", "is_approved"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    demand_number: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("categories.id"),
        nullable=False
    )
    city_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("cities.id", ondelete="SET NULL")
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default=DemandStatus.ACTIVE.value, nullable=False)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_urgent: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    location: Mapped[Optional[str]] = mapped_column(String(255))
    county: Mapped[Optional[str]] = mapped_column(String(100))
    address: Mapped[Optional[str]] = mapped_column(Text)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)

    images: Mapped[Optional[list]] = mapped_column(JSONType)
    people_count: Mapped[Optional[int]] = mapped_column(Integer)
    event_date: Mapped[Optional[datetime]] = mapped_column(DateTime(True))
    event_time: Mapped[Optional[str]] = mapped_column(String(20))
    deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(True))
    question_responses: Mapped[Optional[dict]] = mapped_column(JSONType)

    user: Mapped["User"] = relationship("User")
    category: Mapped["Category"] = relationship("Category")
    city: Mapped[Optional["City"]] = relationship("City")
    offers: Mapped[List["Offer"]] = relationship(
        "Offer",
        back_populates="demand",
        passive_deletes=True
    )


class Offer(TimestampMixin, Base):
    """
    A provider's priced proposal against a demand. One per provider per demand.
    """
    __tablename__ = "offers"
    __table_args__ = (
        UniqueConstraint("demand_id", "provider_id", name="unique_offer_per_provider_demand"),
        CheckConstraint("price >= 0", name="offer_price_non_negative_check"),
        CheckConstraint(
            "status IN ('PENDING', 'ACCEPTED', 'REJECTED', 'COMPLETED')",
            name="offer_status_check"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    demand_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("demands.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    estimated_time: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text)

    status: Mapped[str] = mapped_column(String(20), default=OfferStatus.PENDING.value, nullable=False)
    provider_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Legacy moderation flag, always true; status drives the lifecycle
    is_approved: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    demand: Mapped["Demand"] = relationship("Demand", back_populates="offers")
    provider: Mapped["User"] = relationship("User")


class Notification(TimestampMixin, Base):
    """
    In-app notification record; only is_read changes after creation
    """
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    data: Mapped[Optional[dict]] = mapped_column(JSONType)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class Review(TimestampMixin, Base):
    """
    Rating left by one user about another, optionally scoped to a completed offer
    """
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("reviewer_id", "offer_id", name="unique_review_per_offer"),
        Index(
            "unique_review_per_user_pair",
            "reviewer_id",
            "reviewed_user_id",
            unique=True,
            postgresql_where=text("offer_id IS NULL"),
            sqlite_where=text("offer_id IS NULL"),
        ),
        CheckConstraint("rating >= 1 AND rating <= 5", name="rating_range_check"),
        CheckConstraint("reviewer_id != reviewed_user_id", name="no_self_review_check"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    reviewer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False
    )
    reviewed_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    offer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("offers.id", ondelete="SET NULL")
    )

    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text)

    reviewer: Mapped["User"] = relationship("User", foreign_keys=[reviewer_id])
    reviewed_user: Mapped["User"] = relationship("User", foreign_keys=[reviewed_user_id])


class CharityActivity(TimestampMixin, Base):
    """
    Geolocated charity listing published by a provider
    """
    __tablename__ = "charity_activities"
    __table_args__ = (
        CheckConstraint("latitude >= -90 AND latitude <= 90", name="latitude_range_check"),
        CheckConstraint("longitude >= -180 AND longitude <= 180", name="longitude_range_check"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    provider_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("categories.id"),
        nullable=False
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    estimated_end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(True))

    provider: Mapped["User"] = relationship("User")
    category: Mapped["Category"] = relationship("Category")
