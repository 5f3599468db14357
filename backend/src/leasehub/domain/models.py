"""SQLAlchemy ORM models for the LeaseHub matching core.

The listing, business and metrics tables belong to the CRUD layer and are
mirrored here so the core can read them; ``PropertyMatch`` is the only table
the core writes.

All models use SQLite-compatible types:
- String(36) for UUID primary keys
- JSON for structured data (no JSONB)
- DateTime(timezone=True) for timestamps (written as aware UTC)
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from leasehub.infra.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Auth / User
# ---------------------------------------------------------------------------


class User(Base):
    """Platform user. Tokens carry this id as ``sub``."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="tenant")  # tenant, landlord, broker, admin
    subscription_tier = Column(String(20), nullable=False, default="starter")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    businesses = relationship("Business", back_populates="owner")


# ---------------------------------------------------------------------------
# Tenant Domain
# ---------------------------------------------------------------------------


class Business(Base):
    """A tenant business; owns demand listings and metrics."""

    __tablename__ = "businesses"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(100))
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    owner = relationship("User", back_populates="businesses")
    demand_listings = relationship("DemandListing", back_populates="business")
    metrics = relationship("BusinessMetrics", back_populates="business")


class BusinessMetrics(Base):
    """Daily activity counters for a business; the inputs of dashboard KPIs."""

    __tablename__ = "business_metrics"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    demand_listing_id = Column(String(36), ForeignKey("demand_listings.id"), nullable=True)
    metric_date = Column(Date)
    views_count = Column(Integer, default=0)
    clicks_count = Column(Integer, default=0)
    property_invites_count = Column(Integer, default=0)
    declined_count = Column(Integer, default=0)
    messages_count = Column(Integer, default=0)
    qfps_submitted_count = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    business = relationship("Business", back_populates="metrics")


class DemandListing(Base):
    """A tenant's space requirement (QFP)."""

    __tablename__ = "demand_listings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    business_id = Column(String(36), ForeignKey("businesses.id"), nullable=False, index=True)
    title = Column(String(255))
    description = Column(Text)
    city = Column(String(100))
    state = Column(String(50), index=True)
    asset_type = Column(String(30))
    sqft_min = Column(Integer)
    sqft_max = Column(Integer)
    budget_min = Column(Float)  # monthly
    budget_max = Column(Float)  # monthly
    lot_size_min = Column(Float)
    lot_size_max = Column(Float)
    amenities = Column(JSON, default=list)
    locations_of_interest = Column(JSON, default=list)
    status = Column(String(20), nullable=False, default="active", index=True)
    stealth_mode = Column(Boolean, default=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    business = relationship("Business", back_populates="demand_listings")
    matches = relationship("PropertyMatch", back_populates="demand_listing")


# ---------------------------------------------------------------------------
# Landlord Domain
# ---------------------------------------------------------------------------


class PropertyListing(Base):
    """A landlord's listed space."""

    __tablename__ = "property_listings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(255))
    description = Column(Text)
    property_type = Column(String(30))
    address = Column(String(500))
    city = Column(String(100))
    state = Column(String(50), index=True)
    zip_code = Column(String(20))
    sqft = Column(Integer)
    lot_size = Column(Float)
    asking_price = Column(Float, nullable=True)  # monthly
    amenities = Column(JSON, default=list)
    status = Column(String(20), nullable=False, default="active", index=True)
    view_count = Column(Integer, default=0)
    inquiry_count = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    matches = relationship("PropertyMatch", back_populates="property_listing")


# ---------------------------------------------------------------------------
# Matching Domain
# ---------------------------------------------------------------------------


class PropertyMatch(Base):
    """Scored pairing of one demand listing with one property listing.

    Score columns are rewritten on every rescore; the interaction columns
    are written only by tenant actions.
    """

    __tablename__ = "property_matches"
    __table_args__ = (
        UniqueConstraint(
            "demand_listing_id", "property_listing_id",
            name="uq_property_matches_pair",
        ),
        Index("ix_property_matches_demand_score", "demand_listing_id", "match_score"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    demand_listing_id = Column(
        String(36), ForeignKey("demand_listings.id", ondelete="CASCADE"), nullable=False
    )
    property_listing_id = Column(
        String(36), ForeignKey("property_listings.id", ondelete="CASCADE"), nullable=False,
        index=True,
    )

    # Overall and per-dimension scores (0-100)
    match_score = Column(Float, nullable=False, default=0)
    location_score = Column(Float, default=0)
    sqft_score = Column(Float, default=0)
    price_score = Column(Float, default=0)
    asset_type_score = Column(Float, default=0)
    amenities_score = Column(Float, default=0)
    match_details = Column(JSON, default=dict)

    # Tenant interaction tracking
    is_viewed = Column(Boolean, nullable=False, default=False)
    is_saved = Column(Boolean, nullable=False, default=False)
    is_dismissed = Column(Boolean, nullable=False, default=False)
    viewed_at = Column(DateTime(timezone=True), nullable=True)
    saved_at = Column(DateTime(timezone=True), nullable=True)
    dismissed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # Relationships
    demand_listing = relationship("DemandListing", back_populates="matches")
    property_listing = relationship("PropertyListing", back_populates="matches")
