"""Pydantic v2 schemas for match payloads, KPI snapshots and API responses."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Match details (one closed record per scoring dimension)
# ---------------------------------------------------------------------------


class LocationMatch(BaseModel):
    """Which location rule fired."""

    same_city: bool = False
    same_state: bool = False
    matched_location: str | None = None


class SqftMatch(BaseModel):
    property_sqft: int | None = None
    required_min: int | None = None
    required_max: int | None = None
    in_range: bool = False


class PriceMatch(BaseModel):
    property_price: float | None = None
    budget_min: float | None = None
    budget_max: float | None = None
    in_range: bool = False
    price_known: bool = True


class AssetTypeMatch(BaseModel):
    property_type: str | None = None
    required_type: str | None = None
    is_exact_match: bool = False
    is_related: bool = False


class AmenitiesMatch(BaseModel):
    matched_features: list[str] = Field(default_factory=list)
    total_required: int = 0
    match_percentage: float = 100.0


class MatchDetails(BaseModel):
    """Structured explanation stored alongside every match record."""

    location_match: LocationMatch = Field(default_factory=LocationMatch)
    sqft_match: SqftMatch = Field(default_factory=SqftMatch)
    price_match: PriceMatch = Field(default_factory=PriceMatch)
    asset_type_match: AssetTypeMatch = Field(default_factory=AssetTypeMatch)
    amenities_match: AmenitiesMatch = Field(default_factory=AmenitiesMatch)


# ---------------------------------------------------------------------------
# Match records
# ---------------------------------------------------------------------------


class PropertySummary(BaseModel):
    """The slice of a property listing shown on a match card."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str | None = None
    city: str | None = None
    state: str | None = None
    property_type: str | None = None
    sqft: int | None = None
    asking_price: float | None = None
    status: str


class MatchResponse(BaseModel):
    """Schema for match API responses and realtime payloads."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    demand_listing_id: str
    property_listing_id: str
    match_score: float
    location_score: float
    sqft_score: float
    price_score: float
    asset_type_score: float
    amenities_score: float
    match_details: MatchDetails
    is_viewed: bool
    is_saved: bool
    is_dismissed: bool
    viewed_at: datetime | None = None
    saved_at: datetime | None = None
    dismissed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    property: PropertySummary | None = None


class RescoreResponse(BaseModel):
    """Outcome of a rescoring run."""

    trigger: str
    listing_id: str
    pairs_scored: int
    pairs_skipped: int
    notified_users: list[str]
    failed_listings: int = 0


# ---------------------------------------------------------------------------
# Dashboard KPIs
# ---------------------------------------------------------------------------


class KPISnapshot(BaseModel):
    """Cached aggregate dashboard metrics for one user."""

    user_id: str
    active_businesses: int = 0
    response_rate: str = "0.0%"
    landlord_views: int = 0
    messages_total: int = 0
    computed_at: datetime

    def to_payload(self) -> dict:
        """camelCase shape the dashboard cards consume."""
        return {
            "activeBusinesses": self.active_businesses,
            "responseRate": self.response_rate,
            "landlordViews": self.landlord_views,
            "messagesTotal": self.messages_total,
            "computedAt": self.computed_at.isoformat(),
        }


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    service: str
