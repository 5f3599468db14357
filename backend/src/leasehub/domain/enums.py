"""Domain enumerations for the LeaseHub matching core.

All enums use the (str, Enum) pattern to ensure JSON serialization compatibility.
"""

from enum import Enum


class UserRole(str, Enum):
    """Marketplace role attached to a user account."""

    TENANT = "tenant"
    LANDLORD = "landlord"
    BROKER = "broker"
    ADMIN = "admin"


class SubscriptionTier(str, Enum):
    """Billing tier; only used here to lock tier-gated KPIs."""

    STARTER = "starter"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class BusinessStatus(str, Enum):
    """Lifecycle status of a tenant business."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class AssetType(str, Enum):
    """Shared enum space for demand asset types and property types."""

    RETAIL = "retail"
    RESTAURANT = "restaurant"
    OFFICE = "office"
    INDUSTRIAL = "industrial"
    WAREHOUSE = "warehouse"
    MEDICAL = "medical"
    FLEX = "flex"
    LAND = "land"
    OTHER = "other"


class DemandListingStatus(str, Enum):
    """Status of a tenant's space requirement."""

    ACTIVE = "active"
    PENDING = "pending"
    CLOSED = "closed"


class PropertyListingStatus(str, Enum):
    """Status of a landlord's property listing. Only ACTIVE is matchable."""

    ACTIVE = "active"
    PENDING = "pending"
    LEASED = "leased"
    OFF_MARKET = "off_market"


class ConnectionState(str, Enum):
    """Lifecycle of one realtime dashboard connection."""

    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class RealtimeEvent(str, Enum):
    """Event names exchanged over the dashboard socket."""

    # server -> client
    MATCHES_UPDATED = "matches-updated"
    KPI_INVALIDATED = "kpi-invalidated"
    BUSINESS_CREATED = "business-created"
    BUSINESS_UPDATED = "business-updated"
    BUSINESS_DELETED = "business-deleted"
    METRICS_UPDATED = "metrics-updated"
    RECONNECTED = "reconnected"
    CONNECTION_REJECTED = "connection-rejected"
    ERROR = "error"
    PONG = "pong"

    # client -> server
    REQUEST_CURRENT_STATE = "request:current-state"
    PING = "ping"
