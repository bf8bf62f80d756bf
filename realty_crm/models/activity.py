"""ActivityLog model - immutable audit record of one state transition."""

from enum import Enum
from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, Field

from realty_crm.utils.ids import generate_id, utcnow


class ActorType(str, Enum):
    """Who triggered the transition."""
    USER = "user"
    SYSTEM = "system"
    OWNER = "owner"


class ActivityEventType(str, Enum):
    """Event types emitted by the role and listing engines."""
    BROKER_ASSIGNED = "broker_assigned"
    CO_BROKER_ADDED = "co_broker_added"
    CO_BROKER_REMOVED = "co_broker_removed"
    BROKER_ROLE_UPDATED = "broker_role_updated"
    PRIMARY_BROKER_CHANGED = "primary_broker_changed"
    LISTING_CREATED = "listing_created"
    LISTING_UPDATED = "listing_updated"
    LISTING_DELETED = "listing_deleted"
    LISTING_ACTIVATED = "listing_activated"
    LISTING_DEACTIVATED = "listing_deactivated"
    CANONICAL_LISTING_ASSIGNED = "canonical_listing_assigned"
    CANONICAL_LISTING_CHANGED = "canonical_listing_changed"
    CANONICAL_LISTING_CLEARED = "canonical_listing_cleared"


class ActivityLog(BaseModel):
    """Audit log entry."""
    id: str = Field(default_factory=generate_id, description="Log ID (ULID)")
    tenant_id: str = Field(..., min_length=1)
    event_id: str = Field(default="", description="hash(tenant|entity|event|5-minute bucket)")
    event_hash: str = Field(default="", description="SHA256 of the normalized payload")
    request_id: Optional[str] = Field(None, description="Correlation ID of the originating request")
    event_type: str = Field(..., min_length=1)
    actor_type: ActorType = Field(default=ActorType.SYSTEM)
    actor_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)

    model_config = {"frozen": True}
