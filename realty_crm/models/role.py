"""PropertyBrokerRole model - ties a broker to a property with a role kind."""

from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from realty_crm.utils.ids import generate_id, utcnow


class BrokerRoleKind(str, Enum):
    """Role a broker holds on a property."""
    ORIGINATING = "originating_broker"  # brought the property in, exactly one per property
    LISTING = "listing_broker"  # publishes a listing for the property
    CO_BROKER = "co_broker"  # joins the negotiation


class PropertyBrokerRole(BaseModel):
    """Broker-property role record.

    Commission is stored as given and never computed on.
    """
    id: str = Field(default_factory=generate_id, description="Role ID (ULID)")
    tenant_id: str = Field(..., min_length=1, description="Owning tenant ID")
    property_id: str = Field(..., min_length=1, description="Property ID")
    broker_id: str = Field(..., min_length=1, description="Broker ID")
    role: BrokerRoleKind = Field(..., description="Role kind")
    commission_percentage: Optional[float] = Field(
        None, ge=0.0, le=100.0, description="Recorded commission percentage"
    )
    is_primary: bool = Field(default=False, description="Receives new leads first")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_originating(self) -> bool:
        return self.role == BrokerRoleKind.ORIGINATING
