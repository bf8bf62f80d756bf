"""Property model - the physical real estate unit brokers attach to."""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from realty_crm.utils.ids import generate_id, utcnow


class Property(BaseModel):
    """Property record.

    ``canonical_listing_id`` is a cache owned by the canonical listing selector.
    """
    id: str = Field(default_factory=generate_id, description="Property ID (ULID)")
    tenant_id: str = Field(..., min_length=1, description="Owning tenant ID")
    title: Optional[str] = Field(None, description="Internal title")
    address: Optional[str] = Field(None, description="Street address")
    canonical_listing_id: Optional[str] = Field(None, description="Cached canonical listing ID")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
