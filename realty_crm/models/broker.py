"""Broker model - a licensed agent inside a tenant."""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from realty_crm.utils.ids import generate_id, utcnow


class Broker(BaseModel):
    """Broker (corretor)."""
    id: str = Field(default_factory=generate_id, description="Broker ID (ULID)")
    tenant_id: str = Field(..., min_length=1, description="Owning tenant ID")
    name: str = Field(..., description="Full name")
    email: Optional[str] = Field(None, description="Email address")
    phone: Optional[str] = Field(None, description="Phone number")
    creci: Optional[str] = Field(None, description="Real estate license number")
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
