"""Listing models - a broker's public advert of a property."""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field

from realty_crm.utils.ids import generate_id, utcnow


class Photo(BaseModel):
    """Listing photo with its resized variants."""
    id: str = Field(default_factory=generate_id)
    url: str = Field(..., description="Image URL")
    thumb_url: Optional[str] = None
    medium_url: Optional[str] = None
    large_url: Optional[str] = None
    order: int = Field(default=0, ge=0)
    is_cover: bool = False
    room_type: Optional[str] = Field(None, description="living_room, kitchen, bedroom, bathroom, exterior")
    quality: Optional[float] = Field(None, ge=0.0, le=1.0)


class Video(BaseModel):
    """Listing video (uploaded or external)."""
    id: str = Field(default_factory=generate_id)
    url: str = Field(..., description="Video URL")
    thumbnail_url: Optional[str] = None
    duration: int = Field(default=0, ge=0, description="Duration in seconds")
    source: str = Field(default="upload", description="upload, youtube, instagram")
    source_url: Optional[str] = None
    order: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)


class Listing(BaseModel):
    """Real estate listing published by one broker for one property."""
    id: str = Field(default_factory=generate_id, description="Listing ID (ULID)")
    tenant_id: str = Field(default="", description="Owning tenant ID")
    property_id: str = Field(default="", description="Property ID")
    broker_id: str = Field(default="", description="Listing broker ID")
    title: str = Field(default="", description="Advert title")
    description: str = Field(default="", description="Advert body")
    photos: list[Photo] = Field(default_factory=list)
    videos: list[Video] = Field(default_factory=list)
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    is_active: bool = Field(default=True)
    is_canonical: bool = Field(default=False, description="Represents the property publicly")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CanonicalConsistencyReport(BaseModel):
    """Comparison of the property's cached canonical id against its listings."""
    tenant_id: str
    property_id: str
    cached_listing_id: Optional[str] = Field(None, description="Property.canonical_listing_id")
    flagged_listing_ids: list[str] = Field(default_factory=list, description="Listings with is_canonical set")
    expected_listing_id: Optional[str] = Field(None, description="Canonical id derived from listings")
    inactive_canonical_ids: list[str] = Field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return (
            len(self.flagged_listing_ids) <= 1
            and not self.inactive_canonical_ids
            and self.cached_listing_id == self.expected_listing_id
        )
