"""Listing store - persistence of listings."""

from typing import Optional

from realty_crm.models.listing import Listing
from realty_crm.services.repository import TenantRepository


class ListingStore(TenantRepository[Listing]):
    collection = "listings"
    model = Listing
    entity_name = "listing"

    async def list_by_property(self, tenant_id: str, property_id: str, limit: Optional[int] = None) -> list[Listing]:
        return await self.list_where(tenant_id, limit=limit, property_id=property_id)

    async def list_by_broker(self, tenant_id: str, broker_id: str, limit: Optional[int] = None) -> list[Listing]:
        return await self.list_where(tenant_id, limit=limit, broker_id=broker_id)

    async def list_active(self, tenant_id: str, limit: Optional[int] = None) -> list[Listing]:
        return await self.list_where(tenant_id, limit=limit, is_active=True)

    async def list_canonical(self, tenant_id: str, property_id: str) -> list[Listing]:
        return await self.list_where(tenant_id, property_id=property_id, is_canonical=True)

    async def unset_canonical_for_property(
        self,
        tenant_id: str,
        property_id: str,
        keep_listing_id: Optional[str] = None,
    ) -> int:
        """Clear is_canonical on every listing of the property except ``keep_listing_id``."""
        current = await self.list_canonical(tenant_id, property_id)
        stale = [listing for listing in current if listing.id != keep_listing_id]
        return await self.batch_set(stale, {"is_canonical": False})
