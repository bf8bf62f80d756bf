"""Property and broker lookups used to validate engine inputs."""

from typing import Optional

from realty_crm.models.broker import Broker
from realty_crm.models.property import Property
from realty_crm.services.repository import TenantRepository
from realty_crm.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class PropertyDirectory(TenantRepository[Property]):
    collection = "properties"
    model = Property
    entity_name = "property"

    async def set_canonical_listing(self, prop: Property, listing_id: Optional[str]) -> Property:
        """Write the cached canonical listing id. Only the listing selector calls this."""
        updated = await self.update(prop, {"canonical_listing_id": listing_id})
        logger.debug(
            "Property canonical cache written",
            tenant_id=prop.tenant_id,
            property_id=prop.id,
            canonical_listing_id=listing_id,
        )
        return updated


class BrokerDirectory(TenantRepository[Broker]):
    collection = "brokers"
    model = Broker
    entity_name = "broker"

    async def create(self, entity: Broker) -> Broker:
        created = await super().create(entity)
        logger.info(
            "Broker registered",
            tenant_id=created.tenant_id,
            broker_id=created.id,
            email=created.email,
            phone=created.phone,
        )
        return created
