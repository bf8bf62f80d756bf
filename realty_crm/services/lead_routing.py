"""Lead routing resolver - which broker receives a new lead for a property."""

from realty_crm.models.role import PropertyBrokerRole
from realty_crm.services.role_engine import RoleConsistencyEngine
from realty_crm.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class LeadRoutingResolver:
    """Read-only: primary broker first, originating broker as fallback."""

    def __init__(self, role_engine: RoleConsistencyEngine):
        self.role_engine = role_engine

    async def resolve_recipient_role(self, tenant_id: str, property_id: str) -> PropertyBrokerRole:
        role = await self.role_engine.get_primary_broker(tenant_id, property_id)

        if role.is_primary:
            reason = "primary"
        elif role.is_originating:
            reason = "originating_fallback"
        else:
            reason = "first_role_fallback"

        log = logger.bind(tenant_id=tenant_id, property_id=property_id)
        log.info(
            "Lead recipient resolved",
            broker_id=role.broker_id,
            role=role.role.value,
            routing_reason=reason,
        )
        return role

    async def resolve_recipient(self, tenant_id: str, property_id: str) -> str:
        """Broker id that should receive a new lead.

        Raises NotFoundError only when the property has no broker roles.
        """
        role = await self.resolve_recipient_role(tenant_id, property_id)
        return role.broker_id
