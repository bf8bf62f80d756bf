"""Role store - persistence of broker-property role records."""

from typing import Optional

from realty_crm.models.role import BrokerRoleKind, PropertyBrokerRole
from realty_crm.services.repository import TenantRepository


class RoleStore(TenantRepository[PropertyBrokerRole]):
    collection = "property_broker_roles"
    model = PropertyBrokerRole
    entity_name = "property broker role"

    async def list_by_property(self, tenant_id: str, property_id: str, limit: Optional[int] = None) -> list[PropertyBrokerRole]:
        return await self.list_where(tenant_id, limit=limit, property_id=property_id)

    async def list_by_broker(self, tenant_id: str, broker_id: str, limit: Optional[int] = None) -> list[PropertyBrokerRole]:
        return await self.list_where(tenant_id, limit=limit, broker_id=broker_id)

    async def find_assignment(
        self,
        tenant_id: str,
        property_id: str,
        broker_id: str,
        role: BrokerRoleKind,
    ) -> Optional[PropertyBrokerRole]:
        return await self.first_where(
            tenant_id,
            property_id=property_id,
            broker_id=broker_id,
            role=role.value,
        )

    async def get_originating(self, tenant_id: str, property_id: str) -> Optional[PropertyBrokerRole]:
        return await self.first_where(
            tenant_id,
            property_id=property_id,
            role=BrokerRoleKind.ORIGINATING.value,
        )

    async def list_primary(self, tenant_id: str, property_id: str) -> list[PropertyBrokerRole]:
        return await self.list_where(tenant_id, property_id=property_id, is_primary=True)

    async def unset_primary_for_property(
        self,
        tenant_id: str,
        property_id: str,
        keep_role_id: Optional[str] = None,
    ) -> int:
        """Clear is_primary on every role of the property except ``keep_role_id``."""
        current = await self.list_primary(tenant_id, property_id)
        stale = [role for role in current if role.id != keep_role_id]
        return await self.batch_set(stale, {"is_primary": False})
