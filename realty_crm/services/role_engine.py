"""Role consistency engine - broker assignment, removal and primary promotion.

Per property it keeps exactly one originating broker once any broker is
attached, at most one primary role, and unique (broker, role kind) pairs.
"""

from typing import Any, Optional, Union

from realty_crm.models.activity import ActivityEventType, ActorType
from realty_crm.models.role import BrokerRoleKind, PropertyBrokerRole
from realty_crm.services.activity_recorder import ActivityRecorder
from realty_crm.services.directory import BrokerDirectory, PropertyDirectory
from realty_crm.services.property_locks import PropertyLocks
from realty_crm.services.role_store import RoleStore
from realty_crm.utils.errors import (
    ConflictError,
    InvalidInputError,
    InvariantViolationError,
    NotFoundError,
)
from realty_crm.utils.logging import get_structured_logger, timed

logger = get_structured_logger(__name__)

UPDATABLE_ROLE_FIELDS = {"commission_percentage", "is_primary", "role"}
IMMUTABLE_ROLE_FIELDS = {"id", "tenant_id", "property_id", "broker_id", "created_at"}


def parse_role_kind(value: Union[BrokerRoleKind, str, None]) -> BrokerRoleKind:
    """Coerce a role string into the closed BrokerRoleKind set."""
    if not value:
        raise InvalidInputError("role is required")
    try:
        return BrokerRoleKind(value)
    except ValueError:
        raise InvalidInputError(f"invalid broker property role: {value}")


def _require(**values: Optional[str]) -> None:
    for name, value in values.items():
        if not value:
            raise InvalidInputError(f"{name} is required")


class RoleConsistencyEngine:
    """Owns every write to property broker roles."""

    def __init__(
        self,
        roles: RoleStore,
        properties: PropertyDirectory,
        brokers: BrokerDirectory,
        recorder: ActivityRecorder,
        locks: PropertyLocks,
    ):
        self.roles = roles
        self.properties = properties
        self.brokers = brokers
        self.recorder = recorder
        self.locks = locks

    @timed("role_engine.assign_role")
    async def assign_role(
        self,
        tenant_id: str,
        property_id: str,
        broker_id: str,
        role: Union[BrokerRoleKind, str],
        is_primary: bool = False,
        commission_percentage: Optional[float] = None,
        actor_type: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
    ) -> PropertyBrokerRole:
        """Attach a broker to a property.

        The first role of a property must be the originating broker. When
        ``is_primary`` is set every other primary role of the property is
        cleared before the new role is written.
        """
        _require(tenant_id=tenant_id, property_id=property_id, broker_id=broker_id)
        kind = parse_role_kind(role)

        await self.properties.get(tenant_id, property_id)
        await self.brokers.get(tenant_id, broker_id)

        try:
            new_role = PropertyBrokerRole(
                tenant_id=tenant_id,
                property_id=property_id,
                broker_id=broker_id,
                role=kind,
                is_primary=is_primary,
                commission_percentage=commission_percentage,
            )
        except ValueError as e:
            raise InvalidInputError(f"invalid role assignment: {e}") from e

        async with self.locks.hold(tenant_id, property_id):
            existing = await self.roles.list_by_property(tenant_id, property_id)

            originating = next((r for r in existing if r.is_originating), None)
            if kind == BrokerRoleKind.ORIGINATING and originating is not None:
                raise ConflictError(
                    f"property already has an originating broker (ID: {originating.broker_id})"
                )
            if kind != BrokerRoleKind.ORIGINATING and originating is None:
                raise InvariantViolationError(
                    "property has no originating broker; assign the originating broker first"
                )
            if any(r.broker_id == broker_id and r.role == kind for r in existing):
                raise ConflictError("broker already has this role for this property")

            if is_primary:
                await self.roles.unset_primary_for_property(tenant_id, property_id)
            created = await self.roles.create(new_role)

        logger.info(
            "Broker assigned to property",
            tenant_id=tenant_id,
            property_id=property_id,
            broker_id=broker_id,
            role=kind.value,
            is_primary=created.is_primary,
        )

        event = (
            ActivityEventType.BROKER_ASSIGNED
            if kind == BrokerRoleKind.ORIGINATING
            else ActivityEventType.CO_BROKER_ADDED
        )
        await self.recorder.record(tenant_id, event, actor_type, actor_id, {
            "role_id": created.id,
            "property_id": property_id,
            "broker_id": broker_id,
            "role": kind.value,
            "is_primary": created.is_primary,
        })
        return created

    @timed("role_engine.remove_role")
    async def remove_role(
        self,
        tenant_id: str,
        role_id: str,
        actor_type: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
    ) -> PropertyBrokerRole:
        """Detach a non-originating broker, handing primary to a successor."""
        _require(tenant_id=tenant_id, role_id=role_id)
        role = await self.roles.get(tenant_id, role_id)

        async with self.locks.hold(tenant_id, role.property_id):
            role = await self.roles.get(tenant_id, role_id)
            if role.is_originating:
                raise InvariantViolationError("cannot remove originating broker from property")

            await self.roles.delete(role)

            successor = None
            if role.is_primary:
                successor = await self._select_primary_successor(tenant_id, role.property_id)
                if successor is not None:
                    successor = await self._promote(successor)

        await self.recorder.record(tenant_id, ActivityEventType.CO_BROKER_REMOVED, actor_type, actor_id, {
            "role_id": role.id,
            "property_id": role.property_id,
            "broker_id": role.broker_id,
            "role": role.role.value,
        })

        if successor is not None:
            await self._record_primary_change(successor, actor_type, actor_id, previous=role)
        elif role.is_primary:
            logger.info(
                "Primary broker removed without successor",
                tenant_id=tenant_id,
                property_id=role.property_id,
                role_id=role.id,
            )
        return role

    @timed("role_engine.update_role")
    async def update_role(
        self,
        tenant_id: str,
        role_id: str,
        fields: dict[str, Any],
        actor_type: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
    ) -> PropertyBrokerRole:
        """Change commission, primary flag or (non-originating) role kind."""
        _require(tenant_id=tenant_id, role_id=role_id)
        fields = dict(fields)
        if not fields:
            raise InvalidInputError("no fields to update")

        immutable = IMMUTABLE_ROLE_FIELDS.intersection(fields)
        if immutable:
            raise InvariantViolationError(f"cannot change {', '.join(sorted(immutable))} of a role")
        unknown = set(fields) - UPDATABLE_ROLE_FIELDS
        if unknown:
            raise InvalidInputError(f"unknown role fields: {', '.join(sorted(unknown))}")
        if "role" in fields:
            fields["role"] = parse_role_kind(fields["role"])
        if "is_primary" in fields and not isinstance(fields["is_primary"], bool):
            raise InvalidInputError("is_primary must be a boolean")

        existing = await self.roles.get(tenant_id, role_id)

        async with self.locks.hold(tenant_id, existing.property_id):
            existing = await self.roles.get(tenant_id, role_id)

            new_kind = fields.get("role")
            if new_kind is not None and new_kind != existing.role:
                if existing.is_originating or new_kind == BrokerRoleKind.ORIGINATING:
                    raise InvariantViolationError("cannot change originating_broker role")
                duplicate = await self.roles.find_assignment(
                    tenant_id, existing.property_id, existing.broker_id, new_kind
                )
                if duplicate is not None:
                    raise ConflictError("broker already has this role for this property")

            # fail on bad values before the primary flags of other roles are touched
            self.roles.validate_update(existing, fields)

            becomes_primary = fields.get("is_primary") is True and not existing.is_primary
            if becomes_primary:
                await self.roles.unset_primary_for_property(
                    tenant_id, existing.property_id, keep_role_id=existing.id
                )
            updated = await self.roles.update(existing, fields)

        logger.info(
            "Broker role updated",
            tenant_id=tenant_id,
            property_id=updated.property_id,
            role_id=role_id,
            fields=sorted(fields),
        )

        changes = {
            key: (value.value if isinstance(value, BrokerRoleKind) else value)
            for key, value in fields.items()
        }
        await self.recorder.record(tenant_id, ActivityEventType.BROKER_ROLE_UPDATED, actor_type, actor_id, {
            "role_id": role_id,
            "property_id": updated.property_id,
            "broker_id": updated.broker_id,
            "updates": changes,
        })
        if becomes_primary:
            await self._record_primary_change(updated, actor_type, actor_id)
        return updated

    @timed("role_engine.set_primary_broker")
    async def set_primary_broker(
        self,
        tenant_id: str,
        role_id: str,
        actor_type: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
    ) -> PropertyBrokerRole:
        """Make a role the lead-routing primary. No-op when already primary."""
        _require(tenant_id=tenant_id, role_id=role_id)
        role = await self.roles.get(tenant_id, role_id)

        async with self.locks.hold(tenant_id, role.property_id):
            role = await self.roles.get(tenant_id, role_id)
            if role.is_primary:
                return role
            previous = await self._current_primary(tenant_id, role.property_id)
            promoted = await self._promote(role)

        await self._record_primary_change(promoted, actor_type, actor_id, previous=previous)
        return promoted

    async def get_originating_broker(self, tenant_id: str, property_id: str) -> PropertyBrokerRole:
        _require(tenant_id=tenant_id, property_id=property_id)
        role = await self.roles.get_originating(tenant_id, property_id)
        if role is None:
            raise NotFoundError("originating broker", property_id)
        return role

    async def get_primary_broker(self, tenant_id: str, property_id: str) -> PropertyBrokerRole:
        """Primary role, falling back to the originating broker.

        Raises NotFoundError only when the property has no roles at all.
        """
        _require(tenant_id=tenant_id, property_id=property_id)
        roles = await self.roles.list_by_property(tenant_id, property_id)
        if not roles:
            raise NotFoundError("broker roles for property", property_id)

        primaries = [r for r in roles if r.is_primary]
        if len(primaries) > 1:
            logger.warning(
                "Multiple primary brokers found",
                tenant_id=tenant_id,
                property_id=property_id,
                role_ids=[r.id for r in primaries],
            )
        if primaries:
            return primaries[0]

        originating = next((r for r in roles if r.is_originating), None)
        if originating is not None:
            return originating

        logger.warning(
            "Property has brokers but no originating broker",
            tenant_id=tenant_id,
            property_id=property_id,
        )
        return roles[0]

    async def list_property_brokers(self, tenant_id: str, property_id: str) -> list[PropertyBrokerRole]:
        _require(tenant_id=tenant_id, property_id=property_id)
        return await self.roles.list_by_property(tenant_id, property_id)

    async def list_broker_properties(self, tenant_id: str, broker_id: str) -> list[PropertyBrokerRole]:
        _require(tenant_id=tenant_id, broker_id=broker_id)
        return await self.roles.list_by_broker(tenant_id, broker_id)

    async def get_commission_split(self, tenant_id: str, property_id: str) -> dict[str, Optional[float]]:
        """Recorded commission percentage per broker, reported verbatim."""
        roles = await self.list_property_brokers(tenant_id, property_id)
        return {role.broker_id: role.commission_percentage for role in roles}

    async def _current_primary(self, tenant_id: str, property_id: str) -> Optional[PropertyBrokerRole]:
        primaries = await self.roles.list_primary(tenant_id, property_id)
        return primaries[0] if primaries else None

    async def _select_primary_successor(self, tenant_id: str, property_id: str) -> Optional[PropertyBrokerRole]:
        # originating first, then the oldest listing broker
        remaining = await self.roles.list_by_property(tenant_id, property_id)
        for kind in (BrokerRoleKind.ORIGINATING, BrokerRoleKind.LISTING):
            for candidate in remaining:
                if candidate.role == kind:
                    return candidate
        return None

    async def _promote(self, role: PropertyBrokerRole) -> PropertyBrokerRole:
        """Unset other primaries, then flag ``role``. Caller holds the property lock."""
        await self.roles.unset_primary_for_property(role.tenant_id, role.property_id, keep_role_id=role.id)
        return await self.roles.update(role, {"is_primary": True})

    async def _record_primary_change(
        self,
        role: PropertyBrokerRole,
        actor_type: ActorType,
        actor_id: Optional[str],
        previous: Optional[PropertyBrokerRole] = None,
    ) -> None:
        logger.info(
            "Primary broker changed",
            tenant_id=role.tenant_id,
            property_id=role.property_id,
            broker_id=role.broker_id,
            previous_broker_id=previous.broker_id if previous else None,
        )
        metadata = {
            "role_id": role.id,
            "property_id": role.property_id,
            "broker_id": role.broker_id,
        }
        if previous is not None:
            metadata["previous_role_id"] = previous.id
            metadata["previous_broker_id"] = previous.broker_id
        await self.recorder.record(
            role.tenant_id, ActivityEventType.PRIMARY_BROKER_CHANGED, actor_type, actor_id, metadata
        )
