"""Activity recorder - append-only audit sink for engine state transitions.

Recording is fire-and-log: a failed write is logged and swallowed so it never
rolls back or fails the operation that produced it.
"""

import hashlib
import json
from datetime import datetime
from typing import Any, Optional, Union

from realty_crm.models.activity import ActivityEventType, ActivityLog, ActorType
from realty_crm.services.document_store import DocumentStore
from realty_crm.utils.errors import InvalidInputError
from realty_crm.utils.ids import utcnow
from realty_crm.utils.logging import get_correlation_id, get_structured_logger

logger = get_structured_logger(__name__)

ACTIVITY_COLLECTION = "activity_logs"
EVENT_BUCKET_SECONDS = 300

# Metadata keys checked, in order, for the entity an event is about
ENTITY_KEYS = ("property_id", "lead_id", "broker_id", "listing_id")


def generate_event_id(tenant_id: str, event_type: str, metadata: dict[str, Any], timestamp: datetime) -> str:
    """Deterministic id: hash(tenant | entity | event | 5-minute bucket)."""
    entity_id = ""
    for key in ENTITY_KEYS:
        value = metadata.get(key)
        if isinstance(value, str) and value:
            entity_id = value
            break

    bucket = int(timestamp.timestamp()) // EVENT_BUCKET_SECONDS * EVENT_BUCKET_SECONDS
    combined = f"{tenant_id}|{entity_id}|{event_type}|{bucket}"
    return hashlib.sha256(combined.encode()).hexdigest()[:32]


def generate_event_hash(
    tenant_id: str,
    event_type: str,
    actor_type: ActorType,
    actor_id: Optional[str],
    metadata: dict[str, Any],
) -> str:
    """SHA256 over the normalized event payload."""
    normalized = json.dumps(
        {
            "tenant_id": tenant_id,
            "event_type": event_type,
            "actor_type": actor_type.value,
            "actor_id": actor_id or "",
            "metadata": metadata,
        },
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(normalized.encode()).hexdigest()


class ActivityRecorder:
    """Writes ActivityLog documents and answers timeline queries."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def record(
        self,
        tenant_id: str,
        event_type: Union[ActivityEventType, str],
        actor_type: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[ActivityLog]:
        """Append one audit record. Returns None when the write failed."""
        event_name = event_type.value if isinstance(event_type, ActivityEventType) else event_type
        metadata = dict(metadata or {})

        try:
            timestamp = utcnow()
            entry = ActivityLog(
                tenant_id=tenant_id,
                event_id=generate_event_id(tenant_id, event_name, metadata, timestamp),
                event_hash=generate_event_hash(tenant_id, event_name, actor_type, actor_id, metadata),
                request_id=get_correlation_id(),
                event_type=event_name,
                actor_type=actor_type,
                actor_id=actor_id,
                metadata=metadata,
                timestamp=timestamp,
            )
            await self.store.create(ACTIVITY_COLLECTION, entry.id, entry.model_dump(mode="json"))
        except Exception as e:
            logger.warning(
                "Failed to record activity (non-fatal)",
                tenant_id=tenant_id,
                event_type=event_name,
                error=str(e),
            )
            return None

        logger.debug(
            "Activity recorded",
            tenant_id=tenant_id,
            event_type=event_name,
            activity_id=entry.id,
        )
        return entry

    async def _list(self, tenant_id: str, limit: Optional[int] = None, **filters: Any) -> list[ActivityLog]:
        if not tenant_id:
            raise InvalidInputError("tenant_id is required")
        docs = await self.store.query(ACTIVITY_COLLECTION, dict(filters, tenant_id=tenant_id), limit=limit)
        return [ActivityLog.model_validate(doc) for doc in docs]

    async def list_by_event_type(
        self,
        tenant_id: str,
        event_type: Union[ActivityEventType, str],
        limit: Optional[int] = None,
    ) -> list[ActivityLog]:
        event_name = event_type.value if isinstance(event_type, ActivityEventType) else event_type
        return await self._list(tenant_id, limit=limit, event_type=event_name)

    async def list_by_actor(
        self,
        tenant_id: str,
        actor_type: ActorType,
        actor_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[ActivityLog]:
        """Records by one actor type, narrowed to one actor when ``actor_id`` is given."""
        filters: dict[str, Any] = {"actor_type": ActorType(actor_type).value}
        if actor_id:
            filters["actor_id"] = actor_id
        return await self._list(tenant_id, limit=limit, **filters)

    async def list_by_request(self, tenant_id: str, request_id: str) -> list[ActivityLog]:
        """Every record written under one correlation id."""
        if not request_id:
            raise InvalidInputError("request_id is required")
        return await self._list(tenant_id, request_id=request_id)

    async def get_by_event_id(self, tenant_id: str, event_id: str) -> Optional[ActivityLog]:
        if not event_id:
            raise InvalidInputError("event_id is required")
        matches = await self._list(tenant_id, limit=1, event_id=event_id)
        return matches[0] if matches else None

    async def list_by_date_range(
        self,
        tenant_id: str,
        start: datetime,
        end: datetime,
        limit: Optional[int] = None,
    ) -> list[ActivityLog]:
        """Records with ``start <= timestamp < end``, oldest first."""
        if start.tzinfo is None or end.tzinfo is None:
            raise InvalidInputError("start and end must be timezone-aware")
        if end <= start:
            raise InvalidInputError("end must be after start")
        logs = [log for log in await self._list(tenant_id) if start <= log.timestamp < end]
        return logs[:limit] if limit is not None else logs

    async def list_for_entity(self, tenant_id: str, entity_id: str) -> list[ActivityLog]:
        """Timeline of an entity referenced under any of the ENTITY_KEYS metadata keys."""
        if not entity_id:
            raise InvalidInputError("entity_id is required")
        return [
            log for log in await self._list(tenant_id)
            if any(log.metadata.get(key) == entity_id for key in ENTITY_KEYS)
        ]

    async def list_for_property(self, tenant_id: str, property_id: str) -> list[ActivityLog]:
        """Timeline of every recorded event about a property, oldest first."""
        if not property_id:
            raise InvalidInputError("property_id is required")
        return [log for log in await self._list(tenant_id) if log.metadata.get("property_id") == property_id]
