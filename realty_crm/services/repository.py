"""Tenant-scoped repository base over a DocumentStore."""

from typing import Any, Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from realty_crm.services.document_store import DocumentStore
from realty_crm.utils.errors import InvalidInputError, NotFoundError
from realty_crm.utils.ids import utcnow

ModelT = TypeVar("ModelT", bound=BaseModel)


class TenantRepository(Generic[ModelT]):
    """Maps one collection to one pydantic model, scoped by ``tenant_id``.

    Documents belonging to another tenant are reported as not found.
    """

    collection: str = ""
    model: Type[ModelT]
    entity_name: str = "document"

    def __init__(self, store: DocumentStore):
        self.store = store

    def _load(self, doc: dict[str, Any]) -> ModelT:
        return self.model.model_validate(doc)

    async def find(self, tenant_id: str, doc_id: str) -> Optional[ModelT]:
        if not tenant_id:
            raise InvalidInputError("tenant_id is required")
        if not doc_id:
            raise InvalidInputError(f"{self.entity_name} ID is required")

        doc = await self.store.get(self.collection, doc_id)
        if doc is None or doc.get("tenant_id") != tenant_id:
            return None
        return self._load(doc)

    async def get(self, tenant_id: str, doc_id: str) -> ModelT:
        entity = await self.find(tenant_id, doc_id)
        if entity is None:
            raise NotFoundError(self.entity_name, doc_id)
        return entity

    async def list_where(self, tenant_id: str, limit: Optional[int] = None, **filters: Any) -> list[ModelT]:
        if not tenant_id:
            raise InvalidInputError("tenant_id is required")
        docs = await self.store.query(self.collection, dict(filters, tenant_id=tenant_id), limit=limit)
        return [self._load(doc) for doc in docs]

    async def first_where(self, tenant_id: str, **filters: Any) -> Optional[ModelT]:
        matches = await self.list_where(tenant_id, limit=1, **filters)
        return matches[0] if matches else None

    async def create(self, entity: ModelT) -> ModelT:
        doc = entity.model_dump(mode="json")
        created = await self.store.create(self.collection, entity.id, doc)
        return self._load(created)

    def validate_update(self, entity: ModelT, fields: dict[str, Any]) -> ModelT:
        """Merged model for ``fields`` applied to ``entity``, without writing."""
        merged = dict(entity.model_dump(), **fields, updated_at=utcnow())
        try:
            return self.model.model_validate(merged)
        except ValidationError as e:
            raise InvalidInputError(f"Invalid {self.entity_name} update: {e}") from e

    async def update(self, entity: ModelT, fields: dict[str, Any]) -> ModelT:
        """Validate ``fields`` against the model and write only those keys."""
        updated = self.validate_update(entity, fields)

        serialized = updated.model_dump(mode="json")
        changes = {key: serialized[key] for key in list(fields) + ["updated_at"]}
        await self.store.update(self.collection, entity.id, changes)
        return updated

    async def batch_set(self, entities: list[ModelT], fields: dict[str, Any]) -> int:
        """Set the same fields on many documents with one bounded batch write."""
        if not entities:
            return 0
        stamped = dict(fields, updated_at=utcnow().isoformat())
        return await self.store.batch_update(
            self.collection,
            [(entity.id, stamped) for entity in entities],
        )

    async def delete(self, entity: ModelT) -> None:
        await self.store.delete(self.collection, entity.id)
