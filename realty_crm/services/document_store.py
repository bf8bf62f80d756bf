"""Document store abstraction consumed by the role and listing repositories.

Backends implement single-document primitives plus a bounded batch update.
Documents are plain dicts carrying their own ``id`` and ``tenant_id`` fields;
query results come back in creation order.
"""

import copy
from abc import ABC, abstractmethod
from typing import Any, Optional

from realty_crm.utils.config import EngineConfig
from realty_crm.utils.errors import ConflictError, NotFoundError, InvalidInputError
from realty_crm.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class DocumentStore(ABC):
    """Async document store primitives."""

    def __init__(self, batch_limit: int = EngineConfig.STORE_BATCH_LIMIT):
        if batch_limit < 1:
            raise InvalidInputError("batch_limit must be positive")
        self.batch_limit = batch_limit

    @abstractmethod
    async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a document. Raises ConflictError if the id exists."""

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        """Fetch a document, or None when absent."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """Merge fields into a document. Raises NotFoundError if absent."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Raises NotFoundError if absent."""

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any],
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Equality-filtered documents in creation order."""

    @abstractmethod
    async def _commit_batch(self, collection: str, updates: list[tuple[str, dict[str, Any]]]) -> None:
        """Commit one chunk of updates together."""

    async def batch_update(self, collection: str, updates: list[tuple[str, dict[str, Any]]]) -> int:
        """Apply updates in chunks of at most ``batch_limit`` documents.

        Each chunk commits together; chunks are not atomic with each other.
        Returns the number of documents written.
        """
        if not updates:
            return 0

        for start in range(0, len(updates), self.batch_limit):
            chunk = updates[start:start + self.batch_limit]
            await self._commit_batch(collection, chunk)
            logger.debug(
                "Batch committed",
                collection=collection,
                batch_size=len(chunk),
            )
        return len(updates)


class InMemoryDocumentStore(DocumentStore):
    """Process-local store for development and tests."""

    def __init__(self, batch_limit: int = EngineConfig.STORE_BATCH_LIMIT):
        super().__init__(batch_limit=batch_limit)
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}

    def _collection(self, name: str) -> dict[str, dict[str, Any]]:
        return self.collections.setdefault(name, {})

    async def create(self, collection, doc_id, data):
        docs = self._collection(collection)
        if doc_id in docs:
            raise ConflictError(f"Document already exists: {collection}/{doc_id}")
        doc = copy.deepcopy(data)
        doc["id"] = doc_id
        docs[doc_id] = doc
        return copy.deepcopy(doc)

    async def get(self, collection, doc_id):
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def update(self, collection, doc_id, fields):
        docs = self._collection(collection)
        if doc_id not in docs:
            raise NotFoundError(collection, doc_id)
        docs[doc_id].update(copy.deepcopy(fields))
        return copy.deepcopy(docs[doc_id])

    async def delete(self, collection, doc_id):
        docs = self._collection(collection)
        if doc_id not in docs:
            raise NotFoundError(collection, doc_id)
        del docs[doc_id]

    async def query(self, collection, filters, limit=None):
        # dict insertion order is creation order
        matches = [
            copy.deepcopy(doc)
            for doc in self._collection(collection).values()
            if all(doc.get(key) == value for key, value in filters.items())
        ]
        if limit is not None:
            matches = matches[:limit]
        return matches

    async def _commit_batch(self, collection, updates):
        docs = self._collection(collection)
        missing = [doc_id for doc_id, _ in updates if doc_id not in docs]
        if missing:
            raise NotFoundError(collection, ", ".join(missing))
        for doc_id, fields in updates:
            docs[doc_id].update(copy.deepcopy(fields))
