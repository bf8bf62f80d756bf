"""Supabase client wrapper and the Supabase-backed document store."""

import os
from typing import Any, Optional
from supabase import create_client, Client
from supabase.client import ClientOptions

from realty_crm.services.document_store import DocumentStore
from realty_crm.utils.config import EngineConfig
from realty_crm.utils.errors import CRMError, ConflictError, NotFoundError, StoreFailureError
from realty_crm.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise StoreFailureError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", url=url)

    return _client


async def close_supabase_client() -> None:
    """Drop the client singleton."""
    global _client
    if _client:
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self, client: Optional[Client] = None):
        self.client: Optional[Client] = client

    async def __aenter__(self) -> Client:
        if self.client is None:
            self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type and not issubclass(exc_type, CRMError):
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                type=exc_type.__name__,
            )
        return False


class SupabaseDocumentStore(DocumentStore):
    """Document store over Supabase tables, one table per collection.

    Every table has an ``id`` text primary key and a ``created_at`` column.
    """

    def __init__(self, client: Optional[Client] = None, batch_limit: int = EngineConfig.STORE_BATCH_LIMIT):
        super().__init__(batch_limit=batch_limit)
        self._client = client

    async def create(self, collection, doc_id, data):
        async with SupabaseClient(self._client) as client:
            row = dict(data, id=doc_id)
            try:
                result = client.table(collection).insert(row).execute()
            except Exception as e:
                if "duplicate key" in str(e).lower():
                    raise ConflictError(f"Document already exists: {collection}/{doc_id}") from e
                raise StoreFailureError(f"Failed to create {collection}/{doc_id}: {e}") from e
            if result.data and len(result.data) > 0:
                return result.data[0]
            raise StoreFailureError(f"Failed to create {collection}/{doc_id}: no data returned")

    async def get(self, collection, doc_id):
        async with SupabaseClient(self._client) as client:
            try:
                result = client.table(collection).select("*").eq("id", doc_id).execute()
            except Exception as e:
                raise StoreFailureError(f"Failed to get {collection}/{doc_id}: {e}") from e
            return result.data[0] if result.data and len(result.data) > 0 else None

    async def update(self, collection, doc_id, fields):
        async with SupabaseClient(self._client) as client:
            try:
                result = client.table(collection).update(fields).eq("id", doc_id).execute()
            except Exception as e:
                raise StoreFailureError(f"Failed to update {collection}/{doc_id}: {e}") from e
            if result.data and len(result.data) > 0:
                return result.data[0]
            raise NotFoundError(collection, doc_id)

    async def delete(self, collection, doc_id):
        async with SupabaseClient(self._client) as client:
            try:
                result = client.table(collection).delete().eq("id", doc_id).execute()
            except Exception as e:
                raise StoreFailureError(f"Failed to delete {collection}/{doc_id}: {e}") from e
            if not result.data:
                raise NotFoundError(collection, doc_id)

    async def query(self, collection, filters, limit=None):
        async with SupabaseClient(self._client) as client:
            try:
                request = client.table(collection).select("*")
                for key, value in filters.items():
                    request = request.eq(key, value)
                request = request.order("created_at")
                if limit is not None:
                    request = request.limit(limit)
                result = request.execute()
            except Exception as e:
                raise StoreFailureError(f"Failed to query {collection}: {e}") from e
            return result.data if result.data else []

    async def _commit_batch(self, collection, updates):
        # A single upsert statement commits the whole chunk in one transaction.
        ids = [doc_id for doc_id, _ in updates]
        async with SupabaseClient(self._client) as client:
            try:
                result = client.table(collection).select("*").in_("id", ids).execute()
            except Exception as e:
                raise StoreFailureError(f"Failed to read batch from {collection}: {e}") from e

            current: dict[str, dict[str, Any]] = {row["id"]: row for row in (result.data or [])}
            missing = [doc_id for doc_id in ids if doc_id not in current]
            if missing:
                raise NotFoundError(collection, ", ".join(missing))

            rows = [dict(current[doc_id], **fields) for doc_id, fields in updates]
            try:
                client.table(collection).upsert(rows).execute()
            except Exception as e:
                raise StoreFailureError(f"Failed to commit batch to {collection}: {e}") from e
