"""Tests for the Supabase-backed document store against a mocked client."""

from unittest.mock import Mock

import pytest

from realty_crm.services import supabase_client
from realty_crm.services.supabase_client import SupabaseDocumentStore, get_supabase_client
from realty_crm.utils.errors import ConflictError, NotFoundError, StoreFailureError


def _table_returning(data):
    """Chainable query builder mock whose execute() yields ``data``."""
    builder = Mock()
    for method in ("select", "insert", "update", "delete", "upsert", "eq", "in_", "order", "limit"):
        getattr(builder, method).return_value = builder
    builder.execute.return_value = Mock(data=data)
    return builder


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_inserts_row(mock_supabase_client):
    table = _table_returning([{"id": "l1", "tenant_id": "t"}])
    mock_supabase_client.table.return_value = table
    store = SupabaseDocumentStore(client=mock_supabase_client)

    created = await store.create("listings", "l1", {"tenant_id": "t"})

    assert created == {"id": "l1", "tenant_id": "t"}
    mock_supabase_client.table.assert_called_with("listings")
    table.insert.assert_called_once_with({"tenant_id": "t", "id": "l1"})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_create_duplicate_key_conflicts(mock_supabase_client):
    table = _table_returning([])
    table.execute.side_effect = Exception('duplicate key value violates unique constraint "listings_pkey"')
    mock_supabase_client.table.return_value = table
    store = SupabaseDocumentStore(client=mock_supabase_client)

    with pytest.raises(ConflictError):
        await store.create("listings", "l1", {"tenant_id": "t"})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_backend_errors_are_wrapped(mock_supabase_client):
    table = _table_returning([])
    table.execute.side_effect = Exception("connection reset")
    mock_supabase_client.table.return_value = table
    store = SupabaseDocumentStore(client=mock_supabase_client)

    with pytest.raises(StoreFailureError):
        await store.get("listings", "l1")
    with pytest.raises(StoreFailureError):
        await store.query("listings", {"tenant_id": "t"})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_update_and_delete_missing_raise_not_found(mock_supabase_client):
    mock_supabase_client.table.return_value = _table_returning([])
    store = SupabaseDocumentStore(client=mock_supabase_client)

    with pytest.raises(NotFoundError):
        await store.update("listings", "l1", {"is_active": False})
    with pytest.raises(NotFoundError):
        await store.delete("listings", "l1")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_query_applies_filters_order_and_limit(mock_supabase_client):
    table = _table_returning([{"id": "r1"}])
    mock_supabase_client.table.return_value = table
    store = SupabaseDocumentStore(client=mock_supabase_client)

    docs = await store.query("property_broker_roles", {"tenant_id": "t", "is_primary": True}, limit=10)

    assert docs == [{"id": "r1"}]
    table.eq.assert_any_call("tenant_id", "t")
    table.eq.assert_any_call("is_primary", True)
    table.order.assert_called_once_with("created_at")
    table.limit.assert_called_once_with(10)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_batch_upserts_merged_rows(mock_supabase_client):
    table = _table_returning([
        {"id": "r1", "tenant_id": "t", "is_primary": True},
        {"id": "r2", "tenant_id": "t", "is_primary": True},
    ])
    mock_supabase_client.table.return_value = table
    store = SupabaseDocumentStore(client=mock_supabase_client)

    await store.batch_update("property_broker_roles", [("r1", {"is_primary": False}), ("r2", {"is_primary": False})])

    table.in_.assert_called_once_with("id", ["r1", "r2"])
    table.upsert.assert_called_once_with([
        {"id": "r1", "tenant_id": "t", "is_primary": False},
        {"id": "r2", "tenant_id": "t", "is_primary": False},
    ])


@pytest.mark.unit
@pytest.mark.asyncio
async def test_batch_with_missing_row_does_not_upsert(mock_supabase_client):
    table = _table_returning([{"id": "r1", "tenant_id": "t"}])
    mock_supabase_client.table.return_value = table
    store = SupabaseDocumentStore(client=mock_supabase_client)

    with pytest.raises(NotFoundError):
        await store.batch_update("property_broker_roles", [("r1", {}), ("r2", {})])

    table.upsert.assert_not_called()


@pytest.mark.unit
def test_client_requires_credentials(monkeypatch):
    monkeypatch.setattr(supabase_client, "_client", None)
    monkeypatch.delenv("SUPABASE_URL", raising=False)

    with pytest.raises(StoreFailureError):
        get_supabase_client()
