"""Tests for the activity recorder."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from freezegun import freeze_time

from realty_crm.models.activity import ActivityEventType, ActorType
from realty_crm.services.activity_recorder import (
    ActivityRecorder,
    generate_event_hash,
    generate_event_id,
)
from realty_crm.services.document_store import InMemoryDocumentStore
from realty_crm.utils.errors import InvalidInputError, StoreFailureError
from realty_crm.utils.logging import correlation_context
from tests.fixtures.activity import CANONICAL_CHANGED_METADATA, CO_BROKER_ADDED_METADATA, LEAD_METADATA


@pytest.mark.unit
def test_event_id_same_bucket_is_stable():
    """Test that events five minutes apart land in different buckets."""
    first = generate_event_id("t", "listing_created", CANONICAL_CHANGED_METADATA,
                              datetime(2024, 12, 9, 12, 0, 10, tzinfo=timezone.utc))
    second = generate_event_id("t", "listing_created", CANONICAL_CHANGED_METADATA,
                               datetime(2024, 12, 9, 12, 4, 59, tzinfo=timezone.utc))
    later = generate_event_id("t", "listing_created", CANONICAL_CHANGED_METADATA,
                              datetime(2024, 12, 9, 12, 5, 0, tzinfo=timezone.utc))

    assert first == second
    assert first != later
    assert len(first) == 32


@pytest.mark.unit
def test_event_id_uses_entity_from_metadata():
    ts = datetime(2024, 12, 9, 12, 0, tzinfo=timezone.utc)

    by_property = generate_event_id("t", "e", CO_BROKER_ADDED_METADATA, ts)
    by_lead = generate_event_id("t", "e", LEAD_METADATA, ts)
    no_entity = generate_event_id("t", "e", {}, ts)

    assert len({by_property, by_lead, no_entity}) == 3


@pytest.mark.unit
def test_event_hash_ignores_key_order():
    forward = generate_event_hash("t", "e", ActorType.USER, "u1", {"a": 1, "b": 2})
    backward = generate_event_hash("t", "e", ActorType.USER, "u1", {"b": 2, "a": 1})
    other_actor = generate_event_hash("t", "e", ActorType.SYSTEM, "u1", {"a": 1, "b": 2})

    assert forward == backward
    assert forward != other_actor


@pytest.mark.unit
@pytest.mark.asyncio
@freeze_time("2024-12-09 12:00:00")
async def test_record_writes_log():
    store = InMemoryDocumentStore()
    recorder = ActivityRecorder(store)

    with correlation_context("req_abc123"):
        entry = await recorder.record(
            "t", ActivityEventType.CO_BROKER_ADDED, ActorType.USER, "user_1", CO_BROKER_ADDED_METADATA
        )

    assert entry is not None
    assert entry.event_type == "co_broker_added"
    assert entry.request_id == "req_abc123"
    assert entry.timestamp == datetime(2024, 12, 9, 12, 0, tzinfo=timezone.utc)

    logs = await recorder.list_by_event_type("t", ActivityEventType.CO_BROKER_ADDED)
    assert [log.id for log in logs] == [entry.id]
    assert logs[0].metadata == CO_BROKER_ADDED_METADATA


@pytest.mark.unit
@pytest.mark.asyncio
async def test_record_failure_is_swallowed():
    """Test that a failing store never propagates out of record."""
    store = InMemoryDocumentStore()
    store.create = AsyncMock(side_effect=StoreFailureError("write timeout"))
    recorder = ActivityRecorder(store)

    entry = await recorder.record("t", ActivityEventType.LISTING_CREATED, metadata={"listing_id": "l1"})

    assert entry is None
    store.create.assert_awaited_once()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_for_property_filters_by_metadata():
    store = InMemoryDocumentStore()
    recorder = ActivityRecorder(store)
    await recorder.record("t", "listing_created", metadata={"property_id": "p1", "listing_id": "l1"})
    await recorder.record("t", "listing_created", metadata={"property_id": "p2", "listing_id": "l2"})
    await recorder.record("other", "listing_created", metadata={"property_id": "p1", "listing_id": "l3"})

    timeline = await recorder.list_for_property("t", "p1")

    assert [log.metadata["listing_id"] for log in timeline] == ["l1"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_requires_tenant():
    recorder = ActivityRecorder(InMemoryDocumentStore())

    with pytest.raises(InvalidInputError):
        await recorder.list_for_property("", "p1")
    with pytest.raises(InvalidInputError):
        await recorder.list_by_event_type("", "listing_created")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_by_actor():
    recorder = ActivityRecorder(InMemoryDocumentStore())
    await recorder.record("t", "listing_created", ActorType.USER, "user_1", {"listing_id": "l1"})
    await recorder.record("t", "listing_created", ActorType.USER, "user_2", {"listing_id": "l2"})
    await recorder.record("t", "canonical_listing_assigned", ActorType.SYSTEM, None, {"listing_id": "l1"})

    by_user = await recorder.list_by_actor("t", ActorType.USER)
    by_one_user = await recorder.list_by_actor("t", "user", "user_2")

    assert [log.metadata["listing_id"] for log in by_user] == ["l1", "l2"]
    assert [log.actor_id for log in by_one_user] == ["user_2"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_by_request_groups_one_correlation_id():
    recorder = ActivityRecorder(InMemoryDocumentStore())
    with correlation_context("req_one"):
        await recorder.record("t", "co_broker_removed", metadata={"property_id": "p1"})
        await recorder.record("t", "primary_broker_changed", metadata={"property_id": "p1"})
    with correlation_context("req_two"):
        await recorder.record("t", "listing_created", metadata={"property_id": "p1"})

    logs = await recorder.list_by_request("t", "req_one")

    assert [log.event_type for log in logs] == ["co_broker_removed", "primary_broker_changed"]
    with pytest.raises(InvalidInputError):
        await recorder.list_by_request("t", "")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_event_id_lookup_within_bucket(freeze_time_fixture):
    """Test that events on one entity within five minutes share an event id."""
    recorder = ActivityRecorder(InMemoryDocumentStore())
    first = await recorder.record("t", "listing_updated", metadata={"listing_id": "l1"})
    freeze_time_fixture.tick(120)
    second = await recorder.record("t", "listing_updated", metadata={"listing_id": "l1"})
    freeze_time_fixture.tick(300)
    third = await recorder.record("t", "listing_updated", metadata={"listing_id": "l1"})

    assert first.event_id == second.event_id
    assert third.event_id != first.event_id
    found = await recorder.get_by_event_id("t", third.event_id)
    assert found.id == third.id
    assert await recorder.get_by_event_id("t", "unknown") is None


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_by_date_range(freeze_time_fixture):
    recorder = ActivityRecorder(InMemoryDocumentStore())
    await recorder.record("t", "listing_created", metadata={"listing_id": "l1"})
    freeze_time_fixture.move_to("2024-12-10 09:00:00")
    await recorder.record("t", "listing_created", metadata={"listing_id": "l2"})
    freeze_time_fixture.move_to("2024-12-11 09:00:00")
    await recorder.record("t", "listing_created", metadata={"listing_id": "l3"})

    logs = await recorder.list_by_date_range(
        "t",
        datetime(2024, 12, 10, tzinfo=timezone.utc),
        datetime(2024, 12, 11, 9, tzinfo=timezone.utc),
    )

    assert [log.metadata["listing_id"] for log in logs] == ["l2"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_by_date_range_rejects_bad_bounds():
    recorder = ActivityRecorder(InMemoryDocumentStore())
    start = datetime(2024, 12, 10, tzinfo=timezone.utc)

    with pytest.raises(InvalidInputError):
        await recorder.list_by_date_range("t", start, start)
    with pytest.raises(InvalidInputError):
        await recorder.list_by_date_range("t", datetime(2024, 12, 10), datetime(2024, 12, 11))


@pytest.mark.unit
@pytest.mark.asyncio
async def test_list_for_entity_matches_any_entity_key():
    recorder = ActivityRecorder(InMemoryDocumentStore())
    await recorder.record("t", "co_broker_added", metadata={"property_id": "p1", "broker_id": "b1"})
    await recorder.record("t", "listing_created", metadata={"listing_id": "l1", "broker_id": "b1"})
    await recorder.record("t", "listing_created", metadata={"listing_id": "l2", "broker_id": "b2"})

    timeline = await recorder.list_for_entity("t", "b1")

    assert [log.event_type for log in timeline] == ["co_broker_added", "listing_created"]
