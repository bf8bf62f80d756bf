"""Shared pytest fixtures and configuration."""

import os
import pytest
import pytest_asyncio
from unittest.mock import Mock
from freezegun import freeze_time

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LOG_FORMAT", "text")

from realty_crm.models.role import BrokerRoleKind
from realty_crm.services.document_store import InMemoryDocumentStore
from realty_crm.services.engine_factory import build_engines
from tests.utils.factories import make_broker, make_property


@pytest.fixture
def tenant_id():
    return "tenant_alpha"


@pytest.fixture
def store():
    """Fresh in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def engines(store):
    """Role engine, listing selector and routing resolver over one store."""
    return build_engines(store)


@pytest_asyncio.fixture
async def prop(engines, tenant_id):
    """A stored property without brokers or listings."""
    return await engines.properties.create(make_property(tenant_id))


@pytest_asyncio.fixture
async def broker_a(engines, tenant_id):
    return await engines.brokers.create(make_broker(tenant_id, name="Ana Souza"))


@pytest_asyncio.fixture
async def broker_b(engines, tenant_id):
    return await engines.brokers.create(make_broker(tenant_id, name="Bruno Lima"))


@pytest_asyncio.fixture
async def broker_c(engines, tenant_id):
    return await engines.brokers.create(make_broker(tenant_id, name="Carla Dias"))


@pytest_asyncio.fixture
async def originated(engines, tenant_id, prop, broker_a):
    """Property with broker A as originating (and primary) broker."""
    return await engines.roles.assign_role(
        tenant_id, prop.id, broker_a.id, BrokerRoleKind.ORIGINATING, is_primary=True
    )


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client for testing."""
    client = Mock()
    client.table = Mock(return_value=Mock())
    return client


@pytest.fixture
def freeze_time_fixture():
    """Fixture for freezing time in tests."""
    with freeze_time("2024-12-09 12:00:00") as frozen_time:
        yield frozen_time
