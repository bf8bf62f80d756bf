"""Wiring of stores, collaborators and engines."""

from dataclasses import dataclass
from typing import Optional

from realty_crm.services.activity_recorder import ActivityRecorder
from realty_crm.services.canonical_listing import CanonicalListingSelector
from realty_crm.services.directory import BrokerDirectory, PropertyDirectory
from realty_crm.services.document_store import DocumentStore, InMemoryDocumentStore
from realty_crm.services.lead_routing import LeadRoutingResolver
from realty_crm.services.listing_store import ListingStore
from realty_crm.services.property_locks import PropertyLocks
from realty_crm.services.role_engine import RoleConsistencyEngine
from realty_crm.services.role_store import RoleStore
from realty_crm.services.supabase_client import SupabaseDocumentStore
from realty_crm.utils.config import EngineConfig
from realty_crm.utils.errors import InvalidInputError
from realty_crm.utils.logging import get_structured_logger
from realty_crm.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)


@dataclass
class Engines:
    """Everything a request handler needs, sharing one store and one lock registry."""
    store: DocumentStore
    properties: PropertyDirectory
    brokers: BrokerDirectory
    recorder: ActivityRecorder
    roles: RoleConsistencyEngine
    listings: CanonicalListingSelector
    routing: LeadRoutingResolver


def create_store(backend: Optional[str] = None) -> DocumentStore:
    """Build the document store named by ``backend`` or STORE_BACKEND."""
    backend = (backend or EngineConfig.STORE_BACKEND).lower()
    if backend == "memory":
        return InMemoryDocumentStore()
    if backend == "supabase":
        return SupabaseDocumentStore()
    raise InvalidInputError(f"unknown store backend: {backend}")


def build_engines(store: Optional[DocumentStore] = None) -> Engines:
    store = store or create_store()
    locks = PropertyLocks()
    properties = PropertyDirectory(store)
    brokers = BrokerDirectory(store)
    recorder = ActivityRecorder(store)

    role_engine = RoleConsistencyEngine(RoleStore(store), properties, brokers, recorder, locks)
    selector = CanonicalListingSelector(ListingStore(store), properties, brokers, recorder, locks)

    logger.info("Engines initialized", store=type(store).__name__)
    return Engines(
        store=store,
        properties=properties,
        brokers=brokers,
        recorder=recorder,
        roles=role_engine,
        listings=selector,
        routing=LeadRoutingResolver(role_engine),
    )


def bootstrap() -> Engines:
    """Process entry point: configure logging, then wire engines from the environment."""
    LoggingConfig.setup_logging()
    return build_engines()
