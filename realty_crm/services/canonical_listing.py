"""Canonical listing selector.

Chooses which of a property's competing listings represents it publicly and
keeps ``Property.canonical_listing_id`` in step with the listing flags. A
canonical listing is always active; successors are picked by a linear scan in
creation order.
"""

from typing import Any, Optional

from realty_crm.models.activity import ActivityEventType, ActorType
from realty_crm.models.listing import CanonicalConsistencyReport, Listing
from realty_crm.models.property import Property
from realty_crm.services.activity_recorder import ActivityRecorder
from realty_crm.services.directory import BrokerDirectory, PropertyDirectory
from realty_crm.services.listing_store import ListingStore
from realty_crm.services.property_locks import PropertyLocks
from realty_crm.utils.config import EngineConfig
from realty_crm.utils.errors import (
    InvalidInputError,
    InvariantViolationError,
    NotFoundError,
)
from realty_crm.utils.logging import get_structured_logger, timed

logger = get_structured_logger(__name__)

CONTENT_FIELDS = {"title", "description", "photos", "videos", "meta_title", "meta_description"}
PROTECTED_FIELDS = {"id", "tenant_id", "property_id", "broker_id", "is_canonical", "is_active", "created_at"}


def _require(**values: Optional[str]) -> None:
    for name, value in values.items():
        if not value:
            raise InvalidInputError(f"{name} is required")


def _require_text(**values: Any) -> None:
    for name, value in values.items():
        if not isinstance(value, str) or not value.strip():
            raise InvalidInputError(f"{name} is required")


class CanonicalListingSelector:
    """Owns every write to listing flags and the property canonical cache."""

    def __init__(
        self,
        listings: ListingStore,
        properties: PropertyDirectory,
        brokers: BrokerDirectory,
        recorder: ActivityRecorder,
        locks: PropertyLocks,
        scan_limit: int = EngineConfig.LISTING_SCAN_LIMIT,
    ):
        self.listings = listings
        self.properties = properties
        self.brokers = brokers
        self.recorder = recorder
        self.locks = locks
        self.scan_limit = scan_limit

    @timed("canonical_listing.create_listing")
    async def create_listing(
        self,
        listing: Listing,
        actor_type: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
    ) -> Listing:
        """Create an active listing.

        It becomes canonical when the property has no active canonical listing,
        which is always the case for its first listing.
        """
        _require(
            tenant_id=listing.tenant_id,
            property_id=listing.property_id,
            broker_id=listing.broker_id,
        )
        _require_text(title=listing.title, description=listing.description)

        tenant_id, property_id = listing.tenant_id, listing.property_id
        await self.properties.get(tenant_id, property_id)
        await self.brokers.get(tenant_id, listing.broker_id)

        async with self.locks.hold(tenant_id, property_id):
            current = await self.listings.list_canonical(tenant_id, property_id)
            becomes_canonical = not any(other.is_active for other in current)
            created = await self.listings.create(
                listing.model_copy(update={"is_active": True, "is_canonical": False})
            )
            if becomes_canonical:
                # also clears flags left on inactive listings
                created, _ = await self._promote(created)

        logger.info(
            "Listing created",
            tenant_id=tenant_id,
            property_id=property_id,
            listing_id=created.id,
            broker_id=created.broker_id,
            is_canonical=created.is_canonical,
        )

        if created.is_canonical:
            await self.recorder.record(tenant_id, ActivityEventType.CANONICAL_LISTING_ASSIGNED, actor_type, actor_id, {
                "property_id": property_id,
                "listing_id": created.id,
                "broker_id": created.broker_id,
            })
        await self.recorder.record(tenant_id, ActivityEventType.LISTING_CREATED, actor_type, actor_id, {
            "listing_id": created.id,
            "property_id": property_id,
            "broker_id": created.broker_id,
            "is_canonical": created.is_canonical,
        })
        return created

    @timed("canonical_listing.set_canonical")
    async def set_canonical(
        self,
        tenant_id: str,
        listing_id: str,
        actor_type: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
    ) -> Listing:
        """Promote a listing to canonical. No-op when it already is."""
        _require(tenant_id=tenant_id, listing_id=listing_id)
        listing = await self.listings.get(tenant_id, listing_id)

        async with self.locks.hold(tenant_id, listing.property_id):
            listing = await self.listings.get(tenant_id, listing_id)
            if listing.is_canonical:
                return listing
            if not listing.is_active:
                raise InvariantViolationError("an inactive listing cannot be canonical")
            promoted, previous = await self._promote(listing)

        await self._record_canonical_change(promoted, previous, actor_type, actor_id)
        return promoted

    @timed("canonical_listing.delete_listing")
    async def delete_listing(
        self,
        tenant_id: str,
        listing_id: str,
        actor_type: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
    ) -> Listing:
        """Delete a listing, resolving the canonical successor first."""
        _require(tenant_id=tenant_id, listing_id=listing_id)
        listing = await self.listings.get(tenant_id, listing_id)

        promoted = None
        cleared = False
        async with self.locks.hold(tenant_id, listing.property_id):
            listing = await self.listings.get(tenant_id, listing_id)
            if listing.is_canonical:
                successor = await self._select_successor(tenant_id, listing.property_id, exclude_id=listing.id)
                if successor is not None:
                    promoted, _ = await self._promote(successor)
                else:
                    await self._clear_cache(tenant_id, listing.property_id)
                    cleared = True
            await self.listings.delete(listing)

        logger.info(
            "Listing deleted",
            tenant_id=tenant_id,
            property_id=listing.property_id,
            listing_id=listing.id,
            was_canonical=listing.is_canonical,
            successor_id=promoted.id if promoted else None,
        )

        if promoted is not None:
            await self._record_canonical_change(promoted, listing, actor_type, actor_id)
        if cleared:
            await self._record_canonical_cleared(listing, actor_type, actor_id)
        await self.recorder.record(tenant_id, ActivityEventType.LISTING_DELETED, actor_type, actor_id, {
            "listing_id": listing.id,
            "property_id": listing.property_id,
            "was_canonical": listing.is_canonical,
        })
        return listing

    @timed("canonical_listing.activate_listing")
    async def activate_listing(
        self,
        tenant_id: str,
        listing_id: str,
        actor_type: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
    ) -> Listing:
        """Flag a listing active; it becomes canonical if the property has none."""
        _require(tenant_id=tenant_id, listing_id=listing_id)
        listing = await self.listings.get(tenant_id, listing_id)

        promoted = None
        async with self.locks.hold(tenant_id, listing.property_id):
            listing = await self.listings.get(tenant_id, listing_id)
            was_active = listing.is_active
            if not was_active:
                listing = await self.listings.update(listing, {"is_active": True})

            canonical = await self.listings.list_canonical(tenant_id, listing.property_id)
            holder = next((c for c in canonical if c.is_active and c.id != listing.id), None)
            if holder is None and not (was_active and listing.is_canonical):
                listing, _ = await self._promote(listing)
                promoted = listing
            elif holder is not None and len(canonical) > 1:
                # stale flags on inactive listings, possibly the one just reactivated
                await self.listings.unset_canonical_for_property(
                    tenant_id, listing.property_id, keep_listing_id=holder.id
                )
                listing = await self.listings.get(tenant_id, listing_id)

        if not was_active:
            await self.recorder.record(tenant_id, ActivityEventType.LISTING_ACTIVATED, actor_type, actor_id, {
                "listing_id": listing.id,
                "property_id": listing.property_id,
            })
        if promoted is not None:
            await self._record_canonical_change(promoted, None, actor_type, actor_id)
        return listing

    @timed("canonical_listing.deactivate_listing")
    async def deactivate_listing(
        self,
        tenant_id: str,
        listing_id: str,
        actor_type: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
    ) -> Listing:
        """Flag a listing inactive, handing canonical status to a successor.

        Without an active successor the listing is demoted and the property
        cache is cleared, the same as on deletion.
        """
        _require(tenant_id=tenant_id, listing_id=listing_id)
        listing = await self.listings.get(tenant_id, listing_id)

        promoted = None
        cleared = False
        async with self.locks.hold(tenant_id, listing.property_id):
            listing = await self.listings.get(tenant_id, listing_id)
            if not listing.is_active and not listing.is_canonical:
                return listing
            was_canonical = listing.is_canonical

            listing = await self.listings.update(listing, {"is_active": False})
            if was_canonical:
                successor = await self._select_successor(tenant_id, listing.property_id, exclude_id=listing.id)
                if successor is not None:
                    promoted, _ = await self._promote(successor)
                    listing = await self.listings.get(tenant_id, listing_id)
                else:
                    listing = await self.listings.update(listing, {"is_canonical": False})
                    await self._clear_cache(tenant_id, listing.property_id)
                    cleared = True

        logger.info(
            "Listing deactivated",
            tenant_id=tenant_id,
            property_id=listing.property_id,
            listing_id=listing.id,
            was_canonical=was_canonical,
            successor_id=promoted.id if promoted else None,
        )

        if promoted is not None:
            await self._record_canonical_change(promoted, listing, actor_type, actor_id)
        if cleared:
            await self._record_canonical_cleared(listing, actor_type, actor_id)
        await self.recorder.record(tenant_id, ActivityEventType.LISTING_DEACTIVATED, actor_type, actor_id, {
            "listing_id": listing.id,
            "property_id": listing.property_id,
            "was_canonical": was_canonical,
        })
        return listing

    @timed("canonical_listing.update_listing")
    async def update_listing(
        self,
        tenant_id: str,
        listing_id: str,
        fields: dict[str, Any],
        actor_type: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
    ) -> Listing:
        """Edit advert content. Flags and ownership go through dedicated operations."""
        _require(tenant_id=tenant_id, listing_id=listing_id)
        if not fields:
            raise InvalidInputError("no fields to update")

        protected = PROTECTED_FIELDS.intersection(fields)
        if protected:
            raise InvariantViolationError(f"cannot change {', '.join(sorted(protected))} through update")
        unknown = set(fields) - CONTENT_FIELDS
        if unknown:
            raise InvalidInputError(f"unknown listing fields: {', '.join(sorted(unknown))}")
        for name in ("title", "description"):
            if name in fields:
                _require_text(**{name: fields[name]})

        listing = await self.listings.get(tenant_id, listing_id)
        updated = await self.listings.update(listing, dict(fields))

        await self.recorder.record(tenant_id, ActivityEventType.LISTING_UPDATED, actor_type, actor_id, {
            "listing_id": listing_id,
            "property_id": updated.property_id,
            "fields": sorted(fields),
        })
        return updated

    async def get_listing(self, tenant_id: str, listing_id: str) -> Listing:
        _require(tenant_id=tenant_id, listing_id=listing_id)
        return await self.listings.get(tenant_id, listing_id)

    async def get_canonical_listing(self, tenant_id: str, property_id: str) -> Listing:
        _require(tenant_id=tenant_id, property_id=property_id)
        canonical = await self.listings.list_canonical(tenant_id, property_id)
        if not canonical:
            raise NotFoundError("canonical listing", property_id)
        return canonical[0]

    async def list_property_listings(self, tenant_id: str, property_id: str) -> list[Listing]:
        _require(tenant_id=tenant_id, property_id=property_id)
        return await self.listings.list_by_property(tenant_id, property_id)

    async def list_broker_listings(self, tenant_id: str, broker_id: str, limit: Optional[int] = None) -> list[Listing]:
        _require(tenant_id=tenant_id, broker_id=broker_id)
        return await self.listings.list_by_broker(tenant_id, broker_id, limit=limit)

    async def list_active_listings(self, tenant_id: str, limit: Optional[int] = None) -> list[Listing]:
        """Active listings of the tenant across all properties."""
        _require(tenant_id=tenant_id)
        return await self.listings.list_active(tenant_id, limit=limit)

    async def check_canonical_consistency(self, tenant_id: str, property_id: str) -> CanonicalConsistencyReport:
        """Recompute the canonical id from listing flags and compare it to the property cache."""
        _require(tenant_id=tenant_id, property_id=property_id)
        prop = await self.properties.get(tenant_id, property_id)
        listings = await self.listings.list_by_property(tenant_id, property_id)

        flagged = [listing for listing in listings if listing.is_canonical]
        active_flagged = [listing for listing in flagged if listing.is_active]
        return CanonicalConsistencyReport(
            tenant_id=tenant_id,
            property_id=property_id,
            cached_listing_id=prop.canonical_listing_id or None,
            flagged_listing_ids=[listing.id for listing in flagged],
            expected_listing_id=active_flagged[0].id if active_flagged else None,
            inactive_canonical_ids=[listing.id for listing in flagged if not listing.is_active],
        )

    @timed("canonical_listing.reconcile_canonical")
    async def reconcile_canonical(
        self,
        tenant_id: str,
        property_id: str,
        actor_type: ActorType = ActorType.SYSTEM,
        actor_id: Optional[str] = None,
    ) -> CanonicalConsistencyReport:
        """Repair a property so that exactly one active listing (if any) is canonical."""
        _require(tenant_id=tenant_id, property_id=property_id)

        promoted = None
        async with self.locks.hold(tenant_id, property_id):
            report = await self.check_canonical_consistency(tenant_id, property_id)
            if report.is_consistent and (report.expected_listing_id or not await self._has_active(tenant_id, property_id)):
                return report

            listings = await self.listings.list_by_property(tenant_id, property_id)
            target = next((c for c in listings if c.is_canonical and c.is_active), None)
            if target is None:
                target = next((c for c in listings if c.is_active), None)

            if target is not None:
                promoted, _ = await self._promote(target)
            else:
                await self.listings.unset_canonical_for_property(tenant_id, property_id)
                await self._clear_cache(tenant_id, property_id)

            logger.warning(
                "Canonical listing state repaired",
                tenant_id=tenant_id,
                property_id=property_id,
                cached_listing_id=report.cached_listing_id,
                flagged_listing_ids=report.flagged_listing_ids,
                canonical_listing_id=promoted.id if promoted else None,
            )
            repaired = await self.check_canonical_consistency(tenant_id, property_id)

        if promoted is not None:
            await self.recorder.record(tenant_id, ActivityEventType.CANONICAL_LISTING_ASSIGNED, actor_type, actor_id, {
                "property_id": property_id,
                "listing_id": promoted.id,
                "broker_id": promoted.broker_id,
                "reconciled": True,
            })
        return repaired

    async def _has_active(self, tenant_id: str, property_id: str) -> bool:
        listings = await self.listings.list_by_property(tenant_id, property_id)
        return any(listing.is_active for listing in listings)

    async def _select_successor(self, tenant_id: str, property_id: str, exclude_id: str) -> Optional[Listing]:
        candidates = await self.listings.list_by_property(tenant_id, property_id, limit=self.scan_limit)
        if len(candidates) >= self.scan_limit and not any(
            c.id != exclude_id and c.is_active for c in candidates
        ):
            logger.debug(
                "Successor scan exceeded page, scanning all listings",
                tenant_id=tenant_id,
                property_id=property_id,
                scan_limit=self.scan_limit,
            )
            candidates = await self.listings.list_by_property(tenant_id, property_id)
        for candidate in candidates:
            if candidate.id != exclude_id and candidate.is_active:
                return candidate
        return None

    async def _promote(self, listing: Listing) -> tuple[Listing, Optional[Listing]]:
        """Clear other canonical flags, flag ``listing`` and write the property cache.

        Caller holds the property lock. Returns the promoted listing and the
        listing that was canonical before, if any.
        """
        tenant_id, property_id = listing.tenant_id, listing.property_id
        current = await self.listings.list_canonical(tenant_id, property_id)
        previous = next((other for other in current if other.id != listing.id), None)

        await self.listings.unset_canonical_for_property(tenant_id, property_id, keep_listing_id=listing.id)
        promoted = listing
        if not listing.is_canonical:
            promoted = await self.listings.update(listing, {"is_canonical": True})

        prop = await self.properties.get(tenant_id, property_id)
        if prop.canonical_listing_id != promoted.id:
            await self.properties.set_canonical_listing(prop, promoted.id)
        return promoted, previous

    async def _clear_cache(self, tenant_id: str, property_id: str) -> Property:
        prop = await self.properties.get(tenant_id, property_id)
        if prop.canonical_listing_id:
            prop = await self.properties.set_canonical_listing(prop, None)
        return prop

    async def _record_canonical_change(
        self,
        promoted: Listing,
        previous: Optional[Listing],
        actor_type: ActorType,
        actor_id: Optional[str],
    ) -> None:
        metadata = {
            "property_id": promoted.property_id,
            "new_listing_id": promoted.id,
        }
        if previous is not None:
            metadata["old_listing_id"] = previous.id
            event = ActivityEventType.CANONICAL_LISTING_CHANGED
        else:
            event = ActivityEventType.CANONICAL_LISTING_ASSIGNED

        logger.info(
            "Canonical listing changed",
            tenant_id=promoted.tenant_id,
            property_id=promoted.property_id,
            new_listing_id=promoted.id,
            old_listing_id=previous.id if previous else None,
        )
        await self.recorder.record(promoted.tenant_id, event, actor_type, actor_id, metadata)

    async def _record_canonical_cleared(
        self,
        listing: Listing,
        actor_type: ActorType,
        actor_id: Optional[str],
    ) -> None:
        logger.info(
            "Property left without canonical listing",
            tenant_id=listing.tenant_id,
            property_id=listing.property_id,
            old_listing_id=listing.id,
        )
        await self.recorder.record(listing.tenant_id, ActivityEventType.CANONICAL_LISTING_CLEARED, actor_type, actor_id, {
            "property_id": listing.property_id,
            "old_listing_id": listing.id,
        })
