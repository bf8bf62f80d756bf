"""Activity metadata samples."""

CANONICAL_CHANGED_METADATA = {
    "property_id": "01JEPROPERTY000000000000001",
    "old_listing_id": "01JELISTING0000000000000001",
    "new_listing_id": "01JELISTING0000000000000002",
}

CO_BROKER_ADDED_METADATA = {
    "role_id": "01JEROLE00000000000000000001",
    "property_id": "01JEPROPERTY000000000000001",
    "broker_id": "01JEBROKER0000000000000001",
    "role": "co_broker",
    "is_primary": False,
}

LEAD_METADATA = {
    "lead_id": "01JELEAD000000000000000001",
}
