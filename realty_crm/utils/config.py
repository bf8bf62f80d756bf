"""Engine configuration read from environment variables."""

import os


class EngineConfig:
    """Store and engine settings."""

    STORE_BACKEND = os.environ.get("STORE_BACKEND", "supabase").lower()
    STORE_BATCH_LIMIT = int(os.environ.get("STORE_BATCH_LIMIT", "500"))
    LISTING_SCAN_LIMIT = int(os.environ.get("LISTING_SCAN_LIMIT", "100"))
