"""Error handling utilities."""

from typing import Optional


class CRMError(Exception):
    """Base exception for the realty CRM engine."""
    pass


class NotFoundError(CRMError):
    """Referenced tenant, property, broker, role or listing does not exist."""

    def __init__(self, entity: str, entity_id: Optional[str] = None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id:
            super().__init__(f"{entity} not found: {entity_id}")
        else:
            super().__init__(f"{entity} not found")


class InvalidInputError(CRMError):
    """A required field is missing or malformed."""
    pass


class ConflictError(CRMError):
    """Uniqueness violation (duplicate originating role, duplicate role triple)."""
    pass


class InvariantViolationError(CRMError):
    """Mutation would break a structural rule of a property."""
    pass


class StoreFailureError(CRMError):
    """Underlying persistence operation failed."""
    pass
