"""Exceptions for trash operations."""

from typing import Optional


class TrashError(Exception):
    """Base exception for trash operations."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__(message)


class RecordNotFoundError(TrashError):
    """Raised when a single-record operation targets an unknown id."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        super().__init__(f"{entity_type} {entity_id} not found", entity_id=entity_id)


class NotDeletedException(TrashError):
    """Raised when attempting to purge a record that is not in the trash."""

    def __init__(self, entity_id: str):
        super().__init__(
            f"Entity {entity_id} is not in the trash and cannot be purged",
            entity_id=entity_id,
        )


class RestoreNotAllowedException(TrashError):
    """Raised when restoration is not allowed due to business rules."""

    def __init__(self, entity_id: str, reason: str):
        self.reason = reason
        super().__init__(
            f"Entity {entity_id} cannot be restored: {reason}",
            entity_id=entity_id,
        )


class UnknownEntityTypeError(TrashError):
    """Raised when a trash operation names a type with no registered model."""

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Unknown trash entity type: {entity_type}")


class PurgeNotAllowedException(TrashError):
    """Raised when a trashed record still holds active related records."""

    def __init__(self, entity_id: str, reason: str):
        self.reason = reason
        super().__init__(
            f"Entity {entity_id} cannot be permanently deleted: {reason}",
            entity_id=entity_id,
        )
