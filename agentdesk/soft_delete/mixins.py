"""
SQLAlchemy mixins for soft delete functionality.

Any model that can be sent to the trash mixes in ``SoftDeleteMixin``. Models
whose children go to the trash with them use ``CascadeSoftDeleteMixin``.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from sqlalchemy import Boolean, CheckConstraint, String, event
from sqlalchemy.orm import Mapped, Query, Session, declared_attr, mapped_column

from ..db import UTCDateTime

SOFT_DELETE_FIELDS = (
    "is_deleted",
    "deleted_at",
    "cascade_deleted_from_type",
    "cascade_deleted_from_id",
)


class SoftDeleteMixin:
    """
    Mixin to add soft delete functionality to SQLAlchemy models.

    Provides:
    - Soft delete fields (is_deleted, deleted_at)
    - Cascade tracking fields so a restore can bring children back
    - Idempotent soft_delete() and restore()
    - Query helpers for active, deleted and all rows

    Usage:
        class Lead(SoftDeleteMixin, Base):
            __tablename__ = 'leads'
            id: Mapped[str] = mapped_column(String(40), primary_key=True)
    """

    is_deleted: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, index=True
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Deletion cascade tracking
    cascade_deleted_from_type: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    cascade_deleted_from_id: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )

    @declared_attr
    def __table_args__(cls: Any) -> Any:
        """Add table-level constraints."""
        table_name = getattr(cls, "__tablename__", cls.__name__.lower())

        constraint = CheckConstraint(
            "(is_deleted = false AND deleted_at IS NULL) OR "
            "(is_deleted = true AND deleted_at IS NOT NULL)",
            name=f"ck_{table_name}_deletion_consistency",
        )
        return (constraint,)

    @property
    def entity_label(self) -> str:
        """Type and id used in log messages and errors."""
        return f"{self.__class__.__name__} {getattr(self, 'id', 'unknown')}"

    def soft_delete(
        self,
        deleted_at: Optional[datetime] = None,
        cascade_from: Optional[Tuple[str, str]] = None,
    ) -> bool:
        """
        Move this record to the trash.

        Deleting a record that is already in the trash changes nothing and
        keeps the original ``deleted_at``.

        Args:
            deleted_at: Deletion timestamp, defaults to now (UTC)
            cascade_from: Optional tuple of (parent_type, parent_id) if cascade deleted

        Returns:
            True if the record changed state
        """
        if self.is_deleted:
            return False

        self.is_deleted = True
        self.deleted_at = deleted_at or datetime.now(timezone.utc)

        if cascade_from:
            self.cascade_deleted_from_type = cascade_from[0]
            self.cascade_deleted_from_id = cascade_from[1]

        return True

    def restore(self) -> bool:
        """
        Bring this record back from the trash.

        Restoring an active record is a no-op.

        Returns:
            True if the record changed state
        """
        if not self.is_deleted:
            return False

        self.is_deleted = False
        self.deleted_at = None
        self.cascade_deleted_from_type = None
        self.cascade_deleted_from_id = None
        return True

    @property
    def was_cascade_deleted(self) -> bool:
        return self.is_deleted and self.cascade_deleted_from_type is not None

    @classmethod
    def query_active(cls, session: Session) -> Query[Any]:
        """
        Return query for active (non-deleted) records only.

        Args:
            session: SQLAlchemy session

        Returns:
            Query filtered to exclude deleted records
        """
        return session.query(cls).filter(cls.is_deleted.is_(False))

    @classmethod
    def query_deleted(cls, session: Session) -> Query[Any]:
        """
        Return query for deleted records only.

        Args:
            session: SQLAlchemy session

        Returns:
            Query filtered to include only deleted records
        """
        return session.query(cls).filter(cls.is_deleted.is_(True))

    @classmethod
    def query_all(cls, session: Session) -> Query[Any]:
        """Return query for all records including deleted."""
        return session.query(cls)

    def to_dict(self, include_deleted_fields: bool = True) -> Dict[str, Any]:
        """
        Convert model to dictionary representation.

        Args:
            include_deleted_fields: Whether to include soft delete fields

        Returns:
            Dictionary representation of the model
        """
        result: Dict[str, Any] = {}

        table = getattr(self, "__table__", None)
        if table is None:
            return result

        for column in table.columns:
            value = getattr(self, column.key, None)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            elif isinstance(value, Enum):
                value = value.value
            result[column.key] = value

        if not include_deleted_fields:
            for field in SOFT_DELETE_FIELDS:
                result.pop(field, None)

        return result


class CascadeSoftDeleteMixin(SoftDeleteMixin):
    """
    Extended mixin that supports cascading soft deletes.

    When a parent record goes to the trash, every related child listed in
    ``__soft_delete_cascade__`` goes with it and remembers the parent. Restoring
    the parent brings back exactly those children.
    """

    # Relationship attribute names to cascade into
    __soft_delete_cascade__: List[str] = []

    def _cascade_children(self) -> List[SoftDeleteMixin]:
        children: List[SoftDeleteMixin] = []
        for relationship_name in self.__soft_delete_cascade__:
            related = getattr(self, relationship_name, None)
            if related is None:
                continue
            items = related if isinstance(related, (list, tuple, set)) else [related]
            children.extend(item for item in items if isinstance(item, SoftDeleteMixin))
        return children

    def soft_delete(  # type: ignore[override]
        self,
        deleted_at: Optional[datetime] = None,
        cascade_from: Optional[Tuple[str, str]] = None,
    ) -> List[SoftDeleteMixin]:
        """
        Soft delete this record and cascade to related records.

        Args:
            deleted_at: Deletion timestamp shared by the whole cascade
            cascade_from: Optional tuple of (parent_type, parent_id)

        Returns:
            List of all deleted entities (including cascaded), empty if this
            record was already in the trash
        """
        deleted_at = deleted_at or datetime.now(timezone.utc)
        if not super().soft_delete(deleted_at, cascade_from):
            return []

        deleted_entities: List[SoftDeleteMixin] = [self]
        parent = (self.__class__.__name__, str(getattr(self, "id", "unknown")))

        for item in self._cascade_children():
            if isinstance(item, CascadeSoftDeleteMixin):
                deleted_entities.extend(
                    item.soft_delete(deleted_at=deleted_at, cascade_from=parent)
                )
            elif item.soft_delete(deleted_at=deleted_at, cascade_from=parent):
                deleted_entities.append(item)

        return deleted_entities

    def restore(self) -> List[SoftDeleteMixin]:  # type: ignore[override]
        """
        Restore this record and the children it cascaded to.

        Children that were deleted on their own before the parent stay in
        the trash.

        Returns:
            List of all restored entities, empty if nothing changed
        """
        if not super().restore():
            return []

        restored: List[SoftDeleteMixin] = [self]
        parent_type = self.__class__.__name__
        parent_id = str(getattr(self, "id", "unknown"))

        for item in self._cascade_children():
            if (
                item.cascade_deleted_from_type != parent_type
                or item.cascade_deleted_from_id != parent_id
            ):
                continue
            if isinstance(item, CascadeSoftDeleteMixin):
                restored.extend(item.restore())
            elif item.restore():
                restored.append(item)

        return restored


def prevent_hard_delete(mapper: Any, connection: Any, target: Any) -> None:
    """
    Prevent hard deletes on active soft-deletable rows.

    Rows already in the trash may be purged. Connected to SQLAlchemy's
    before_delete event.
    """
    if isinstance(target, SoftDeleteMixin) and not target.is_deleted:
        raise RuntimeError(
            f"Hard delete attempted on active {target.__class__.__name__}. "
            "Use soft_delete() first."
        )


def register_soft_delete_listeners(
    base_class: Type[Any], allow: Optional[List[Type[Any]]] = None
) -> None:
    """
    Register SQLAlchemy event listeners for soft delete functionality.

    Args:
        base_class: The declarative base class
        allow: Models that may be hard deleted while active
    """
    allowed = tuple(allow or ())
    for mapper in base_class.registry.mappers:
        model = mapper.class_
        if not issubclass(model, SoftDeleteMixin) or issubclass(model, allowed):
            continue
        if not event.contains(model, "before_delete", prevent_hard_delete):
            event.listen(model, "before_delete", prevent_hard_delete)
