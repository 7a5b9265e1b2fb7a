"""
Service layer for the consolidated trash.

Every trashable record type is registered against a trash tab. The service
lists what is in the trash across all types, and moves records in and out
of it one at a time, in bulk per type, or as a mixed selection of trash
items.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type, Union

from sqlalchemy import and_, func
from sqlalchemy.orm import Session

from ..access import check_permission
from ..config import CRMConfig, get_config
from ..models import (
    Deal,
    Lead,
    LeadSource,
    LeadTag,
    OpenHouse,
    SharedDocument,
    SharedFolder,
    Task,
    User,
)
from .exceptions import (
    NotDeletedException,
    PurgeNotAllowedException,
    RecordNotFoundError,
    RestoreNotAllowedException,
    UnknownEntityTypeError,
)
from .mixins import CascadeSoftDeleteMixin, SoftDeleteMixin
from .models import METADATA_ID_PREFIXES, TrashItem, TrashReport, TrashTab

logger = logging.getLogger(__name__)

Describer = Callable[[Any], Tuple[str, str]]


@dataclass
class TrashEntity:
    """How one record type shows up in, and is addressed by, the trash."""

    model: Type[Any]
    describe: Describer
    key_attr: str = "id"
    # (model, column) pairs whose references are cleared when a record is purged
    references: List[Tuple[Type[Any], str]] = field(default_factory=list)
    # Relationship to a parent that must be active while this record is
    parent_attr: Optional[str] = None
    # Attribute kept unique among active records, ignoring case
    unique_attr: Optional[str] = None


def _default_entities() -> Dict[TrashTab, TrashEntity]:
    return {
        TrashTab.LEADS: TrashEntity(
            Lead,
            lambda r: (f"{r.first_name} {r.last_name}", "Contact Lead"),
            references=[(Deal, "lead_id"), (Task, "lead_id")],
        ),
        TrashTab.DEALS: TrashEntity(
            Deal, lambda r: (r.address, f"Deal ({r.lead_name})")
        ),
        TrashTab.OPEN_HOUSES: TrashEntity(
            OpenHouse,
            lambda r: (r.address, "Open House Event"),
            references=[(Lead, "open_house_id")],
        ),
        TrashTab.TEAM_MEMBERS: TrashEntity(
            User,
            lambda r: (f"{r.first_name} {r.last_name}", f"{r.role.value} Account"),
            references=[
                (Lead, "assigned_agent_id"),
                (Deal, "assigned_user_id"),
                (Task, "assigned_user_id"),
                (OpenHouse, "assigned_agent_id"),
            ],
            unique_attr="email",
        ),
        TrashTab.SOURCES: TrashEntity(
            LeadSource, lambda r: (r.name, "Lead Source Meta"), key_attr="name"
        ),
        TrashTab.TAGS: TrashEntity(
            LeadTag, lambda r: (r.name, "Classification Tag"), key_attr="name"
        ),
        TrashTab.FOLDERS: TrashEntity(
            SharedFolder, lambda r: (r.name, "Document Folder")
        ),
        TrashTab.DOCUMENTS: TrashEntity(
            SharedDocument,
            lambda r: (r.name, "Shared Document"),
            parent_attr="folder",
        ),
    }


class TrashService:
    """
    Consolidated trash across every soft-deletable record type.

    Single-record operations raise on unknown ids. Bulk operations skip
    ids they cannot act on, log a warning and return the keys they changed.
    When an ``actor`` is given every operation is checked against the
    permission checker first.
    """

    def __init__(
        self,
        session: Session,
        actor: Optional[User] = None,
        permission_checker: Optional[Callable[..., bool]] = None,
        config: Optional[CRMConfig] = None,
    ):
        """
        Initialize the trash service.

        Args:
            session: SQLAlchemy database session
            actor: User performing the operations, None for system calls
            permission_checker: Function (user, action, entity_type) -> bool
            config: Configuration, defaults to the global configuration
        """
        self.session = session
        self.actor = actor
        self.permission_checker = permission_checker or check_permission
        self.config = config or get_config()
        self.entities: Dict[TrashTab, TrashEntity] = _default_entities()

    def register_entity(
        self,
        tab: Union[TrashTab, str],
        model: Type[Any],
        describe: Optional[Describer] = None,
        key_attr: str = "id",
    ) -> None:
        """
        Register a soft-deletable model under a trash tab.

        Args:
            tab: Tab the model's records appear under
            model: Model class mixing in SoftDeleteMixin
            describe: Function returning (label, sub_label) for a record
            key_attr: Attribute used to address records
        """
        tab = self._tab(tab)
        if tab is TrashTab.ALL:
            raise ValueError("Cannot register a model under the ALL tab")
        if not issubclass(model, SoftDeleteMixin):
            raise TypeError(f"{model.__name__} does not support soft delete")

        if describe is None:

            def describe(record: Any) -> Tuple[str, str]:
                label = getattr(record, "name", None) or getattr(record, key_attr)
                return str(label), model.__name__

        self.entities[tab] = TrashEntity(model, describe, key_attr=key_attr)

    # Lookup helpers

    @staticmethod
    def _tab(tab: Union[TrashTab, str]) -> TrashTab:
        if isinstance(tab, TrashTab):
            return tab
        try:
            return TrashTab(str(tab).upper())
        except ValueError:
            raise UnknownEntityTypeError(str(tab)) from None

    def _entity(self, tab: Union[TrashTab, str]) -> Tuple[TrashTab, TrashEntity]:
        tab = self._tab(tab)
        entity = self.entities.get(tab)
        if entity is None:
            raise UnknownEntityTypeError(tab.value)
        return tab, entity

    def _tabs(self, tab: Union[TrashTab, str]) -> List[TrashTab]:
        tab = self._tab(tab)
        if tab is TrashTab.ALL:
            return [t for t in TrashTab.entity_tabs() if t in self.entities]
        self._entity(tab)
        return [tab]

    def _get(self, entity: TrashEntity, key: str) -> Optional[Any]:
        column = getattr(entity.model, entity.key_attr)
        return entity.model.query_all(self.session).filter(column == key).first()

    def _require(self, tab: TrashTab, entity: TrashEntity, key: str) -> Any:
        record = self._get(entity, key)
        if record is None:
            raise RecordNotFoundError(tab.value, key)
        return record

    def _check(self, action: str, tab: TrashTab) -> None:
        if self.actor is None:
            return
        if not self.permission_checker(self.actor, action, tab.value):
            raise PermissionError(
                f"User {self.actor.id} does not have permission to {action} "
                f"{tab.value} records"
            )

    @staticmethod
    def _dedupe(keys: Iterable[str]) -> List[str]:
        return list(dict.fromkeys(keys))

    # Listing

    def _item(self, tab: TrashTab, entity: TrashEntity, record: Any) -> TrashItem:
        key = str(getattr(record, entity.key_attr))
        label, sub_label = entity.describe(record)
        return TrashItem(
            type=tab,
            id=f"{METADATA_ID_PREFIXES.get(tab, '')}{key}",
            name=key,
            label=label,
            sub_label=sub_label,
            deleted_at=record.deleted_at,
        )

    def list_items(self, tab: Union[TrashTab, str] = TrashTab.ALL) -> List[TrashItem]:
        """
        List the trash, newest deletion first.

        Args:
            tab: ALL for every type, or a single type's tab

        Returns:
            Consolidated trash items
        """
        tabs = self._tabs(tab)
        for t in tabs:
            self._check("view_deleted", t)

        items: List[TrashItem] = []
        for t in tabs:
            entity = self.entities[t]
            for record in entity.model.query_deleted(self.session).all():
                items.append(self._item(t, entity, record))

        items.sort(key=lambda item: item.deleted_at, reverse=True)
        return items

    def counts(self) -> Dict[TrashTab, int]:
        """Number of trashed records per tab. ALL holds the total."""
        result: Dict[TrashTab, int] = {}
        for t in self._tabs(TrashTab.ALL):
            self._check("view_deleted", t)
            result[t] = self.entities[t].model.query_deleted(self.session).count()
        result[TrashTab.ALL] = sum(result.values())
        return result

    # Single record operations

    def soft_delete(self, tab: Union[TrashTab, str], key: str) -> bool:
        """
        Move one record to the trash.

        Args:
            tab: Record type
            key: Record id (name for sources and tags)

        Returns:
            True if the record was moved, False if it was already in the trash

        Raises:
            RecordNotFoundError: No record with that key
            PermissionError: Actor may not delete records
        """
        tab, entity = self._entity(tab)
        self._check("delete", tab)
        record = self._require(tab, entity, key)

        changed = self._soft_delete_record(tab, record)
        self.session.commit()
        return changed

    def restore(self, tab: Union[TrashTab, str], key: str) -> bool:
        """
        Bring one record back from the trash.

        Restoring an active record is a no-op.

        Returns:
            True if the record was restored

        Raises:
            RecordNotFoundError: No record with that key
            RestoreNotAllowedException: A parent of the record is still in
                the trash, or an active record already holds its unique value
        """
        tab, entity = self._entity(tab)
        self._check("restore", tab)
        record = self._require(tab, entity, key)

        if not record.is_deleted:
            return False

        reason = self._restore_blocker(entity, record)
        if reason:
            raise RestoreNotAllowedException(key, reason)

        self._restore_record(tab, record)
        self.session.commit()
        return True

    def purge(self, tab: Union[TrashTab, str], key: str) -> None:
        """
        Permanently delete one trashed record.

        Raises:
            RecordNotFoundError: No record with that key
            NotDeletedException: The record is not in the trash
            PurgeNotAllowedException: Related records that depend on this
                one are still active
        """
        tab, entity = self._entity(tab)
        self._check("purge", tab)
        record = self._require(tab, entity, key)

        if not record.is_deleted:
            raise NotDeletedException(key)

        reason = self._purge_blocker(record)
        if reason:
            raise PurgeNotAllowedException(key, reason)

        self._purge_record(tab, entity, record)
        self.session.commit()

    # Bulk operations per type

    def bulk_soft_delete(
        self, tab: Union[TrashTab, str], keys: Iterable[str]
    ) -> List[str]:
        """Move several records of one type to the trash.

        Returns:
            Keys of the records that were moved
        """
        tab, entity = self._entity(tab)
        self._check("delete", tab)

        changed: List[str] = []
        now = datetime.now(timezone.utc)
        for key in self._dedupe(keys):
            record = self._get(entity, key)
            if record is None:
                logger.warning("Skipping unknown %s %s", tab.value, key)
                continue
            if self._soft_delete_record(tab, record, now):
                changed.append(key)

        self.session.commit()
        return changed

    def bulk_restore(self, tab: Union[TrashTab, str], keys: Iterable[str]) -> List[str]:
        """Restore several records of one type.

        Returns:
            Keys of the records that were restored
        """
        tab, entity = self._entity(tab)
        self._check("restore", tab)

        changed: List[str] = []
        for key in self._dedupe(keys):
            record = self._get(entity, key)
            if record is None:
                logger.warning("Skipping unknown %s %s", tab.value, key)
                continue
            if not record.is_deleted:
                continue
            reason = self._restore_blocker(entity, record)
            if reason:
                logger.warning("Skipping restore of %s %s: %s", tab.value, key, reason)
                continue
            self._restore_record(tab, record)
            changed.append(key)

        self.session.commit()
        return changed

    def bulk_purge(self, tab: Union[TrashTab, str], keys: Iterable[str]) -> List[str]:
        """Permanently delete several trashed records of one type.

        Active records, and records that active records still depend on, are
        skipped.

        Returns:
            Keys of the records that were purged
        """
        tab, entity = self._entity(tab)
        self._check("purge", tab)

        purged: List[str] = []
        for key in self._dedupe(keys):
            record = self._get(entity, key)
            if record is None:
                logger.warning("Skipping unknown %s %s", tab.value, key)
                continue
            if not record.is_deleted:
                logger.warning("Skipping purge of active %s %s", tab.value, key)
                continue
            reason = self._purge_blocker(record)
            if reason:
                logger.warning("Skipping purge of %s %s: %s", tab.value, key, reason)
                continue
            self._purge_record(tab, entity, record)
            purged.append(key)

        self.session.commit()
        return purged

    # Mixed selections from the consolidated view

    def _categorize(self, item_ids: Iterable[str]) -> Dict[TrashTab, List[str]]:
        wanted = self._dedupe(item_ids)
        by_id = {item.id: item for item in self.list_items(TrashTab.ALL)}

        categorized: Dict[TrashTab, List[str]] = {}
        for item_id in wanted:
            item = by_id.get(item_id)
            if item is None:
                logger.warning("Skipping unknown trash item %s", item_id)
                continue
            categorized.setdefault(item.type, []).append(item.name)
        return categorized

    def restore_items(self, item_ids: Iterable[str]) -> Dict[TrashTab, List[str]]:
        """
        Restore a mixed selection of trash items.

        Items are grouped by type and each group is restored in bulk.
        Folders are handled before documents so a selected folder brings
        its documents back first.

        Args:
            item_ids: Trash item ids as shown by list_items()

        Returns:
            Restored keys per tab
        """
        categorized = self._categorize(item_ids)
        result: Dict[TrashTab, List[str]] = {}
        for tab in TrashTab.entity_tabs():
            if tab in categorized:
                result[tab] = self.bulk_restore(tab, categorized[tab])
        return result

    def purge_items(self, item_ids: Iterable[str]) -> Dict[TrashTab, List[str]]:
        """
        Permanently delete a mixed selection of trash items.

        Returns:
            Purged keys per tab
        """
        categorized = self._categorize(item_ids)
        result: Dict[TrashTab, List[str]] = {}
        for tab in reversed(TrashTab.entity_tabs()):
            if tab in categorized:
                result[tab] = self.bulk_purge(tab, categorized[tab])
        return result

    def empty_trash(self, tab: Union[TrashTab, str] = TrashTab.ALL) -> int:
        """
        Permanently delete everything in the trash, or in one tab of it.

        Returns:
            Number of records purged
        """
        total = 0
        for t in reversed(self._tabs(tab)):
            entity = self.entities[t]
            keys = [
                str(getattr(record, entity.key_attr))
                for record in entity.model.query_deleted(self.session).all()
            ]
            total += len(self.bulk_purge(t, keys))

        logger.info(
            "Emptied trash (%s): %d records purged", self._tab(tab).value, total
        )
        return total

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """
        Purge records that have been in the trash longer than the retention
        period. Does nothing when no retention period is configured.

        Returns:
            Number of records purged
        """
        days = self.config.trash_retention_days
        if days is None:
            return 0

        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        total = 0
        for t in reversed(self._tabs(TrashTab.ALL)):
            entity = self.entities[t]
            expired = (
                entity.model.query_deleted(self.session)
                .filter(entity.model.deleted_at <= cutoff)
                .all()
            )
            keys = [str(getattr(record, entity.key_attr)) for record in expired]
            if keys:
                total += len(self.bulk_purge(t, keys))

        logger.info("Purged %d records trashed before %s", total, cutoff.isoformat())
        return total

    def generate_report(self, start_date: datetime, end_date: datetime) -> TrashReport:
        """
        Report deletions per type in a period.

        Only records still in the trash are counted; purged and restored
        records leave no trace.
        """
        report = TrashReport(start_date=start_date, end_date=end_date)

        for t in self._tabs(TrashTab.ALL):
            self._check("view_deleted", t)
            model = self.entities[t].model
            deletions = (
                model.query_deleted(self.session)
                .filter(
                    and_(
                        model.deleted_at >= start_date,
                        model.deleted_at <= end_date,
                    )
                )
                .all()
            )
            for record in deletions:
                report.add_deletion(t, cascaded=record.was_cascade_deleted)

        return report

    # Record level helpers

    def _soft_delete_record(
        self, tab: TrashTab, record: Any, deleted_at: Optional[datetime] = None
    ) -> bool:
        if isinstance(record, CascadeSoftDeleteMixin):
            deleted = record.soft_delete(deleted_at=deleted_at)
            if deleted:
                logger.info(
                    "Moved %s to trash with %d related records",
                    record.entity_label,
                    len(deleted) - 1,
                )
            return bool(deleted)

        changed = record.soft_delete(deleted_at=deleted_at)
        if changed:
            logger.info("Moved %s to trash", record.entity_label)
        return changed

    def _restore_record(self, tab: TrashTab, record: Any) -> None:
        if isinstance(record, CascadeSoftDeleteMixin):
            self.session.expire(record, list(record.__soft_delete_cascade__))
            restored = record.restore()
            logger.info(
                "Restored %s with %d related records",
                record.entity_label,
                len(restored) - 1,
            )
        else:
            record.restore()
            logger.info("Restored %s", record.entity_label)

    def _restore_blocker(self, entity: TrashEntity, record: Any) -> Optional[str]:
        """Reason the record may not be restored on its own, if any."""
        if entity.parent_attr:
            parent = getattr(record, entity.parent_attr, None)
            if parent is not None and parent.is_deleted:
                return (
                    f"parent {type(parent).__name__} {parent.id} "
                    "is still in the trash"
                )

        if entity.unique_attr:
            value = getattr(record, entity.unique_attr)
            column = getattr(entity.model, entity.unique_attr)
            clash = (
                entity.model.query_active(self.session)
                .filter(func.lower(column) == (value or "").lower())
                .first()
            )
            if clash is not None:
                return f"an active record already uses {entity.unique_attr} {value}"

        if not record.was_cascade_deleted:
            return None

        parent_type = record.cascade_deleted_from_type
        parent_id = record.cascade_deleted_from_id
        for other in self.entities.values():
            if other.model.__name__ != parent_type:
                continue
            parent = self.session.get(other.model, parent_id)
            if parent is not None and parent.is_deleted:
                return f"parent {parent_type} {parent_id} is still in the trash"
        return None

    def _purge_blocker(self, record: Any) -> Optional[str]:
        """Reason the record may not be purged, if any."""
        if not isinstance(record, CascadeSoftDeleteMixin):
            return None

        # Children purged earlier may still sit in the loaded collection
        self.session.expire(record, list(record.__soft_delete_cascade__))
        active = [
            child for child in record._cascade_children() if not child.is_deleted
        ]
        if active:
            labels = ", ".join(child.entity_label for child in active)
            return f"it still holds active records: {labels}"
        return None

    def _purge_record(self, tab: TrashTab, entity: TrashEntity, record: Any) -> None:
        if isinstance(record, CascadeSoftDeleteMixin):
            self.session.expire(record, list(record.__soft_delete_cascade__))
            for child in record._cascade_children():
                if child.is_deleted:
                    self.session.delete(child)

        key = getattr(record, entity.key_attr)
        for model, column in entity.references:
            self.session.query(model).filter(getattr(model, column) == key).update(
                {column: None}, synchronize_session="fetch"
            )

        self.session.delete(record)
        self.session.flush()
        logger.info("Permanently deleted %s", record.entity_label)
