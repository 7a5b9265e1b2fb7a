"""Lead sources and tags managed from the settings screen."""

import logging
from typing import List, Optional, Type, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from .listing import move_item
from .models import LeadSource, LeadTag, User
from .soft_delete.models import TrashTab
from .soft_delete.services import TrashService

logger = logging.getLogger(__name__)

MetadataModel = Union[Type[LeadSource], Type[LeadTag]]


class MetadataService:
    """
    Ordered lists of lead sources and tags.

    Names are unique per list. Trashed names show up in the trash under
    SOURCES and TAGS; adding a trashed name again brings it back.
    """

    def __init__(self, session: Session, actor: Optional[User] = None):
        self.session = session
        self.actor = actor

    # Sources

    def available_sources(self) -> List[str]:
        return self._available(LeadSource)

    def add_source(self, name: str) -> bool:
        return self._add(LeadSource, name)

    def trash_source(self, name: str) -> bool:
        return self._trash(TrashTab.SOURCES, name)

    def reorder_sources(self, from_index: int, to_index: int) -> List[str]:
        return self._reorder(LeadSource, from_index, to_index)

    # Tags

    def available_tags(self) -> List[str]:
        return self._available(LeadTag)

    def add_tag(self, name: str) -> bool:
        return self._add(LeadTag, name)

    def trash_tag(self, name: str) -> bool:
        return self._trash(TrashTab.TAGS, name)

    def reorder_tags(self, from_index: int, to_index: int) -> List[str]:
        return self._reorder(LeadTag, from_index, to_index)

    # Shared implementation

    def _active(self, model: MetadataModel) -> List[Union[LeadSource, LeadTag]]:
        return (
            model.query_active(self.session)
            .order_by(model.position, model.id)
            .all()
        )

    def _available(self, model: MetadataModel) -> List[str]:
        return [item.name for item in self._active(model)]

    def _add(self, model: MetadataModel, name: str) -> bool:
        """
        Append a name to the list.

        Blank names and names already in the list are ignored. A name that
        is in the trash is restored and moved to the end of the list.

        Returns:
            True if the list changed
        """
        name = (name or "").strip()
        if not name:
            return False

        next_position = (
            self.session.query(func.max(model.position))
            .filter(model.is_deleted.is_(False))
            .scalar()
        )
        next_position = 0 if next_position is None else next_position + 1

        existing = model.query_all(self.session).filter(model.name == name).first()
        if existing is not None:
            if not existing.is_deleted:
                return False
            existing.restore()
            existing.position = next_position
            logger.info("Restored %s %r from trash", model.__name__, name)
        else:
            self.session.add(model(name=name, position=next_position))
            logger.info("Added %s %r", model.__name__, name)

        self.session.commit()
        return True

    def _trash(self, tab: TrashTab, name: str) -> bool:
        service = TrashService(self.session, actor=self.actor)
        return service.soft_delete(tab, name)

    def _reorder(
        self, model: MetadataModel, from_index: int, to_index: int
    ) -> List[str]:
        items = move_item(self._active(model), from_index, to_index)
        for position, item in enumerate(items):
            item.position = position
        self.session.commit()
        return [item.name for item in items]
