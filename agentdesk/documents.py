"""
Shared document library.

Brokers publish folders and documents to the whole team or to a single
agent. Agents see what is public and what was shared with them.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from .access import Permission, has_permission, require_permission
from .config import CRMConfig, get_config
from .listing import Page, paginate
from .models import SharedDocument, SharedDocumentType, SharedFolder, User
from .soft_delete.exceptions import RecordNotFoundError
from .soft_delete.models import TrashTab
from .soft_delete.services import TrashService

logger = logging.getLogger(__name__)

# Types that point at an external URL instead of an uploaded file
LINK_TYPES = (SharedDocumentType.LINK, SharedDocumentType.VIDEO)


def format_size(num_bytes: int) -> str:
    """Human readable upload size, ``"12.5 KB"`` or ``"3.1 MB"``."""
    if num_bytes > 1024 * 1024:
        return f"{num_bytes / (1024 * 1024):.1f} MB"
    return f"{num_bytes / 1024:.1f} KB"


class DocumentLibrary:
    """
    The document library as seen by one user.

    Args:
        session: SQLAlchemy database session
        user: User browsing the library
        config: Configuration, defaults to the global configuration
    """

    def __init__(
        self, session: Session, user: User, config: Optional[CRMConfig] = None
    ):
        self.session = session
        self.actor = user
        self.config = config or get_config()

    @property
    def can_manage(self) -> bool:
        return has_permission(self.actor, Permission.DOCUMENTS_MANAGE)

    def _can_see(self, item: Union[SharedFolder, SharedDocument]) -> bool:
        if self.can_manage:
            return True
        shared_with = item.shared_with_agent_id
        return not shared_with or shared_with == self.actor.id

    def folders(self) -> List[SharedFolder]:
        """Visible folders in creation order."""
        folders = (
            SharedFolder.query_active(self.session)
            .order_by(SharedFolder.created_at)
            .all()
        )
        return [f for f in folders if self._can_see(f)]

    def documents(
        self, folder_id: Optional[str] = None, search: str = ""
    ) -> List[SharedDocument]:
        """
        Visible documents, newest first.

        Args:
            folder_id: Only documents in this folder, None for all folders
            search: Case-insensitive match on the name or the uploader
        """
        term = search.strip().lower()
        docs = SharedDocument.query_active(self.session).all()
        result = [
            doc
            for doc in docs
            if self._can_see(doc)
            and (folder_id is None or doc.folder_id == folder_id)
            and (term in doc.name.lower() or term in doc.uploaded_by.lower())
        ]
        result.sort(key=lambda doc: doc.created_at, reverse=True)
        return result

    def list_documents(
        self,
        folder_id: Optional[str] = None,
        search: str = "",
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> Page[SharedDocument]:
        return paginate(
            self.documents(folder_id, search),
            page,
            per_page or self.config.default_page_size,
        )

    def folder_counts(self, search: str = "") -> Dict[Optional[str], int]:
        """Matching documents per folder id; the ``None`` key counts all of them."""
        docs = self.documents(search=search)
        counts: Dict[Optional[str], int] = {f.id: 0 for f in self.folders()}
        for doc in docs:
            if doc.folder_id in counts:
                counts[doc.folder_id] += 1
        counts[None] = len(docs)
        return counts

    def _folder(self, folder_id: str) -> SharedFolder:
        folder = (
            SharedFolder.query_active(self.session)
            .filter(SharedFolder.id == folder_id)
            .first()
        )
        if folder is None:
            raise RecordNotFoundError(TrashTab.FOLDERS.value, folder_id)
        return folder

    def _document(self, document_id: str) -> SharedDocument:
        doc = (
            SharedDocument.query_active(self.session)
            .filter(SharedDocument.id == document_id)
            .first()
        )
        if doc is None:
            raise RecordNotFoundError(TrashTab.DOCUMENTS.value, document_id)
        return doc

    @require_permission(Permission.DOCUMENTS_MANAGE)
    def create_folder(
        self,
        name: str,
        icon: str = "fa-folder",
        shared_with_agent_id: Optional[str] = None,
    ) -> SharedFolder:
        name = name.strip()
        if not name:
            raise ValueError("Folder name is required")

        folder = SharedFolder(
            name=name, icon=icon, shared_with_agent_id=shared_with_agent_id or None
        )
        self.session.add(folder)
        self.session.commit()
        logger.info("Created folder %s (%s)", folder.id, folder.name)
        return folder

    @require_permission(Permission.DOCUMENTS_MANAGE)
    def add_document(
        self,
        folder_id: str,
        name: str,
        type: Union[SharedDocumentType, str] = SharedDocumentType.PDF,
        url: str = "",
        size_bytes: Optional[int] = None,
        shared_with_agent_id: Optional[str] = None,
    ) -> SharedDocument:
        """
        Publish a document in a folder.

        Links and videos need no upload and carry no size.

        Raises:
            ValueError: If the name is blank or a file has neither a URL
                nor an upload size
            RecordNotFoundError: If the folder is unknown or in the trash
        """
        doc_type = SharedDocumentType(type)
        name = name.strip()
        if not name:
            raise ValueError("Document name is required")
        folder = self._folder(folder_id)

        is_link = doc_type in LINK_TYPES
        if not is_link and not url and size_bytes is None:
            raise ValueError("A file or a URL is required")

        size = None
        if not is_link:
            size = format_size(size_bytes) if size_bytes is not None else "0 KB"

        doc = SharedDocument(
            folder_id=folder.id,
            name=name,
            type=doc_type,
            url=url or "#",
            uploaded_by=self.actor.full_name,
            uploaded_by_id=self.actor.id,
            size=size,
            shared_with_agent_id=shared_with_agent_id or None,
        )
        self.session.add(doc)
        self.session.commit()
        logger.info("Added document %s to folder %s", doc.id, folder.id)
        return doc

    @require_permission(Permission.DOCUMENTS_MANAGE)
    def update_document(self, document_id: str, **changes: Any) -> SharedDocument:
        """Rename, retype, move or reshare a document."""
        allowed = {"name", "type", "url", "folder_id", "shared_with_agent_id"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Cannot change: {', '.join(sorted(unknown))}")

        doc = self._document(document_id)
        if "folder_id" in changes:
            self._folder(changes["folder_id"])
        if "type" in changes:
            changes["type"] = SharedDocumentType(changes["type"])
        for name, value in changes.items():
            setattr(doc, name, value)
        self.session.commit()
        return doc

    def _trash(self) -> TrashService:
        return TrashService(self.session, actor=self.actor, config=self.config)

    @require_permission(Permission.DOCUMENTS_MANAGE)
    def trash_document(self, document_id: str) -> bool:
        return self._trash().soft_delete(TrashTab.DOCUMENTS, document_id)

    @require_permission(Permission.DOCUMENTS_MANAGE)
    def trash_folder(self, folder_id: str) -> bool:
        """Move a folder and the documents in it to the trash."""
        return self._trash().soft_delete(TrashTab.FOLDERS, folder_id)
