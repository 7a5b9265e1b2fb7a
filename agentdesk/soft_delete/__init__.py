"""
Soft Delete Module - recoverable deletes and the consolidated trash.

Provides the mixins every trashable model uses, the trash view models and
the exceptions raised by trash operations. The trash service itself lives in
``agentdesk.soft_delete.services`` and is re-exported from ``agentdesk``.
"""

from .exceptions import (
    NotDeletedException,
    PurgeNotAllowedException,
    RecordNotFoundError,
    RestoreNotAllowedException,
    TrashError,
    UnknownEntityTypeError,
)
from .mixins import (
    CascadeSoftDeleteMixin,
    SoftDeleteMixin,
    prevent_hard_delete,
    register_soft_delete_listeners,
)
from .models import TrashItem, TrashReport, TrashTab

__all__ = [
    # Mixins
    "SoftDeleteMixin",
    "CascadeSoftDeleteMixin",
    "prevent_hard_delete",
    "register_soft_delete_listeners",
    # Models
    "TrashTab",
    "TrashItem",
    "TrashReport",
    # Exceptions
    "TrashError",
    "RecordNotFoundError",
    "NotDeletedException",
    "PurgeNotAllowedException",
    "RestoreNotAllowedException",
    "UnknownEntityTypeError",
]
