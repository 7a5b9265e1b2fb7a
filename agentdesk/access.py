"""
Access control for Agent Desk CRM.

Brokers administer the brokerage: they see every lead, manage the team,
the document library and the trash. Agents work their own book of business.
"""

import functools
import logging
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Optional,
    TypeVar,
    Union,
)

from .models import Lead, User, UserRole

logger = logging.getLogger(__name__)

# Type variable for decorators
F = TypeVar("F", bound=Callable[..., Any])


class Permission(str, Enum):
    """Permissions granted to roles."""

    LEADS_VIEW_ALL = "leads.view_all"
    TRASH_MANAGE = "trash.manage"
    TEAM_MANAGE = "team.manage"
    REPORTS_VIEW = "reports.view"
    DOCUMENTS_MANAGE = "documents.manage"


ROLE_PERMISSIONS: Dict[UserRole, FrozenSet[Permission]] = {
    UserRole.BROKER: frozenset(Permission),
    UserRole.AGENT: frozenset(),
}

# Action names passed to permission checkers, mapped to the permission they need
ACTION_PERMISSIONS: Dict[str, Permission] = {
    "delete": Permission.TRASH_MANAGE,
    "restore": Permission.TRASH_MANAGE,
    "purge": Permission.TRASH_MANAGE,
    "view_deleted": Permission.TRASH_MANAGE,
    "manage_team": Permission.TEAM_MANAGE,
    "manage_documents": Permission.DOCUMENTS_MANAGE,
}


def has_permission(user: Optional[User], permission: Union[str, Permission]) -> bool:
    """
    Check if a user holds a permission.

    Deleted users hold no permissions.

    Args:
        user: User to check
        permission: Permission or its string value

    Returns:
        True if the user's role grants the permission
    """
    if user is None or user.is_deleted:
        return False
    if isinstance(permission, str):
        permission = Permission(permission)
    return permission in ROLE_PERMISSIONS.get(user.role, frozenset())


def check_permission(user: Optional[User], action: str, entity_type: str) -> bool:
    """
    Default permission checker used by the services.

    Args:
        user: Acting user
        action: Action name such as ``delete`` or ``restore``
        entity_type: Type of the record being acted on

    Returns:
        True if the action is allowed
    """
    permission = ACTION_PERMISSIONS.get(action)
    if permission is None:
        logger.warning("No permission mapped for action %r on %s", action, entity_type)
        return False
    return has_permission(user, permission)


def require_permission(*permissions: Union[str, Permission]) -> Callable[[F], F]:
    """
    Decorator for service methods that act on behalf of ``self.actor``.

    When the service has no actor the call is treated as a trusted system
    call and allowed. Otherwise the actor must hold at least one of the
    listed permissions.

    Usage:
        @require_permission(Permission.TRASH_MANAGE)
        def purge(self, tab, entity_id):
            ...
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
            actor = getattr(self, "actor", None)
            if actor is not None and not any(
                has_permission(actor, p) for p in permissions
            ):
                raise PermissionError(
                    f"User {actor.id} lacks permission for {func.__name__}. "
                    f"Required: {[str(Permission(p).value) for p in permissions]}"
                )
            return func(self, *args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


def accessible_leads(user: User, leads: Iterable[Lead]) -> List[Lead]:
    """
    Leads a user may see in list views.

    Brokers see every active lead; agents only the ones assigned to them.
    Deleted leads are never included.
    """
    active = [lead for lead in leads if not lead.is_deleted]
    if has_permission(user, Permission.LEADS_VIEW_ALL):
        return active
    return [lead for lead in active if lead.assigned_agent_id == user.id]


def owns_record(user: Optional[User], record: Any, owner_attr: str) -> bool:
    """
    Whether a user may trash a record from their own workspace.

    Brokers own every record and agents the ones assigned to them. No user
    means a system call, which is always allowed.
    """
    if user is None:
        return True
    if has_permission(user, Permission.LEADS_VIEW_ALL):
        return True
    return not user.is_deleted and getattr(record, owner_attr, None) == user.id
