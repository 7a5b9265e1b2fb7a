"""Team roster: members of the brokerage and their display order."""

import logging
from typing import Any, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from .access import Permission, require_permission
from .listing import move_item
from .models import User, UserRole
from .soft_delete.exceptions import RecordNotFoundError
from .soft_delete.models import TrashTab
from .soft_delete.services import TrashService

logger = logging.getLogger(__name__)

LICENSE_PREFIX = "DRE Lic# "


def roster_order(users: List[User]) -> List[User]:
    """Brokers first, then the saved display order, then last name."""
    return sorted(
        users,
        key=lambda u: (not u.is_broker, u.display_order, u.last_name.casefold()),
    )


class TeamRoster:
    """Active team members as shown on the roster."""

    def __init__(self, session: Session, actor: Optional[User] = None):
        self.session = session
        self.actor = actor

    def members(self) -> List[User]:
        return roster_order(User.query_active(self.session).all())

    def search(
        self, term: str = "", role: Optional[Union[UserRole, str]] = None
    ) -> List[User]:
        """Members whose name or email contains ``term``, optionally of one role."""
        term = term.strip().lower()
        role = UserRole(role) if role else None
        return [
            user
            for user in self.members()
            if (term in user.full_name.lower() or term in user.email.lower())
            and (role is None or user.role == role)
        ]

    def get(self, user_id: str) -> User:
        user = User.query_active(self.session).filter(User.id == user_id).first()
        if user is None:
            raise RecordNotFoundError(TrashTab.TEAM_MEMBERS.value, user_id)
        return user

    @require_permission(Permission.TEAM_MANAGE)
    def reorder(self, dragged_id: str, target_id: str) -> List[User]:
        """
        Drop one member onto another member's place in the roster.

        Brokers stay pinned to the top: they cannot be dragged or dropped
        onto, and nobody can be moved above the first row.

        Returns:
            The roster in its new order
        """
        order = self.members()
        ids = [user.id for user in order]
        dragged = self.get(dragged_id)
        target = self.get(target_id)
        if dragged.is_broker or target.is_broker or dragged_id == target_id:
            return order

        new_order = move_item(
            order, ids.index(dragged_id), max(1, ids.index(target_id))
        )
        for position, user in enumerate(new_order):
            user.display_order = position
        self.session.commit()
        return new_order

    @require_permission(Permission.TEAM_MANAGE)
    def add_member(
        self,
        first_name: str,
        last_name: str,
        email: str,
        role: Union[UserRole, str] = UserRole.AGENT,
        **fields: Any,
    ) -> User:
        """
        Add a member at the bottom of the roster.

        Raises:
            ValueError: If the name or email is missing, or the email is
                already used by an active member
        """
        first_name, email = first_name.strip(), email.strip().lower()
        if not first_name or not email:
            raise ValueError("First name and email are required")
        taken = (
            User.query_active(self.session)
            .filter(func.lower(User.email) == email)
            .first()
        )
        if taken is not None:
            raise ValueError(f"A team member with email {email} already exists")

        license_number = fields.pop("license_number", None)
        if license_number and not license_number.startswith(LICENSE_PREFIX):
            license_number = LICENSE_PREFIX + license_number

        last_position = self.session.query(func.max(User.display_order)).scalar()
        user = User(
            first_name=first_name,
            last_name=last_name.strip(),
            email=email,
            role=UserRole(role),
            license_number=license_number,
            display_order=(last_position or 0) + 1,
            brokerage_id=self.actor.brokerage_id if self.actor else None,
            **fields,
        )
        self.session.add(user)
        self.session.commit()
        logger.info("Added team member %s (%s)", user.id, user.full_name)
        return user

    @require_permission(Permission.TEAM_MANAGE)
    def remove_member(self, user_id: str) -> bool:
        """
        Move a member to the trash.

        Raises:
            ValueError: When removing yourself or a broker
        """
        user = self.get(user_id)
        if self.actor is not None and user.id == self.actor.id:
            raise ValueError("You cannot remove yourself from the team")
        if user.is_broker:
            raise ValueError("Brokers cannot be removed from the roster")
        return TrashService(self.session).soft_delete(TrashTab.TEAM_MEMBERS, user_id)
