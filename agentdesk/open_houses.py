"""
Open house events and visitor check-in.

Visitors who sign in at an open house become new leads assigned to the
hosting agent, with a follow-up task for the next day.
"""

import logging
import re
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from .access import owns_record
from .models import (
    Lead,
    LeadNote,
    LeadStatus,
    LeadTemperature,
    OpenHouse,
    OpenHouseStatus,
    Task,
    TaskPriority,
    User,
)
from .soft_delete.exceptions import RecordNotFoundError
from .soft_delete.models import TrashTab
from .soft_delete.services import TrashService
from .timeutil import utc_now

logger = logging.getLogger(__name__)

OPEN_HOUSE_SOURCE = "Open House"

_TIME = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

# Interest picked on the sign-in sheet and the tag it becomes
INTEREST_TAGS: Dict[str, str] = {
    "Buying": "BUYER",
    "Selling": "SELLER",
    "Both": "BOTH",
}


def open_house_stats(open_houses: Iterable[OpenHouse]) -> Dict[str, int]:
    """Event counts and total visitors across active open houses."""
    active = [oh for oh in open_houses if not oh.is_deleted]
    return {
        "total": len(active),
        "live": sum(1 for oh in active if oh.status == OpenHouseStatus.LIVE),
        "upcoming": sum(1 for oh in active if oh.status == OpenHouseStatus.UPCOMING),
        "visitors": sum(oh.visitor_count or 0 for oh in active),
    }


def search_open_houses(
    open_houses: Iterable[OpenHouse], term: str = ""
) -> List[OpenHouse]:
    """Active open houses whose address or host matches ``term``."""
    term = term.strip().lower()
    return [
        oh
        for oh in open_houses
        if not oh.is_deleted
        and (
            term in oh.address.lower() or term in (oh.assigned_agent_name or "").lower()
        )
    ]


class VisitorCheckIn(BaseModel):
    """What a visitor fills in on the open house sign-in sheet."""

    full_name: str = Field(..., min_length=1)
    email: str = ""
    phone: str = ""
    interest: str = Field("Buying", description="Buying, Selling or Both")
    working_with_agent: str = "NO"
    timeline: str = "3-6 months"
    price_range: str = ""
    notes: str = ""
    # Agents touring on behalf of a client sign in too
    is_agent: bool = False
    agent_brokerage: str = ""
    client_name: str = ""

    @field_validator("full_name")
    @classmethod
    def validate_full_name(cls, v: str) -> str:
        v = " ".join(v.split())
        if not v:
            raise ValueError("Full name is required")
        return v

    @field_validator("interest")
    @classmethod
    def validate_interest(cls, v: str) -> str:
        if v not in INTEREST_TAGS:
            raise ValueError(f"Interest must be one of {list(INTEREST_TAGS)}")
        return v

    def split_name(self) -> Tuple[str, str]:
        first, _, last = self.full_name.partition(" ")
        return first, last or ("Agent" if self.is_agent else "Visitor")

    def budget(self) -> float:
        digits = re.sub(r"\D", "", self.price_range)
        return 0 if self.is_agent or not digits else float(digits)

    def tags(self) -> List[str]:
        tags = [OPEN_HOUSE_SOURCE]
        if self.is_agent:
            tags.append("Real Estate Agent")
            if self.client_name:
                tags.append("Agent Accompanied")
        else:
            tags.append(INTEREST_TAGS[self.interest])
        return tags

    def note(self, address: str) -> str:
        if self.is_agent:
            return (
                f"Agent Signed In: {self.full_name} from {self.agent_brokerage}. "
                f"Client: {self.client_name or 'Not specified'}. Notes: {self.notes}"
            )
        return (
            f"Visitor Checked In: {address}. Working with Agent: "
            f"{self.working_with_agent}. Timeline: {self.timeline}. "
            f"Notes: {self.notes}"
        )


class OpenHouseService:
    """Schedule open houses and check visitors in."""

    def __init__(self, session: Session, actor: Optional[User] = None):
        self.session = session
        self.actor = actor

    def get(self, open_house_id: str) -> OpenHouse:
        oh = (
            OpenHouse.query_active(self.session)
            .filter(OpenHouse.id == open_house_id)
            .first()
        )
        if oh is None:
            raise RecordNotFoundError(TrashTab.OPEN_HOUSES.value, open_house_id)
        return oh

    def create(self, **fields: Any) -> OpenHouse:
        """
        Schedule an open house.

        The host name is taken from the assigned agent unless the host was
        entered by hand.

        Raises:
            ValueError: On a missing address or a malformed start or end time
        """
        if not str(fields.get("address") or "").strip():
            raise ValueError("Open house address is required")
        for name in ("start_time", "end_time", "start_time2", "end_time2"):
            value = fields.get(name)
            if value is not None and not _TIME.match(value):
                raise ValueError(f"{name} must be HH:MM, got {value!r}")

        if not fields.get("is_manual_agent") and fields.get("assigned_agent_id"):
            agent = self.session.get(User, fields["assigned_agent_id"])
            if agent is not None:
                fields["assigned_agent_name"] = agent.full_name
        if self.actor is not None:
            fields.setdefault("brokerage_id", self.actor.brokerage_id)

        oh = OpenHouse(visitor_count=0, **fields)
        self.session.add(oh)
        self.session.commit()
        logger.info("Scheduled open house %s at %s", oh.id, oh.address)
        return oh

    def soft_delete(self, open_house_id: str) -> bool:
        """
        Move an open house to the trash.

        Raises:
            PermissionError: If an agent tries to trash another agent's event
        """
        oh = self.session.get(OpenHouse, open_house_id)
        if oh is not None and not owns_record(self.actor, oh, "assigned_agent_id"):
            raise PermissionError(
                f"Open house {open_house_id} is assigned to another agent"
            )
        # Runs as the system once ownership is settled
        return TrashService(self.session).soft_delete(
            TrashTab.OPEN_HOUSES, open_house_id
        )

    def check_in_visitor(
        self,
        open_house_id: str,
        visitor: VisitorCheckIn,
        now: Optional[datetime] = None,
    ) -> Tuple[Lead, Task]:
        """
        Sign a visitor in at an open house.

        Creates a new lead from the sign-in sheet linked to the event and
        assigned to the host, a follow-up task due a day later, and bumps
        the event's visitor count.

        Returns:
            The new lead and its follow-up task

        Raises:
            RecordNotFoundError: If the open house is unknown or in the trash
        """
        oh = self.get(open_house_id)
        now = now or utc_now()
        first_name, last_name = visitor.split_name()

        lead = Lead(
            brokerage_id=oh.brokerage_id,
            assigned_agent_id=oh.assigned_agent_id,
            first_name=first_name,
            last_name=last_name,
            email=visitor.email,
            phone=visitor.phone,
            status=LeadStatus.NEW,
            temperature=(
                LeadTemperature.NORMAL if visitor.is_agent else LeadTemperature.HOT
            ),
            source=OPEN_HOUSE_SOURCE,
            tags=visitor.tags(),
            property_address=oh.address,
            budget=visitor.budget(),
            estimated_deal_value=0,
            open_house_id=oh.id,
            check_in_time=now,
            created_at=now,
            updated_at=now,
        )
        lead.notes.append(
            LeadNote(
                content=visitor.note(oh.address),
                author_id="system",
                author_name="System Automation",
                created_at=now,
            )
        )
        self.session.add(lead)
        self.session.flush()

        if visitor.is_agent:
            title = f"Thank Agent: {visitor.full_name}"
            description = (
                f"Agent from {visitor.agent_brokerage} visited with client "
                f"{visitor.client_name or 'Unknown'}."
            )
        else:
            title = f"OH Follow-up: {visitor.full_name}"
            description = f"Visitor from {oh.address}. Timeline: {visitor.timeline}."

        task = Task(
            brokerage_id=oh.brokerage_id,
            assigned_user_id=oh.assigned_agent_id,
            lead_id=lead.id,
            title=title,
            description=description,
            due_date=now + timedelta(days=1),
            is_completed=False,
            priority=TaskPriority.MEDIUM if visitor.is_agent else TaskPriority.HIGH,
        )
        self.session.add(task)

        oh.visitor_count = (oh.visitor_count or 0) + 1
        self.session.commit()
        logger.info("Checked in %s at open house %s", lead.full_name, oh.id)
        return lead, task
