"""
Lead and contact lists.

Filtering, sorting and paging of leads for the lead pipeline list and the
contact list, plus the service that creates and edits leads.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from .access import accessible_leads, owns_record
from .config import CRMConfig, get_config
from .listing import Page, paginate
from .models import Lead, LeadNote, LeadStatus, LeadTemperature, User
from .soft_delete.exceptions import RecordNotFoundError
from .soft_delete.models import TrashTab
from .soft_delete.services import TrashService

logger = logging.getLogger(__name__)

TEMPERATURE_WEIGHTS: Dict[LeadTemperature, int] = {
    LeadTemperature.HOT: 3,
    LeadTemperature.WARM: 2,
    LeadTemperature.NORMAL: 1,
    LeadTemperature.COLD: 0,
}

PAST_CLIENT_SOURCE = "Past Client"


class SortOption(str, Enum):
    TEMP_DESC = "TEMP_DESC"
    WARM_FIRST = "WARM_FIRST"
    NORMAL_FIRST = "NORMAL_FIRST"
    TEMP_ASC = "TEMP_ASC"
    NAME_ASC = "NAME_ASC"
    NAME_DESC = "NAME_DESC"
    BUDGET_ASC = "BUDGET_ASC"
    BUDGET_DESC = "BUDGET_DESC"
    NEWEST_ADDED = "NEWEST_ADDED"
    OLDEST_ADDED = "OLDEST_ADDED"
    RECENTLY_UPDATED = "RECENTLY_UPDATED"
    SOURCE_ASC = "SOURCE_ASC"
    SOURCE_DESC = "SOURCE_DESC"
    STATUS_ASC = "STATUS_ASC"
    STATUS_DESC = "STATUS_DESC"
    BUYERS_FIRST = "BUYERS_FIRST"
    SELLERS_FIRST = "SELLERS_FIRST"
    INVESTORS_FIRST = "INVESTORS_FIRST"
    PAST_CLIENTS_FIRST = "PAST_CLIENTS_FIRST"

    @property
    def label(self) -> str:
        return SORT_LABELS[self]


SORT_LABELS: Dict[SortOption, str] = {
    SortOption.TEMP_DESC: "Hot Leads First",
    SortOption.WARM_FIRST: "Warm Leads First",
    SortOption.NORMAL_FIRST: "Normal Leads First",
    SortOption.TEMP_ASC: "Cold Leads First",
    SortOption.NAME_ASC: "Name (A-Z)",
    SortOption.NAME_DESC: "Name (Z-A)",
    SortOption.BUDGET_ASC: "Budget (Low-High)",
    SortOption.BUDGET_DESC: "Budget (High-Low)",
    SortOption.NEWEST_ADDED: "Newest Added",
    SortOption.OLDEST_ADDED: "Oldest Added",
    SortOption.RECENTLY_UPDATED: "Recently Updated",
    SortOption.SOURCE_ASC: "Source (A-Z)",
    SortOption.SOURCE_DESC: "Source (Z-A)",
    SortOption.STATUS_ASC: "Stage (A-Z)",
    SortOption.STATUS_DESC: "Stage (Z-A)",
    SortOption.BUYERS_FIRST: "Buyers First",
    SortOption.SELLERS_FIRST: "Sellers First",
    SortOption.INVESTORS_FIRST: "Investors First",
    SortOption.PAST_CLIENTS_FIRST: "Past Clients First",
}

CONTACT_SORT_OPTIONS: Tuple[SortOption, ...] = (
    SortOption.NAME_ASC,
    SortOption.NAME_DESC,
    SortOption.NEWEST_ADDED,
    SortOption.RECENTLY_UPDATED,
    SortOption.SOURCE_ASC,
    SortOption.BUYERS_FIRST,
    SortOption.SELLERS_FIRST,
    SortOption.INVESTORS_FIRST,
    SortOption.PAST_CLIENTS_FIRST,
)

LEAD_COLUMNS: Tuple[str, ...] = (
    "selection",
    "hotness",
    "stage",
    "name",
    "address",
    "secondary",
    "budget",
    "source",
    "updated",
    "actions",
)

CONTACT_COLUMNS: Tuple[str, ...] = (
    "selection",
    "name",
    "email",
    "phone",
    "address",
    "secondary",
    "tags",
    "source",
    "actions",
)

ALL_STATUSES = "ALL"

LEAD_STATUS_TABS: Tuple[str, ...] = (ALL_STATUSES,) + tuple(s.value for s in LeadStatus)

STATUS_LABELS: Dict[str, str] = {
    ALL_STATUSES: "All Pipeline",
    LeadStatus.NEW.value: "New",
    LeadStatus.CONTACTED.value: "Contacted",
    LeadStatus.ACTIVE.value: "Active",
    LeadStatus.IN_ESCROW.value: "Pending",
    LeadStatus.CLOSED.value: "Sold",
}

# Clicking a column header flips between these two orders
HEADER_SORTS: Dict[str, Tuple[SortOption, SortOption]] = {
    "hotness": (SortOption.TEMP_DESC, SortOption.TEMP_ASC),
    "stage": (SortOption.STATUS_ASC, SortOption.STATUS_DESC),
    "name": (SortOption.NAME_ASC, SortOption.NAME_DESC),
    "source": (SortOption.SOURCE_ASC, SortOption.SOURCE_DESC),
    "updated": (SortOption.RECENTLY_UPDATED, SortOption.OLDEST_ADDED),
    "budget": (SortOption.BUDGET_DESC, SortOption.BUDGET_ASC),
}


class LeadFilter(BaseModel):
    """Criteria for the lead and contact lists. Empty lists match everything."""

    status: Union[LeadStatus, str] = Field(
        ALL_STATUSES, description="ALL or a single lead status"
    )
    sources: List[str] = Field(default_factory=list, description="Any of these")
    tags: List[str] = Field(default_factory=list, description="Any of these")
    search: str = Field("", description="Case-insensitive text search")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Union[LeadStatus, str]) -> Union[LeadStatus, str]:
        """Accept ALL or any lead status, case-insensitively."""
        if isinstance(v, LeadStatus):
            return v
        if v.upper() == ALL_STATUSES:
            return ALL_STATUSES
        try:
            return LeadStatus(v.upper())
        except ValueError:
            raise ValueError(f"Unknown lead status: {v}") from None

    def matches(self, lead: Lead) -> bool:
        if self.status != ALL_STATUSES and lead.status != self.status:
            return False
        if self.sources and lead.source not in self.sources:
            return False
        if self.tags and not any(tag in (lead.tags or []) for tag in self.tags):
            return False

        search = self.search.strip().lower()
        if search:
            haystacks = (
                lead.full_name,
                lead.email or "",
                lead.property_address or "",
                lead.spouse_name,
                lead.spouse_email or "",
            )
            return any(search in text.lower() for text in haystacks)
        return True


def _has_tag(lead: Lead, tag: str) -> bool:
    return any(t.lower() == tag for t in lead.tags or [])


def is_buyer(lead: Lead) -> bool:
    return _has_tag(lead, "buyer")


def is_seller(lead: Lead) -> bool:
    return _has_tag(lead, "seller")


def is_investor(lead: Lead) -> bool:
    return _has_tag(lead, "investor")


def is_past_client(lead: Lead) -> bool:
    return _has_tag(lead, "past client") or lead.source == PAST_CLIENT_SOURCE


def _weight(lead: Lead) -> int:
    return TEMPERATURE_WEIGHTS[lead.temperature]


def _ts(value: datetime) -> float:
    return value.timestamp()


def _first(predicate: Callable[[Lead], bool]) -> Callable[[Lead], Any]:
    # Matching leads first, newest created first within each group
    return lambda lead: (not predicate(lead), -_ts(lead.created_at))


def _temperature_first(temperature: LeadTemperature) -> Callable[[Lead], Any]:
    return lambda lead: (lead.temperature != temperature, -_weight(lead))


# Sort key and reverse flag per option
_SORT_KEYS: Dict[SortOption, Tuple[Callable[[Lead], Any], bool]] = {
    SortOption.TEMP_DESC: (_weight, True),
    SortOption.TEMP_ASC: (_weight, False),
    SortOption.WARM_FIRST: (_temperature_first(LeadTemperature.WARM), False),
    SortOption.NORMAL_FIRST: (_temperature_first(LeadTemperature.NORMAL), False),
    SortOption.NAME_ASC: (lambda lead: lead.full_name.casefold(), False),
    SortOption.NAME_DESC: (lambda lead: lead.full_name.casefold(), True),
    SortOption.BUDGET_ASC: (lambda lead: lead.budget, False),
    SortOption.BUDGET_DESC: (lambda lead: lead.budget, True),
    SortOption.NEWEST_ADDED: (lambda lead: _ts(lead.created_at), True),
    SortOption.OLDEST_ADDED: (lambda lead: _ts(lead.created_at), False),
    SortOption.RECENTLY_UPDATED: (lambda lead: _ts(lead.updated_at), True),
    SortOption.SOURCE_ASC: (lambda lead: lead.source.casefold(), False),
    SortOption.SOURCE_DESC: (lambda lead: lead.source.casefold(), True),
    SortOption.STATUS_ASC: (lambda lead: lead.status.value, False),
    SortOption.STATUS_DESC: (lambda lead: lead.status.value, True),
    SortOption.BUYERS_FIRST: (_first(is_buyer), False),
    SortOption.SELLERS_FIRST: (_first(is_seller), False),
    SortOption.INVESTORS_FIRST: (_first(is_investor), False),
    SortOption.PAST_CLIENTS_FIRST: (_first(is_past_client), False),
}


def filter_leads(
    leads: Iterable[Lead], criteria: Optional[LeadFilter] = None
) -> List[Lead]:
    """Active leads matching the criteria, in input order."""
    criteria = criteria or LeadFilter()
    return [lead for lead in leads if not lead.is_deleted and criteria.matches(lead)]


def sort_leads(
    leads: Iterable[Lead], option: Union[SortOption, str] = SortOption.TEMP_DESC
) -> List[Lead]:
    """Sort leads by one of the list's sort options. Ties keep input order."""
    key, reverse = _SORT_KEYS[SortOption(option)]
    return sorted(leads, key=key, reverse=reverse)


def query_leads(
    leads: Iterable[Lead],
    criteria: Optional[LeadFilter] = None,
    sort: Union[SortOption, str] = SortOption.TEMP_DESC,
    page: int = 1,
    per_page: Optional[int] = None,
) -> Page[Lead]:
    """Filter, sort and page leads the way the lead list does."""
    per_page = per_page or get_config().default_page_size
    return paginate(sort_leads(filter_leads(leads, criteria), sort), page, per_page)


def query_contacts(
    leads: Iterable[Lead],
    criteria: Optional[LeadFilter] = None,
    sort: Union[SortOption, str] = SortOption.NAME_ASC,
    page: int = 1,
    per_page: Optional[int] = None,
) -> Page[Lead]:
    """
    Filter, sort and page leads for the contact list.

    The contact list has no pipeline tabs and offers fewer sort options.

    Raises:
        ValueError: If the sort option is not offered by the contact list
    """
    sort = SortOption(sort)
    if sort not in CONTACT_SORT_OPTIONS:
        raise ValueError(f"Sort option {sort.value} is not available for contacts")

    criteria = (criteria or LeadFilter()).model_copy(update={"status": ALL_STATUSES})
    return query_leads(leads, criteria, sort, page, per_page)


def lead_stats(leads: Iterable[Lead]) -> Dict[str, int]:
    """Headline counts shown above the lead list."""
    active = [lead for lead in leads if not lead.is_deleted]
    return {
        "total": len(active),
        "buyers": sum(1 for lead in active if is_buyer(lead)),
        "sellers": sum(1 for lead in active if is_seller(lead)),
        "investors": sum(1 for lead in active if is_investor(lead)),
        "past_clients": sum(1 for lead in active if is_past_client(lead)),
    }


def next_sort_for_column(column: str, current: Union[SortOption, str]) -> SortOption:
    """
    Sort option after clicking a column header.

    The first click sorts by the column's primary order, the next click flips
    it. Columns that are not sortable leave the current order alone.
    """
    current = SortOption(current)
    orders = HEADER_SORTS.get(column)
    if orders is None:
        return current
    primary, secondary = orders
    return secondary if current == primary else primary


# Fields a caller may set through create_lead() / update_lead()
_READ_ONLY_FIELDS = {
    "id",
    "created_at",
    "updated_at",
    "is_deleted",
    "deleted_at",
    "cascade_deleted_from_type",
    "cascade_deleted_from_id",
}


class LeadService:
    """Create, edit and trash leads."""

    def __init__(
        self,
        session: Session,
        actor: Optional[User] = None,
        config: Optional[CRMConfig] = None,
    ):
        self.session = session
        self.actor = actor
        self.config = config or get_config()

    def _validate_fields(self, fields: Dict[str, Any]) -> None:
        columns = set(Lead.__table__.columns.keys())
        unknown = set(fields) - columns
        if unknown:
            raise ValueError(f"Unknown lead fields: {', '.join(sorted(unknown))}")
        blocked = set(fields) & _READ_ONLY_FIELDS
        if blocked:
            raise ValueError(f"Read-only lead fields: {', '.join(sorted(blocked))}")

    def get(self, lead_id: str) -> Lead:
        """
        Fetch an active lead.

        Raises:
            RecordNotFoundError: If no active lead has that id
        """
        lead = Lead.query_active(self.session).filter(Lead.id == lead_id).first()
        if lead is None:
            raise RecordNotFoundError(TrashTab.LEADS.value, lead_id)
        return lead

    def visible_leads(self) -> Sequence[Lead]:
        """Active leads the actor may see: brokers every lead, agents their own."""
        leads: Sequence[Lead] = Lead.query_active(self.session).all()
        if self.actor is not None:
            leads = accessible_leads(self.actor, leads)
        return leads

    def list_leads(
        self,
        criteria: Optional[LeadFilter] = None,
        sort: Union[SortOption, str] = SortOption.TEMP_DESC,
        page: int = 1,
        per_page: Optional[int] = None,
    ) -> Page[Lead]:
        return query_leads(
            self.visible_leads(),
            criteria,
            sort,
            page,
            per_page or self.config.default_page_size,
        )

    def create_lead(self, **fields: Any) -> Lead:
        """
        Create a lead.

        Raises:
            ValueError: If a required field is missing or a field is unknown
        """
        self._validate_fields(fields)
        if not str(fields.get("first_name") or "").strip():
            raise ValueError("Lead first name is required")

        if self.actor is not None:
            fields.setdefault("assigned_agent_id", self.actor.id)
            fields.setdefault("brokerage_id", self.actor.brokerage_id)
        fields.setdefault("tags", [])

        now = datetime.now(timezone.utc)
        lead = Lead(created_at=now, updated_at=now, **fields)
        self.session.add(lead)
        self.session.commit()
        logger.info("Created lead %s (%s)", lead.id, lead.full_name)
        return lead

    def update_lead(self, lead_id: str, **changes: Any) -> Lead:
        """Apply changes to an active lead and bump its ``updated_at``."""
        self._validate_fields(changes)
        lead = self.get(lead_id)
        for name, value in changes.items():
            setattr(lead, name, value)
        lead.updated_at = datetime.now(timezone.utc)
        self.session.commit()
        return lead

    def add_note(
        self, lead_id: str, content: str, author: Optional[User] = None
    ) -> LeadNote:
        """Append a note to a lead."""
        if not content or not content.strip():
            raise ValueError("Note content is required")

        author = author or self.actor
        lead = self.get(lead_id)
        note = LeadNote(
            content=content.strip(),
            author_id=author.id if author else None,
            author_name=author.full_name if author else None,
        )
        lead.notes.append(note)
        lead.updated_at = datetime.now(timezone.utc)
        self.session.commit()
        return note

    def bulk_apply_tag(self, lead_ids: Iterable[str], tag: str) -> List[str]:
        """
        Add a tag to several leads.

        Returns:
            Ids of the leads that did not have the tag yet
        """
        tag = tag.strip()
        if not tag:
            raise ValueError("Tag must not be blank")

        wanted = list(dict.fromkeys(lead_ids))
        leads = Lead.query_active(self.session).filter(Lead.id.in_(wanted)).all()
        now = datetime.now(timezone.utc)

        changed: List[str] = []
        for lead in leads:
            if tag in (lead.tags or []):
                continue
            # Reassign so the JSON column is flagged dirty
            lead.tags = [*(lead.tags or []), tag]
            lead.updated_at = now
            changed.append(lead.id)

        self.session.commit()
        logger.info("Tagged %d leads with %r", len(changed), tag)
        return changed

    def _trash(self) -> TrashService:
        # Runs as the system; callers check ownership first
        return TrashService(self.session, config=self.config)

    def _owned(self, lead_id: str) -> bool:
        lead = self.session.get(Lead, lead_id)
        return lead is None or owns_record(self.actor, lead, "assigned_agent_id")

    def soft_delete(self, lead_id: str) -> bool:
        """
        Move a lead to the trash.

        Raises:
            PermissionError: If an agent tries to trash another agent's lead
        """
        if not self._owned(lead_id):
            raise PermissionError(f"Lead {lead_id} is assigned to another agent")
        return self._trash().soft_delete(TrashTab.LEADS, lead_id)

    def bulk_soft_delete(self, lead_ids: Iterable[str]) -> List[str]:
        """Move several leads to the trash, skipping leads the actor does not own."""
        owned: List[str] = []
        for lead_id in lead_ids:
            if self._owned(lead_id):
                owned.append(lead_id)
            else:
                logger.warning("Skipping delete of lead %s not owned by actor", lead_id)
        return self._trash().bulk_soft_delete(TrashTab.LEADS, owned)

    def import_leads(self, rows: Iterable[Dict[str, Any]]) -> List[Lead]:
        """
        Create leads from prepared rows (see ``export.read_leads_csv``).

        Rows without an agent are assigned to the actor.
        """
        leads: List[Lead] = []
        now = datetime.now(timezone.utc)
        for row in rows:
            fields = dict(row)
            self._validate_fields(fields)
            if self.actor is not None:
                fields.setdefault("assigned_agent_id", self.actor.id)
                fields.setdefault("brokerage_id", self.actor.brokerage_id)
            lead = Lead(created_at=now, updated_at=now, **fields)
            self.session.add(lead)
            leads.append(lead)

        self.session.commit()
        logger.info("Imported %d leads", len(leads))
        return leads
