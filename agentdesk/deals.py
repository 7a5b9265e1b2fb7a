"""
Deal pipeline.

Filtering, sorting and grouping of deals for the pipeline board and list,
the headline totals, and the service that creates and edits deals.
"""

import logging
import re
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.orm import Session

from .access import owns_record
from .config import CRMConfig, get_config
from .models import Deal, DealNote, DealStatus, Lead, User
from .soft_delete.exceptions import RecordNotFoundError
from .soft_delete.models import TrashTab
from .soft_delete.services import TrashService
from .timeutil import local_today, month_label

logger = logging.getLogger(__name__)

ALL_STATUSES = "ALL"
CURRENT_YEAR = "CURRENT"

STATUS_ORDER: Dict[DealStatus, int] = {
    DealStatus.ACTIVE: 1,
    DealStatus.PENDING: 2,
    DealStatus.CLOSED: 3,
}

SORT_KEYS = ("name", "status", "date", "price", "side", "source")

_NON_DIGITS = re.compile(r"\D")


def commission_amount(sale_price: float, commission_percentage: float) -> float:
    """Gross commission for a sale price and a percentage rate."""
    return (sale_price or 0) * (commission_percentage or 0) / 100


class DealFilter(BaseModel):
    """Criteria for the pipeline views."""

    status: Union[DealStatus, str] = Field(ALL_STATUSES)
    year: Union[int, str, None] = Field(
        CURRENT_YEAR, description="CURRENT, a calendar year, or None for all years"
    )
    search: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Union[DealStatus, str]) -> Union[DealStatus, str]:
        if isinstance(v, DealStatus):
            return v
        if v.upper() == ALL_STATUSES:
            return ALL_STATUSES
        try:
            return DealStatus(v.upper())
        except ValueError:
            raise ValueError(f"Unknown deal status: {v}") from None

    @field_validator("year")
    @classmethod
    def validate_year(cls, v: Union[int, str, None]) -> Union[int, str, None]:
        if v is None or isinstance(v, int):
            return v
        if v.upper() == CURRENT_YEAR:
            return CURRENT_YEAR
        if v.upper() == "ALL":
            return None
        try:
            return int(v)
        except ValueError:
            raise ValueError(
                f"Year must be CURRENT, ALL or a number, got {v!r}"
            ) from None

    @model_validator(mode="after")
    def validate_date_range(self) -> "DealFilter":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self


def _matches_search(deal: Deal, term: str, lead: Optional[Lead]) -> bool:
    if not term:
        return True
    if term in (deal.lead_name or "").lower() or term in (deal.address or "").lower():
        return True
    if lead is None:
        return False

    if term in (lead.email or "").lower() or term in (lead.phone or "").lower():
        return True
    digits = _NON_DIGITS.sub("", term)
    return bool(digits) and digits in _NON_DIGITS.sub("", lead.phone or "")


def filter_deals(
    deals: Iterable[Deal],
    criteria: Optional[DealFilter] = None,
    leads: Iterable[Lead] = (),
    today: Optional[date] = None,
) -> List[Deal]:
    """
    Active deals matching the criteria, in input order.

    Args:
        deals: Deals to filter
        criteria: Filter, defaults to every status in the current year
        leads: Leads used to search by the client's email and phone
        today: Date that decides the current year, defaults to today
    """
    criteria = criteria or DealFilter()
    leads_by_id = {lead.id: lead for lead in leads}
    term = criteria.search.strip().lower()

    year = criteria.year
    if year == CURRENT_YEAR:
        year = (today or local_today()).year

    result = []
    for deal in deals:
        if deal.is_deleted:
            continue
        if criteria.status != ALL_STATUSES and deal.status != criteria.status:
            continue
        if year is not None and deal.date.year != year:
            continue
        if criteria.start_date and deal.date < criteria.start_date:
            continue
        if criteria.end_date and deal.date > criteria.end_date:
            continue
        if not _matches_search(deal, term, leads_by_id.get(deal.lead_id)):
            continue
        result.append(deal)
    return result


def _sort_value(deal: Deal, key: str) -> Any:
    if key == "name":
        return (deal.lead_name or "").casefold()
    if key == "status":
        return STATUS_ORDER[deal.status]
    if key == "date":
        return deal.date
    if key == "price":
        return deal.sale_price
    if key == "side":
        return deal.side.value
    return (deal.source or "").casefold()


def sort_deals(
    deals: Iterable[Deal], key: str = "date", direction: str = "desc"
) -> List[Deal]:
    """
    Sort deals by a list column.

    Raises:
        ValueError: On an unknown key or direction
    """
    if key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key {key!r}, expected one of {SORT_KEYS}")
    if direction not in ("asc", "desc"):
        raise ValueError(f"Sort direction must be 'asc' or 'desc', got {direction!r}")
    return sorted(
        deals, key=lambda deal: _sort_value(deal, key), reverse=direction == "desc"
    )


def toggle_sort(
    current_key: str, current_direction: str, key: str
) -> Tuple[str, str]:
    """New (key, direction) after clicking a column header."""
    if key == current_key:
        return key, "desc" if current_direction == "asc" else "asc"
    return key, "desc"


def deal_totals(deals: Iterable[Deal]) -> Dict[str, float]:
    """Volume, gross commission and count of the deals shown."""
    deals = list(deals)
    return {
        "volume": sum(deal.sale_price for deal in deals),
        "gci": sum(deal.commission_amount for deal in deals),
        "count": len(deals),
    }


def closing_soon(
    deals: Iterable[Deal], today: Optional[date] = None, days: Optional[int] = None
) -> List[Deal]:
    """Pending deals closing between today and ``days`` days from now."""
    today = today or local_today()
    days = get_config().closing_soon_days if days is None else days
    horizon = today + timedelta(days=days)
    return [
        deal
        for deal in deals
        if not deal.is_deleted
        and deal.status == DealStatus.PENDING
        and deal.date is not None
        and today <= deal.date <= horizon
    ]


def group_by_month(deals: Iterable[Deal]) -> Dict[str, List[Deal]]:
    """
    Bucket deals by closing month, newest month first.

    Keys look like ``"January 2026"``; deals inside a bucket are newest first.
    """
    groups: Dict[str, List[Deal]] = {}
    for deal in sorted(deals, key=lambda d: d.date, reverse=True):
        groups.setdefault(month_label(deal.date), []).append(deal)
    return groups


def previous_years(deals: Iterable[Deal], current_year: int) -> List[int]:
    """Earlier years that have deals, most recent first, for the year picker."""
    years = {deal.date.year for deal in deals if not deal.is_deleted}
    return sorted((y for y in years if y < current_year), reverse=True)


_READ_ONLY_FIELDS = {
    "id",
    "commission_amount",
    "is_deleted",
    "deleted_at",
    "cascade_deleted_from_type",
    "cascade_deleted_from_id",
}


class DealService:
    """Create, edit and trash deals."""

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
        unknown = set(fields) - set(Deal.__table__.columns.keys())
        if unknown:
            raise ValueError(f"Unknown deal fields: {', '.join(sorted(unknown))}")
        blocked = set(fields) & _READ_ONLY_FIELDS
        if blocked:
            raise ValueError(f"Read-only deal fields: {', '.join(sorted(blocked))}")

    def get(self, deal_id: str) -> Deal:
        deal = Deal.query_active(self.session).filter(Deal.id == deal_id).first()
        if deal is None:
            raise RecordNotFoundError(TrashTab.DEALS.value, deal_id)
        return deal

    def list_deals(
        self,
        criteria: Optional[DealFilter] = None,
        key: str = "date",
        direction: str = "desc",
        today: Optional[date] = None,
    ) -> List[Deal]:
        """Filtered and sorted deals; agents only see their own."""
        query = Deal.query_active(self.session)
        if self.actor is not None and not self.actor.is_broker:
            query = query.filter(Deal.assigned_user_id == self.actor.id)
        deals: Sequence[Deal] = query.all()
        leads = Lead.query_active(self.session).all()
        return sort_deals(filter_deals(deals, criteria, leads, today), key, direction)

    def create_deal(self, **fields: Any) -> Deal:
        """
        Create a deal and compute its commission.

        When the deal is linked to a lead and no client name is given, the
        lead's name is used.

        Raises:
            ValueError: If the address or date is missing, or a field is unknown
        """
        self._validate_fields(fields)
        if not str(fields.get("address") or "").strip():
            raise ValueError("Deal address is required")
        if fields.get("date") is None:
            raise ValueError("Deal date is required")

        lead_id = fields.get("lead_id")
        if lead_id and not fields.get("lead_name"):
            lead = self.session.get(Lead, lead_id)
            if lead is not None:
                fields["lead_name"] = lead.full_name
                fields.setdefault("client_email", lead.email)
                fields.setdefault("client_phone", lead.phone)

        if self.actor is not None:
            fields.setdefault("assigned_user_id", self.actor.id)
            fields.setdefault("brokerage_id", self.actor.brokerage_id)

        deal = Deal(**fields)
        deal.commission_amount = commission_amount(
            deal.sale_price or 0, deal.commission_percentage or 0
        )
        self.session.add(deal)
        self.session.commit()
        logger.info("Created deal %s at %s", deal.id, deal.address)
        return deal

    def update_deal(self, deal_id: str, **changes: Any) -> Deal:
        """Apply changes to an active deal; the commission is recomputed."""
        self._validate_fields(changes)
        deal = self.get(deal_id)
        for name, value in changes.items():
            setattr(deal, name, value)
        deal.commission_amount = commission_amount(
            deal.sale_price, deal.commission_percentage
        )
        self.session.commit()
        return deal

    def move_to_status(self, deal_id: str, status: Union[DealStatus, str]) -> Deal:
        """Drop a deal onto another pipeline column."""
        return self.update_deal(deal_id, status=DealStatus(status))

    def add_note(self, deal_id: str, content: str) -> DealNote:
        if not content or not content.strip():
            raise ValueError("Note content is required")
        deal = self.get(deal_id)
        note = DealNote(content=content.strip())
        deal.notes.append(note)
        self.session.commit()
        return note

    def soft_delete(self, deal_id: str) -> bool:
        """
        Move a deal to the trash.

        Raises:
            PermissionError: If an agent tries to trash another agent's deal
        """
        deal = self.session.get(Deal, deal_id)
        if deal is not None and not owns_record(self.actor, deal, "assigned_user_id"):
            raise PermissionError(f"Deal {deal_id} is assigned to another agent")
        # Runs as the system once ownership is settled
        return TrashService(self.session, config=self.config).soft_delete(
            TrashTab.DEALS, deal_id
        )
