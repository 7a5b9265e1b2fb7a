"""
Production dashboard.

Current-year production for the whole team or a single agent, measured
against the agent's yearly goal and compared month by month with the
previous year. Years, months and "today" are taken in the configured
timezone. Records in the trash never count.
"""

import logging
from collections import Counter
from datetime import date, datetime
from enum import Enum
from typing import Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .config import CRMConfig, get_config
from .models import Deal, DealSide, DealStatus, Lead, LeadStatus, Task, User, YearlyGoal
from .timeutil import to_local, utc_now

logger = logging.getLogger(__name__)

TEAM = "TEAM"

MONTH_ABBREVIATIONS = [
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
]

PIPELINE_STATUSES = (
    LeadStatus.NEW,
    LeadStatus.CONTACTED,
    LeadStatus.ACTIVE,
    LeadStatus.IN_ESCROW,
)


class ChartView(str, Enum):
    """Metric plotted on the monthly production chart."""

    VOLUME = "VOLUME"
    LIST = "LIST"
    BUY = "BUY"
    UNITS = "UNITS"


class GoalTargets(BaseModel):
    user_id: str
    year: int
    volume_target: float
    unit_target: int
    gci_target: float


class CommissionProgress(BaseModel):
    """Commission as a percentage of the GCI target, capped at 100."""

    active: float
    pending: float
    earned: float


class ProductionMetrics(BaseModel):
    total_volume: float = 0
    earned_commission: float = 0
    pending_commission: float = 0
    active_commission: float = 0
    total_units: int = 0
    buyer_units: int = 0
    seller_units: int = 0
    active_listing_volume: float = 0
    pending_listing_volume: float = 0


class MonthlyPoint(BaseModel):
    month: str
    current: float
    previous: float
    current_volume: float
    previous_volume: float
    current_units: int
    previous_units: int


class YearComparison(BaseModel):
    status: Optional[str] = Field(None, description="Above, Below or On Par")
    percent: Optional[float] = None
    text: str


class SourceShare(BaseModel):
    name: str
    value: int


class Milestones(BaseModel):
    todos: int = 0
    birthdays: int = 0
    wedding_anniversaries: int = 0
    home_anniversaries: int = 0


class LeaderboardEntry(BaseModel):
    agent_id: str
    name: str
    volume: float
    units: int


class DashboardSummary(BaseModel):
    viewing_agent_id: str
    year: int
    goal: GoalTargets
    metrics: ProductionMetrics
    commission_progress: CommissionProgress
    chart_view: ChartView
    monthly: List[MonthlyPoint]
    comparison: YearComparison
    lead_sources: List[SourceShare]
    milestones: Milestones
    leaderboard: List[LeaderboardEntry]


def _is_buy_side(deal: Deal) -> bool:
    return deal.side in (DealSide.BUYER, DealSide.BOTH)


def _is_list_side(deal: Deal) -> bool:
    return deal.side in (DealSide.SELLER, DealSide.BOTH)


def _volume(deals: Iterable[Deal]) -> float:
    return sum(deal.sale_price for deal in deals)


def _commission(deals: Iterable[Deal]) -> float:
    return sum(deal.commission_amount for deal in deals)


def _of_year(deals: Iterable[Deal], status: DealStatus, year: int) -> List[Deal]:
    return [d for d in deals if d.status == status and d.date.year == year]


def _progress(amount: float, target: float) -> float:
    if target <= 0:
        return 100.0 if amount > 0 else 0.0
    return min(100.0, amount / target * 100)


def _chart_value(deals: Sequence[Deal], view: ChartView) -> float:
    if view is ChartView.LIST:
        return _volume(d for d in deals if _is_list_side(d))
    if view is ChartView.BUY:
        return _volume(d for d in deals if _is_buy_side(d))
    if view is ChartView.UNITS:
        return len(deals)
    return _volume(deals)


def monthly_series(
    deals: Iterable[Deal], year: int, view: ChartView = ChartView.VOLUME
) -> List[MonthlyPoint]:
    """Closed production per month for ``year`` and the year before."""
    closed = [d for d in deals if d.status == DealStatus.CLOSED]
    points = []
    for index, month in enumerate(MONTH_ABBREVIATIONS, start=1):
        current = [d for d in closed if d.date.month == index and d.date.year == year]
        previous = [
            d for d in closed if d.date.month == index and d.date.year == year - 1
        ]
        points.append(
            MonthlyPoint(
                month=month,
                current=_chart_value(current, view),
                previous=_chart_value(previous, view),
                current_volume=_volume(current),
                previous_volume=_volume(previous),
                current_units=len(current),
                previous_units=len(previous),
            )
        )
    return points


def compare_years(points: Iterable[MonthlyPoint]) -> YearComparison:
    """Headline comparing this year's total with last year's."""
    points = list(points)
    current = sum(p.current for p in points)
    previous = sum(p.previous for p in points)
    if previous == 0:
        return YearComparison(text="No previous year data to compare.")

    diff = (current - previous) / previous * 100
    status = "Above" if diff > 0 else "Below" if diff < 0 else "On Par"
    return YearComparison(
        status=status,
        percent=round(abs(diff), 1),
        text=f"You are {status} with last year by {abs(diff):.1f}%.",
    )


def lead_source_mix(
    leads: Iterable[Lead], year: int, limit: int = 5, tz_name: Optional[str] = None
) -> List[SourceShare]:
    """Most common sources among pipeline leads created in ``year``."""
    counts = Counter(
        lead.source
        for lead in leads
        if lead.status in PIPELINE_STATUSES
        and to_local(lead.created_at, tz_name).year == year
    )
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [SourceShare(name=name, value=value) for name, value in ranked[:limit]]


def _same_day(value: Optional[date], today: date) -> bool:
    return value is not None and (value.month, value.day) == (today.month, today.day)


def milestones_today(
    leads: Iterable[Lead], tasks: Iterable[Task], today: date
) -> Milestones:
    """Open tasks and the client birthdays and anniversaries falling today."""
    leads = list(leads)
    return Milestones(
        todos=sum(1 for task in tasks if not task.is_completed),
        birthdays=sum(1 for lead in leads if _same_day(lead.dob, today)),
        wedding_anniversaries=sum(
            1 for lead in leads if _same_day(lead.wedding_anniversary, today)
        ),
        home_anniversaries=sum(
            1 for lead in leads if _same_day(lead.home_anniversary, today)
        ),
    )


def leaderboard(
    agents: Iterable[User], deals: Iterable[Deal], year: int
) -> List[LeaderboardEntry]:
    """Agents ranked by closed volume in ``year``."""
    closed = [
        d
        for d in deals
        if not d.is_deleted and d.status == DealStatus.CLOSED and d.date.year == year
    ]
    entries = []
    for agent in agents:
        if agent.is_deleted:
            continue
        own = [d for d in closed if d.assigned_user_id == agent.id]
        entries.append(
            LeaderboardEntry(
                agent_id=agent.id,
                name=agent.full_name,
                volume=_volume(own),
                units=len(own),
            )
        )
    entries.sort(key=lambda entry: entry.volume, reverse=True)
    return entries


def find_goal(
    goals: Iterable[YearlyGoal],
    user_id: str,
    year: int,
    config: Optional[CRMConfig] = None,
) -> GoalTargets:
    """The user's goal for the year, or the configured default goal."""
    for goal in goals:
        if goal.user_id == user_id and goal.year == year:
            return GoalTargets(
                user_id=user_id,
                year=year,
                volume_target=goal.volume_target,
                unit_target=goal.unit_target,
                gci_target=goal.gci_target,
            )

    config = config or get_config()
    return GoalTargets(
        user_id=user_id,
        year=year,
        volume_target=config.default_volume_target,
        unit_target=config.default_unit_target,
        gci_target=config.default_gci_target,
    )


def build_dashboard(
    deals: Iterable[Deal],
    leads: Iterable[Lead],
    tasks: Iterable[Task],
    goals: Iterable[YearlyGoal],
    agents: Iterable[User] = (),
    viewing_agent_id: str = TEAM,
    now: Optional[datetime] = None,
    chart_view: ChartView = ChartView.VOLUME,
    config: Optional[CRMConfig] = None,
) -> DashboardSummary:
    """
    Compute the dashboard for the team or one agent.

    Args:
        deals: All deals; the leaderboard ranks agents over all of them
        leads: All leads
        tasks: All tasks
        goals: Yearly goals
        agents: Team members shown on the leaderboard
        viewing_agent_id: ``TEAM`` or the id of the agent being viewed
        now: Point in time that decides the current year and today
        chart_view: Metric plotted on the monthly chart
        config: Configuration, defaults to the global configuration
    """
    config = config or get_config()
    chart_view = ChartView(chart_view)
    local_now = to_local(now or utc_now(), config.timezone)
    year = local_now.year
    today = local_now.date()

    all_deals = [d for d in deals if not d.is_deleted]
    own_deals = all_deals
    own_leads = [lead for lead in leads if not lead.is_deleted]
    own_tasks = list(tasks)
    if viewing_agent_id != TEAM:
        own_deals = [d for d in own_deals if d.assigned_user_id == viewing_agent_id]
        own_leads = [
            lead for lead in own_leads if lead.assigned_agent_id == viewing_agent_id
        ]
        own_tasks = [t for t in own_tasks if t.assigned_user_id == viewing_agent_id]

    closed = _of_year(own_deals, DealStatus.CLOSED, year)
    pending = _of_year(own_deals, DealStatus.PENDING, year)
    active = _of_year(own_deals, DealStatus.ACTIVE, year)

    metrics = ProductionMetrics(
        total_volume=_volume(closed),
        earned_commission=_commission(closed),
        pending_commission=_commission(pending),
        active_commission=_commission(active),
        total_units=len(closed),
        buyer_units=sum(1 for d in closed if _is_buy_side(d)),
        seller_units=sum(1 for d in closed if _is_list_side(d)),
        active_listing_volume=_volume(active),
        pending_listing_volume=_volume(pending),
    )

    goal = find_goal(goals, viewing_agent_id, year, config)
    progress = CommissionProgress(
        active=_progress(metrics.active_commission, goal.gci_target),
        pending=_progress(metrics.pending_commission, goal.gci_target),
        earned=_progress(metrics.earned_commission, goal.gci_target),
    )

    monthly = monthly_series(own_deals, year, chart_view)

    summary = DashboardSummary(
        viewing_agent_id=viewing_agent_id,
        year=year,
        goal=goal,
        metrics=metrics,
        commission_progress=progress,
        chart_view=chart_view,
        monthly=monthly,
        comparison=compare_years(monthly),
        lead_sources=lead_source_mix(
            own_leads, year, config.lead_source_mix_limit, config.timezone
        ),
        milestones=milestones_today(own_leads, own_tasks, today),
        leaderboard=leaderboard(agents, all_deals, year),
    )
    logger.debug("Built dashboard for %s (%d)", viewing_agent_id, year)
    return summary


def load_dashboard(
    session: Session,
    viewing_agent_id: str = TEAM,
    now: Optional[datetime] = None,
    chart_view: ChartView = ChartView.VOLUME,
    config: Optional[CRMConfig] = None,
) -> DashboardSummary:
    """Build the dashboard from the records in the database."""
    return build_dashboard(
        deals=Deal.query_active(session).all(),
        leads=Lead.query_active(session).all(),
        tasks=session.query(Task).all(),
        goals=session.query(YearlyGoal).all(),
        agents=User.query_active(session).order_by(User.display_order).all(),
        viewing_agent_id=viewing_agent_id,
        now=now,
        chart_view=chart_view,
        config=config,
    )
