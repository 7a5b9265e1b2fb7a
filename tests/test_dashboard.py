"""
Tests for the production dashboard.
"""

from datetime import date, datetime, timezone

import pytest

from agentdesk.config import CRMConfig
from agentdesk.dashboard import (
    TEAM,
    ChartView,
    _progress,
    build_dashboard,
    compare_years,
    find_goal,
    lead_source_mix,
    leaderboard,
    load_dashboard,
    milestones_today,
    monthly_series,
)
from agentdesk.models import (
    Deal,
    DealSide,
    DealStatus,
    Lead,
    LeadStatus,
    Task,
    User,
    UserRole,
    YearlyGoal,
)
from agentdesk.seed import seed_demo_data

NOW = datetime(2026, 6, 15, 18, 0, tzinfo=timezone.utc)


def _deal(deal_id, status, day, side, price, commission, agent="agent_1", **kw):
    return Deal(
        id=deal_id,
        status=status,
        date=day,
        side=side,
        sale_price=price,
        commission_amount=commission,
        assigned_user_id=agent,
        address="1 Main St",
        is_deleted=kw.pop("is_deleted", False),
        **kw,
    )


@pytest.fixture
def deals():
    return [
        _deal("d1", DealStatus.CLOSED, date(2026, 3, 1), DealSide.BUYER, 500_000, 15_000),
        _deal("d2", DealStatus.CLOSED, date(2026, 3, 15), DealSide.SELLER, 300_000, 9_000,
              agent="agent_2"),
        _deal("d3", DealStatus.PENDING, date(2026, 7, 1), DealSide.BOTH, 400_000, 12_000),
        _deal("d4", DealStatus.ACTIVE, date(2026, 8, 1), DealSide.SELLER, 200_000, 6_000),
        _deal("d5", DealStatus.CLOSED, date(2025, 3, 10), DealSide.BUYER, 400_000, 12_000),
        _deal("d6", DealStatus.CLOSED, date(2026, 4, 1), DealSide.BUYER, 900_000, 27_000,
              is_deleted=True),
    ]  # fmt: skip


@pytest.fixture
def agents():
    return [
        User(id="agent_1", first_name="Sarah", last_name="Connor", is_deleted=False,
             role=UserRole.AGENT),
        User(id="agent_2", first_name="John", last_name="Wick", is_deleted=False,
             role=UserRole.AGENT),
        User(id="agent_3", first_name="Gone", last_name="Agent", is_deleted=True,
             role=UserRole.AGENT),
    ]  # fmt: skip


def _lead(lead_id, source, created, status=LeadStatus.NEW, agent="agent_1", **kw):
    return Lead(
        id=lead_id,
        first_name=lead_id,
        source=source,
        status=status,
        created_at=created,
        assigned_agent_id=agent,
        is_deleted=kw.pop("is_deleted", False),
        **kw,
    )


class TestProductionMetrics:
    """Test the headline numbers."""

    def test_team_metrics(self, deals):
        summary = build_dashboard(deals, [], [], [], now=NOW)
        m = summary.metrics

        assert summary.year == 2026
        assert m.total_volume == 800_000
        assert m.earned_commission == 24_000
        assert m.pending_commission == 12_000
        assert m.active_commission == 6_000
        assert m.total_units == 2
        assert (m.buyer_units, m.seller_units) == (1, 1)
        assert m.active_listing_volume == 200_000
        assert m.pending_listing_volume == 400_000

    def test_commission_progress_against_default_goal(self, deals):
        summary = build_dashboard(deals, [], [], [], now=NOW)

        assert summary.goal.gci_target == 30_000
        assert summary.commission_progress.earned == pytest.approx(80.0)
        assert summary.commission_progress.pending == pytest.approx(40.0)
        assert summary.commission_progress.active == pytest.approx(20.0)

    def test_single_agent_view_with_goal(self, deals):
        goals = [
            YearlyGoal(
                user_id="agent_1",
                year=2026,
                volume_target=1_000_000,
                unit_target=5,
                gci_target=10_000,
            )
        ]

        summary = build_dashboard(
            deals, [], [], goals, viewing_agent_id="agent_1", now=NOW
        )

        assert summary.metrics.total_volume == 500_000
        assert summary.goal.volume_target == 1_000_000
        # Capped at 100
        assert summary.commission_progress.earned == 100.0

    def test_year_follows_configured_timezone(self, deals):
        """Just after midnight UTC on New Year it is still last year in LA."""
        config = CRMConfig(environment="test", timezone="America/Los_Angeles")
        new_year = datetime(2027, 1, 1, 3, 0, tzinfo=timezone.utc)

        summary = build_dashboard(deals, [], [], [], now=new_year, config=config)

        assert summary.year == 2026

    @pytest.mark.parametrize(
        "amount, target, expected",
        [(50, 200, 25.0), (300, 200, 100.0), (0, 0, 0.0), (10, 0, 100.0)],
    )
    def test_progress(self, amount, target, expected):
        assert _progress(amount, target) == expected


class TestMonthlySeries:
    def test_volume_by_month(self, deals):
        points = monthly_series([d for d in deals if not d.is_deleted], 2026)

        assert len(points) == 12
        march = points[2]
        assert march.month == "Mar"
        assert march.current == 800_000
        assert march.previous == 400_000
        assert (march.current_units, march.previous_units) == (2, 1)
        assert points[0].current == 0

    @pytest.mark.parametrize(
        "view, expected",
        [(ChartView.LIST, 300_000), (ChartView.BUY, 500_000), (ChartView.UNITS, 2)],
    )
    def test_chart_views(self, deals, view, expected):
        march = monthly_series(deals[:2], 2026, view)[2]
        assert march.current == expected
        assert march.current_volume == 800_000

    def test_compare_years(self, deals):
        comparison = compare_years(monthly_series(deals[:5], 2026))

        assert comparison.status == "Above"
        assert comparison.percent == 100.0
        assert comparison.text == "You are Above with last year by 100.0%."

    def test_compare_without_previous_year(self, deals):
        comparison = compare_years(monthly_series(deals[:2], 2026))

        assert comparison.status is None
        assert comparison.text == "No previous year data to compare."


class TestLeadsAndMilestones:
    def test_lead_source_mix(self):
        created = datetime(2026, 2, 1, tzinfo=timezone.utc)
        leads = [
            _lead("a", "Zillow", created),
            _lead("b", "Zillow", created),
            _lead("c", "Google", created),
            _lead("d", "Google", created, status=LeadStatus.CLOSED),
            _lead("e", "Referral", datetime(2025, 5, 1, tzinfo=timezone.utc)),
        ]

        mix = lead_source_mix(leads, 2026)

        assert [(s.name, s.value) for s in mix] == [("Zillow", 2), ("Google", 1)]

    def test_lead_source_mix_limit(self):
        created = datetime(2026, 2, 1, tzinfo=timezone.utc)
        leads = [_lead(str(n), f"Source {n}", created) for n in range(8)]
        assert len(lead_source_mix(leads, 2026, limit=5)) == 5

    def test_milestones_today(self):
        created = datetime(2026, 2, 1, tzinfo=timezone.utc)
        leads = [
            _lead("a", "Zillow", created, dob=date(1990, 6, 15)),
            _lead("b", "Zillow", created, wedding_anniversary=date(2010, 6, 15)),
            _lead("c", "Zillow", created, home_anniversary=date(2019, 6, 14)),
        ]
        tasks = [
            Task(title="Call", due_date=NOW, is_completed=False),
            Task(title="Email", due_date=NOW, is_completed=True),
        ]

        milestones = milestones_today(leads, tasks, date(2026, 6, 15))

        assert milestones.todos == 1
        assert milestones.birthdays == 1
        assert milestones.wedding_anniversaries == 1
        assert milestones.home_anniversaries == 0


class TestLeaderboardAndGoals:
    def test_leaderboard_ranks_by_closed_volume(self, deals, agents):
        board = leaderboard(agents, deals, 2026)

        assert [(e.agent_id, e.volume, e.units) for e in board] == [
            ("agent_1", 500_000, 1),
            ("agent_2", 300_000, 1),
        ]

    def test_team_view_keeps_whole_leaderboard(self, deals, agents):
        summary = build_dashboard(
            deals, [], [], [], agents=agents, viewing_agent_id="agent_2", now=NOW
        )
        assert len(summary.leaderboard) == 2

    def test_find_goal_falls_back_to_config(self):
        goal = find_goal([], TEAM, 2026)
        assert goal.volume_target == 1_000_000
        assert goal.unit_target == 10


class TestLoadDashboard:
    def test_load_from_seeded_database(self, db_session):
        seed_demo_data(db_session, now=NOW)

        summary = load_dashboard(db_session, now=NOW)

        assert summary.viewing_agent_id == TEAM
        assert summary.goal.gci_target == 650_000
        assert summary.milestones.birthdays >= 2
        assert len(summary.leaderboard) == 3
