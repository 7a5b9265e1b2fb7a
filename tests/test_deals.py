"""
Tests for the deal pipeline.
"""

from datetime import date

import pytest
from pydantic import ValidationError

from agentdesk.deals import (
    CURRENT_YEAR,
    DealFilter,
    DealService,
    closing_soon,
    commission_amount,
    deal_totals,
    filter_deals,
    group_by_month,
    previous_years,
    sort_deals,
    toggle_sort,
)
from agentdesk.models import Deal, DealSide, DealStatus, Lead
from agentdesk.soft_delete import RecordNotFoundError

TODAY = date(2026, 6, 15)


def _deal(n, **fields):
    values = dict(
        id=f"deal_{n}",
        lead_name=f"Client {n}",
        address=f"{n} Main St",
        status=DealStatus.CLOSED,
        side=DealSide.BUYER,
        sale_price=100_000 * n,
        commission_percentage=3,
        commission_amount=3_000 * n,
        date=date(2026, n, 1),
        source="Zillow",
        is_deleted=False,
    )
    values.update(fields)
    return Deal(**values)


class TestCommission:
    def test_commission_amount(self):
        assert commission_amount(500_000, 2.5) == 12_500

    def test_missing_values_count_as_zero(self):
        assert commission_amount(None, 3) == 0


class TestDealFilter:
    """Test filter criteria."""

    def test_defaults_to_current_year(self):
        criteria = DealFilter()
        assert criteria.year == CURRENT_YEAR

    @pytest.mark.parametrize(
        "value, expected",
        [("current", CURRENT_YEAR), ("ALL", None), ("2024", 2024), (2025, 2025)],
    )
    def test_year_values(self, value, expected):
        assert DealFilter(year=value).year == expected

    def test_bad_year_rejected(self):
        with pytest.raises(ValidationError):
            DealFilter(year="last year")

    def test_date_range_validated(self):
        with pytest.raises(ValidationError):
            DealFilter(start_date=date(2026, 5, 1), end_date=date(2026, 4, 1))

    def test_current_year_only(self):
        deals = [_deal(1), _deal(2, date=date(2025, 2, 1))]
        result = filter_deals(deals, today=TODAY)
        assert [d.id for d in result] == ["deal_1"]

    def test_all_years(self):
        deals = [_deal(1), _deal(2, date=date(2025, 2, 1))]
        assert len(filter_deals(deals, DealFilter(year=None), today=TODAY)) == 2

    def test_status_and_date_range(self):
        deals = [
            _deal(1),
            _deal(2, status=DealStatus.PENDING),
            _deal(3, status=DealStatus.PENDING),
        ]
        criteria = DealFilter(
            status="pending", start_date=date(2026, 3, 1), end_date=date(2026, 12, 31)
        )
        assert [d.id for d in filter_deals(deals, criteria, today=TODAY)] == ["deal_3"]

    def test_trashed_deals_excluded(self):
        deals = [_deal(1, is_deleted=True)]
        assert filter_deals(deals, today=TODAY) == []

    def test_search_name_and_address(self):
        deals = [_deal(1, lead_name="Ada Byron"), _deal(2, address="9 Byron Way")]
        result = filter_deals(deals, DealFilter(search="BYRON"), today=TODAY)
        assert len(result) == 2

    def test_search_through_linked_lead(self):
        lead = Lead(id="lead_1", first_name="Ada", email="ada@example.com")
        lead.phone = "(555) 123-4567"
        deals = [_deal(1, lead_id="lead_1"), _deal(2)]

        by_email = filter_deals(
            deals, DealFilter(search="ada@"), leads=[lead], today=TODAY
        )
        by_digits = filter_deals(
            deals, DealFilter(search="555-1234"), leads=[lead], today=TODAY
        )

        assert [d.id for d in by_email] == ["deal_1"]
        assert [d.id for d in by_digits] == ["deal_1"]

    def test_search_without_digits_does_not_match_every_phone(self):
        lead = Lead(id="lead_1", first_name="Ada", email="ada@example.com")
        lead.phone = "555-1234"
        deals = [_deal(1, lead_id="lead_1")]

        criteria = DealFilter(search="zzz")
        result = filter_deals(deals, criteria, leads=[lead], today=TODAY)

        assert result == []


class TestSortingAndGrouping:
    def test_sort_by_status_uses_pipeline_order(self):
        deals = [
            _deal(1, status=DealStatus.CLOSED),
            _deal(2, status=DealStatus.ACTIVE),
            _deal(3, status=DealStatus.PENDING),
        ]
        result = sort_deals(deals, "status", "asc")
        assert [d.id for d in result] == ["deal_2", "deal_3", "deal_1"]

    def test_sort_by_price_desc(self):
        deals = [_deal(1), _deal(3), _deal(2)]
        assert [d.id for d in sort_deals(deals, "price")] == [
            "deal_3",
            "deal_2",
            "deal_1",
        ]

    def test_bad_sort_arguments(self):
        with pytest.raises(ValueError):
            sort_deals([], "commission")
        with pytest.raises(ValueError):
            sort_deals([], "date", "up")

    def test_toggle_sort(self):
        assert toggle_sort("date", "desc", "date") == ("date", "asc")
        assert toggle_sort("date", "asc", "date") == ("date", "desc")
        assert toggle_sort("date", "asc", "price") == ("price", "desc")

    def test_totals(self):
        assert deal_totals([_deal(1), _deal(2)]) == {
            "volume": 300_000,
            "gci": 9_000,
            "count": 2,
        }

    def test_group_by_month_newest_first(self):
        deals = [
            _deal(1, date=date(2026, 1, 5)),
            _deal(2, date=date(2026, 3, 2)),
            _deal(3, date=date(2026, 1, 20)),
        ]

        groups = group_by_month(deals)

        assert list(groups) == ["March 2026", "January 2026"]
        assert [d.id for d in groups["January 2026"]] == ["deal_3", "deal_1"]

    def test_previous_years(self):
        deals = [
            _deal(1, date=date(2024, 1, 1)),
            _deal(2, date=date(2025, 1, 1)),
            _deal(3, date=date(2026, 1, 1)),
            _deal(4, date=date(2023, 1, 1), is_deleted=True),
        ]
        assert previous_years(deals, 2026) == [2025, 2024]


class TestClosingSoon:
    def test_pending_deals_inside_window(self):
        deals = [
            _deal(1, status=DealStatus.PENDING, date=date(2026, 6, 15)),
            _deal(2, status=DealStatus.PENDING, date=date(2026, 6, 20)),
            _deal(3, status=DealStatus.PENDING, date=date(2026, 6, 21)),
            _deal(4, status=DealStatus.PENDING, date=date(2026, 6, 14)),
            _deal(5, status=DealStatus.ACTIVE, date=date(2026, 6, 16)),
        ]
        result = closing_soon(deals, today=TODAY)
        assert [d.id for d in result] == ["deal_1", "deal_2"]

    def test_custom_window(self):
        deals = [_deal(1, status=DealStatus.PENDING, date=date(2026, 6, 21))]
        assert closing_soon(deals, today=TODAY, days=6) == deals


class TestDealService:
    """Test creating and editing deals."""

    def test_create_deal_computes_commission(self, db_session, agent):
        deal = DealService(db_session, actor=agent).create_deal(
            address="1 Elm St",
            date=date(2026, 7, 1),
            sale_price=800_000,
            commission_percentage=2.5,
        )

        assert deal.commission_amount == 20_000
        assert deal.assigned_user_id == agent.id

    def test_create_deal_fills_client_from_lead(self, db_session, make_lead):
        lead = make_lead(first_name="Ada", last_name="Byron", email="ada@example.com")

        deal = DealService(db_session).create_deal(
            address="1 Elm St", date=date(2026, 7, 1), lead_id=lead.id
        )

        assert deal.lead_name == "Ada Byron"
        assert deal.client_email == "ada@example.com"

    @pytest.mark.parametrize(
        "fields",
        [
            {"date": date(2026, 7, 1)},
            {"address": "1 Elm St"},
            {"address": "1 Elm St", "date": date(2026, 7, 1), "commission_amount": 5},
        ],
    )
    def test_create_deal_validation(self, db_session, fields):
        with pytest.raises(ValueError):
            DealService(db_session).create_deal(**fields)

    def test_update_recomputes_commission(self, db_session, make_deal):
        deal = make_deal(sale_price=500_000, commission_percentage=3)

        updated = DealService(db_session).update_deal(deal.id, sale_price=600_000)

        assert updated.commission_amount == 18_000

    def test_move_to_status(self, db_session, make_deal):
        deal = make_deal(status=DealStatus.ACTIVE)
        moved = DealService(db_session).move_to_status(deal.id, "PENDING")
        assert moved.status is DealStatus.PENDING

    def test_add_note(self, db_session, make_deal):
        deal = make_deal()
        note = DealService(db_session).add_note(deal.id, " Appraisal in ")
        assert note.content == "Appraisal in"
        assert deal.notes == [note]

    def test_soft_delete_hides_deal(self, db_session, make_deal):
        service = DealService(db_session)
        deal = make_deal()

        assert service.soft_delete(deal.id) is True
        with pytest.raises(RecordNotFoundError):
            service.get(deal.id)

    def test_agent_cannot_trash_another_agents_deal(
        self, db_session, broker, agent, other_agent, make_deal
    ):
        theirs = make_deal(assigned_user_id=other_agent.id)

        with pytest.raises(PermissionError):
            DealService(db_session, actor=agent).soft_delete(theirs.id)
        assert db_session.get(Deal, theirs.id).is_deleted is False
        assert DealService(db_session, actor=broker).soft_delete(theirs.id) is True

    def test_agents_see_only_their_deals(
        self, db_session, broker, agent, other_agent, make_deal
    ):
        make_deal(assigned_user_id=agent.id)
        make_deal(assigned_user_id=other_agent.id)
        criteria = DealFilter(year=2026)

        assert len(DealService(db_session, actor=agent).list_deals(criteria)) == 1
        assert len(DealService(db_session, actor=broker).list_deals(criteria)) == 2
