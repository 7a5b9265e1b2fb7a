"""
Tests for the lead and contact lists and the lead service.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from agentdesk.leads import (
    ALL_STATUSES,
    LeadFilter,
    LeadService,
    SortOption,
    filter_leads,
    lead_stats,
    next_sort_for_column,
    query_contacts,
    query_leads,
    sort_leads,
)
from agentdesk.models import Lead, LeadStatus, LeadTemperature
from agentdesk.soft_delete import RecordNotFoundError

T0 = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _lead(n, **fields):
    values = dict(
        id=f"lead_{n}",
        first_name=f"First{n}",
        last_name=f"Last{n}",
        email=f"lead{n}@example.com",
        status=LeadStatus.NEW,
        temperature=LeadTemperature.NORMAL,
        source="Zillow",
        tags=[],
        budget=100_000 * n,
        created_at=T0 + timedelta(days=n),
        updated_at=T0 + timedelta(days=n),
        is_deleted=False,
    )
    values.update(fields)
    return Lead(**values)


class TestLeadFilter:
    """Test filter criteria."""

    def test_defaults_match_everything(self):
        leads = [_lead(1), _lead(2, status=LeadStatus.CLOSED)]
        assert filter_leads(leads) == leads

    def test_status_is_case_insensitive(self):
        assert LeadFilter(status="in_escrow").status is LeadStatus.IN_ESCROW
        assert LeadFilter(status="all").status == ALL_STATUSES

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            LeadFilter(status="LOST")

    def test_status_filter(self):
        leads = [_lead(1), _lead(2, status=LeadStatus.ACTIVE)]
        result = filter_leads(leads, LeadFilter(status="ACTIVE"))
        assert [lead.id for lead in result] == ["lead_2"]

    def test_sources_match_any(self):
        leads = [
            _lead(1, source="Zillow"),
            _lead(2, source="Referral"),
            _lead(3, source="Google"),
        ]
        result = filter_leads(leads, LeadFilter(sources=["Zillow", "Google"]))
        assert [lead.id for lead in result] == ["lead_1", "lead_3"]

    def test_tags_match_any(self):
        leads = [_lead(1, tags=["Buyer"]), _lead(2, tags=["Seller", "Investor"])]
        result = filter_leads(leads, LeadFilter(tags=["Investor", "Relocation"]))
        assert [lead.id for lead in result] == ["lead_2"]

    def test_search_covers_spouse_and_address(self):
        leads = [
            _lead(1, spouse_first_name="Grace", spouse_last_name="Hopper"),
            _lead(2, property_address="12 Hopper Lane"),
            _lead(3),
        ]
        result = filter_leads(leads, LeadFilter(search="  hopper "))
        assert [lead.id for lead in result] == ["lead_1", "lead_2"]

    def test_deleted_leads_never_listed(self):
        leads = [_lead(1), _lead(2, is_deleted=True)]
        assert [lead.id for lead in filter_leads(leads)] == ["lead_1"]


class TestSorting:
    """Test the lead list sort options."""

    def test_hot_first(self):
        leads = [
            _lead(1, temperature=LeadTemperature.COLD),
            _lead(2, temperature=LeadTemperature.HOT),
            _lead(3, temperature=LeadTemperature.WARM),
            _lead(4, temperature=LeadTemperature.NORMAL),
        ]
        result = sort_leads(leads, SortOption.TEMP_DESC)
        assert [lead.id for lead in result] == ["lead_2", "lead_3", "lead_4", "lead_1"]

    def test_warm_first_then_by_temperature(self):
        leads = [
            _lead(1, temperature=LeadTemperature.HOT),
            _lead(2, temperature=LeadTemperature.WARM),
            _lead(3, temperature=LeadTemperature.COLD),
        ]
        result = sort_leads(leads, "WARM_FIRST")
        assert [lead.id for lead in result] == ["lead_2", "lead_1", "lead_3"]

    def test_name_and_budget(self):
        leads = [
            _lead(1, first_name="zoe"),
            _lead(2, first_name="Adam"),
            _lead(3, first_name="mia"),
        ]
        assert [lead.first_name for lead in sort_leads(leads, "NAME_ASC")] == [
            "Adam",
            "mia",
            "zoe",
        ]
        assert [lead.id for lead in sort_leads(leads, "BUDGET_DESC")] == [
            "lead_3",
            "lead_2",
            "lead_1",
        ]

    def test_newest_and_oldest(self):
        leads = [_lead(2), _lead(1), _lead(3)]
        assert [lead.id for lead in sort_leads(leads, "NEWEST_ADDED")][0] == "lead_3"
        assert [lead.id for lead in sort_leads(leads, "OLDEST_ADDED")][0] == "lead_1"

    def test_buyers_first_newest_within_group(self):
        leads = [
            _lead(1, tags=["Buyer"]),
            _lead(2, tags=["Seller"]),
            _lead(3, tags=["buyer"]),
        ]
        result = sort_leads(leads, SortOption.BUYERS_FIRST)
        assert [lead.id for lead in result] == ["lead_3", "lead_1", "lead_2"]

    def test_past_clients_by_source_or_tag(self):
        leads = [
            _lead(1),
            _lead(2, source="Past Client"),
            _lead(3, tags=["Past Client"]),
        ]
        result = sort_leads(leads, SortOption.PAST_CLIENTS_FIRST)
        assert [lead.id for lead in result] == ["lead_3", "lead_2", "lead_1"]

    def test_unknown_option(self):
        with pytest.raises(ValueError):
            sort_leads([], "SHOE_SIZE")

    def test_every_option_has_a_label(self):
        assert all(option.label for option in SortOption)


class TestQueries:
    """Test the combined filter, sort and page helpers."""

    def test_query_leads_pages(self):
        leads = [_lead(n) for n in range(1, 26)]

        page = query_leads(leads, sort="OLDEST_ADDED", page=2, per_page=10)

        assert page.total == 25
        assert page.total_pages == 3
        assert [lead.id for lead in page.items][0] == "lead_11"
        assert page.start_index == 11
        assert page.end_index == 20

    def test_query_leads_uses_configured_page_size(self):
        leads = [_lead(n) for n in range(1, 26)]
        assert len(query_leads(leads).items) == 20

    def test_contacts_ignore_status(self):
        leads = [_lead(1), _lead(2, status=LeadStatus.CLOSED)]
        page = query_contacts(leads, LeadFilter(status="NEW"))
        assert page.total == 2

    def test_contacts_reject_pipeline_sorts(self):
        with pytest.raises(ValueError, match="not available"):
            query_contacts([], sort=SortOption.TEMP_DESC)

    def test_lead_stats(self):
        leads = [
            _lead(1, tags=["Buyer", "Investor"]),
            _lead(2, tags=["Seller"]),
            _lead(3, source="Past Client"),
            _lead(4, tags=["Buyer"], is_deleted=True),
        ]
        assert lead_stats(leads) == {
            "total": 3,
            "buyers": 1,
            "sellers": 1,
            "investors": 1,
            "past_clients": 1,
        }


class TestHeaderSort:
    """Test clicking column headers."""

    def test_first_click_uses_primary_order(self):
        assert next_sort_for_column("name", "TEMP_DESC") is SortOption.NAME_ASC

    def test_second_click_flips(self):
        assert next_sort_for_column("name", "NAME_ASC") is SortOption.NAME_DESC
        assert next_sort_for_column("name", "NAME_DESC") is SortOption.NAME_ASC

    def test_unsortable_column(self):
        assert next_sort_for_column("actions", "NAME_ASC") is SortOption.NAME_ASC


class TestLeadService:
    """Test creating and editing leads."""

    def test_create_lead_assigns_actor(self, db_session, agent):
        lead = LeadService(db_session, actor=agent).create_lead(
            first_name="Ada", last_name="Byron", email="ada@example.com"
        )

        assert lead.assigned_agent_id == agent.id
        assert lead.tags == []
        assert lead.created_at == lead.updated_at

    def test_create_requires_first_name(self, db_session):
        with pytest.raises(ValueError, match="first name"):
            LeadService(db_session).create_lead(first_name="  ")

    def test_unknown_and_read_only_fields(self, db_session, make_lead):
        service = LeadService(db_session)
        lead = make_lead()
        with pytest.raises(ValueError, match="Unknown"):
            service.update_lead(lead.id, shoe_size=9)
        with pytest.raises(ValueError, match="Read-only"):
            service.update_lead(lead.id, is_deleted=True)

    def test_update_bumps_updated_at(self, db_session, make_lead):
        lead = make_lead(updated_at=T0)

        updated = LeadService(db_session).update_lead(lead.id, status=LeadStatus.ACTIVE)

        assert updated.status is LeadStatus.ACTIVE
        assert updated.updated_at > T0

    def test_get_trashed_lead(self, db_session, make_lead):
        service = LeadService(db_session)
        lead = make_lead()
        service.soft_delete(lead.id)

        with pytest.raises(RecordNotFoundError):
            service.get(lead.id)

    def test_add_note(self, db_session, agent, make_lead):
        lead = make_lead()

        note = LeadService(db_session, actor=agent).add_note(lead.id, " Called. ")

        assert note.content == "Called."
        assert note.author_name == "Sarah Connor"
        assert lead.notes == [note]

    def test_blank_note_rejected(self, db_session, make_lead):
        with pytest.raises(ValueError):
            LeadService(db_session).add_note(make_lead().id, "   ")

    def test_bulk_apply_tag(self, db_session, make_lead):
        a = make_lead(tags=["VIP"])
        b = make_lead(tags=[])

        changed = LeadService(db_session).bulk_apply_tag([a.id, b.id, b.id], "VIP")

        assert changed == [b.id]
        db_session.expire_all()
        assert db_session.get(Lead, b.id).tags == ["VIP"]

    def test_bulk_soft_delete(self, db_session, make_lead):
        a, b = make_lead(), make_lead()

        assert LeadService(db_session).bulk_soft_delete([a.id, b.id]) == [a.id, b.id]
        assert Lead.query_active(db_session).count() == 0

    def test_agent_trashes_only_own_leads(
        self, db_session, agent, other_agent, make_lead
    ):
        mine = make_lead(assigned_agent_id=agent.id)
        theirs = make_lead(assigned_agent_id=other_agent.id)
        service = LeadService(db_session, actor=agent)

        with pytest.raises(PermissionError):
            service.soft_delete(theirs.id)
        assert service.bulk_soft_delete([theirs.id, mine.id]) == [mine.id]
        assert [lead.id for lead in Lead.query_active(db_session)] == [theirs.id]

    def test_agents_only_list_their_leads(
        self, db_session, broker, agent, other_agent, make_lead
    ):
        make_lead(assigned_agent_id=agent.id)
        make_lead(assigned_agent_id=other_agent.id)

        assert LeadService(db_session, actor=agent).list_leads().total == 1
        assert LeadService(db_session, actor=broker).list_leads().total == 2

    def test_import_leads(self, db_session, agent):
        rows = [{"first_name": "Imported", "last_name": "One", "tags": ["Imported"]}]

        [lead] = LeadService(db_session, actor=agent).import_leads(rows)

        assert lead.assigned_agent_id == agent.id
        assert Lead.query_active(db_session).count() == 1
