"""Tests for lead source and tag management."""

import pytest

from agentdesk.metadata import MetadataService
from agentdesk.soft_delete import TrashTab
from agentdesk.soft_delete.services import TrashService


@pytest.fixture
def metadata(db_session):
    service = MetadataService(db_session)
    for name in ("Zillow", "Referral", "Google"):
        service.add_source(name)
    for name in ("Buyer", "Seller"):
        service.add_tag(name)
    return service


class TestMetadataService:
    """Test the ordered source and tag lists."""

    def test_added_in_order(self, metadata):
        assert metadata.available_sources() == ["Zillow", "Referral", "Google"]
        assert metadata.available_tags() == ["Buyer", "Seller"]

    def test_blank_and_duplicate_names_ignored(self, metadata):
        assert metadata.add_source("   ") is False
        assert metadata.add_source(" Zillow ") is False
        assert metadata.available_sources() == ["Zillow", "Referral", "Google"]

    def test_trash_removes_from_list(self, metadata):
        assert metadata.trash_source("Referral") is True

        assert metadata.available_sources() == ["Zillow", "Google"]
        [item] = TrashService(metadata.session).list_items(TrashTab.SOURCES)
        assert item.id == "src-Referral"

    def test_readding_trashed_name_restores_it_at_the_end(self, metadata):
        metadata.trash_tag("Buyer")

        assert metadata.add_tag("Buyer") is True

        assert metadata.available_tags() == ["Seller", "Buyer"]
        assert TrashService(metadata.session).list_items(TrashTab.TAGS) == []

    def test_trash_restore_brings_name_back(self, metadata):
        metadata.trash_source("Google")
        TrashService(metadata.session).restore_items(["src-Google"])

        assert "Google" in metadata.available_sources()

    def test_reorder(self, metadata):
        assert metadata.reorder_sources(2, 0) == ["Google", "Zillow", "Referral"]
        assert metadata.available_sources() == ["Google", "Zillow", "Referral"]

    def test_reorder_tags(self, metadata):
        assert metadata.reorder_tags(0, 1) == ["Seller", "Buyer"]

    def test_agent_cannot_trash_metadata(self, db_session, metadata, agent):
        with pytest.raises(PermissionError):
            MetadataService(db_session, actor=agent).trash_source("Zillow")
