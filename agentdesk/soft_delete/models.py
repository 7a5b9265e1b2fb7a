"""
Data models for the consolidated trash view.

These models describe what the trash shows (one row per trashed record,
whatever its type) and the deletion report built from it.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Tuple

from pydantic import BaseModel, Field, model_validator


class TrashTab(str, Enum):
    """Tabs of the trash view. Every tab but ALL names one record type."""

    ALL = "ALL"
    LEADS = "LEADS"
    DEALS = "DEALS"
    OPEN_HOUSES = "OPEN_HOUSES"
    TEAM_MEMBERS = "TEAM_MEMBERS"
    SOURCES = "SOURCES"
    TAGS = "TAGS"
    FOLDERS = "FOLDERS"
    DOCUMENTS = "DOCUMENTS"

    @classmethod
    def entity_tabs(cls) -> List["TrashTab"]:
        return [tab for tab in cls if tab is not cls.ALL]


# Trash item ids for metadata are the name with a type prefix
METADATA_ID_PREFIXES: Dict[TrashTab, str] = {
    TrashTab.SOURCES: "src-",
    TrashTab.TAGS: "tag-",
}


class TrashItem(BaseModel):
    """One row of the consolidated trash."""

    type: TrashTab = Field(..., description="Record type of the trashed item")
    id: str = Field(..., description="Trash item id, unique across all types")
    name: str = Field(
        ..., description="Key used to act on the record (id, or name for metadata)"
    )
    label: str = Field(..., description="Primary display text")
    sub_label: str = Field(..., description="Secondary display text")
    deleted_at: datetime = Field(..., description="When the record was trashed")

    @property
    def key(self) -> Tuple[TrashTab, str]:
        return self.type, self.name


class TrashReport(BaseModel):
    """Deletions per type within a period."""

    start_date: datetime = Field(..., description="Report period start")
    end_date: datetime = Field(..., description="Report period end")
    total_deletions: int = Field(0, description="Records trashed in the period")
    by_type: Dict[TrashTab, int] = Field(
        default_factory=dict, description="Deletions by record type"
    )
    cascaded: int = Field(
        0, description="Deletions that followed a parent into the trash"
    )

    @model_validator(mode="after")
    def validate_period(self) -> "TrashReport":
        if self.end_date < self.start_date:
            raise ValueError("Report end_date must not precede start_date")
        return self

    def add_deletion(self, entity_type: TrashTab, cascaded: bool = False) -> None:
        """Add a deletion to the report statistics."""
        self.total_deletions += 1
        self.by_type[entity_type] = self.by_type.get(entity_type, 0) + 1
        if cascaded:
            self.cascaded += 1
