"""
Agent Desk CRM - the back office of a real-estate brokerage.

Brokers and agents keep their leads, deals, open houses, tasks and shared
documents here. Deleting anything moves it to a consolidated trash, from
where it can be restored or permanently deleted.

Key Features
------------
* **Leads and contacts**: Filtering, sorting, paging and bulk actions
* **Deal pipeline**: Status board, month grouping and commission totals
* **Dashboard**: Year-to-date production against goals and last year
* **Open houses**: Visitor check-in that creates leads and follow-ups
* **Document library**: Folders shared with the team or one agent
* **Trash**: Soft delete with cascade, restore and purge across all types

Quick Start
-----------
>>> from agentdesk import create_db_engine, create_session_factory, init_db
>>> from agentdesk import LeadService, TrashService, TrashTab
>>>
>>> engine = create_db_engine("sqlite:///crm.db")
>>> init_db(engine)
>>> session = create_session_factory(engine)()
>>>
>>> lead = LeadService(session).create_lead(first_name="Ada", last_name="Byron")
>>> trash = TrashService(session)
>>> trash.soft_delete(TrashTab.LEADS, lead.id)
>>> trash.restore(TrashTab.LEADS, lead.id)
"""

__version__ = "1.0.0"

from .config import CRMConfig, configure, get_config
from .db import Base, create_db_engine, create_session_factory, init_db, session_scope
from .models import (
    Deal,
    Lead,
    OpenHouse,
    SharedDocument,
    SharedFolder,
    Task,
    User,
    YearlyGoal,
)
from .soft_delete import SoftDeleteMixin, TrashItem, TrashTab
from .soft_delete.services import TrashService

# Import main components for easy access
from .access import Permission, check_permission, has_permission, require_permission
from .dashboard import build_dashboard, load_dashboard
from .deals import DealFilter, DealService
from .documents import DocumentLibrary
from .leads import LeadFilter, LeadService, SortOption
from .metadata import MetadataService
from .open_houses import OpenHouseService, VisitorCheckIn
from .team import TeamRoster

__all__ = [
    # Configuration
    "CRMConfig",
    "configure",
    "get_config",
    # Database
    "Base",
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "session_scope",
    # Models
    "Deal",
    "Lead",
    "OpenHouse",
    "SharedDocument",
    "SharedFolder",
    "Task",
    "User",
    "YearlyGoal",
    # Trash
    "SoftDeleteMixin",
    "TrashItem",
    "TrashTab",
    "TrashService",
    # Access Control
    "Permission",
    "check_permission",
    "has_permission",
    "require_permission",
    # Services
    "DealFilter",
    "DealService",
    "DocumentLibrary",
    "LeadFilter",
    "LeadService",
    "SortOption",
    "MetadataService",
    "OpenHouseService",
    "VisitorCheckIn",
    "TeamRoster",
    "build_dashboard",
    "load_dashboard",
]
