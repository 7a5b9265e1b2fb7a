"""
Domain models for Agent Desk CRM.

Every record a user can send to the trash mixes in ``SoftDeleteMixin``.
Folders in the document library cascade their soft delete to the documents
they contain.
"""

import datetime as dt
import uuid
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Boolean, Date, Float, ForeignKey, Integer, String, Text
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base, UTCDateTime
from .soft_delete.mixins import CascadeSoftDeleteMixin, SoftDeleteMixin


def new_id(prefix: str) -> str:
    """Generate a record id such as ``lead_3f2a9c0d1b4e``."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _enum(enum_class: type) -> SAEnum:
    return SAEnum(enum_class, native_enum=False, length=20)


class UserRole(str, Enum):
    BROKER = "BROKER"
    AGENT = "AGENT"


class LeadStatus(str, Enum):
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    ACTIVE = "ACTIVE"
    IN_ESCROW = "IN_ESCROW"
    CLOSED = "CLOSED"


class LeadTemperature(str, Enum):
    HOT = "HOT"
    WARM = "WARM"
    COLD = "COLD"
    NORMAL = "NORMAL"


class PropertyType(str, Enum):
    """What the lead is to the agent: buyer, seller or investor."""

    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    INVESTMENT = "INVESTMENT"


class DealStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    CLOSED = "CLOSED"


class DealSide(str, Enum):
    BUYER = "BUYER"
    SELLER = "SELLER"
    BOTH = "BOTH"


class OpenHouseStatus(str, Enum):
    UPCOMING = "UPCOMING"
    LIVE = "LIVE"
    PAST = "PAST"


class SharedDocumentType(str, Enum):
    PDF = "PDF"
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    LINK = "LINK"
    DOC = "DOC"


class SubscriptionPlan(str, Enum):
    BASIC = "BASIC"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class Brokerage(Base):
    __tablename__ = "brokerages"

    id: Mapped[str] = mapped_column(
        String(40), primary_key=True, default=lambda: new_id("brk")
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    subscription_plan: Mapped[SubscriptionPlan] = mapped_column(
        _enum(SubscriptionPlan), default=SubscriptionPlan.BASIC, nullable=False
    )

    members: Mapped[List["User"]] = relationship(back_populates="brokerage")


class User(SoftDeleteMixin, Base):
    """A broker or agent on the team roster."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(40), primary_key=True, default=lambda: new_id("user")
    )
    brokerage_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("brokerages.id"), nullable=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        _enum(UserRole), default=UserRole.AGENT, nullable=False
    )
    avatar: Mapped[Optional[str]] = mapped_column(String(500))
    phone: Mapped[Optional[str]] = mapped_column(String(40))
    license_number: Mapped[Optional[str]] = mapped_column(String(40))
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime, default=_now, nullable=False
    )

    brokerage: Mapped[Optional[Brokerage]] = relationship(back_populates="members")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_broker(self) -> bool:
        return self.role == UserRole.BROKER


class Lead(SoftDeleteMixin, Base):
    """A prospective client record with contact info, tags and status."""

    __tablename__ = "leads"

    id: Mapped[str] = mapped_column(
        String(40), primary_key=True, default=lambda: new_id("lead")
    )
    brokerage_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("brokerages.id"), nullable=True
    )
    assigned_agent_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(40), nullable=False, default="")
    status: Mapped[LeadStatus] = mapped_column(
        _enum(LeadStatus), default=LeadStatus.NEW, nullable=False
    )
    temperature: Mapped[LeadTemperature] = mapped_column(
        _enum(LeadTemperature), default=LeadTemperature.NORMAL, nullable=False
    )
    source: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    tags: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    property_type: Mapped[PropertyType] = mapped_column(
        _enum(PropertyType), default=PropertyType.PRIMARY, nullable=False
    )
    property_address: Mapped[Optional[str]] = mapped_column(String(300))
    budget: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    estimated_deal_value: Mapped[float] = mapped_column(
        Float, default=0, nullable=False
    )
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime, default=_now, nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime, default=_now, nullable=False
    )

    # Milestones
    dob: Mapped[Optional[dt.date]] = mapped_column(Date)
    wedding_anniversary: Mapped[Optional[dt.date]] = mapped_column(Date)
    home_anniversary: Mapped[Optional[dt.date]] = mapped_column(Date)

    # Secondary contact
    spouse_first_name: Mapped[Optional[str]] = mapped_column(String(100))
    spouse_last_name: Mapped[Optional[str]] = mapped_column(String(100))
    spouse_email: Mapped[Optional[str]] = mapped_column(String(255))
    spouse_phone: Mapped[Optional[str]] = mapped_column(String(40))
    secondary_contact_relationship: Mapped[Optional[str]] = mapped_column(String(20))
    family_notes: Mapped[Optional[str]] = mapped_column(Text)

    # Open house check-in
    open_house_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("open_houses.id"), nullable=True
    )
    check_in_time: Mapped[Optional[dt.datetime]] = mapped_column(UTCDateTime)

    # Integration meta
    external_id: Mapped[Optional[str]] = mapped_column(String(100))
    integration_source: Mapped[Optional[str]] = mapped_column(String(100))

    assigned_agent: Mapped[Optional[User]] = relationship()
    notes: Mapped[List["LeadNote"]] = relationship(
        back_populates="lead",
        cascade="all, delete-orphan",
        order_by="LeadNote.created_at",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def spouse_name(self) -> str:
        return f"{self.spouse_first_name or ''} {self.spouse_last_name or ''}".strip()


class LeadNote(Base):
    __tablename__ = "lead_notes"

    id: Mapped[str] = mapped_column(
        String(40), primary_key=True, default=lambda: new_id("note")
    )
    lead_id: Mapped[str] = mapped_column(ForeignKey("leads.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author_id: Mapped[Optional[str]] = mapped_column(String(40))
    author_name: Mapped[Optional[str]] = mapped_column(String(200))
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime, default=_now, nullable=False
    )

    lead: Mapped[Lead] = relationship(back_populates="notes")


class Deal(SoftDeleteMixin, Base):
    """A listing or sale moving through the pipeline."""

    __tablename__ = "deals"

    id: Mapped[str] = mapped_column(
        String(40), primary_key=True, default=lambda: new_id("deal")
    )
    brokerage_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("brokerages.id"), nullable=True
    )
    assigned_user_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id"), nullable=True, index=True
    )
    lead_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("leads.id"), nullable=True
    )
    lead_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    client_phone: Mapped[Optional[str]] = mapped_column(String(40))
    client_email: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[DealStatus] = mapped_column(
        _enum(DealStatus), default=DealStatus.ACTIVE, nullable=False
    )
    side: Mapped[DealSide] = mapped_column(
        _enum(DealSide), default=DealSide.BUYER, nullable=False
    )
    address: Mapped[str] = mapped_column(String(300), nullable=False)
    sale_price: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    commission_percentage: Mapped[float] = mapped_column(
        Float, default=0, nullable=False
    )
    commission_amount: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    source: Mapped[Optional[str]] = mapped_column(String(100))

    # Transaction management
    escrow_company: Mapped[Optional[str]] = mapped_column(String(200))
    escrow_officer: Mapped[Optional[str]] = mapped_column(String(200))
    escrow_phone: Mapped[Optional[str]] = mapped_column(String(40))
    escrow_email: Mapped[Optional[str]] = mapped_column(String(255))
    escrow_file_number: Mapped[Optional[str]] = mapped_column(String(100))
    lender_company: Mapped[Optional[str]] = mapped_column(String(200))
    lender_loan_officer: Mapped[Optional[str]] = mapped_column(String(200))
    lender_phone: Mapped[Optional[str]] = mapped_column(String(40))
    lender_email: Mapped[Optional[str]] = mapped_column(String(255))
    title_company: Mapped[Optional[str]] = mapped_column(String(200))
    title_officer: Mapped[Optional[str]] = mapped_column(String(200))
    title_phone: Mapped[Optional[str]] = mapped_column(String(40))
    title_email: Mapped[Optional[str]] = mapped_column(String(255))
    tc_name: Mapped[Optional[str]] = mapped_column(String(200))
    tc_phone: Mapped[Optional[str]] = mapped_column(String(40))
    tc_email: Mapped[Optional[str]] = mapped_column(String(255))
    inspection_due_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    appraisal_due_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    loan_due_date: Mapped[Optional[dt.date]] = mapped_column(Date)

    lead: Mapped[Optional[Lead]] = relationship()
    notes: Mapped[List["DealNote"]] = relationship(
        back_populates="deal",
        cascade="all, delete-orphan",
        order_by="DealNote.created_at",
    )


class DealNote(Base):
    __tablename__ = "deal_notes"

    id: Mapped[str] = mapped_column(
        String(40), primary_key=True, default=lambda: new_id("dnote")
    )
    deal_id: Mapped[str] = mapped_column(ForeignKey("deals.id"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime, default=_now, nullable=False
    )

    deal: Mapped[Deal] = relationship(back_populates="notes")


class OpenHouse(SoftDeleteMixin, Base):
    __tablename__ = "open_houses"

    id: Mapped[str] = mapped_column(
        String(40), primary_key=True, default=lambda: new_id("oh")
    )
    brokerage_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("brokerages.id"), nullable=True
    )
    address: Mapped[str] = mapped_column(String(300), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    date2: Mapped[Optional[dt.date]] = mapped_column(Date)
    start_time2: Mapped[Optional[str]] = mapped_column(String(5))
    end_time2: Mapped[Optional[str]] = mapped_column(String(5))
    assigned_agent_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    assigned_agent_name: Mapped[str] = mapped_column(
        String(200), nullable=False, default=""
    )
    status: Mapped[OpenHouseStatus] = mapped_column(
        _enum(OpenHouseStatus), default=OpenHouseStatus.UPCOMING, nullable=False
    )
    visitor_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_manual_agent: Mapped[bool] = mapped_column(Boolean, default=False)
    manual_agent_phone: Mapped[Optional[str]] = mapped_column(String(40))
    manual_agent_license: Mapped[Optional[str]] = mapped_column(String(40))


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(
        String(40), primary_key=True, default=lambda: new_id("task")
    )
    brokerage_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("brokerages.id"), nullable=True
    )
    assigned_user_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    lead_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("leads.id"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    due_date: Mapped[dt.datetime] = mapped_column(UTCDateTime, nullable=False)
    end_date: Mapped[Optional[dt.datetime]] = mapped_column(UTCDateTime)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    priority: Mapped[TaskPriority] = mapped_column(
        _enum(TaskPriority), default=TaskPriority.MEDIUM, nullable=False
    )


class YearlyGoal(Base):
    """Production targets for one agent (or ``TEAM``) in one calendar year."""

    __tablename__ = "yearly_goals"

    user_id: Mapped[str] = mapped_column(String(40), primary_key=True)
    year: Mapped[int] = mapped_column(Integer, primary_key=True)
    volume_target: Mapped[float] = mapped_column(Float, nullable=False)
    unit_target: Mapped[int] = mapped_column(Integer, nullable=False)
    gci_target: Mapped[float] = mapped_column(Float, nullable=False)


class SharedFolder(CascadeSoftDeleteMixin, Base):
    __tablename__ = "shared_folders"
    __soft_delete_cascade__ = ["documents"]

    id: Mapped[str] = mapped_column(
        String(40), primary_key=True, default=lambda: new_id("folder")
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    icon: Mapped[str] = mapped_column(String(50), nullable=False, default="fa-folder")
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime, default=_now, nullable=False
    )
    # Empty means everyone
    shared_with_agent_id: Mapped[Optional[str]] = mapped_column(String(40))

    documents: Mapped[List["SharedDocument"]] = relationship(
        back_populates="folder"
    )


class SharedDocument(SoftDeleteMixin, Base):
    __tablename__ = "shared_documents"

    id: Mapped[str] = mapped_column(
        String(40), primary_key=True, default=lambda: new_id("doc")
    )
    folder_id: Mapped[str] = mapped_column(
        ForeignKey("shared_folders.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    type: Mapped[SharedDocumentType] = mapped_column(
        _enum(SharedDocumentType), nullable=False
    )
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    created_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime, default=_now, nullable=False
    )
    uploaded_by: Mapped[str] = mapped_column(String(200), nullable=False)
    uploaded_by_id: Mapped[str] = mapped_column(String(40), nullable=False)
    size: Mapped[Optional[str]] = mapped_column(String(20))
    # Empty means everyone
    shared_with_agent_id: Mapped[Optional[str]] = mapped_column(String(40))

    folder: Mapped[SharedFolder] = relationship(back_populates="documents")


class LeadSource(SoftDeleteMixin, Base):
    """A lead source offered in the lead forms and filters."""

    __tablename__ = "lead_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class LeadTag(SoftDeleteMixin, Base):
    """A classification tag that can be applied to leads."""

    __tablename__ = "lead_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
