"""
Demo data.

Builds a small brokerage with a broker, two agents and a book of leads,
deals, open houses, tasks and training documents. The data is generated
from a seeded random generator, so the same seed and date always produce
the same records.
"""

import logging
import random
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Optional

from sqlalchemy.orm import Session

from .models import (
    Brokerage,
    Deal,
    DealSide,
    DealStatus,
    Lead,
    LeadSource,
    LeadStatus,
    LeadTag,
    LeadTemperature,
    OpenHouse,
    OpenHouseStatus,
    PropertyType,
    SharedDocument,
    SharedDocumentType,
    SharedFolder,
    SubscriptionPlan,
    Task,
    TaskPriority,
    User,
    UserRole,
    YearlyGoal,
)
from .timeutil import utc_now

logger = logging.getLogger(__name__)

BROKERAGE_ID = "brk_7721"

FIRST_NAMES = [
    "Liam", "Olivia", "Noah", "Emma", "Oliver", "Ava", "Elijah", "Charlotte",
    "William", "Sophia", "James", "Amelia", "Benjamin", "Isabella", "Lucas",
    "Mia", "Henry", "Evelyn", "Theodore", "Harper",
]  # fmt: skip
LAST_NAMES = [
    "Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller",
    "Davis", "Rodriguez", "Martinez", "Wilson", "Anderson", "Thomas", "Taylor",
    "Moore", "Jackson", "Martin", "Lee", "Perez", "Thompson",
]  # fmt: skip
STREETS = [
    "Oak St", "Maple Ave", "Cedar Blvd", "Pine Rd", "Willow Ln", "Main St",
    "Broadway", "Park Ave", "Sunset Dr", "Magnolia Way",
]  # fmt: skip
CITIES = ["Scranton", "Philadelphia", "Allentown", "Reading", "Lancaster"]

SOURCES = [
    "Zillow",
    "Realtor.com",
    "Facebook",
    "Google",
    "Open House",
    "Referral",
    "Instagram",
    "Past Client",
]
TAGS = ["Buyer", "Seller", "Investor", "Primary", "First Time Buyer", "Relocation"]


def _random_date(rng: random.Random, start: date, end: date) -> date:
    return start + timedelta(days=rng.randint(0, (end - start).days))


def seed_demo_data(
    session: Session,
    now: Optional[datetime] = None,
    seed: int = 7721,
    lead_count: int = 40,
) -> Dict[str, int]:
    """
    Populate an empty database with demo records.

    Args:
        session: SQLAlchemy database session
        now: Reference time for relative dates, defaults to now
        seed: Random seed
        lead_count: Number of leads; each lead also gets a deal

    Returns:
        Number of records created per type

    Raises:
        ValueError: If the database already holds a brokerage
    """
    if session.query(Brokerage).count():
        raise ValueError("Database already contains data; refusing to seed")

    rng = random.Random(seed)
    now = now or utc_now()
    today = now.date()
    year_start = date(today.year - 1, 1, 1)

    session.add(
        Brokerage(
            id=BROKERAGE_ID,
            name="Legacy Homes Realty",
            subscription_plan=SubscriptionPlan.PRO,
        )
    )

    team = [
        ("broker_1", "Alexander", "Pierce", UserRole.BROKER, "00871234"),
        ("agent_1", "Sarah", "Connor", UserRole.AGENT, "02154882"),
        ("agent_2", "John", "Wick", UserRole.AGENT, "01984223"),
    ]
    agents = []
    for position, (user_id, first, last, role, license_no) in enumerate(team):
        user = User(
            id=user_id,
            brokerage_id=BROKERAGE_ID,
            first_name=first,
            last_name=last,
            email=f"{first.lower()}@legacyhomes.example",
            phone=f"(555) 100-000{position}",
            role=role,
            license_number=f"DRE Lic# {license_no}",
            display_order=position,
            created_at=now,
        )
        session.add(user)
        if role == UserRole.AGENT:
            agents.append(user)

    for position, name in enumerate(SOURCES):
        session.add(LeadSource(name=name, position=position))
    for position, name in enumerate(TAGS):
        session.add(LeadTag(name=name, position=position))

    leads = []
    for i in range(lead_count):
        first = FIRST_NAMES[i % len(FIRST_NAMES)]
        last = LAST_NAMES[(i * 7) % len(LAST_NAMES)]
        agent = agents[i % len(agents)]
        budget = 300_000 + rng.randrange(0, 1_200_000, 1_000)
        created = datetime.combine(
            _random_date(rng, year_start, today), datetime.min.time(), timezone.utc
        )
        lead = Lead(
            id=f"lead_{i + 1}",
            brokerage_id=BROKERAGE_ID,
            assigned_agent_id=agent.id,
            first_name=first,
            last_name=last,
            email=f"{first.lower()}.{last.lower()}{i}@example.com",
            phone=f"555-{1000 + i}",
            status=rng.choice(list(LeadStatus)),
            temperature=rng.choice(list(LeadTemperature)),
            source=rng.choice(SOURCES),
            tags=[
                "Buyer" if i % 2 == 0 else "Seller",
                "Investor" if i % 5 == 0 else "Primary",
            ],
            property_type=(
                PropertyType.INVESTMENT
                if i % 10 == 0
                else PropertyType.SECONDARY
                if i % 3 == 0
                else PropertyType.PRIMARY
            ),
            property_address=(
                f"{rng.randint(1, 9999)} {rng.choice(STREETS)}, "
                f"{rng.choice(CITIES)}, PA"
            ),
            budget=budget,
            estimated_deal_value=budget * 0.03,
            created_at=created,
            updated_at=created,
            dob=_random_date(rng, date(1960, 1, 1), date(2000, 12, 31)),
            wedding_anniversary=(
                _random_date(rng, date(1990, 1, 1), date(2023, 1, 1))
                if i % 4 == 0
                else None
            ),
            home_anniversary=(
                _random_date(rng, date(2010, 1, 1), date(2023, 1, 1))
                if i % 3 == 0
                else None
            ),
        )
        # A few milestones today so the dashboard has something to show
        if i < 2:
            lead.dob = date(1988, today.month, today.day)
        session.add(lead)
        leads.append(lead)

    for i, lead in enumerate(leads):
        status = rng.choice(list(DealStatus))
        pct = round(2.5 + rng.random(), 2)
        if status == DealStatus.CLOSED:
            deal_date = _random_date(rng, year_start, today)
        else:
            deal_date = today + timedelta(days=rng.randint(3, 90))
        session.add(
            Deal(
                id=f"deal_{i + 1}",
                brokerage_id=BROKERAGE_ID,
                assigned_user_id=lead.assigned_agent_id,
                lead_id=lead.id,
                lead_name=lead.full_name,
                status=status,
                side=DealSide.BUYER if i % 2 == 0 else DealSide.SELLER,
                address=lead.property_address or "TBD",
                sale_price=lead.budget,
                commission_percentage=pct,
                commission_amount=round(lead.budget * pct / 100, 2),
                date=deal_date,
                source=lead.source,
            )
        )

    session.add_all(
        [
            OpenHouse(
                id="oh_1",
                brokerage_id=BROKERAGE_ID,
                address="1725 Slough Avenue, Scranton, PA",
                date=today,
                start_time="10:00",
                end_time="14:00",
                assigned_agent_id="agent_1",
                assigned_agent_name="Sarah Connor",
                status=OpenHouseStatus.LIVE,
                visitor_count=20,
            ),
            OpenHouse(
                id="oh_2",
                brokerage_id=BROKERAGE_ID,
                address="42 Wallaby Way, Scranton, PA",
                date=today + timedelta(days=2),
                start_time="13:00",
                end_time="16:00",
                assigned_agent_id="agent_2",
                assigned_agent_name="John Wick",
                status=OpenHouseStatus.UPCOMING,
                visitor_count=0,
            ),
        ]
    )

    task_types = [
        ("Follow-up Call", "Check in on property search status."),
        ("Birthday Call", "Wish them a happy birthday and catch up."),
        ("Review Closing Docs", "Verify all paperwork is ready for escrow."),
        ("Final Walkthrough", "Meet at the property for final inspection."),
    ]
    task_count = 12
    for i in range(task_count):
        title, description = task_types[i % len(task_types)]
        lead = leads[rng.randrange(len(leads))]
        session.add(
            Task(
                id=f"task_{i + 1}",
                brokerage_id=BROKERAGE_ID,
                assigned_user_id=agents[i % len(agents)].id,
                lead_id=lead.id,
                title=f"{title}: {lead.first_name}",
                description=description,
                due_date=now + timedelta(days=i - 3),
                is_completed=i % 5 == 0,
                priority=rng.choice(list(TaskPriority)),
            )
        )

    goals = [
        YearlyGoal(
            user_id="TEAM",
            year=today.year,
            volume_target=25_000_000,
            unit_target=40,
            gci_target=650_000,
        ),
        YearlyGoal(
            user_id="agent_1",
            year=today.year,
            volume_target=12_000_000,
            unit_target=20,
            gci_target=300_000,
        ),
    ]
    session.add_all(goals)

    onboarding = SharedFolder(
        id="folder_onboarding", name="Onboarding", icon="fa-rocket", created_at=now
    )
    scripts = SharedFolder(
        id="folder_scripts",
        name="Agent Scripts",
        icon="fa-comments",
        created_at=now,
        shared_with_agent_id="agent_1",
    )
    session.add_all([onboarding, scripts])
    documents = [
        ("doc_1", onboarding, "Welcome Packet.pdf", SharedDocumentType.PDF, "2.4 MB"),
        ("doc_2", onboarding, "CRM Walkthrough", SharedDocumentType.VIDEO, None),
        ("doc_3", scripts, "Expired Listing Script", SharedDocumentType.DOC, "48.0 KB"),
    ]
    for offset, (doc_id, folder, name, doc_type, size) in enumerate(documents):
        session.add(
            SharedDocument(
                id=doc_id,
                folder_id=folder.id,
                name=name,
                type=doc_type,
                url="#",
                created_at=now - timedelta(days=offset),
                uploaded_by="Alexander Pierce",
                uploaded_by_id="broker_1",
                size=size,
                shared_with_agent_id=folder.shared_with_agent_id,
            )
        )

    session.commit()

    counts = {
        "users": len(team),
        "leads": len(leads),
        "deals": len(leads),
        "open_houses": 2,
        "tasks": task_count,
        "goals": len(goals),
        "sources": len(SOURCES),
        "tags": len(TAGS),
        "folders": 2,
        "documents": len(documents),
    }
    logger.info("Seeded demo data: %s", counts)
    return counts
