#!/usr/bin/env python3
"""
Trash Example - Agent Desk CRM

Walks through the consolidated trash on a fresh in-memory database:
- Deleting leads, deals and a document folder
- Listing the trash across all record types
- Restoring a mixed selection
- Permanently deleting what is left
"""

from datetime import date

from agentdesk import (
    DealService,
    DocumentLibrary,
    LeadService,
    TrashService,
    TrashTab,
    create_db_engine,
    create_session_factory,
    init_db,
)
from agentdesk.models import User, UserRole


def main():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    session = create_session_factory(engine)()

    broker = User(
        id="broker_1",
        first_name="Alexander",
        last_name="Pierce",
        email="alexander@legacyhomes.example",
        role=UserRole.BROKER,
    )
    session.add(broker)
    session.commit()

    leads = LeadService(session, actor=broker)
    ada = leads.create_lead(first_name="Ada", last_name="Byron", source="Zillow")
    grace = leads.create_lead(first_name="Grace", last_name="Hopper", source="Referral")
    deal = DealService(session, actor=broker).create_deal(
        lead_id=ada.id, address="1 Elm St", date=date.today(), sale_price=650_000
    )

    library = DocumentLibrary(session, broker)
    folder = library.create_folder("Listing Scripts")
    library.add_document(folder.id, "Expired Listing Script", url="https://example.com")

    print("Deleting two leads, a deal and a folder...")
    leads.bulk_soft_delete([ada.id, grace.id])
    DealService(session, actor=broker).soft_delete(deal.id)
    library.trash_folder(folder.id)

    trash = TrashService(session, actor=broker)
    print("\nTrash contents:")
    for item in trash.list_items():
        print(f"  [{item.type.value:<9}] {item.label:<25} {item.sub_label}")
    counts = trash.counts()
    print(f"\n{counts[TrashTab.ALL]} items in the trash")

    print("\nRestoring Ada and the folder (its document comes back too)...")
    restored = trash.restore_items([ada.id, folder.id])
    for tab, keys in restored.items():
        print(f"  {tab.value}: {', '.join(keys)}")

    print("\nEmptying the rest of the trash...")
    purged = trash.empty_trash()
    print(f"  {purged} records permanently deleted")

    print(f"\nActive leads: {[lead.full_name for lead in leads.visible_leads()]}")
    print(f"Documents: {[doc.name for doc in library.documents()]}")

    session.close()


if __name__ == "__main__":
    main()
