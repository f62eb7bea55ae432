"""
Seed script to create a demo event with categories and nominees.
Run with: python -m scripts.seed_catalog
"""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from db.session import async_session_maker, init_db
from models.catalog import Category, Event, Nominee

SEED_EVENT = {
    "name": "Campus Excellence Awards",
    "description": "Annual student awards, voted by USSD and web.",
    "vote_price": Decimal("1.00"),
    "duration_days": 30,
    "categories": {
        "Best Speaker": [("AB12", "Ama Boateng"), ("KM07", "Kofi Mensah")],
        "Most Innovative": [("EA33", "Esi Asante"), ("YO21", "Yaw Owusu")],
        "Sports Personality": [("NA05", "Nana Adjei"), ("AD44", "Akosua Darko")],
    },
}


async def seed_catalog() -> None:
    """Create the seed event in the database."""
    await init_db()

    async with async_session_maker() as session:
        # Check if an event already exists
        result = await session.execute(select(Event).limit(1))
        if result.scalar_one_or_none():
            print("Events already exist in database. Skipping seed.")
            return

        now = datetime.now(timezone.utc)
        event = Event(
            id=str(uuid.uuid4()),
            name=SEED_EVENT["name"],
            description=SEED_EVENT["description"],
            vote_price=SEED_EVENT["vote_price"],
            is_active=True,
            start_date=now - timedelta(hours=1),
            end_date=now + timedelta(days=SEED_EVENT["duration_days"]),
        )
        session.add(event)

        for category_name, nominees in SEED_EVENT["categories"].items():
            category = Category(id=str(uuid.uuid4()), name=category_name, event_id=event.id)
            session.add(category)
            for code, name in nominees:
                session.add(Nominee(id=str(uuid.uuid4()), code=code, name=name, category_id=category.id))
                print(f"Created nominee {code}: {name} ({category_name})")

        await session.commit()
        print(f"\nCreated event '{event.name}' at GHC {event.vote_price} per vote")


if __name__ == "__main__":
    asyncio.run(seed_catalog())
