"""Create tables and load a default owner, sample classes and lesson slots.

Usage:
    python -m dogtraining.seed [--days 30]

Safe to run repeatedly: existing rows are left alone.
"""
import argparse
import logging
import sys
from datetime import date, time, timedelta

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dogtraining.auth.passwords import hash_password
from dogtraining.core import config
from dogtraining.database import Base, SessionLocal, engine, ensure_booking_schema, ensure_class_schema
from dogtraining.models.booking import Booking  # noqa: F401
from dogtraining.models.group_class import GroupClass
from dogtraining.models.slot import SLOT_DURATIONS, AvailableSlot
from dogtraining.models.user import OWNER_ROLE, User

logger = logging.getLogger(__name__)

SAMPLE_CLASSES = (
    {
        'name': 'Puppy Basics',
        'description': 'Foundation training for puppies 8-16 weeks old',
        'schedule': 'Tuesdays 10:00 AM',
        'max_spots': 6,
        'price': 120.00,
        'level': 'Beginner',
    },
    {
        'name': 'Basic Obedience',
        'description': 'Sit, stay, come, and loose leash walking',
        'schedule': 'Thursdays 6:00 PM',
        'max_spots': 8,
        'price': 150.00,
        'level': 'Beginner',
    },
    {
        'name': 'Advanced Training',
        'description': 'Complex commands and problem-solving',
        'schedule': 'Saturdays 9:00 AM',
        'max_spots': 4,
        'price': 200.00,
        'level': 'Advanced',
    },
)

SLOT_START_TIMES = (time(9, 0), time(10, 0), time(11, 0), time(14, 0), time(15, 0), time(16, 0))


def seed_owner(db: Session) -> bool:
    email = config.OWNER_EMAIL.strip().lower()
    if db.scalars(select(User).where(User.email == email)).first() is not None:
        return False

    db.add(User(
        email=email,
        name='Training Owner',
        role=OWNER_ROLE,
        hashed_password=hash_password(config.OWNER_PASSWORD),
    ))
    return True


def seed_classes(db: Session) -> int:
    existing_names = set(db.scalars(select(GroupClass.name)).all())
    created = 0
    for sample in SAMPLE_CLASSES:
        if sample['name'] in existing_names:
            continue
        db.add(GroupClass(**sample))
        created += 1
    return created


def seed_slots(db: Session, days: int, start: date | None = None) -> int:
    start = start or date.today()
    existing = {
        tuple(row)
        for row in db.execute(select(AvailableSlot.date, AvailableSlot.time, AvailableSlot.duration)).all()
    }
    created = 0

    for offset in range(1, days + 1):
        slot_date = start + timedelta(days=offset)
        if slot_date.weekday() >= 5:
            continue
        for slot_time in SLOT_START_TIMES:
            for duration in SLOT_DURATIONS:
                if (slot_date, slot_time, duration) in existing:
                    continue
                db.add(AvailableSlot(date=slot_date, time=slot_time, duration=duration))
                created += 1

    return created


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('--days', type=int, default=30, help='How many days of weekday slots to open.')
    args = parser.parse_args(argv)

    logging.basicConfig(level=config.LOG_LEVEL)

    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema()
        ensure_class_schema()

        db = SessionLocal()
        try:
            owner_created = seed_owner(db)
            classes_created = seed_classes(db)
            slots_created = seed_slots(db, args.days)
            db.commit()
        finally:
            db.close()
    except SQLAlchemyError:
        logger.exception('Seeding failed. Check DATABASE_URL and database credentials.')
        sys.exit(1)

    print(f'owner created: {owner_created}, classes created: {classes_created}, slots created: {slots_created}')


if __name__ == "__main__":
    main()
