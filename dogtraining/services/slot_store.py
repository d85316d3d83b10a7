"""Slot store: owner-managed private lesson slots.

A slot's occupancy is derived from the bookings table: a slot is booked
exactly when an active (confirmed or pending) booking references it. The
``is_booked`` column is a cache that ``mark_booked``/``mark_free`` keep in
step inside the booking transaction; nothing here trusts it on its own.
"""

import logging
from datetime import date, datetime, time

from sqlalchemy import and_, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dogtraining.core.errors import ConflictError, InvalidInputError, NotFoundError
from dogtraining.models.booking import ACTIVE_STATUSES, Booking
from dogtraining.models.slot import DEFAULT_SLOT_DURATION_MINUTES, SLOT_DURATIONS, AvailableSlot
from dogtraining.models.user import User

logger = logging.getLogger(__name__)


def active_booking_exists():
    """Correlated EXISTS clause: an active booking references the outer slot row."""
    return exists().where(
        Booking.slot_id == AvailableSlot.id,
        Booking.status.in_(ACTIVE_STATUSES),
    )


def future_slot_clause(now: datetime):
    return (AvailableSlot.date > now.date()) | and_(
        AvailableSlot.date == now.date(),
        AvailableSlot.time > now.time(),
    )


def find_active_booking(db: Session, slot_id: str) -> Booking | None:
    return db.scalars(
        select(Booking).where(
            Booking.slot_id == slot_id,
            Booking.status.in_(ACTIVE_STATUSES),
        )
    ).first()


def is_slot_booked(db: Session, slot_id: str) -> bool:
    return find_active_booking(db, slot_id) is not None


def _validate_slot_fields(slot_date: date, slot_time: time, duration: int, now: datetime) -> time:
    if duration not in SLOT_DURATIONS:
        raise InvalidInputError('Duration must be 30 or 60 minutes.')
    if slot_time.tzinfo is not None:
        raise InvalidInputError('Time must not include a timezone offset.')

    slot_time = slot_time.replace(second=0, microsecond=0)
    if datetime.combine(slot_date, slot_time) <= now:
        raise InvalidInputError('Cannot create slots in the past.')

    return slot_time


def _ensure_unique(db: Session, slot_date: date, slot_time: time, duration: int, exclude_id: str | None = None) -> None:
    query = select(AvailableSlot.id).where(
        AvailableSlot.date == slot_date,
        AvailableSlot.time == slot_time,
        AvailableSlot.duration == duration,
    )
    if exclude_id is not None:
        query = query.where(AvailableSlot.id != exclude_id)

    if db.scalars(query).first() is not None:
        raise ConflictError('Time slot already exists.')


def get_slot(db: Session, slot_id: str, lock: bool = False) -> AvailableSlot:
    query = select(AvailableSlot).where(AvailableSlot.id == slot_id)
    if lock:
        query = query.with_for_update()

    slot = db.scalars(query).first()
    if slot is None:
        raise NotFoundError('Time slot not found.')
    return slot


def create_slot(
    db: Session,
    slot_date: date,
    slot_time: time,
    duration: int = DEFAULT_SLOT_DURATION_MINUTES,
    now: datetime | None = None,
) -> AvailableSlot:
    now = now or datetime.now()
    slot_time = _validate_slot_fields(slot_date, slot_time, duration, now)
    _ensure_unique(db, slot_date, slot_time, duration)

    slot = AvailableSlot(date=slot_date, time=slot_time, duration=duration, is_booked=False)
    db.add(slot)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('Time slot already exists.') from exc

    db.refresh(slot)
    logger.info('Created slot %s on %s at %s (%s min)', slot.id, slot.date, slot.time, slot.duration)
    return slot


def list_slots(
    db: Session,
    actor: User | None = None,
    slot_date: date | None = None,
    only_available: bool = False,
    now: datetime | None = None,
) -> list[AvailableSlot]:
    now = now or datetime.now()
    query = select(AvailableSlot)

    if slot_date is not None:
        query = query.where(AvailableSlot.date == slot_date)

    if only_available:
        query = query.where(~active_booking_exists())

    if actor is None or not actor.is_owner:
        query = query.where(future_slot_clause(now))

    query = query.order_by(AvailableSlot.date.asc(), AvailableSlot.time.asc(), AvailableSlot.duration.asc())
    return list(db.scalars(query).all())


def booked_slot_owners(db: Session, slot_ids: list[str]) -> dict[str, str]:
    """Map slot id -> user id of the active booking, for the given slots."""
    if not slot_ids:
        return {}

    rows = db.execute(
        select(Booking.slot_id, Booking.user_id).where(
            Booking.slot_id.in_(slot_ids),
            Booking.status.in_(ACTIVE_STATUSES),
        )
    ).all()
    return {slot_id: user_id for slot_id, user_id in rows}


def update_slot(
    db: Session,
    slot_id: str,
    slot_date: date,
    slot_time: time,
    duration: int = DEFAULT_SLOT_DURATION_MINUTES,
    now: datetime | None = None,
) -> AvailableSlot:
    now = now or datetime.now()
    slot = get_slot(db, slot_id, lock=True)

    if is_slot_booked(db, slot.id):
        raise ConflictError('Cannot update a booked time slot.')

    slot_time = _validate_slot_fields(slot_date, slot_time, duration, now)
    _ensure_unique(db, slot_date, slot_time, duration, exclude_id=slot.id)

    slot.date = slot_date
    slot.time = slot_time
    slot.duration = duration
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('Time slot already exists.') from exc

    db.refresh(slot)
    return slot


def delete_slot(db: Session, slot_id: str) -> None:
    slot = get_slot(db, slot_id, lock=True)

    if is_slot_booked(db, slot.id):
        raise ConflictError('Cannot delete a booked time slot. Cancel the booking first.')

    db.delete(slot)
    db.commit()
    logger.info('Deleted slot %s', slot_id)


def mark_booked(slot: AvailableSlot) -> None:
    """Flag the slot as booked. Caller owns the transaction."""
    slot.is_booked = True


def mark_free(slot: AvailableSlot) -> None:
    """Clear the booked flag. Caller owns the transaction."""
    slot.is_booked = False
