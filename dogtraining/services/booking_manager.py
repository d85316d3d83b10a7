"""Booking manager: private lesson bookings against the slot store.

Every write that changes occupancy runs in a single transaction: the booking
row and the slot's cached flag commit together or not at all. The partial
unique index ``uq_bookings_active_slot`` is the final arbiter when two
requests race for the same slot.
"""

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from dogtraining.auth.dependencies import ensure_owner_or_self
from dogtraining.core.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from dogtraining.models.booking import BOOKING_STATUSES, CANCELLED, CONFIRMED, Booking
from dogtraining.models.user import User
from dogtraining.services import slot_store

logger = logging.getLogger(__name__)

_UNSET = object()


def _resolve_booking_user(db: Session, actor: User, user_id: str | None) -> User:
    if user_id is None or user_id == actor.id:
        return actor

    if not actor.is_owner:
        raise ForbiddenError('Only the owner can book on behalf of another user.')

    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError('User not found.')
    return user


def get_booking(db: Session, booking_id: str, lock: bool = False) -> Booking:
    query = select(Booking).options(joinedload(Booking.slot)).where(Booking.id == booking_id)
    if lock:
        # Writers decide on the row as stored now, not on an earlier read in this session.
        query = query.with_for_update(of=Booking).execution_options(populate_existing=True)

    booking = db.scalars(query).first()
    if booking is None:
        raise NotFoundError('Booking not found.')
    return booking


def create_booking(
    db: Session,
    actor: User,
    slot_id: str,
    dog_name: str,
    notes: str | None = None,
    user_id: str | None = None,
    now: datetime | None = None,
) -> Booking:
    now = now or datetime.now()
    booking_user = _resolve_booking_user(db, actor, user_id)

    slot = slot_store.get_slot(db, slot_id, lock=True)

    if slot_store.is_slot_booked(db, slot.id):
        raise ConflictError('Time slot not available.')

    if slot.starts_at <= now:
        raise InvalidInputError('Cannot book past time slots.')

    booking = Booking(
        slot_id=slot.id,
        user_id=booking_user.id,
        dog_name=dog_name,
        notes=notes,
        status=CONFIRMED,
    )
    db.add(booking)
    slot_store.mark_booked(slot)

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning('Lost race for slot %s; another booking is already active', slot_id)
        raise ConflictError('Time slot not available.') from exc

    db.refresh(booking)
    logger.info('Booking %s created for slot %s by user %s', booking.id, slot.id, booking_user.id)
    return booking


def update_booking(
    db: Session,
    actor: User,
    booking_id: str,
    dog_name: str | None = None,
    notes=_UNSET,
    status: str | None = None,
) -> Booking:
    booking = get_booking(db, booking_id, lock=True)
    ensure_owner_or_self(actor, booking.user_id)

    if status is not None and status not in BOOKING_STATUSES:
        raise InvalidInputError('Invalid status.')

    if booking.status == CANCELLED and status is not None:
        if status == CANCELLED:
            raise ConflictError('Booking is already cancelled.')
        raise ConflictError('Cancelled bookings cannot be reactivated.')

    cancelling = status == CANCELLED and booking.is_active

    if dog_name is not None:
        booking.dog_name = dog_name
    if notes is not _UNSET:
        booking.notes = notes
    if status is not None:
        booking.status = status

    if cancelling:
        slot = slot_store.get_slot(db, booking.slot_id, lock=True)
        slot_store.mark_free(slot)

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning('Booking %s cannot become active; its slot was booked meanwhile', booking_id)
        raise ConflictError('Time slot not available.') from exc

    db.refresh(booking)
    if cancelling:
        logger.info('Booking %s cancelled; slot %s is free again', booking.id, booking.slot_id)
    return booking


def delete_booking(db: Session, actor: User, booking_id: str) -> None:
    booking = get_booking(db, booking_id, lock=True)
    ensure_owner_or_self(actor, booking.user_id)

    was_active = booking.is_active
    slot_id = booking.slot_id
    db.delete(booking)

    if was_active:
        slot = slot_store.get_slot(db, slot_id, lock=True)
        slot_store.mark_free(slot)

    db.commit()
    logger.info('Booking %s deleted; slot %s released=%s', booking_id, slot_id, was_active)


def list_bookings(db: Session, actor: User) -> list[Booking]:
    query = select(Booking).options(joinedload(Booking.slot))
    if not actor.is_owner:
        query = query.where(Booking.user_id == actor.id)

    query = query.order_by(Booking.created_at.desc(), Booking.id)
    return list(db.scalars(query).unique().all())
