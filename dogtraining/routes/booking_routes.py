import datetime as dt

from fastapi import APIRouter, Depends, status
from pydantic import field_serializer, field_validator
from sqlalchemy.orm import Session

from dogtraining.auth.dependencies import get_current_user
from dogtraining.database import get_db
from dogtraining.models.booking import BOOKING_STATUSES, Booking
from dogtraining.models.user import User
from dogtraining.routes.common import CamelModel, MessageResponse, normalize_optional_text, normalize_required_text
from dogtraining.services import booking_manager

router = APIRouter(tags=['bookings'])

MAX_DOG_NAME_LENGTH = 100
MAX_BOOKING_NOTES_LENGTH = 500


class CreateBookingRequest(CamelModel):
    slot_id: str
    dog_name: str
    notes: str | None = None
    user_id: str | None = None

    @field_validator('dog_name')
    @classmethod
    def validate_dog_name(cls, value: str) -> str:
        return normalize_required_text(value, 1, MAX_DOG_NAME_LENGTH, 'Dog name')

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_optional_text(value, MAX_BOOKING_NOTES_LENGTH, 'Notes')


class UpdateBookingRequest(CamelModel):
    dog_name: str | None = None
    notes: str | None = None
    status: str | None = None

    @field_validator('dog_name')
    @classmethod
    def validate_dog_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return normalize_required_text(value, 1, MAX_DOG_NAME_LENGTH, 'Dog name')

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_optional_text(value, MAX_BOOKING_NOTES_LENGTH, 'Notes')

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in BOOKING_STATUSES:
            raise ValueError('Invalid status.')
        return normalized


class BookingResponse(CamelModel):
    id: str
    slot_id: str
    user_id: str
    dog_name: str
    notes: str | None = None
    status: str
    date: dt.date | None = None
    time: dt.time | None = None
    duration: int | None = None
    created_at: dt.datetime
    updated_at: dt.datetime

    @field_serializer('time')
    def serialize_time(self, value: dt.time | None) -> str | None:
        return value.strftime('%H:%M') if value is not None else None


def to_booking_response(booking: Booking) -> BookingResponse:
    slot = booking.slot
    return BookingResponse(
        id=booking.id,
        slot_id=booking.slot_id,
        user_id=booking.user_id,
        dog_name=booking.dog_name,
        notes=booking.notes,
        status=booking.status,
        date=slot.date if slot else None,
        time=slot.time if slot else None,
        duration=slot.duration if slot else None,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


@router.get('', response_model=list[BookingResponse])
def list_bookings(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [to_booking_response(booking) for booking in booking_manager.list_bookings(db, current_user)]


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: CreateBookingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    booking = booking_manager.create_booking(
        db,
        current_user,
        slot_id=data.slot_id,
        dog_name=data.dog_name,
        notes=data.notes,
        user_id=data.user_id,
    )
    return to_booking_response(booking)


@router.put('/{booking_id}', response_model=BookingResponse)
def update_booking(
    booking_id: str,
    data: UpdateBookingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = {field_name: getattr(data, field_name) for field_name in data.model_fields_set}
    booking = booking_manager.update_booking(db, current_user, booking_id, **changes)
    return to_booking_response(booking)


@router.delete('/{booking_id}', response_model=MessageResponse)
def delete_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    booking_manager.delete_booking(db, current_user, booking_id)
    return MessageResponse(message='Booking cancelled successfully')
