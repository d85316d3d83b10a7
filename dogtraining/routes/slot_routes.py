from datetime import date, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import field_serializer, field_validator
from sqlalchemy.orm import Session

from dogtraining.auth.dependencies import get_optional_user, require_owner
from dogtraining.database import get_db
from dogtraining.models.slot import DEFAULT_SLOT_DURATION_MINUTES, SLOT_DURATIONS, AvailableSlot
from dogtraining.models.user import User
from dogtraining.routes.common import CamelModel, MessageResponse
from dogtraining.services import slot_store

router = APIRouter(tags=['slots'])


class SlotRequest(CamelModel):
    date: date
    time: time
    duration: int = DEFAULT_SLOT_DURATION_MINUTES

    @field_validator('time')
    @classmethod
    def validate_local_time(cls, value: time) -> time:
        # Slots are in the business's local time; an offset cannot be compared with it.
        if value.tzinfo is not None:
            raise ValueError('Time must not include a timezone offset.')
        return value

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        if value not in SLOT_DURATIONS:
            raise ValueError('Duration must be 30 or 60 minutes.')
        return value


class SlotResponse(CamelModel):
    id: str
    date: date
    time: time
    duration: int
    booked: bool
    booked_by_user_id: str | None = None

    @field_serializer('time')
    def serialize_time(self, value: time) -> str:
        return value.strftime('%H:%M')


def to_slot_response(slot: AvailableSlot, booked_by: str | None, include_owner: bool) -> SlotResponse:
    return SlotResponse(
        id=slot.id,
        date=slot.date,
        time=slot.time,
        duration=slot.duration,
        booked=booked_by is not None,
        booked_by_user_id=booked_by if include_owner else None,
    )


def build_slot_responses(db: Session, slots: list[AvailableSlot], actor: User | None) -> list[SlotResponse]:
    owners = slot_store.booked_slot_owners(db, [slot.id for slot in slots])
    include_owner = actor is not None and actor.is_owner
    return [to_slot_response(slot, owners.get(slot.id), include_owner) for slot in slots]


@router.get('', response_model=list[SlotResponse])
def list_slots(
    slot_date: date | None = Query(default=None, alias='date'),
    available: bool = Query(default=False),
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    slots = slot_store.list_slots(db, actor=current_user, slot_date=slot_date, only_available=available)
    return build_slot_responses(db, slots, current_user)


@router.post('', response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(data: SlotRequest, owner: User = Depends(require_owner), db: Session = Depends(get_db)):
    slot = slot_store.create_slot(db, data.date, data.time, data.duration)
    return to_slot_response(slot, None, include_owner=True)


@router.put('/{slot_id}', response_model=SlotResponse)
def update_slot(slot_id: str, data: SlotRequest, owner: User = Depends(require_owner), db: Session = Depends(get_db)):
    slot = slot_store.update_slot(db, slot_id, data.date, data.time, data.duration)
    return to_slot_response(slot, None, include_owner=True)


@router.delete('/{slot_id}', response_model=MessageResponse)
def delete_slot(slot_id: str, owner: User = Depends(require_owner), db: Session = Depends(get_db)):
    slot_store.delete_slot(db, slot_id)
    return MessageResponse(message='Time slot deleted successfully')
