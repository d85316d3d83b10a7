from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import Field, ValidationInfo, field_validator
from sqlalchemy.orm import Session

from dogtraining.auth.dependencies import ensure_owner_or_self, get_current_user, require_owner
from dogtraining.database import get_db
from dogtraining.models.group_class import CLASS_LEVELS, ENROLLED, MAX_CLASS_SPOTS, MIN_CLASS_SPOTS, GroupClass
from dogtraining.models.user import User
from dogtraining.routes.common import CamelModel, MessageResponse, normalize_optional_text, normalize_required_text
from dogtraining.services import enrollment_manager

router = APIRouter(tags=['classes'])

MAX_DESCRIPTION_LENGTH = 1000


def _validate_level(value: str) -> str:
    normalized = value.strip().capitalize()
    if normalized not in CLASS_LEVELS:
        raise ValueError(f'Level must be one of {", ".join(CLASS_LEVELS)}.')
    return normalized


class CreateClassRequest(CamelModel):
    name: str
    description: str | None = None
    schedule: str
    max_spots: int = Field(ge=MIN_CLASS_SPOTS, le=MAX_CLASS_SPOTS)
    price: float = Field(ge=0)
    level: str

    @field_validator('name', 'schedule')
    @classmethod
    def validate_required_text(cls, value: str, info: ValidationInfo) -> str:
        return normalize_required_text(value, 2, 255, info.field_name.capitalize())

    @field_validator('description')
    @classmethod
    def validate_description(cls, value: str | None) -> str | None:
        return normalize_optional_text(value, MAX_DESCRIPTION_LENGTH, 'Description')

    @field_validator('level')
    @classmethod
    def validate_level(cls, value: str) -> str:
        return _validate_level(value)

    @field_validator('price')
    @classmethod
    def round_price(cls, value: float) -> float:
        return round(value, 2)


class UpdateClassRequest(CamelModel):
    name: str | None = None
    description: str | None = None
    schedule: str | None = None
    max_spots: int | None = Field(default=None, ge=MIN_CLASS_SPOTS, le=MAX_CLASS_SPOTS)
    price: float | None = Field(default=None, ge=0)
    level: str | None = None

    @field_validator('name', 'schedule')
    @classmethod
    def validate_required_text(cls, value: str | None, info: ValidationInfo) -> str | None:
        if value is None:
            raise ValueError('Field cannot be null.')
        return normalize_required_text(value, 2, 255, info.field_name.capitalize())

    @field_validator('description')
    @classmethod
    def validate_description(cls, value: str | None) -> str | None:
        return normalize_optional_text(value, MAX_DESCRIPTION_LENGTH, 'Description')

    @field_validator('level')
    @classmethod
    def validate_level(cls, value: str | None) -> str | None:
        if value is None:
            raise ValueError('Level cannot be null.')
        return _validate_level(value)

    @field_validator('max_spots', 'price')
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError('Field cannot be null.')
        return value


class ClassResponse(CamelModel):
    id: str
    name: str
    description: str | None = None
    schedule: str
    max_spots: int
    price: float
    level: str
    enrolled_students: list[str]
    waitlist: list[str]
    enrolled_count: int
    available_spots: int
    created_at: datetime
    updated_at: datetime


class EnrollmentResponse(CamelModel):
    message: str
    status: str
    class_name: str


class WithdrawalResponse(CamelModel):
    message: str
    promoted_user_id: str | None = None


def to_class_response(group_class: GroupClass) -> ClassResponse:
    return ClassResponse.model_validate(group_class)


@router.get('', response_model=list[ClassResponse])
def list_classes(level: str | None = Query(default=None), db: Session = Depends(get_db)):
    normalized_level = level.strip().capitalize() if level else None
    return [to_class_response(group_class) for group_class in enrollment_manager.list_classes(db, normalized_level)]


@router.get('/{class_id}', response_model=ClassResponse)
def get_class(class_id: str, db: Session = Depends(get_db)):
    return to_class_response(enrollment_manager.get_class(db, class_id))


@router.post('', response_model=ClassResponse, status_code=status.HTTP_201_CREATED)
def create_class(data: CreateClassRequest, owner: User = Depends(require_owner), db: Session = Depends(get_db)):
    group_class = enrollment_manager.create_class(
        db,
        name=data.name,
        description=data.description,
        schedule=data.schedule,
        max_spots=data.max_spots,
        price=data.price,
        level=data.level,
    )
    return to_class_response(group_class)


@router.put('/{class_id}', response_model=ClassResponse)
def update_class(
    class_id: str,
    data: UpdateClassRequest,
    owner: User = Depends(require_owner),
    db: Session = Depends(get_db),
):
    fields = {field_name: getattr(data, field_name) for field_name in data.model_fields_set}
    return to_class_response(enrollment_manager.update_class(db, class_id, fields))


@router.delete('/{class_id}', response_model=MessageResponse)
def delete_class(class_id: str, owner: User = Depends(require_owner), db: Session = Depends(get_db)):
    enrollment_manager.delete_class(db, class_id)
    return MessageResponse(message='Class deleted successfully')


@router.post('/{class_id}/enroll', response_model=EnrollmentResponse)
def enroll_in_class(
    class_id: str,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = enrollment_manager.enroll(db, class_id, current_user.id)

    if result.status == ENROLLED:
        response.status_code = status.HTTP_201_CREATED
        message = 'Successfully enrolled in class'
    else:
        response.status_code = status.HTTP_200_OK
        message = 'Class is full, added to waitlist'

    return EnrollmentResponse(message=message, status=result.status, class_name=result.class_name)


@router.delete('/{class_id}/enroll', response_model=WithdrawalResponse)
def withdraw_from_class(
    class_id: str,
    user_id: str | None = Query(default=None, alias='userId'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    target_user_id = user_id or current_user.id
    ensure_owner_or_self(current_user, target_user_id, 'Only the owner can withdraw other users.')

    result = enrollment_manager.withdraw(db, class_id, target_user_id)

    if result.previous_status == ENROLLED:
        message = 'Successfully unenrolled from class'
    else:
        message = 'Removed from waitlist'

    return WithdrawalResponse(message=message, promoted_user_id=result.promoted_user_id)
