"""Class enrollment manager: group classes, capacity and the FIFO waitlist.

Every roster change (enroll, withdraw, capacity edit) is a read-decide-write
on one class. It runs in a single transaction that locks the class row where
the database supports it and bumps ``GroupClass.version``. SQLAlchemy checks
the version on flush, so a decision made against a roster that changed in the
meantime fails with ``StaleDataError`` and the whole step is retried from a
fresh read.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from dogtraining.core import config
from dogtraining.core.errors import ConflictError, DomainError, InvalidInputError, NotFoundError
from dogtraining.models.group_class import (
    CLASS_LEVELS,
    ENROLLED,
    MAX_CLASS_SPOTS,
    MIN_CLASS_SPOTS,
    WAITLISTED,
    GroupClass,
    GroupClassEnrollment,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLASS_FIELDS = ("name", "description", "schedule", "max_spots", "price", "level")


@dataclass(frozen=True)
class EnrollmentResult:
    class_id: str
    class_name: str
    user_id: str
    status: str


@dataclass(frozen=True)
class WithdrawalResult:
    class_id: str
    class_name: str
    user_id: str
    previous_status: str
    promoted_user_id: str | None = None


def _load_class(db: Session, class_id: str, lock: bool = False) -> GroupClass:
    query = (
        select(GroupClass)
        .options(selectinload(GroupClass.enrollments))
        .where(GroupClass.id == class_id)
        .execution_options(populate_existing=True)
    )
    if lock:
        query = query.with_for_update(of=GroupClass)

    group_class = db.scalars(query).first()
    if group_class is None:
        raise NotFoundError('Class not found.')
    return group_class


def _validate_class_fields(fields: dict) -> None:
    if 'max_spots' in fields:
        max_spots = fields['max_spots']
        if not isinstance(max_spots, int) or not MIN_CLASS_SPOTS <= max_spots <= MAX_CLASS_SPOTS:
            raise InvalidInputError(f'maxSpots must be between {MIN_CLASS_SPOTS} and {MAX_CLASS_SPOTS}.')
    if 'price' in fields and (fields['price'] is None or fields['price'] < 0):
        raise InvalidInputError('price must be zero or greater.')
    if 'level' in fields and fields['level'] not in CLASS_LEVELS:
        raise InvalidInputError(f'level must be one of {", ".join(CLASS_LEVELS)}.')
    for required in ('name', 'schedule'):
        if required in fields and not (fields[required] or '').strip():
            raise InvalidInputError(f'{required} is required.')


def _promote_from_waitlist(group_class: GroupClass, now: datetime) -> list[str]:
    promoted: list[str] = []
    while group_class.enrolled_count < group_class.max_spots and group_class.waitlisted:
        head = group_class.waitlisted[0]
        head.status = ENROLLED
        head.enrolled_at = now
        promoted.append(head.user_id)
        logger.info('User %s promoted from the waitlist of class %s', head.user_id, group_class.id)
    return promoted


def _touch(group_class: GroupClass, now: datetime) -> None:
    # Flagged even when the value is unchanged, so the UPDATE and its version check always run.
    group_class.updated_at = now
    flag_modified(group_class, 'updated_at')


def _run_roster_change(db: Session, step: Callable[[], T]) -> T:
    attempts = config.ENROLLMENT_MAX_RETRIES
    for attempt in range(1, attempts + 1):
        try:
            result = step()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            logger.warning('Class roster changed concurrently (attempt %d of %d); retrying', attempt, attempts)
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError('Already enrolled in this class.') from exc
        except DomainError:
            db.rollback()
            raise

    raise ConflictError('Class roster changed concurrently. Please try again.')


def get_class(db: Session, class_id: str) -> GroupClass:
    return _load_class(db, class_id)


def list_classes(db: Session, level: str | None = None) -> list[GroupClass]:
    query = select(GroupClass).options(selectinload(GroupClass.enrollments))
    if level is not None:
        if level not in CLASS_LEVELS:
            raise InvalidInputError(f'level must be one of {", ".join(CLASS_LEVELS)}.')
        query = query.where(GroupClass.level == level)

    query = query.order_by(GroupClass.created_at.desc(), GroupClass.name)
    return list(db.scalars(query).all())


def create_class(
    db: Session,
    name: str,
    schedule: str,
    max_spots: int,
    price: float,
    level: str,
    description: str | None = None,
) -> GroupClass:
    fields = {
        'name': name,
        'description': description,
        'schedule': schedule,
        'max_spots': max_spots,
        'price': price,
        'level': level,
    }
    _validate_class_fields(fields)

    group_class = GroupClass(**fields)
    db.add(group_class)
    db.commit()
    logger.info('Created class %s (%s, %d spots)', group_class.id, group_class.name, group_class.max_spots)
    return _load_class(db, group_class.id)


def update_class(db: Session, class_id: str, fields: dict, now: datetime | None = None) -> GroupClass:
    unknown = set(fields) - set(CLASS_FIELDS)
    if unknown:
        raise InvalidInputError(f'Unknown class fields: {", ".join(sorted(unknown))}.')
    _validate_class_fields(fields)

    def step() -> GroupClass:
        current = now or datetime.now()
        group_class = _load_class(db, class_id, lock=True)

        new_max = fields.get('max_spots', group_class.max_spots)
        if new_max < group_class.enrolled_count:
            raise InvalidInputError('maxSpots cannot be lower than the number of enrolled students.')

        for field_name, value in fields.items():
            setattr(group_class, field_name, value)

        _promote_from_waitlist(group_class, current)
        _touch(group_class, current)
        return group_class

    group_class = _run_roster_change(db, step)
    return _load_class(db, group_class.id)


def delete_class(db: Session, class_id: str) -> None:
    group_class = _load_class(db, class_id, lock=True)
    db.delete(group_class)
    db.commit()
    logger.info('Deleted class %s', class_id)


def enroll(db: Session, class_id: str, user_id: str, now: datetime | None = None) -> EnrollmentResult:
    def step() -> EnrollmentResult:
        current = now or datetime.now()
        group_class = _load_class(db, class_id, lock=True)

        existing = next((row for row in group_class.enrollments if row.user_id == user_id), None)
        if existing is not None:
            if existing.status == ENROLLED:
                raise ConflictError('Already enrolled in this class.')
            raise ConflictError('Already on waitlist for this class.')

        if group_class.enrolled_count < group_class.max_spots:
            membership = GroupClassEnrollment(user_id=user_id, status=ENROLLED, created_at=current, enrolled_at=current)
        else:
            membership = GroupClassEnrollment(user_id=user_id, status=WAITLISTED, created_at=current)

        group_class.enrollments.append(membership)
        _touch(group_class, current)
        return EnrollmentResult(
            class_id=group_class.id,
            class_name=group_class.name,
            user_id=user_id,
            status=membership.status,
        )

    result = _run_roster_change(db, step)
    logger.info('User %s %s in class %s', user_id, result.status, class_id)
    return result


def withdraw(db: Session, class_id: str, user_id: str, now: datetime | None = None) -> WithdrawalResult:
    def step() -> WithdrawalResult:
        current = now or datetime.now()
        group_class = _load_class(db, class_id, lock=True)

        membership = next((row for row in group_class.enrollments if row.user_id == user_id), None)
        if membership is None:
            raise NotFoundError('Enrollment not found.')

        previous_status = membership.status
        group_class.enrollments.remove(membership)

        promoted: list[str] = []
        if previous_status == ENROLLED:
            promoted = _promote_from_waitlist(group_class, current)

        _touch(group_class, current)
        return WithdrawalResult(
            class_id=group_class.id,
            class_name=group_class.name,
            user_id=user_id,
            previous_status=previous_status,
            promoted_user_id=promoted[0] if promoted else None,
        )

    result = _run_roster_change(db, step)
    logger.info('User %s withdrew from class %s (was %s)', user_id, class_id, result.previous_status)
    return result
