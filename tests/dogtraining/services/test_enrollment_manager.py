from datetime import datetime, timedelta

import pytest
from sqlalchemy import event

from dogtraining.core import config
from dogtraining.core.errors import ConflictError, InvalidInputError, NotFoundError
from dogtraining.models.group_class import ENROLLED, WAITLISTED, GroupClass, GroupClassEnrollment
from dogtraining.models.user import User
from dogtraining.services import enrollment_manager

T0 = datetime(2026, 3, 2, 9, 0)


def _at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


def test_enroll_takes_a_free_spot(db, make_class, customer) -> None:
    group_class = make_class(max_spots=2)

    result = enrollment_manager.enroll(db, group_class.id, customer.id, now=T0)

    assert result.status == ENROLLED
    assert result.class_name == 'Puppy Basics'
    refreshed = enrollment_manager.get_class(db, group_class.id)
    assert refreshed.enrolled_students == [customer.id]
    assert refreshed.available_spots == 1


def test_enroll_on_full_class_joins_waitlist(db, make_class, customer, other_customer) -> None:
    group_class = make_class(max_spots=1)
    enrollment_manager.enroll(db, group_class.id, customer.id, now=_at(0))

    result = enrollment_manager.enroll(db, group_class.id, other_customer.id, now=_at(1))

    assert result.status == WAITLISTED
    refreshed = enrollment_manager.get_class(db, group_class.id)
    assert refreshed.enrolled_students == [customer.id]
    assert refreshed.waitlist == [other_customer.id]
    assert refreshed.available_spots == 0


def test_enroll_twice_is_a_conflict(db, make_class, customer) -> None:
    group_class = make_class(max_spots=2)
    enrollment_manager.enroll(db, group_class.id, customer.id, now=T0)

    with pytest.raises(ConflictError) as exception_info:
        enrollment_manager.enroll(db, group_class.id, customer.id, now=_at(1))

    assert exception_info.value.message == 'Already enrolled in this class.'


def test_enroll_while_waitlisted_is_a_conflict(db, make_class, customer, other_customer) -> None:
    group_class = make_class(max_spots=1)
    enrollment_manager.enroll(db, group_class.id, customer.id, now=_at(0))
    enrollment_manager.enroll(db, group_class.id, other_customer.id, now=_at(1))

    with pytest.raises(ConflictError) as exception_info:
        enrollment_manager.enroll(db, group_class.id, other_customer.id, now=_at(2))

    assert exception_info.value.message == 'Already on waitlist for this class.'


def test_enroll_unknown_class(db, customer) -> None:
    with pytest.raises(NotFoundError):
        enrollment_manager.enroll(db, 'missing', customer.id)


def test_withdraw_promotes_waitlist_head_in_fifo_order(db, make_class, make_user) -> None:
    group_class = make_class(max_spots=1)
    first, second, third = make_user(), make_user(), make_user()
    enrollment_manager.enroll(db, group_class.id, first.id, now=_at(0))
    enrollment_manager.enroll(db, group_class.id, second.id, now=_at(1))
    enrollment_manager.enroll(db, group_class.id, third.id, now=_at(2))

    result = enrollment_manager.withdraw(db, group_class.id, first.id, now=_at(3))

    assert result.previous_status == ENROLLED
    assert result.promoted_user_id == second.id
    refreshed = enrollment_manager.get_class(db, group_class.id)
    assert refreshed.enrolled_students == [second.id]
    assert refreshed.waitlist == [third.id]
    promoted = next(row for row in refreshed.enrollments if row.user_id == second.id)
    assert promoted.enrolled_at == _at(3)


def test_withdraw_from_waitlist_promotes_nobody(db, make_class, customer, other_customer) -> None:
    group_class = make_class(max_spots=1)
    enrollment_manager.enroll(db, group_class.id, customer.id, now=_at(0))
    enrollment_manager.enroll(db, group_class.id, other_customer.id, now=_at(1))

    result = enrollment_manager.withdraw(db, group_class.id, other_customer.id, now=_at(2))

    assert result.previous_status == WAITLISTED
    assert result.promoted_user_id is None
    refreshed = enrollment_manager.get_class(db, group_class.id)
    assert refreshed.enrolled_students == [customer.id]
    assert refreshed.waitlist == []


def test_withdraw_without_membership(db, make_class, customer) -> None:
    group_class = make_class()

    with pytest.raises(NotFoundError) as exception_info:
        enrollment_manager.withdraw(db, group_class.id, customer.id)

    assert exception_info.value.message == 'Enrollment not found.'


def test_user_never_holds_two_memberships(db, make_class, customer, other_customer) -> None:
    group_class = make_class(max_spots=1)
    enrollment_manager.enroll(db, group_class.id, other_customer.id, now=_at(0))
    enrollment_manager.enroll(db, group_class.id, customer.id, now=_at(1))
    with pytest.raises(ConflictError):
        enrollment_manager.enroll(db, group_class.id, customer.id, now=_at(2))

    rows = db.query(GroupClassEnrollment).filter_by(class_id=group_class.id, user_id=customer.id).all()

    assert len(rows) == 1


def test_create_class_validates_capacity(db) -> None:
    with pytest.raises(InvalidInputError):
        enrollment_manager.create_class(db, name='Huge', schedule='Daily', max_spots=51, price=10, level='Beginner')

    with pytest.raises(InvalidInputError):
        enrollment_manager.create_class(db, name='Empty', schedule='Daily', max_spots=0, price=10, level='Beginner')


def test_create_class_rejects_unknown_level(db) -> None:
    with pytest.raises(InvalidInputError):
        enrollment_manager.create_class(db, name='Agility', schedule='Daily', max_spots=5, price=10, level='Expert')


def test_create_class_returns_empty_roster(db) -> None:
    group_class = enrollment_manager.create_class(
        db,
        name='Agility',
        description='Jumps and tunnels',
        schedule='Saturdays 9:00 AM',
        max_spots=5,
        price=175.5,
        level='Intermediate',
    )

    assert group_class.id
    assert group_class.enrolled_students == []
    assert group_class.waitlist == []
    assert group_class.available_spots == 5
    assert group_class.price == 175.5


def test_list_classes_filters_by_level(db, make_class) -> None:
    make_class(name='Puppy Basics', level='Beginner')
    advanced = make_class(name='Advanced Training', level='Advanced')

    assert [item.id for item in enrollment_manager.list_classes(db, level='Advanced')] == [advanced.id]
    assert len(enrollment_manager.list_classes(db)) == 2


def test_update_class_rejects_capacity_below_roster(db, make_class, customer, other_customer) -> None:
    group_class = make_class(max_spots=2)
    enrollment_manager.enroll(db, group_class.id, customer.id, now=_at(0))
    enrollment_manager.enroll(db, group_class.id, other_customer.id, now=_at(1))

    with pytest.raises(InvalidInputError):
        enrollment_manager.update_class(db, group_class.id, {'max_spots': 1})

    assert enrollment_manager.get_class(db, group_class.id).max_spots == 2


def test_update_class_raising_capacity_promotes_waitlist(db, make_class, customer, other_customer) -> None:
    group_class = make_class(max_spots=1)
    enrollment_manager.enroll(db, group_class.id, customer.id, now=_at(0))
    enrollment_manager.enroll(db, group_class.id, other_customer.id, now=_at(1))

    updated = enrollment_manager.update_class(db, group_class.id, {'max_spots': 2}, now=_at(2))

    assert updated.enrolled_students == [customer.id, other_customer.id]
    assert updated.waitlist == []


def test_update_class_rejects_unknown_fields(db, make_class) -> None:
    group_class = make_class()

    with pytest.raises(InvalidInputError):
        enrollment_manager.update_class(db, group_class.id, {'version': 9})


def test_delete_class_drops_roster(db, make_class, customer) -> None:
    group_class = make_class()
    enrollment_manager.enroll(db, group_class.id, customer.id, now=T0)

    enrollment_manager.delete_class(db, group_class.id)

    assert db.get(GroupClass, group_class.id) is None
    assert db.query(GroupClassEnrollment).count() == 0


def _add_user(session, email: str) -> str:
    user = User(email=email, name=email.split('@')[0], hashed_password='unused', dog_name='Rex')
    session.add(user)
    session.commit()
    return user.id


def _race_once(session, rival_step):
    """Run ``rival_step`` in another session right before ``session`` next flushes."""
    fired = []

    def before_flush(_session, _flush_context, _instances):
        if fired:
            return
        fired.append(True)
        rival_step()

    event.listen(session, 'before_flush', before_flush)


def test_concurrent_enrollment_retries_against_fresh_roster(file_session_factory) -> None:
    setup = file_session_factory()
    first_id = _add_user(setup, 'first@example.com')
    rival_id = _add_user(setup, 'rival@example.com')
    group_class = GroupClass(name='Puppy Basics', schedule='Tuesdays', max_spots=1, price=120, level='Beginner')
    setup.add(group_class)
    setup.commit()
    class_id = group_class.id
    setup.close()

    db_a = file_session_factory()
    db_b = file_session_factory()
    try:
        _race_once(db_a, lambda: enrollment_manager.enroll(db_b, class_id, rival_id, now=_at(0)))

        result = enrollment_manager.enroll(db_a, class_id, first_id, now=_at(1))

        assert result.status == WAITLISTED
        refreshed = enrollment_manager.get_class(db_a, class_id)
        assert refreshed.enrolled_students == [rival_id]
        assert refreshed.waitlist == [first_id]
    finally:
        db_a.close()
        db_b.close()


def test_concurrent_enrollment_gives_up_after_retry_budget(file_session_factory, monkeypatch) -> None:
    monkeypatch.setattr(config, 'ENROLLMENT_MAX_RETRIES', 1)
    setup = file_session_factory()
    first_id = _add_user(setup, 'first@example.com')
    rival_id = _add_user(setup, 'rival@example.com')
    group_class = GroupClass(name='Puppy Basics', schedule='Tuesdays', max_spots=1, price=120, level='Beginner')
    setup.add(group_class)
    setup.commit()
    class_id = group_class.id
    setup.close()

    db_a = file_session_factory()
    db_b = file_session_factory()
    try:
        _race_once(db_a, lambda: enrollment_manager.enroll(db_b, class_id, rival_id, now=_at(0)))

        with pytest.raises(ConflictError):
            enrollment_manager.enroll(db_a, class_id, first_id, now=_at(1))

        refreshed = enrollment_manager.get_class(db_a, class_id)
        assert refreshed.enrolled_students == [rival_id]
        assert refreshed.waitlist == []
    finally:
        db_a.close()
        db_b.close()


def test_concurrent_enrollment_is_detected_when_clock_does_not_move(file_session_factory) -> None:
    setup = file_session_factory()
    first_id = _add_user(setup, 'first@example.com')
    rival_id = _add_user(setup, 'rival@example.com')
    # Stored updated_at already equals the clock every roster change below uses.
    group_class = GroupClass(
        name='Puppy Basics',
        schedule='Tuesdays',
        max_spots=1,
        price=120,
        level='Beginner',
        updated_at=T0,
    )
    setup.add(group_class)
    setup.commit()
    class_id = group_class.id
    setup.close()

    db_a = file_session_factory()
    db_b = file_session_factory()
    try:
        _race_once(db_a, lambda: enrollment_manager.enroll(db_b, class_id, rival_id, now=T0))

        result = enrollment_manager.enroll(db_a, class_id, first_id, now=T0)

        assert result.status == WAITLISTED
        refreshed = enrollment_manager.get_class(db_a, class_id)
        assert refreshed.enrolled_students == [rival_id]
        assert refreshed.waitlist == [first_id]
        assert refreshed.version == 3
    finally:
        db_a.close()
        db_b.close()
