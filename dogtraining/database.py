from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker


load_dotenv()

from dogtraining.core import config  # noqa: E402


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str, **kwargs):
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    new_engine = create_engine(url, echo=config.DATABASE_ECHO, **kwargs)
    if is_sqlite:
        event.listen(new_engine, "connect", _enable_sqlite_foreign_keys)
    return new_engine


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False
_class_schema_checked = False

ACTIVE_BOOKING_PREDICATE = "status IN ('confirmed', 'pending')"


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_booking_schema(bind=None) -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    bind = bind or engine

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(bind)

        if 'bookings' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        existing_slot_columns = {column['name'] for column in inspector.get_columns('available_slots')}
        existing_booking_columns = {column['name'] for column in inspector.get_columns('bookings')}
        migration_steps = [
            (existing_slot_columns, 'is_booked', 'ALTER TABLE available_slots ADD COLUMN is_booked BOOLEAN DEFAULT FALSE'),
            (existing_slot_columns, 'updated_at', 'ALTER TABLE available_slots ADD COLUMN updated_at TIMESTAMP'),
            (existing_booking_columns, 'notes', 'ALTER TABLE bookings ADD COLUMN notes TEXT'),
            (existing_booking_columns, 'updated_at', 'ALTER TABLE bookings ADD COLUMN updated_at TIMESTAMP'),
        ]

        with bind.begin() as connection:
            for existing_columns, column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_bookings_active_slot ON bookings(slot_id) '
                    f'WHERE {ACTIVE_BOOKING_PREDICATE}'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_user_created ON bookings(user_id, created_at)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_available_slots_date_time ON available_slots(date, time)')
            )

        _booking_schema_checked = True


def ensure_class_schema(bind=None) -> None:
    global _class_schema_checked

    if _class_schema_checked:
        return

    bind = bind or engine

    with _schema_lock:
        if _class_schema_checked:
            return

        inspector = inspect(bind)

        if 'group_classes' not in inspector.get_table_names():
            _class_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('group_classes')}
        migration_steps = [
            ('version', 'ALTER TABLE group_classes ADD COLUMN version INTEGER NOT NULL DEFAULT 1'),
            ('description', 'ALTER TABLE group_classes ADD COLUMN description TEXT'),
        ]

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_enrollments_class_status '
                    'ON group_class_enrollments(class_id, status, id)'
                )
            )

        _class_schema_checked = True
