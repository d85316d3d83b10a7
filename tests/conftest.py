"""Pytest configuration and shared fixtures."""

import os

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
os.environ.setdefault('JWT_SECRET_KEY', 'test-secret')
os.environ.setdefault('BCRYPT_ROUNDS', '4')

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from dogtraining.auth.passwords import hash_password  # noqa: E402
from dogtraining.database import Base, build_engine, get_db  # noqa: E402
from dogtraining.main import app  # noqa: E402
from dogtraining.models.group_class import GroupClass  # noqa: E402
from dogtraining.models.user import CUSTOMER_ROLE, OWNER_ROLE, User  # noqa: E402
from dogtraining.routes.auth_routes import issue_token  # noqa: E402

TEST_PASSWORD = 'woofwoof'


@pytest.fixture
def engine():
    test_engine = build_engine('sqlite:///:memory:', poolclass=StaticPool)
    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def file_session_factory(tmp_path):
    """Sessions on a file database, so two sessions hold separate connections."""
    file_engine = build_engine(f'sqlite:///{tmp_path / "race.db"}')
    Base.metadata.create_all(bind=file_engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=file_engine)
    finally:
        file_engine.dispose()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def make_user(db):
    created = []

    def _make_user(email: str | None = None, role: str = CUSTOMER_ROLE, name: str = 'Test User', dog_name: str | None = 'Rex') -> User:
        user = User(
            email=email or f'user{len(created) + 1}@example.com',
            name=name,
            role=role,
            dog_name=dog_name if role == CUSTOMER_ROLE else None,
            hashed_password=hash_password(TEST_PASSWORD),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        created.append(user)
        return user

    return _make_user


@pytest.fixture
def owner(make_user) -> User:
    return make_user(email='owner@example.com', role=OWNER_ROLE, name='Training Owner')


@pytest.fixture
def customer(make_user) -> User:
    return make_user(email='customer@example.com', name='Casey Customer', dog_name='Rex')


@pytest.fixture
def other_customer(make_user) -> User:
    return make_user(email='other@example.com', name='Val Visitor', dog_name='Fido')


@pytest.fixture
def make_class(db):
    def _make_class(max_spots: int = 1, name: str = 'Puppy Basics', level: str = 'Beginner') -> GroupClass:
        group_class = GroupClass(
            name=name,
            description='Foundation training',
            schedule='Tuesdays 10:00 AM',
            max_spots=max_spots,
            price=120.0,
            level=level,
        )
        db.add(group_class)
        db.commit()
        db.refresh(group_class)
        return group_class

    return _make_class


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict[str, str]:
        return {'Authorization': f'Bearer {issue_token(user)}'}

    return _auth_headers
