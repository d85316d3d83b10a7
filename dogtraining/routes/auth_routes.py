import logging

from fastapi import APIRouter, Depends, status
from pydantic import EmailStr, field_validator, model_validator
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dogtraining.auth import jwt_handler
from dogtraining.auth.dependencies import get_current_user
from dogtraining.auth.passwords import check_password_policy, hash_password, verify_password
from dogtraining.core import config
from dogtraining.core.errors import ConflictError, ForbiddenError, UnauthenticatedError
from dogtraining.database import get_db
from dogtraining.models.user import CUSTOMER_ROLE, OWNER_ROLE, USER_ROLES, User
from dogtraining.routes.common import CamelModel, normalize_optional_text, normalize_required_text

router = APIRouter(tags=['auth'])

logger = logging.getLogger(__name__)

class UserResponse(CamelModel):
    id: str
    email: str
    name: str
    role: str
    dog_name: str | None = None


class AuthResponse(CamelModel):
    token: str
    user: UserResponse


class RegisterRequest(CamelModel):
    email: EmailStr
    name: str
    role: str = CUSTOMER_ROLE
    dog_name: str | None = None
    password: str
    owner_code: str | None = None

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return normalize_required_text(value, 2, 100, 'Name')

    @field_validator('role')
    @classmethod
    def validate_role(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in USER_ROLES:
            raise ValueError('Role must be owner or customer.')
        return normalized

    @field_validator('dog_name')
    @classmethod
    def validate_dog_name(cls, value: str | None) -> str | None:
        return normalize_optional_text(value, 100, 'Dog name')

    @field_validator('password')
    @classmethod
    def validate_password(cls, value: str) -> str:
        return check_password_policy(value)

    @model_validator(mode='after')
    def require_dog_name_for_customers(self) -> 'RegisterRequest':
        if self.role == CUSTOMER_ROLE and not self.dog_name:
            raise ValueError('Dog name is required for customers.')
        return self


class LoginRequest(CamelModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return value.strip().lower()


def issue_token(user: User) -> str:
    return jwt_handler.create_access_token(subject=user.id, email=user.email, role=user.role)


@router.post('/register', response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(data: RegisterRequest, db: Session = Depends(get_db)):
    if data.role == OWNER_ROLE and config.OWNER_SIGNUP_CODE and data.owner_code != config.OWNER_SIGNUP_CODE:
        raise ForbiddenError('Invalid owner signup code.')

    existing = db.scalars(select(User).where(User.email == data.email)).first()
    if existing is not None:
        raise ConflictError('User already exists.')

    user = User(
        email=data.email,
        name=data.name,
        role=data.role,
        dog_name=data.dog_name,
        hashed_password=hash_password(data.password),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('User already exists.') from exc

    db.refresh(user)
    logger.info('Registered %s account %s', user.role, user.id)
    return AuthResponse(token=issue_token(user), user=UserResponse.model_validate(user))


@router.post('/login', response_model=AuthResponse)
def login(data: LoginRequest, db: Session = Depends(get_db)):
    user = db.scalars(select(User).where(User.email == data.email)).first()
    if user is None or not verify_password(data.password, user.hashed_password):
        raise UnauthenticatedError('Invalid credentials')

    return AuthResponse(token=issue_token(user), user=UserResponse.model_validate(user))


@router.get('/me', response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)):
    return current_user
