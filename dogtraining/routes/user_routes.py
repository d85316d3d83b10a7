from fastapi import APIRouter, Depends
from pydantic import field_validator
from sqlalchemy import select
from sqlalchemy.orm import Session

from dogtraining.auth.dependencies import ensure_owner_or_self, get_current_user, require_owner
from dogtraining.core.errors import NotFoundError
from dogtraining.database import get_db
from dogtraining.models.user import User
from dogtraining.routes.auth_routes import UserResponse
from dogtraining.routes.common import CamelModel, normalize_optional_text, normalize_required_text

router = APIRouter(tags=['users'])


class UpdateUserRequest(CamelModel):
    name: str
    dog_name: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return normalize_required_text(value, 2, 100, 'Name')

    @field_validator('dog_name')
    @classmethod
    def validate_dog_name(cls, value: str | None) -> str | None:
        return normalize_optional_text(value, 100, 'Dog name')


def get_user_or_404(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError('User not found.')
    return user


@router.get('', response_model=list[UserResponse])
def list_users(_owner: User = Depends(require_owner), db: Session = Depends(get_db)):
    return db.scalars(select(User).order_by(User.created_at.desc())).all()


@router.get('/{user_id}', response_model=UserResponse)
def get_user(user_id: str, current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    ensure_owner_or_self(current_user, user_id, 'Access denied')
    return get_user_or_404(db, user_id)


@router.put('/{user_id}', response_model=UserResponse)
def update_user(
    user_id: str,
    data: UpdateUserRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_owner_or_self(current_user, user_id, 'Access denied')
    user = get_user_or_404(db, user_id)

    user.name = data.name
    user.dog_name = data.dog_name
    db.commit()
    db.refresh(user)
    return user
