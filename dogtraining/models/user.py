"""User model definitions."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, String
from dogtraining.database import Base

OWNER_ROLE = "owner"
CUSTOMER_ROLE = "customer"
USER_ROLES = (OWNER_ROLE, CUSTOMER_ROLE)


class User(Base):
    """Represents a customer or the business owner."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=CUSTOMER_ROLE, index=True)  # owner/customer
    dog_name = Column(String(255))
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    @property
    def is_owner(self) -> bool:
        return self.role == OWNER_ROLE
