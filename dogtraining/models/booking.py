"""Private lesson booking model definitions."""

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import relationship

from dogtraining.database import ACTIVE_BOOKING_PREDICATE, Base

CONFIRMED = "confirmed"
PENDING = "pending"
CANCELLED = "cancelled"
BOOKING_STATUSES = (CONFIRMED, PENDING, CANCELLED)
ACTIVE_STATUSES = (CONFIRMED, PENDING)


class Booking(Base):
    """Represents a customer's booking of one slot."""
    __tablename__ = "bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slot_id = Column(String(36), ForeignKey("available_slots.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    dog_name = Column(String(255), nullable=False)
    notes = Column(Text)
    status = Column(String(20), nullable=False, default=CONFIRMED, index=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    slot = relationship("AvailableSlot", back_populates="bookings")

    __table_args__ = (
        CheckConstraint("status IN ('confirmed', 'pending', 'cancelled')", name="ck_booking_status"),
        # At most one active booking per slot.
        Index(
            "uq_bookings_active_slot",
            "slot_id",
            unique=True,
            postgresql_where=text(ACTIVE_BOOKING_PREDICATE),
            sqlite_where=text(ACTIVE_BOOKING_PREDICATE),
        ),
        Index("idx_bookings_user_created", "user_id", "created_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
