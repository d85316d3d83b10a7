"""Private lesson slot model definitions."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import relationship

from dogtraining.database import Base

SLOT_DURATIONS = (30, 60)
DEFAULT_SLOT_DURATION_MINUTES = 60


class AvailableSlot(Base):
    """A time the owner has opened up for a private lesson."""
    __tablename__ = "available_slots"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    date = Column(Date, nullable=False, index=True)
    time = Column(Time, nullable=False)
    duration = Column(Integer, nullable=False, default=DEFAULT_SLOT_DURATION_MINUTES)
    # Cache of "an active booking references this slot"; reads derive occupancy from bookings.
    is_booked = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    bookings = relationship(
        "Booking",
        back_populates="slot",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("date", "time", "duration", name="uq_available_slot_date_time_duration"),
        CheckConstraint("duration IN (30, 60)", name="ck_available_slot_duration"),
    )

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.time)
