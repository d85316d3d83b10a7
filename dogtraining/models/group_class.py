"""Group class and enrollment model definitions."""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from dogtraining.database import Base

CLASS_LEVELS = ("Beginner", "Intermediate", "Advanced")
MIN_CLASS_SPOTS = 1
MAX_CLASS_SPOTS = 50

ENROLLED = "enrolled"
WAITLISTED = "waitlisted"


def _roster_position(row: "GroupClassEnrollment") -> tuple:
    joined = row.enrolled_at or row.created_at or datetime.max
    # Rows not yet flushed have no id and sort last.
    return (joined, row.id if row.id is not None else float("inf"))


class GroupClass(Base):
    """A recurring group class with a fixed number of spots."""
    __tablename__ = "group_classes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    description = Column(Text)
    schedule = Column(String(255), nullable=False)
    max_spots = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    level = Column(String(20), nullable=False, index=True)
    # Bumped on every roster change; SQLAlchemy rejects flushes made against a stale value.
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    enrollments = relationship(
        "GroupClassEnrollment",
        back_populates="group_class",
        cascade="all, delete-orphan",
        order_by="GroupClassEnrollment.id",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("max_spots BETWEEN 1 AND 50", name="ck_group_class_max_spots"),
        CheckConstraint("price >= 0", name="ck_group_class_price"),
        CheckConstraint("level IN ('Beginner', 'Intermediate', 'Advanced')", name="ck_group_class_level"),
    )

    @property
    def enrolled(self) -> list["GroupClassEnrollment"]:
        rows = [row for row in self.enrollments if row.status == ENROLLED]
        return sorted(rows, key=_roster_position)

    @property
    def waitlisted(self) -> list["GroupClassEnrollment"]:
        return [row for row in self.enrollments if row.status == WAITLISTED]

    @property
    def enrolled_students(self) -> list[str]:
        return [row.user_id for row in self.enrolled]

    @property
    def waitlist(self) -> list[str]:
        return [row.user_id for row in self.waitlisted]

    @property
    def enrolled_count(self) -> int:
        return len(self.enrolled)

    @property
    def available_spots(self) -> int:
        return max(self.max_spots - self.enrolled_count, 0)


class GroupClassEnrollment(Base):
    """A user's place in a class, either on the roster or on the waitlist."""
    __tablename__ = "group_class_enrollments"

    # Monotonic id doubles as the FIFO position.
    id = Column(Integer, primary_key=True, autoincrement=True)
    class_id = Column(String(36), ForeignKey("group_classes.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default=ENROLLED)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    enrolled_at = Column(DateTime)

    group_class = relationship("GroupClass", back_populates="enrollments")

    __table_args__ = (
        UniqueConstraint("class_id", "user_id", name="uq_enrollment_class_user"),
        CheckConstraint("status IN ('enrolled', 'waitlisted')", name="ck_enrollment_status"),
    )
