import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, Index, Integer, Numeric, String

from .db import Base


class ReservationStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


def utcnow():
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(String(36), primary_key=True, default=new_id)

    accommodation_id = Column(String(36), nullable=False, index=True)
    guest_id = Column(String(36), nullable=False, index=True)
    host_id = Column(String(36), nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # exclusive (checkout day)
    guest_count = Column(Integer, nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)

    status = Column(String, nullable=False, default=ReservationStatus.PENDING.value)  # PENDING/APPROVED/REJECTED/CANCELLED
    is_deleted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("end_date > start_date", name="ck_reservations_date_order"),
        CheckConstraint("guest_count >= 1", name="ck_reservations_guest_count"),
        Index("ix_reservations_accommodation_status", "accommodation_id", "status"),
    )

    def touch(self):
        self.updated_at = utcnow()

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, accommodation={self.accommodation_id}, "
            f"{self.start_date}..{self.end_date}, status={self.status})>"
        )
