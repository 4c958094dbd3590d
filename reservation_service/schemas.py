from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CreateReservationRequest(BaseModel):
    accommodation_id: str = Field(min_length=1)
    start_date: date
    end_date: date
    guest_count: int = Field(ge=1)

    @field_validator("start_date")
    @classmethod
    def start_not_in_past(cls, v: date) -> date:
        if v < date.today():
            raise ValueError("Start date must be today or in the future")
        return v


class ReservationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    accommodation_id: str
    guest_id: str
    host_id: str
    start_date: date
    end_date: date
    guest_count: int
    total_price: Decimal
    status: str
    created_at: datetime
    updated_at: datetime


class HostReservationResponse(ReservationResponse):
    guest_cancellation_count: int = 0


class OverlapResponse(BaseModel):
    has_reservations: bool


class DeletionCheckResponse(BaseModel):
    can_be_deleted: bool
    active_reservation_count: int
    reason: str = ""
