from typing import ClassVar, FrozenSet, Optional
from datetime import date, datetime, timezone
from decimal import Decimal
from pydantic import BaseModel, Field, field_validator, model_validator

from .models import AvailabilityStatus, BookingStatus, Role, VehicleType


class ORMModel(BaseModel):
    model_config = {"from_attributes": True}


class Patch(BaseModel):
    """
    Partial update: only fields the client actually sent are applied. An
    explicit null clears a field, except for the ones listed in ``not_nullable``.
    """

    not_nullable: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def require_changes(self):
        changes = self.changes()
        if not changes:
            raise ValueError("No fields to update")
        nulls = sorted(k for k, v in changes.items() if v is None and k in self.not_nullable)
        if nulls:
            raise ValueError(f"{', '.join(nulls)} cannot be null")
        return self

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


# ------------------------------------------------------------------
# Users
# ------------------------------------------------------------------
class UserUpdate(Patch):
    not_nullable: ClassVar[FrozenSet[str]] = frozenset({"name", "email", "role"})

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[str] = Field(default=None, pattern=r"^[^\s@]+@[^\s@]+\.[^\s@]+$", max_length=150)
    phone: Optional[str] = Field(default=None, max_length=15)
    role: Optional[Role] = None


class UserRead(ORMModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    role: Role
    created_at: datetime
    updated_at: datetime


# ------------------------------------------------------------------
# Vehicles
# ------------------------------------------------------------------
class VehicleCreate(ORMModel):
    name: str = Field(min_length=1, max_length=200)
    type: VehicleType
    registration_number: str = Field(min_length=1, max_length=100)
    daily_rent_price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)


class VehicleUpdate(Patch):
    # no availability_status here: only the booking lifecycle moves it
    not_nullable: ClassVar[FrozenSet[str]] = frozenset(
        {"name", "type", "registration_number", "daily_rent_price"}
    )
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[VehicleType] = None
    registration_number: Optional[str] = Field(default=None, min_length=1, max_length=100)
    daily_rent_price: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)


class VehicleRead(ORMModel):
    id: int
    name: str
    type: VehicleType
    registration_number: str
    daily_rent_price: Decimal
    availability_status: AvailabilityStatus
    created_at: datetime
    updated_at: datetime


# ------------------------------------------------------------------
# Bookings
# ------------------------------------------------------------------
class BookingCreate(ORMModel):
    vehicle_id: int = Field(gt=0)
    rent_start_date: date
    rent_end_date: date
    customer_id: Optional[int] = Field(default=None, gt=0)  # admins only

    @field_validator("rent_start_date")
    @classmethod
    def start_not_in_past(cls, value: date) -> date:
        if value < datetime.now(timezone.utc).date():
            raise ValueError("Start date cannot be in the past. Please select today or a future date")
        return value


class BookingStatusUpdate(ORMModel):
    status: BookingStatus


class BookingRead(ORMModel):
    id: int
    customer_id: int
    vehicle_id: int
    rent_start_date: date
    rent_end_date: date
    total_price: Decimal
    status: BookingStatus
    created_at: datetime
    updated_at: datetime


class BookedVehicle(ORMModel):
    name: str
    daily_rent_price: Decimal


class BookingCreated(BookingRead):
    vehicle: BookedVehicle


class VehicleAvailability(ORMModel):
    availability_status: AvailabilityStatus


class BookingStatusChanged(BookingRead):
    vehicle: VehicleAvailability


# --- role-shaped list views ---------------------------------------
class CustomerSummary(ORMModel):
    name: str
    email: str


class VehicleSummary(ORMModel):
    name: str
    registration_number: str


class VehicleSummaryWithType(VehicleSummary):
    type: VehicleType


class AdminBookingView(ORMModel):
    id: int
    customer_id: int
    vehicle_id: int
    rent_start_date: date
    rent_end_date: date
    total_price: Decimal
    status: BookingStatus
    customer: CustomerSummary
    vehicle: VehicleSummary


class CustomerBookingView(ORMModel):
    id: int
    vehicle_id: int
    rent_start_date: date
    rent_end_date: date
    total_price: Decimal
    status: BookingStatus
    vehicle: VehicleSummaryWithType
