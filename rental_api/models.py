from typing import Optional
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import CheckConstraint
from sqlmodel import SQLModel, Field, UniqueConstraint


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    admin = "admin"
    customer = "customer"


class VehicleType(str, Enum):
    car = "car"
    bike = "bike"
    van = "van"
    SUV = "SUV"


class AvailabilityStatus(str, Enum):
    available = "available"
    booked = "booked"


class BookingStatus(str, Enum):
    active = "active"
    cancelled = "cancelled"
    returned = "returned"


class User(SQLModel, table=True):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("email"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=100)
    email: str = Field(max_length=150)  # always stored lower-case
    phone: Optional[str] = Field(default=None, max_length=15)
    role: Role = Role.customer
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Vehicle(SQLModel, table=True):
    __tablename__ = "vehicles"
    __table_args__ = (
        UniqueConstraint("registration_number"),
        CheckConstraint("daily_rent_price > 0", name="ck_vehicles_daily_rent_price_positive"),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(max_length=200)
    type: VehicleType
    registration_number: str = Field(max_length=100)
    daily_rent_price: Decimal = Field(max_digits=10, decimal_places=2)
    availability_status: AvailabilityStatus = AvailabilityStatus.available
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("rent_end_date > rent_start_date", name="ck_bookings_date_range"),
        CheckConstraint("total_price > 0", name="ck_bookings_total_price_positive"),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: int = Field(foreign_key="users.id", ondelete="RESTRICT", index=True)
    vehicle_id: int = Field(foreign_key="vehicles.id", ondelete="RESTRICT", index=True)
    rent_start_date: date
    rent_end_date: date
    total_price: Decimal = Field(max_digits=10, decimal_places=2)
    status: BookingStatus = Field(default=BookingStatus.active, index=True)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
