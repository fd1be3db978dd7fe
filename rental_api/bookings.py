"""
Booking operations.

Each mutating operation runs in one transaction on the injected session: the
vehicle (or booking) row is locked before anything is decided, and either every
write lands or none does. A booking is never visible without its vehicle marked
booked, and a cancellation never lands without the vehicle being freed.
"""

import logging
from datetime import date
from typing import List, Optional, Union

from sqlalchemy import func
from sqlmodel import Session, select

from . import availability, lifecycle, pricing
from .database import atomic
from .exceptions import NotFoundError
from .lifecycle import Effect
from .models import Booking, BookingStatus, Role, User, Vehicle, utcnow
from .policy import Action, Principal, StatusChange, require
from .schemas import (
    AdminBookingView,
    CustomerBookingView,
    CustomerSummary,
    VehicleSummary,
    VehicleSummaryWithType,
)

logger = logging.getLogger(__name__)

BookingView = Union[AdminBookingView, CustomerBookingView]


def create_booking(
    session: Session,
    principal: Principal,
    vehicle_id: int,
    rent_start_date: date,
    rent_end_date: date,
    customer_id: Optional[int] = None,
) -> Booking:
    customer_id = customer_id or principal.id
    require(principal, Action.CREATE_BOOKING, customer_id)

    with atomic(session):
        # held until commit so the customer cannot be deleted under the insert
        customer = session.exec(
            select(User).where(User.id == customer_id).with_for_update()
        ).one_or_none()
        if not customer:
            raise NotFoundError("Customer not found")

        vehicle = availability.try_reserve(session, vehicle_id)
        total_price = pricing.quote(rent_start_date, rent_end_date, vehicle.daily_rent_price)

        booking = Booking(
            customer_id=customer_id,
            vehicle_id=vehicle.id,
            rent_start_date=rent_start_date,
            rent_end_date=rent_end_date,
            total_price=total_price,
            status=BookingStatus.active,
        )
        session.add(booking)

    session.refresh(booking)
    logger.info(
        "Booking %s created: vehicle %s for customer %s, %s -> %s, total %s",
        booking.id, vehicle_id, customer_id, rent_start_date, rent_end_date, total_price,
    )
    return booking


def update_booking_status(
    session: Session,
    booking_id: int,
    status: BookingStatus,
    principal: Principal,
) -> Booking:
    status = BookingStatus(status)
    with atomic(session):
        booking = session.exec(
            select(Booking).where(Booking.id == booking_id).with_for_update()
        ).one_or_none()
        if not booking:
            raise NotFoundError("Booking not found")

        require(
            principal,
            Action.UPDATE_BOOKING_STATUS,
            StatusChange(booking.customer_id, booking.rent_start_date, status),
        )

        previous = booking.status
        effect = lifecycle.transition(previous, status)
        if effect == Effect.RELEASE:
            availability.release(session, booking.vehicle_id)
        elif effect == Effect.RESERVE:
            availability.try_reserve(session, booking.vehicle_id)

        booking.status = status
        booking.updated_at = utcnow()
        session.add(booking)

    session.refresh(booking)
    logger.info(
        "Booking %s: %s -> %s by %s %s (vehicle effect: %s)",
        booking_id, previous.value, status.value, principal.role.value, principal.id, effect.value,
    )
    return booking


def _joined():
    return (
        select(Booking, User, Vehicle)
        .join(User, Booking.customer_id == User.id)
        .join(Vehicle, Booking.vehicle_id == Vehicle.id)
    )


def project(booking: Booking, customer: User, vehicle: Vehicle, role: Role) -> BookingView:
    """Shape one joined booking row for the given role."""
    if role == Role.admin:
        return AdminBookingView(
            id=booking.id,
            customer_id=booking.customer_id,
            vehicle_id=booking.vehicle_id,
            rent_start_date=booking.rent_start_date,
            rent_end_date=booking.rent_end_date,
            total_price=booking.total_price,
            status=booking.status,
            customer=CustomerSummary(name=customer.name, email=customer.email),
            vehicle=VehicleSummary(name=vehicle.name, registration_number=vehicle.registration_number),
        )
    return CustomerBookingView(
        id=booking.id,
        vehicle_id=booking.vehicle_id,
        rent_start_date=booking.rent_start_date,
        rent_end_date=booking.rent_end_date,
        total_price=booking.total_price,
        status=booking.status,
        vehicle=VehicleSummaryWithType(
            name=vehicle.name,
            registration_number=vehicle.registration_number,
            type=vehicle.type,
        ),
    )


def list_bookings(session: Session, principal: Principal) -> List[BookingView]:
    """Most recent first. Customers only ever see their own bookings."""
    require(principal, Action.LIST_BOOKINGS)
    query = _joined()
    if not principal.is_admin:
        query = query.where(Booking.customer_id == principal.id)
    rows = session.exec(query.order_by(Booking.id.desc())).all()
    return [project(b, u, v, principal.role) for b, u, v in rows]


def get_booking(session: Session, booking_id: int, principal: Principal) -> BookingView:
    query = _joined().where(Booking.id == booking_id)
    if not principal.is_admin:
        query = query.where(Booking.customer_id == principal.id)
    row = session.exec(query).first()
    if not row:
        raise NotFoundError("Booking not found")
    return project(*row, principal.role)


def _owned_by(query, customer_id: Optional[int], vehicle_id: Optional[int]):
    if customer_id is not None:
        query = query.where(Booking.customer_id == customer_id)
    if vehicle_id is not None:
        query = query.where(Booking.vehicle_id == vehicle_id)
    return query


def count_active(session: Session, customer_id: Optional[int] = None, vehicle_id: Optional[int] = None) -> int:
    query = select(func.count(Booking.id)).where(Booking.status == BookingStatus.active)
    return session.exec(_owned_by(query, customer_id, vehicle_id)).one()


def purge_closed(session: Session, customer_id: Optional[int] = None, vehicle_id: Optional[int] = None) -> int:
    """
    Delete cancelled/returned bookings of a customer or vehicle that is about to
    be deleted. Must run inside the caller's transaction, after count_active().
    """
    query = select(Booking).where(Booking.status != BookingStatus.active)
    closed = session.exec(_owned_by(query, customer_id, vehicle_id)).all()
    for booking in closed:
        session.delete(booking)
    session.flush()
    return len(closed)
