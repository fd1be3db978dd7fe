"""Vehicle availability: the only place that flips ``availability_status``."""

import logging

from sqlmodel import Session, select

from .exceptions import NotAvailableError, NotFoundError
from .models import AvailabilityStatus, Vehicle, utcnow

logger = logging.getLogger(__name__)


def lock_vehicle(session: Session, vehicle_id: int) -> Vehicle:
    """Fetch the vehicle row under an exclusive lock held until commit/rollback."""
    vehicle = session.exec(
        select(Vehicle).where(Vehicle.id == vehicle_id).with_for_update()
    ).one_or_none()
    if not vehicle:
        raise NotFoundError("Vehicle not found")
    return vehicle


def _set_status(session: Session, vehicle: Vehicle, status: AvailabilityStatus) -> Vehicle:
    vehicle.availability_status = status
    vehicle.updated_at = utcnow()
    session.add(vehicle)
    return vehicle


def try_reserve(session: Session, vehicle_id: int) -> Vehicle:
    vehicle = lock_vehicle(session, vehicle_id)
    if vehicle.availability_status != AvailabilityStatus.available:
        raise NotAvailableError()
    logger.debug("Vehicle %s reserved", vehicle_id)
    return _set_status(session, vehicle, AvailabilityStatus.booked)


def release(session: Session, vehicle_id: int) -> Vehicle:
    vehicle = lock_vehicle(session, vehicle_id)
    logger.debug("Vehicle %s released", vehicle_id)
    return _set_status(session, vehicle, AvailabilityStatus.available)
