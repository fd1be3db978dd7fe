import logging
from typing import List

from sqlmodel import Session, select

from . import bookings
from .database import atomic
from .exceptions import ConflictError, DependencyExistsError, NotFoundError
from .models import Vehicle, utcnow
from .policy import Action, Principal, require
from .schemas import VehicleCreate, VehicleUpdate

logger = logging.getLogger(__name__)

DUPLICATE_REGISTRATION = "Registration number already exists"


def _registration_taken(session: Session, registration_number: str) -> bool:
    return session.exec(
        select(Vehicle.id).where(Vehicle.registration_number == registration_number)
    ).first() is not None


def create_vehicle(session: Session, principal: Principal, payload: VehicleCreate) -> Vehicle:
    require(principal, Action.MANAGE_VEHICLE)
    with atomic(session):
        if _registration_taken(session, payload.registration_number):
            raise ConflictError(DUPLICATE_REGISTRATION)
        vehicle = Vehicle(**payload.model_dump())
        session.add(vehicle)
    session.refresh(vehicle)
    logger.info("Vehicle %s (%s) created", vehicle.id, vehicle.registration_number)
    return vehicle


def list_vehicles(session: Session) -> List[Vehicle]:
    return list(session.exec(select(Vehicle).order_by(Vehicle.id.desc())).all())


def get_vehicle(session: Session, vehicle_id: int) -> Vehicle:
    vehicle = session.get(Vehicle, vehicle_id)
    if not vehicle:
        raise NotFoundError("Vehicle not found")
    return vehicle


def update_vehicle(session: Session, principal: Principal, vehicle_id: int, patch: VehicleUpdate) -> Vehicle:
    require(principal, Action.MANAGE_VEHICLE)
    changes = patch.changes()
    with atomic(session):
        vehicle = session.exec(
            select(Vehicle).where(Vehicle.id == vehicle_id).with_for_update()
        ).one_or_none()
        if not vehicle:
            raise NotFoundError("Vehicle not found")
        registration = changes.get("registration_number")
        if registration and registration != vehicle.registration_number and _registration_taken(session, registration):
            raise ConflictError(DUPLICATE_REGISTRATION)
        for k, v in changes.items():
            setattr(vehicle, k, v)
        vehicle.updated_at = utcnow()
        session.add(vehicle)
    session.refresh(vehicle)
    return vehicle


def delete_vehicle(session: Session, principal: Principal, vehicle_id: int) -> None:
    require(principal, Action.MANAGE_VEHICLE)
    with atomic(session):
        vehicle = session.exec(
            select(Vehicle).where(Vehicle.id == vehicle_id).with_for_update()
        ).one_or_none()
        if not vehicle:
            raise NotFoundError("Vehicle not found")
        if bookings.count_active(session, vehicle_id=vehicle_id):
            raise DependencyExistsError("Cannot delete vehicle with active bookings")
        purged = bookings.purge_closed(session, vehicle_id=vehicle_id)
        session.delete(vehicle)
    logger.info("Vehicle %s deleted by admin %s (%s closed bookings removed)", vehicle_id, principal.id, purged)
