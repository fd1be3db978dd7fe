# rental_api/main.py
import logging
import os
from typing import List, Union

from dotenv import load_dotenv
load_dotenv()

from fastapi import APIRouter, FastAPI, Depends, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sqlmodel import Session

from .database import init_db, get_session
from .auth import get_current_principal, require_admin
from .policy import Principal
from . import bookings, exceptions as e, models as m, schemas as s, users, vehicles

APP_VERSION = "1.0.0"

logger = logging.getLogger(__name__)

# core error kind -> HTTP status
ERROR_STATUS = {
    e.NotFoundError: 404,
    e.NotAvailableError: 409,
    e.InvalidRangeError: 400,
    e.ForbiddenError: 403,
    e.ConflictError: 409,
    e.DependencyExistsError: 409,
    e.TransientError: 503,
    e.InternalError: 500,
}


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def status_for(exc: e.RentalError) -> int:
    for kind, status in ERROR_STATUS.items():
        if isinstance(exc, kind):
            return status
    return 500


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Vehicle Rental API", version=APP_VERSION)

    # CORS
    origins = os.getenv("ALLOWED_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173")
    allow_origins = [o.strip() for o in origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    def _startup():
        init_db()
        logger.info("Vehicle Rental API %s started", APP_VERSION)

    @app.exception_handler(e.RentalError)
    def _rental_error(request: Request, exc: e.RentalError):
        status = status_for(exc)
        headers = {"Retry-After": "1"} if isinstance(exc, e.TransientError) else None
        return JSONResponse(status_code=status, content={"detail": exc.message}, headers=headers)

    # ---------------- Health ----------------
    @app.get("/api/health")
    def health():
        return {"status": "ok", "version": APP_VERSION}

    api = APIRouter(prefix="/api/v1")

    # ---------------- Users -----------------
    @api.get("/users", response_model=List[s.UserRead])
    def list_users(
        principal: Principal = Depends(require_admin),
        session: Session = Depends(get_session),
    ):
        return [s.UserRead.model_validate(u) for u in users.list_users(session, principal)]

    @api.get("/users/me", response_model=s.UserRead)
    def me(
        principal: Principal = Depends(get_current_principal),
        session: Session = Depends(get_session),
    ):
        return s.UserRead.model_validate(users.get_user(session, principal, principal.id))

    @api.get("/users/{user_id}", response_model=s.UserRead)
    def get_user(
        user_id: int,
        principal: Principal = Depends(get_current_principal),
        session: Session = Depends(get_session),
    ):
        return s.UserRead.model_validate(users.get_user(session, principal, user_id))

    @api.put("/users/{user_id}", response_model=s.UserRead)
    def update_user(
        user_id: int,
        payload: s.UserUpdate,
        principal: Principal = Depends(get_current_principal),
        session: Session = Depends(get_session),
    ):
        return s.UserRead.model_validate(users.update_user(session, principal, user_id, payload))

    @api.delete("/users/{user_id}", status_code=204)
    def delete_user(
        user_id: int,
        principal: Principal = Depends(require_admin),
        session: Session = Depends(get_session),
    ):
        users.delete_user(session, principal, user_id)
        return Response(status_code=204)

    # --------------- Vehicles ---------------
    @api.post("/vehicles", response_model=s.VehicleRead, status_code=201)
    def create_vehicle(
        payload: s.VehicleCreate,
        principal: Principal = Depends(require_admin),
        session: Session = Depends(get_session),
    ):
        return s.VehicleRead.model_validate(vehicles.create_vehicle(session, principal, payload))

    @api.get("/vehicles", response_model=List[s.VehicleRead])
    def list_vehicles(session: Session = Depends(get_session)):
        return [s.VehicleRead.model_validate(v) for v in vehicles.list_vehicles(session)]

    @api.get("/vehicles/{vehicle_id}", response_model=s.VehicleRead)
    def get_vehicle(vehicle_id: int, session: Session = Depends(get_session)):
        return s.VehicleRead.model_validate(vehicles.get_vehicle(session, vehicle_id))

    @api.put("/vehicles/{vehicle_id}", response_model=s.VehicleRead)
    def update_vehicle(
        vehicle_id: int,
        payload: s.VehicleUpdate,
        principal: Principal = Depends(require_admin),
        session: Session = Depends(get_session),
    ):
        return s.VehicleRead.model_validate(vehicles.update_vehicle(session, principal, vehicle_id, payload))

    @api.delete("/vehicles/{vehicle_id}", status_code=204)
    def delete_vehicle(
        vehicle_id: int,
        principal: Principal = Depends(require_admin),
        session: Session = Depends(get_session),
    ):
        vehicles.delete_vehicle(session, principal, vehicle_id)
        return Response(status_code=204)

    # --------------- Bookings ---------------
    @api.post("/bookings", response_model=s.BookingCreated, status_code=201)
    def create_booking(
        payload: s.BookingCreate,
        principal: Principal = Depends(get_current_principal),
        session: Session = Depends(get_session),
    ):
        booking = bookings.create_booking(
            session,
            principal,
            vehicle_id=payload.vehicle_id,
            rent_start_date=payload.rent_start_date,
            rent_end_date=payload.rent_end_date,
            customer_id=payload.customer_id,
        )
        vehicle = session.get(m.Vehicle, booking.vehicle_id)
        return s.BookingCreated(
            **s.BookingRead.model_validate(booking).model_dump(),
            vehicle=s.BookedVehicle.model_validate(vehicle),
        )

    @api.get(
        "/bookings",
        response_model=List[Union[s.AdminBookingView, s.CustomerBookingView]],
    )
    def list_bookings(
        principal: Principal = Depends(get_current_principal),
        session: Session = Depends(get_session),
    ):
        return bookings.list_bookings(session, principal)

    @api.get(
        "/bookings/{booking_id}",
        response_model=Union[s.AdminBookingView, s.CustomerBookingView],
    )
    def get_booking(
        booking_id: int,
        principal: Principal = Depends(get_current_principal),
        session: Session = Depends(get_session),
    ):
        return bookings.get_booking(session, booking_id, principal)

    @api.put("/bookings/{booking_id}", response_model=s.BookingStatusChanged)
    def update_booking(
        booking_id: int,
        payload: s.BookingStatusUpdate,
        principal: Principal = Depends(get_current_principal),
        session: Session = Depends(get_session),
    ):
        booking = bookings.update_booking_status(session, booking_id, payload.status, principal)
        vehicle = session.get(m.Vehicle, booking.vehicle_id)
        return s.BookingStatusChanged(
            **s.BookingRead.model_validate(booking).model_dump(),
            vehicle=s.VehicleAvailability.model_validate(vehicle),
        )

    app.include_router(api)
    return app

app = create_app()
