import os
import tempfile
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

# the module-level engine needs a URL before anything from rental_api is imported
os.environ.setdefault(
    "DATABASE_URL", "sqlite:///" + os.path.join(tempfile.mkdtemp(prefix="rental-"), "app.db")
)

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from rental_api.database import get_session, init_db, make_engine
from rental_api.models import AvailabilityStatus, Role, User, Vehicle, VehicleType
from rental_api.policy import Principal


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'rental.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


def add_user(engine, name="Alice", email="alice@example.com", role=Role.customer) -> int:
    with Session(engine) as s:
        user = User(name=name, email=email, role=role)
        s.add(user)
        s.commit()
        return user.id


def add_vehicle(engine, registration="ABC-123", price="50.00",
                status=AvailabilityStatus.available, vtype=VehicleType.car) -> int:
    with Session(engine) as s:
        vehicle = Vehicle(
            name=f"Vehicle {registration}",
            type=vtype,
            registration_number=registration,
            daily_rent_price=Decimal(price),
            availability_status=status,
        )
        s.add(vehicle)
        s.commit()
        return vehicle.id


def future(days: int) -> date:
    return datetime.now(timezone.utc).date() + timedelta(days=days)


@pytest.fixture
def people(engine):
    """One admin and two customers, as principals."""
    admin = add_user(engine, "Root", "root@example.com", Role.admin)
    alice = add_user(engine, "Alice", "alice@example.com")
    bob = add_user(engine, "Bob", "bob@example.com")
    return {
        "admin": Principal(admin, Role.admin),
        "alice": Principal(alice, Role.customer),
        "bob": Principal(bob, Role.customer),
    }


class Actor:
    """Mutable principal holder so a test can switch who is calling."""

    def __init__(self):
        self.principal = None

    def __call__(self):
        return self.principal


@pytest.fixture
def actor():
    return Actor()


@pytest.fixture
def client(engine, actor):
    from rental_api.auth import get_current_principal
    from rental_api.main import create_app

    app = create_app()

    def _session():
        with Session(engine) as s:
            yield s

    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_current_principal] = actor
    return TestClient(app)
