"""
Two requests racing for the same vehicle: the row lock lets exactly one win.
A writer that cannot get the lock in time fails as transient, and readers
never hold writers up.
"""

import threading

import pytest
from sqlmodel import Session, select

from conftest import add_vehicle, future
from rental_api import availability, bookings
from rental_api.database import begin_write, make_engine
from rental_api.exceptions import NotAvailableError, TransientError
from rental_api.models import AvailabilityStatus, Booking, BookingStatus, Vehicle


def test_simultaneous_bookings_one_winner(engine, people):
    vehicle_id = add_vehicle(engine)
    barrier = threading.Barrier(2)
    outcomes = {}

    def attempt(name):
        with Session(engine) as session:
            barrier.wait()
            try:
                bookings.create_booking(session, people[name], vehicle_id, future(2), future(4))
                outcomes[name] = "ok"
            except NotAvailableError:
                outcomes[name] = "not available"

    threads = [threading.Thread(target=attempt, args=(n,)) for n in ("alice", "bob")]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(outcomes.values()) == ["not available", "ok"]
    with Session(engine) as session:
        rows = session.exec(select(Booking).where(Booking.vehicle_id == vehicle_id)).all()
        assert len(rows) == 1
        assert session.get(Vehicle, vehicle_id).availability_status == AvailabilityStatus.booked


def test_many_racers_many_vehicles(engine, people):
    vehicle_ids = [add_vehicle(engine, registration=f"RACE-{i}") for i in range(3)]
    barrier = threading.Barrier(6)
    wins = []
    lock = threading.Lock()

    def attempt(name, vehicle_id):
        with Session(engine) as session:
            barrier.wait()
            try:
                booking = bookings.create_booking(session, people[name], vehicle_id, future(1), future(3))
            except NotAvailableError:
                return
            with lock:
                wins.append(booking.vehicle_id)

    threads = [
        threading.Thread(target=attempt, args=(name, vid))
        for vid in vehicle_ids
        for name in ("alice", "bob")
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert sorted(wins) == sorted(vehicle_ids)


@pytest.fixture
def impatient_engine(engine, monkeypatch):
    """Second engine on the same database that gives up on a lock quickly."""
    monkeypatch.setenv("SQLITE_BUSY_TIMEOUT", "0.2")
    eng = make_engine(str(engine.url))
    yield eng
    eng.dispose()


def test_open_read_does_not_block_booking(engine, impatient_engine, people):
    vehicle_id = add_vehicle(engine)
    with Session(engine) as reader, Session(impatient_engine) as writer:
        # a request in flight that has only read so far
        assert bookings.list_bookings(reader, people["admin"]) == []
        assert reader.in_transaction()

        booking = bookings.create_booking(writer, people["alice"], vehicle_id, future(2), future(4))
        assert booking.status == BookingStatus.active


def test_lock_wait_is_transient_and_writes_nothing(engine, impatient_engine, people):
    vehicle_id = add_vehicle(engine)
    with Session(engine) as holder, Session(impatient_engine) as session:
        begin_write(holder)
        availability.lock_vehicle(holder, vehicle_id)

        with pytest.raises(TransientError):
            bookings.create_booking(session, people["alice"], vehicle_id, future(2), future(4))
        holder.rollback()

    with Session(engine) as session:
        assert session.exec(select(Booking).where(Booking.vehicle_id == vehicle_id)).all() == []
        assert session.get(Vehicle, vehicle_id).availability_status == AvailabilityStatus.available


def test_status_change_lock_wait_is_transient(engine, impatient_engine, people):
    vehicle_id = add_vehicle(engine)
    with Session(engine) as session:
        booking_id = bookings.create_booking(session, people["alice"], vehicle_id, future(2), future(4)).id

    with Session(engine) as holder, Session(impatient_engine) as session:
        begin_write(holder)
        availability.lock_vehicle(holder, vehicle_id)

        with pytest.raises(TransientError):
            bookings.update_booking_status(session, booking_id, BookingStatus.cancelled, people["alice"])
        holder.rollback()

    with Session(engine) as session:
        assert session.get(Booking, booking_id).status == BookingStatus.active
        assert session.get(Vehicle, vehicle_id).availability_status == AvailabilityStatus.booked
