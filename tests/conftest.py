import functools
import os
import sys

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from flightdesk.models.booking import Airline, Airport, Base, Flight, FlightInventory
from flightdesk.schemas.booking import BookingRecord, FlightOffer
from flightdesk.services.payment import PaymentSimulator

FAST_CHECKPOINTS = [(0.01, 30), (0.02, 60), (0.03, 90), (0.05, 100)]
FAST_SUCCESS_DELAY = 0.02

fast_payment = functools.partial(PaymentSimulator, checkpoints=FAST_CHECKPOINTS, success_delay=FAST_SUCCESS_DELAY)


@pytest.fixture
def session_factory(tmp_path):
    # file-backed so concurrent threadpool lookups each get their own connection
    engine = create_engine(
        f"sqlite:///{tmp_path / 'flightdesk-test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    db = TestingSessionLocal()
    db.add(Airline(id=1, name="IndiGo", logo="https://example.com/6e.png"))
    db.add_all([
        Airport(code="DEL", name="Indira Gandhi International", city="Delhi", country="India"),
        Airport(code="BOM", name="Chhatrapati Shivaji Maharaj International", city="Mumbai", country="India"),
    ])
    db.add_all([
        Flight(id="FL100", flight_number="6E-201", airline_id=1, departure_airport="DEL", arrival_airport="BOM",
               departure_time="2025-12-01T08:30:00", arrival_time="2025-12-01T10:45:00", duration="2h 15m"),
        Flight(id="FL101", flight_number="6E-205", airline_id=1, departure_airport="DEL", arrival_airport="BOM",
               departure_time="2025-12-01T18:00:00", arrival_time="2025-12-01T20:10:00", duration="2h 10m"),
        Flight(id="FL200", flight_number="6E-330", airline_id=1, departure_airport="BOM", arrival_airport="DEL",
               departure_time="2025-12-05T09:00:00", arrival_time="2025-12-05T11:20:00", duration="2h 20m"),
    ])
    db.add_all([
        FlightInventory(flight_id="FL100", cabin_class="economy", seats_available=10, price=5000),
        FlightInventory(flight_id="FL100", cabin_class="business", seats_available=1, price=15000),
        FlightInventory(flight_id="FL101", cabin_class="economy", seats_available=0, price=4200),
        FlightInventory(flight_id="FL200", cabin_class="economy", seats_available=5, price=4800),
    ])
    db.commit()
    db.close()

    yield TestingSessionLocal
    engine.dispose()


def make_offer(**overrides) -> FlightOffer:
    data = dict(
        id="FL100",
        flight_number="6E-201",
        airline="IndiGo",
        departure_airport="DEL",
        arrival_airport="BOM",
        departure_time="2025-12-01T08:30:00",
        arrival_time="2025-12-01T10:45:00",
        duration="2h 15m",
        cabin_class="economy",
        price=5000,
        seats_available=10,
    )
    data.update(overrides)
    return FlightOffer(**data)


class FakeInventory:
    def __init__(self, flight=None, seats=10, fail=False):
        self.flight = flight or make_offer()
        self.seats = seats
        self.fail = fail
        self.detail_calls = 0

    async def get_flight_details(self, flight_id, cabin_class):
        self.detail_calls += 1
        if self.flight is None or flight_id != self.flight.id:
            return None
        return self.flight

    async def check_seat_availability(self, flight_id, cabin_class, seats):
        if self.fail:
            raise RuntimeError("inventory unavailable")
        return self.seats >= seats


class FakeBookingStore:
    def __init__(self, fail=False):
        self.records = []
        self.fail = fail

    async def insert_booking(self, record):
        if self.fail:
            raise RuntimeError("insert failed")
        booking = BookingRecord(id=len(self.records) + 1, **record)
        self.records.append(booking)
        return booking
