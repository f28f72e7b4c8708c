import logging
from typing import Callable, List, Optional, Protocol

from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError
from sqlalchemy.orm import Session

from flightdesk.db import crud
from flightdesk.models.booking import Flight, FlightInventory
from flightdesk.schemas.booking import FlightOffer

logger = logging.getLogger(__name__)


class InventorySource(Protocol):
    async def get_flight_details(self, flight_id: str, cabin_class: str) -> Optional[FlightOffer]:
        ...

    async def check_seat_availability(self, flight_id: str, cabin_class: str, seats: int) -> bool:
        ...


def flight_offer_from_rows(db: Session, flight: Flight, inventory: FlightInventory) -> FlightOffer:
    """Normalise a flight + inventory row pair into a validated FlightOffer."""
    departure = crud.get_airport(db, flight.departure_airport)
    arrival = crud.get_airport(db, flight.arrival_airport)
    if departure is None or arrival is None:
        logger.warning(f"Airport details missing for flight {flight.id}")
    return FlightOffer(
        id=flight.id,
        flight_number=flight.flight_number,
        airline=flight.airline.name if flight.airline else "",
        airline_logo=flight.airline.logo if flight.airline else None,
        departure_airport=flight.departure_airport,
        departure_airport_name=departure.name if departure else "",
        departure_city=(departure.city or "") if departure else "",
        arrival_airport=flight.arrival_airport,
        arrival_airport_name=arrival.name if arrival else "",
        arrival_city=(arrival.city or "") if arrival else "",
        departure_time=flight.departure_time,
        arrival_time=flight.arrival_time,
        duration=flight.duration,
        cabin_class=inventory.cabin_class,
        price=inventory.price or 0,
        seats_available=inventory.seats_available or 0,
    )


class SqlInventorySource:
    """Inventory source backed by the flights / flight_inventory tables."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _get_flight_details(self, flight_id: str, cabin_class: str) -> Optional[FlightOffer]:
        db = self.session_factory()
        try:
            row = crud.get_flight_with_inventory(db, flight_id, cabin_class)
            if row is None:
                return None
            flight, inventory = row
            return flight_offer_from_rows(db, flight, inventory)
        finally:
            db.close()

    def _get_seats_available(self, flight_id: str, cabin_class: str) -> Optional[int]:
        db = self.session_factory()
        try:
            return crud.get_seats_available(db, flight_id, cabin_class)
        finally:
            db.close()

    def _search(self, origin: str, destination: str, date: str, cabin_class: str) -> List[FlightOffer]:
        db = self.session_factory()
        try:
            offers = []
            for flight, inventory in crud.search_flights(db, origin, destination, date, cabin_class):
                try:
                    offers.append(flight_offer_from_rows(db, flight, inventory))
                except ValidationError as e:
                    logger.warning(f"Skipping malformed flight row {flight.id}: {e}")
            return offers
        finally:
            db.close()

    async def get_flight_details(self, flight_id: str, cabin_class: str) -> Optional[FlightOffer]:
        return await run_in_threadpool(self._get_flight_details, flight_id, cabin_class)

    async def check_seat_availability(self, flight_id: str, cabin_class: str, seats: int) -> bool:
        seats_available = await run_in_threadpool(self._get_seats_available, flight_id, cabin_class)
        if seats_available is None:
            raise LookupError(f"No inventory for flight {flight_id} ({cabin_class})")
        return seats_available >= seats

    async def search_flights(self, origin: str, destination: str, date: str, cabin_class: str) -> List[FlightOffer]:
        return await run_in_threadpool(self._search, origin, destination, date, cabin_class)


async def check_availability(source: InventorySource, flight_id: str, cabin_class: str, required_seats: int) -> bool:
    """
    Point-in-time check that the cabin still has `required_seats` free.

    Fails closed: a lookup error or a missing inventory row counts as
    "not enough seats". Nothing is reserved.
    """
    try:
        return bool(await source.check_seat_availability(flight_id, cabin_class, required_seats))
    except Exception as e:
        logger.error(f"Error checking seat availability for {flight_id} ({cabin_class}): {e}")
        return False


async def fetch_flight_details(source: InventorySource, flight_id: str, cabin_class: str) -> Optional[FlightOffer]:
    try:
        flight = await source.get_flight_details(flight_id, cabin_class)
    except Exception as e:
        logger.error(f"Error fetching flight details for {flight_id} ({cabin_class}): {e}")
        return None
    if flight is None:
        logger.warning(f"Flight {flight_id} not found in cabin {cabin_class}")
    return flight
