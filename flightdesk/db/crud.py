from typing import Optional, List, Tuple
from sqlalchemy.orm import Session, joinedload
from flightdesk.models.booking import Airport, Booking, Flight, FlightInventory


def get_airport(db: Session, code: str) -> Optional[Airport]:
    return db.query(Airport).filter(Airport.code == code.upper()).first()


def get_flight_with_inventory(db: Session, flight_id: str, cabin_class: str) -> Optional[Tuple[Flight, FlightInventory]]:
    row = (
        db.query(Flight, FlightInventory)
        .join(FlightInventory, FlightInventory.flight_id == Flight.id)
        .options(joinedload(Flight.airline))
        .filter(Flight.id == flight_id, FlightInventory.cabin_class == cabin_class)
        .first()
    )
    return row


def get_seats_available(db: Session, flight_id: str, cabin_class: str) -> Optional[int]:
    inventory = (
        db.query(FlightInventory)
        .filter(FlightInventory.flight_id == flight_id, FlightInventory.cabin_class == cabin_class)
        .first()
    )
    if inventory is None:
        return None
    return inventory.seats_available


def search_flights(db: Session, origin: str, destination: str, date: str, cabin_class: str) -> List[Tuple[Flight, FlightInventory]]:
    # departure_time is an ISO string, so a lexical range covers one calendar day
    start_of_day = f"{date}T00:00:00"
    end_of_day = f"{date}T23:59:59"
    return (
        db.query(Flight, FlightInventory)
        .join(FlightInventory, FlightInventory.flight_id == Flight.id)
        .options(joinedload(Flight.airline))
        .filter(
            Flight.departure_airport == origin.upper(),
            Flight.arrival_airport == destination.upper(),
            Flight.departure_time >= start_of_day,
            Flight.departure_time <= end_of_day,
            FlightInventory.cabin_class == cabin_class.lower(),
            FlightInventory.seats_available > 0,
        )
        .order_by(Flight.departure_time)
        .all()
    )


def create_booking(db: Session, data: dict) -> Booking:
    booking = Booking(**data)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def get_booking(db: Session, booking_id: int) -> Optional[Booking]:
    return db.query(Booking).filter(Booking.id == booking_id).first()


def list_bookings_for_user(db: Session, user_profile_id: str) -> List[Booking]:
    return (
        db.query(Booking)
        .filter(Booking.user_profile_id == user_profile_id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .all()
    )
