import asyncio
import logging
import random
import string
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from flightdesk.auth import AuthContext
from flightdesk.config import settings
from flightdesk.db import crud
from flightdesk.schemas.booking import (
    BookingConfirmation,
    BookingRecord,
    Coupon,
    FlightOffer,
    Passenger,
    PassengerList,
    PriceBreakdown,
    PriceNotice,
)
from flightdesk.services import coupons
from flightdesk.services.fares import format_amount, price_breakdown
from flightdesk.services.inventory import InventorySource, check_availability, fetch_flight_details
from flightdesk.services.payment import PaymentSimulator, PaymentStage
from flightdesk.services.roster import build_roster, missing_fields

logger = logging.getLogger(__name__)


class BookingError(Exception):
    message = "There was an error creating your booking. Please try again."

    def __init__(self, message: Optional[str] = None):
        if message:
            self.message = message
        super().__init__(self.message)


class IncompleteDetails(BookingError):
    message = "Please fill in all required passenger details"

    def __init__(self, missing: Optional[Dict[int, List[str]]] = None):
        self.missing = missing or {}
        super().__init__()


class InsufficientSeats(BookingError):
    message = "Not enough seats available for this booking"


class Unauthenticated(BookingError):
    message = "Please log in to complete your booking"


class PriceOrAvailabilityFetchFailed(BookingError):
    message = "Could not load the latest flight details. Please go back and select a flight."


class PersistenceFailed(BookingError):
    message = "There was an error creating your booking. Please try again."


class PaymentCancelled(BookingError):
    message = "Payment was cancelled"


class PaymentFailed(BookingError):
    message = "Your payment could not be processed. Please try again."


class SubmissionInProgress(BookingError):
    message = "This booking is already being processed"


class SessionNotFound(BookingError):
    message = "Booking session not found or expired"


def generate_booking_reference(rng=random) -> str:
    """Three uppercase letters followed by three digits, e.g. "KQZ481". Not checked for uniqueness."""
    letters = "".join(rng.choice(string.ascii_uppercase) for _ in range(3))
    digits = "".join(rng.choice(string.digits) for _ in range(3))
    return letters + digits


def price_notice(quoted_price: float, current_price: float) -> Optional[PriceNotice]:
    if quoted_price <= 0 or quoted_price == current_price:
        return None
    difference = current_price - quoted_price
    if difference > 0:
        direction, message = "increased", f"Oops! Price increased by {format_amount(difference)}"
    else:
        direction, message = "decreased", f"Congratulations! Price decreased by {format_amount(-difference)}"
    return PriceNotice(
        direction=direction,
        amount=abs(difference),
        quoted_price=quoted_price,
        current_price=current_price,
        message=message,
    )


@dataclass
class BookingSession:
    """State of one booking attempt: never shared between attempts."""

    id: str
    flight: FlightOffer
    adults: int
    children: int
    infants: int
    quoted_price: float
    seats_available: bool
    payment: PaymentSimulator
    passengers: List[Passenger] = field(default_factory=list)
    coupon: Optional[Coupon] = None
    price_notice: Optional[PriceNotice] = None
    submitting: bool = False
    last_seen: float = field(default_factory=time.monotonic)

    @property
    def required_seats(self) -> int:
        return self.adults + self.children

    def breakdown(self) -> PriceBreakdown:
        return price_breakdown(self.flight.price, self.adults, self.children, self.infants, self.coupon)

    def apply_coupon(self, code: str) -> Optional[Coupon]:
        if self.submitting:
            raise SubmissionInProgress()
        self.coupon = coupons.resolve(code)
        return self.coupon

    def remove_coupon(self):
        if self.submitting:
            raise SubmissionInProgress()
        self.coupon = None

    def close(self):
        self.payment.cancel()


class SessionRegistry:
    """
    Open booking sessions by id. A session idle for longer than `ttl`
    seconds is closed and dropped on the next add/get; one that is
    mid-submission is kept until the submission ends.
    """

    def __init__(self, ttl: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self._sessions: Dict[str, BookingSession] = {}
        self.ttl = settings.SESSION_TTL if ttl is None else ttl
        self.clock = clock

    def evict_expired(self) -> int:
        now = self.clock()
        expired = [
            session_id
            for session_id, session in self._sessions.items()
            if not session.submitting and now - session.last_seen > self.ttl
        ]
        for session_id in expired:
            logger.info(f"Booking session {session_id} expired")
            self.discard(session_id)
        return len(expired)

    def add(self, session: BookingSession):
        self.evict_expired()
        session.last_seen = self.clock()
        self._sessions[session.id] = session

    def get(self, session_id: str) -> BookingSession:
        self.evict_expired()
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound()
        session.last_seen = self.clock()
        return session

    def discard(self, session_id: str):
        session = self._sessions.pop(session_id, None)
        if session is not None:
            session.close()

    def close_all(self):
        for session in self._sessions.values():
            session.close()
        self._sessions.clear()

    def __len__(self):
        return len(self._sessions)


class BookingStore(Protocol):
    async def insert_booking(self, record: dict) -> BookingRecord:
        ...


class SqlBookingStore:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def _insert(self, record: dict) -> BookingRecord:
        db = self.session_factory()
        try:
            return BookingRecord.model_validate(crud.create_booking(db, record))
        finally:
            db.close()

    def _get(self, booking_id: int) -> Optional[BookingRecord]:
        db = self.session_factory()
        try:
            booking = crud.get_booking(db, booking_id)
            return BookingRecord.model_validate(booking) if booking else None
        finally:
            db.close()

    def _list(self, user_profile_id: str) -> List[BookingRecord]:
        db = self.session_factory()
        try:
            return [BookingRecord.model_validate(b) for b in crud.list_bookings_for_user(db, user_profile_id)]
        finally:
            db.close()

    async def insert_booking(self, record: dict) -> BookingRecord:
        return await run_in_threadpool(self._insert, record)

    async def get_booking(self, booking_id: int) -> Optional[BookingRecord]:
        return await run_in_threadpool(self._get, booking_id)

    async def list_bookings(self, user_profile_id: str) -> List[BookingRecord]:
        return await run_in_threadpool(self._list, user_profile_id)


class BookingService:
    """
    Turns a selected flight, a passenger roster and an optional coupon into
    a paid, persisted booking.
    """

    def __init__(
        self,
        inventory: InventorySource,
        store: BookingStore,
        payment_factory: Callable[..., PaymentSimulator] = PaymentSimulator,
        reference_factory: Callable[[], str] = generate_booking_reference,
    ):
        self.inventory = inventory
        self.store = store
        self.payment_factory = payment_factory
        self.reference_factory = reference_factory

    async def open_session(
        self,
        flight_id: str,
        cabin_class: str,
        adults: int = 1,
        children: int = 0,
        infants: int = 0,
        quoted_price: float = 0,
    ) -> BookingSession:
        # both must resolve before the passenger form can be used
        flight, seats_ok = await asyncio.gather(
            fetch_flight_details(self.inventory, flight_id, cabin_class),
            check_availability(self.inventory, flight_id, cabin_class, adults + children),
        )
        if flight is None:
            raise PriceOrAvailabilityFetchFailed()

        session = BookingSession(
            id=uuid.uuid4().hex,
            flight=flight,
            adults=adults,
            children=children,
            infants=infants,
            quoted_price=quoted_price,
            seats_available=seats_ok,
            payment=self.payment_factory(),
            passengers=build_roster(adults, children),
        )
        session.price_notice = price_notice(quoted_price, flight.price)
        if session.price_notice:
            logger.warning(f"Flight {flight_id}: {session.price_notice.message}")
        logger.info(
            f"Opened booking session {session.id} for flight {flight.flight_number} "
            f"({cabin_class}, {session.required_seats} seats, available={seats_ok})"
        )
        return session

    async def submit_booking(self, session: BookingSession, user: Optional[AuthContext]) -> BookingConfirmation:
        missing = missing_fields(session.passengers)
        if missing:
            raise IncompleteDetails(missing)
        if not session.seats_available:
            raise InsufficientSeats()
        if user is None:
            raise Unauthenticated()
        if session.submitting:
            raise SubmissionInProgress()

        session.submitting = True
        # the coupon is fixed for this run; apply/remove are refused until it ends
        coupon = session.coupon
        try:
            session.payment.amount = session.breakdown().total
            stage = await session.payment.process()
            if stage is PaymentStage.CANCELLED:
                raise PaymentCancelled()
            if stage is PaymentStage.ERROR:
                raise PaymentFailed()

            # charge the live price, not the one captured at search time
            current = await fetch_flight_details(self.inventory, session.flight.id, session.flight.cabin_class)
            if current is None:
                raise PriceOrAvailabilityFetchFailed()
            baseline = session.quoted_price if session.quoted_price > 0 else session.flight.price
            notice = price_notice(baseline, current.price)
            if notice:
                logger.warning(f"Flight {current.id}: {notice.message}")
            session.flight = current

            breakdown = price_breakdown(current.price, session.adults, session.children, session.infants, coupon)
            record = {
                "booking_reference": self.reference_factory(),
                "user_profile_id": user.user_id,
                "flight_number": current.flight_number,
                "airline": current.airline,
                "departure_airport": current.departure_airport,
                "arrival_airport": current.arrival_airport,
                "departure_datetime": current.departure_time.isoformat(),
                "arrival_datetime": current.arrival_time.isoformat(),
                "cabin_class": current.cabin_class,
                "passenger_count": len(session.passengers),
                "passenger_details": PassengerList.dump_json(session.passengers).decode(),
                "total_price": breakdown.total,
                "coupon_code": coupon.code if coupon else None,
                "booking_status": "confirmed",
                "payment_status": "completed",
            }
            try:
                booking = await self.store.insert_booking(record)
            except Exception as e:
                logger.error(f"Error creating booking for user {user.user_id}: {e}")
                raise PersistenceFailed() from e

            logger.info(f"Booking {booking.booking_reference} confirmed for user {user.user_id}")
            return BookingConfirmation(
                message=f"Your booking reference is {booking.booking_reference}",
                booking=booking,
                breakdown=breakdown,
                price_notice=notice,
            )
        finally:
            session.submitting = False
