from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import ValidationError

from flightdesk.auth import AuthContext, get_current_user
from flightdesk.config import settings
from flightdesk.db.session import SessionLocal
from flightdesk.schemas.booking import (
    BookingConfirmation,
    BookingRecord,
    Coupon,
    CouponApply,
    FlightSearchResults,
    Passenger,
    PassengerUpdate,
    PriceBreakdown,
    SessionCreate,
    SessionView,
)
from flightdesk.services.booking_service import (
    BookingError,
    BookingService,
    BookingSession,
    IncompleteDetails,
    InsufficientSeats,
    PaymentCancelled,
    PaymentFailed,
    PersistenceFailed,
    PriceOrAvailabilityFetchFailed,
    SessionNotFound,
    SessionRegistry,
    SqlBookingStore,
    SubmissionInProgress,
    Unauthenticated,
)
from flightdesk.services.coupons import COUPON_CATALOG
from flightdesk.services.inventory import SqlInventorySource
from flightdesk.services.roster import update_passenger
import logging

router = APIRouter()
logger = logging.getLogger(__name__)

inventory_source = SqlInventorySource(SessionLocal)
booking_store = SqlBookingStore(SessionLocal)
booking_service = BookingService(inventory_source, booking_store)
session_registry = SessionRegistry()

ERROR_STATUS = {
    IncompleteDetails: status.HTTP_400_BAD_REQUEST,
    Unauthenticated: status.HTTP_401_UNAUTHORIZED,
    PaymentFailed: status.HTTP_402_PAYMENT_REQUIRED,
    SessionNotFound: status.HTTP_404_NOT_FOUND,
    InsufficientSeats: status.HTTP_409_CONFLICT,
    PaymentCancelled: status.HTTP_409_CONFLICT,
    SubmissionInProgress: status.HTTP_409_CONFLICT,
    PersistenceFailed: status.HTTP_500_INTERNAL_SERVER_ERROR,
    PriceOrAvailabilityFetchFailed: status.HTTP_502_BAD_GATEWAY,
}


def get_inventory_source():
    return inventory_source


def get_booking_store():
    return booking_store


def get_booking_service():
    return booking_service


def get_session_registry():
    return session_registry


def booking_http_error(error: BookingError) -> HTTPException:
    detail = {"message": error.message}
    if isinstance(error, IncompleteDetails):
        detail["missing"] = {str(index): fields for index, fields in error.missing.items()}
    return HTTPException(status_code=ERROR_STATUS.get(type(error), 400), detail=detail)


def session_view(session: BookingSession) -> SessionView:
    return SessionView(
        session_id=session.id,
        flight=session.flight,
        adults=session.adults,
        children=session.children,
        infants=session.infants,
        passengers=session.passengers,
        seats_available=session.seats_available,
        breakdown=session.breakdown(),
        price_notice=session.price_notice,
        payment_stage=session.payment.stage.value,
        payment_progress=session.payment.progress,
    )


def lookup_session(session_id: str, registry: SessionRegistry) -> BookingSession:
    try:
        return registry.get(session_id)
    except SessionNotFound as e:
        raise booking_http_error(e)


def validate_date(value: str, name: str) -> str:
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        logger.error(f"Invalid {name} format: {value}")
        raise HTTPException(status_code=400, detail=f"Invalid {name} format. Use YYYY-MM-DD.")
    return value


@router.get("/flights", response_model=FlightSearchResults)
async def search_flights(
    origin: str = Query(..., min_length=3, max_length=3),
    destination: str = Query(..., min_length=3, max_length=3),
    departure_date: str = Query(...),
    return_date: Optional[str] = Query(None),
    cabin_class: str = Query(settings.DEFAULT_CABIN_CLASS),
    inventory: SqlInventorySource = Depends(get_inventory_source),
):
    validate_date(departure_date, "departure_date")
    if return_date:
        validate_date(return_date, "return_date")
    try:
        outbound = await inventory.search_flights(origin, destination, departure_date, cabin_class)
        returning = None
        if return_date:
            returning = await inventory.search_flights(destination, origin, return_date, cabin_class)
        if not outbound:
            logger.warning(f"No flights found for {origin} to {destination} on {departure_date}")
        return FlightSearchResults(outbound_flights=outbound, return_flights=returning)
    except Exception as e:
        logger.error(f"Error searching flights: {e}")
        raise HTTPException(status_code=500, detail="Failed to search flights")


@router.get("/coupons", response_model=List[Coupon])
def list_coupons():
    return list(COUPON_CATALOG)


@router.post("/sessions", response_model=SessionView, status_code=status.HTTP_201_CREATED)
async def open_session(
    body: SessionCreate = Body(...),
    service: BookingService = Depends(get_booking_service),
    registry: SessionRegistry = Depends(get_session_registry),
):
    try:
        session = await service.open_session(
            body.flight_id,
            body.cabin_class,
            adults=body.adults,
            children=body.children,
            infants=body.infants,
            quoted_price=body.price,
        )
    except PriceOrAvailabilityFetchFailed:
        raise HTTPException(status_code=404, detail={"message": "No flight selected. Please go back and select a flight."})
    except Exception as e:
        logger.error(f"Error opening booking session for flight {body.flight_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to load flight details")
    registry.add(session)
    return session_view(session)


@router.get("/sessions/{session_id}", response_model=SessionView)
def get_session(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    return session_view(lookup_session(session_id, registry))


@router.delete("/sessions/{session_id}")
def close_session(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    lookup_session(session_id, registry)
    registry.discard(session_id)
    return {"message": "Booking session closed"}


@router.put("/sessions/{session_id}/passengers/{index}", response_model=Passenger)
def edit_passenger(
    session_id: str,
    index: int,
    body: PassengerUpdate = Body(...),
    registry: SessionRegistry = Depends(get_session_registry),
):
    session = lookup_session(session_id, registry)
    if session.submitting:
        raise booking_http_error(SubmissionInProgress())
    try:
        return update_passenger(session.passengers, index, **body.model_dump(exclude_unset=True))
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ValueError, ValidationError) as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/sessions/{session_id}/coupon", response_model=PriceBreakdown)
def apply_coupon(
    session_id: str,
    body: CouponApply = Body(...),
    registry: SessionRegistry = Depends(get_session_registry),
):
    session = lookup_session(session_id, registry)
    if not body.code.strip():
        raise HTTPException(status_code=400, detail={"message": "Please enter a coupon code"})
    try:
        coupon = session.apply_coupon(body.code)
    except SubmissionInProgress as e:
        raise booking_http_error(e)
    if coupon is None:
        raise HTTPException(status_code=400, detail={"message": "Invalid coupon code"})
    return session.breakdown()


@router.delete("/sessions/{session_id}/coupon", response_model=PriceBreakdown)
def remove_coupon(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    session = lookup_session(session_id, registry)
    try:
        session.remove_coupon()
    except SubmissionInProgress as e:
        raise booking_http_error(e)
    return session.breakdown()


@router.post("/sessions/{session_id}/submit", response_model=BookingConfirmation, status_code=status.HTTP_201_CREATED)
async def submit_booking(
    session_id: str,
    user: Optional[AuthContext] = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
    registry: SessionRegistry = Depends(get_session_registry),
):
    session = lookup_session(session_id, registry)
    try:
        return await service.submit_booking(session, user)
    except BookingError as e:
        raise booking_http_error(e)
    except Exception as e:
        logger.error(f"Unhandled error submitting booking session {session_id}: {e}")
        raise HTTPException(status_code=500, detail="Booking Failed")


@router.post("/sessions/{session_id}/payment/cancel")
def cancel_payment(session_id: str, registry: SessionRegistry = Depends(get_session_registry)):
    session = lookup_session(session_id, registry)
    session.payment.cancel()
    return {"payment_stage": session.payment.stage.value, "payment_progress": session.payment.progress}


@router.get("/bookings", response_model=List[BookingRecord])
async def my_bookings(
    user: Optional[AuthContext] = Depends(get_current_user),
    store: SqlBookingStore = Depends(get_booking_store),
):
    if user is None:
        raise booking_http_error(Unauthenticated())
    try:
        return await store.list_bookings(user.user_id)
    except Exception as e:
        logger.error(f"Error listing bookings for user {user.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch bookings")


@router.get("/bookings/{booking_id}", response_model=BookingRecord)
async def booking_details(
    booking_id: int,
    user: Optional[AuthContext] = Depends(get_current_user),
    store: SqlBookingStore = Depends(get_booking_store),
):
    if user is None:
        raise booking_http_error(Unauthenticated())
    try:
        booking = await store.get_booking(booking_id)
    except Exception as e:
        logger.error(f"Error fetching booking {booking_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch booking details")
    if booking is None or booking.user_profile_id != user.user_id:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking
