from datetime import datetime
from typing import Optional, List, Literal

from dateutil import parser as date_parser
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

CabinClass = Literal["economy", "premium", "business", "first"]
PassengerCategory = Literal["adult", "child", "infant"]
Gender = Literal["male", "female", "other", "unset"]


class FlightOffer(BaseModel):
    """Snapshot of one flight in one cabin class at query time."""

    model_config = ConfigDict(frozen=True)

    id: str
    flight_number: str
    airline: str
    airline_logo: Optional[str] = None
    departure_airport: str
    departure_airport_name: str = ""
    departure_city: str = ""
    arrival_airport: str
    arrival_airport_name: str = ""
    arrival_city: str = ""
    departure_time: datetime
    arrival_time: datetime
    duration: Optional[str] = None
    cabin_class: CabinClass
    price: float = Field(ge=0)
    seats_available: int = Field(ge=0)

    @field_validator("departure_time", "arrival_time", mode="before")
    @classmethod
    def parse_timestamp(cls, value):
        if isinstance(value, str):
            return date_parser.parse(value)
        return value

    @field_validator("cabin_class", mode="before")
    @classmethod
    def normalize_cabin(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class Passenger(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    index: int = Field(ge=0)
    category: PassengerCategory
    first_name: str = ""
    last_name: str = ""
    gender: Gender = "unset"
    contact_number: Optional[str] = None

    @field_validator("gender", mode="before")
    @classmethod
    def blank_gender_is_unset(cls, value):
        if value is None or (isinstance(value, str) and not value.strip()):
            return "unset"
        return value.strip().lower() if isinstance(value, str) else value


# JSON codec for the roster column on bookings
PassengerList = TypeAdapter(List[Passenger])


class Coupon(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    discount: float = Field(ge=0, le=100)
    description: str


class FareLine(BaseModel):
    category: PassengerCategory
    count: int
    weight: float
    amount: float


class PriceBreakdown(BaseModel):
    base_price: float
    lines: List[FareLine]
    subtotal: float
    coupon: Optional[Coupon] = None
    discount_amount: float = 0.0
    total: float


class PriceNotice(BaseModel):
    direction: Literal["increased", "decreased"]
    amount: float
    quoted_price: float
    current_price: float
    message: str


class BookingRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    booking_reference: str
    user_profile_id: str
    flight_number: str
    airline: Optional[str] = None
    departure_airport: Optional[str] = None
    arrival_airport: Optional[str] = None
    departure_datetime: Optional[str] = None
    arrival_datetime: Optional[str] = None
    cabin_class: Optional[str] = None
    passenger_count: int
    passenger_details: List[Passenger]
    total_price: float
    coupon_code: Optional[str] = None
    booking_status: Literal["confirmed", "cancelled", "pending"] = "confirmed"
    payment_status: Literal["completed", "pending", "failed"] = "completed"
    created_at: Optional[datetime] = None

    @field_validator("passenger_details", mode="before")
    @classmethod
    def load_passengers(cls, value):
        if isinstance(value, (str, bytes)):
            return PassengerList.validate_json(value)
        return value


class SessionCreate(BaseModel):
    flight_id: str
    cabin_class: CabinClass = "economy"
    adults: int = Field(1, ge=1)
    children: int = Field(0, ge=0)
    infants: int = Field(0, ge=0)
    price: float = Field(0, ge=0, description="Per-adult price shown on the search results")


class PassengerUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    gender: Optional[Gender] = None
    contact_number: Optional[str] = None


class CouponApply(BaseModel):
    code: str


class SessionView(BaseModel):
    session_id: str
    flight: FlightOffer
    adults: int
    children: int
    infants: int
    passengers: List[Passenger]
    seats_available: bool
    breakdown: PriceBreakdown
    price_notice: Optional[PriceNotice] = None
    payment_stage: str
    payment_progress: int


class FlightSearchResults(BaseModel):
    outbound_flights: List[FlightOffer]
    return_flights: Optional[List[FlightOffer]] = None


class BookingConfirmation(BaseModel):
    message: str
    booking: BookingRecord
    breakdown: PriceBreakdown
    price_notice: Optional[PriceNotice] = None
