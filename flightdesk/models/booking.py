from sqlalchemy import Column, Integer, String, Float, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
import datetime

Base = declarative_base()


class Airline(Base):
    __tablename__ = "airlines"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    logo = Column(String)


class Airport(Base):
    __tablename__ = "airports"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(3), unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    city = Column(String)
    country = Column(String)


class Flight(Base):
    __tablename__ = "flights"

    id = Column(String, primary_key=True, index=True)
    flight_number = Column(String, nullable=False)
    airline_id = Column(Integer, ForeignKey("airlines.id"), nullable=False)
    departure_airport = Column(String(3), nullable=False, index=True)
    arrival_airport = Column(String(3), nullable=False, index=True)
    # ISO-8601 strings, as delivered by the upstream schedule feed
    departure_time = Column(String, nullable=False)
    arrival_time = Column(String, nullable=False)
    duration = Column(String)

    airline = relationship("Airline")
    inventory = relationship("FlightInventory", back_populates="flight")


class FlightInventory(Base):
    __tablename__ = "flight_inventory"
    __table_args__ = (UniqueConstraint("flight_id", "cabin_class"),)

    id = Column(Integer, primary_key=True, index=True)
    flight_id = Column(String, ForeignKey("flights.id"), nullable=False, index=True)
    cabin_class = Column(String, nullable=False)
    seats_available = Column(Integer, nullable=False, default=0)
    price = Column(Float, nullable=False)

    flight = relationship("Flight", back_populates="inventory")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_reference = Column(String(6), nullable=False, index=True)
    user_profile_id = Column(String, nullable=False, index=True)
    flight_number = Column(String, nullable=False)
    airline = Column(String)
    departure_airport = Column(String(3))
    arrival_airport = Column(String(3))
    departure_datetime = Column(String)
    arrival_datetime = Column(String)
    cabin_class = Column(String)
    passenger_count = Column(Integer, nullable=False)
    passenger_details = Column(Text, nullable=False)
    total_price = Column(Float, nullable=False)
    coupon_code = Column(String)
    booking_status = Column(String, default="confirmed")
    payment_status = Column(String, default="completed")
    created_at = Column(DateTime, default=datetime.datetime.utcnow)
