import re

import pytest
from fastapi.testclient import TestClient

from conftest import fast_payment
from flightdesk.main import app
from flightdesk.routes import booking as booking_routes
from flightdesk.services.booking_service import BookingService, SessionRegistry, SqlBookingStore
from flightdesk.services.inventory import SqlInventorySource

USER = {"X-User-Id": "user-42", "X-User-Email": "asha@example.com"}


@pytest.fixture
def client(session_factory):
    inventory = SqlInventorySource(session_factory)
    store = SqlBookingStore(session_factory)
    service = BookingService(inventory, store, payment_factory=fast_payment)
    registry = SessionRegistry()
    app.dependency_overrides[booking_routes.get_inventory_source] = lambda: inventory
    app.dependency_overrides[booking_routes.get_booking_store] = lambda: store
    app.dependency_overrides[booking_routes.get_booking_service] = lambda: service
    app.dependency_overrides[booking_routes.get_session_registry] = lambda: registry
    yield TestClient(app)
    registry.close_all()
    app.dependency_overrides.clear()


def open_session(client, **overrides):
    body = {"flight_id": "FL100", "cabin_class": "economy", "adults": 2, "children": 1, "infants": 0}
    body.update(overrides)
    response = client.post("/booking/sessions", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def fill_passengers(client, session_id, count):
    for index in range(count):
        details = {"first_name": "Asha", "last_name": "Rao", "gender": "female"}
        if index == 0:
            details["contact_number"] = "+91 98200 00000"
        response = client.put(f"/booking/sessions/{session_id}/passengers/{index}", json=details)
        assert response.status_code == 200, response.text


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Flightdesk is running"}


def test_list_coupons(client):
    response = client.get("/booking/coupons")
    assert response.status_code == 200
    assert [c["code"] for c in response.json()] == ["FIRST10", "SUMMER25", "WELCOME15", "FLASH50"]


def test_flight_search_valid(client):
    response = client.get("/booking/flights", params={
        "origin": "DEL",
        "destination": "BOM",
        "departure_date": "2025-12-01",
    })
    assert response.status_code == 200
    data = response.json()
    assert [f["id"] for f in data["outbound_flights"]] == ["FL100"]
    assert data["return_flights"] is None


def test_flight_search_round_trip(client):
    response = client.get("/booking/flights", params={
        "origin": "DEL",
        "destination": "BOM",
        "departure_date": "2025-12-01",
        "return_date": "2025-12-05",
    })
    assert response.status_code == 200
    assert [f["flight_number"] for f in response.json()["return_flights"]] == ["6E-330"]


def test_flight_search_invalid_date(client):
    response = client.get("/booking/flights", params={
        "origin": "DEL",
        "destination": "BOM",
        "departure_date": "invalid-date",
    })
    assert response.status_code == 400


def test_open_session(client):
    data = open_session(client)
    assert len(data["passengers"]) == 3
    assert data["passengers"][2]["category"] == "child"
    assert data["seats_available"] is True
    assert data["breakdown"]["total"] == 13750
    assert data["payment_stage"] == "processing"
    assert data["payment_progress"] == 0
    assert data["flight"]["departure_city"] == "Delhi"


def test_open_session_unknown_flight(client):
    response = client.post("/booking/sessions", json={"flight_id": "NOPE", "cabin_class": "economy"})
    assert response.status_code == 404


def test_open_session_price_notice(client):
    data = open_session(client, price=5250)
    assert data["price_notice"]["direction"] == "decreased"
    assert data["price_notice"]["amount"] == 250


def test_unknown_session(client):
    assert client.get("/booking/sessions/missing").status_code == 404
    assert client.post("/booking/sessions/missing/submit", headers=USER).status_code == 404


def test_apply_and_remove_coupon(client):
    session_id = open_session(client)["session_id"]
    response = client.post(f"/booking/sessions/{session_id}/coupon", json={"code": "summer25"})
    assert response.status_code == 200
    assert response.json()["total"] == pytest.approx(10312.5)
    assert response.json()["coupon"]["code"] == "SUMMER25"

    response = client.delete(f"/booking/sessions/{session_id}/coupon")
    assert response.status_code == 200
    assert response.json()["total"] == 13750


def test_invalid_coupon(client):
    session_id = open_session(client)["session_id"]
    client.post(f"/booking/sessions/{session_id}/coupon", json={"code": "FIRST10"})
    response = client.post(f"/booking/sessions/{session_id}/coupon", json={"code": "NOPE"})
    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Invalid coupon code"
    # a rejected code clears the previous one
    assert client.get(f"/booking/sessions/{session_id}").json()["breakdown"]["coupon"] is None


def test_blank_coupon(client):
    session_id = open_session(client)["session_id"]
    response = client.post(f"/booking/sessions/{session_id}/coupon", json={"code": "  "})
    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Please enter a coupon code"


def test_coupon_locked_while_submitting(client):
    session_id = open_session(client)["session_id"]
    registry = app.dependency_overrides[booking_routes.get_session_registry]()
    registry.get(session_id).submitting = True

    response = client.post(f"/booking/sessions/{session_id}/coupon", json={"code": "FLASH50"})
    assert response.status_code == 409
    assert response.json()["detail"]["message"] == "This booking is already being processed"
    assert client.delete(f"/booking/sessions/{session_id}/coupon").status_code == 409
    assert client.get(f"/booking/sessions/{session_id}").json()["breakdown"]["coupon"] is None


def test_edit_passenger_validation(client):
    session_id = open_session(client)["session_id"]
    assert client.put(f"/booking/sessions/{session_id}/passengers/7", json={"first_name": "Ravi"}).status_code == 404
    assert client.put(f"/booking/sessions/{session_id}/passengers/0", json={"gender": "robot"}).status_code == 422


def test_submit_with_missing_details(client):
    session_id = open_session(client)["session_id"]
    response = client.post(f"/booking/sessions/{session_id}/submit", headers=USER)
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["message"] == "Please fill in all required passenger details"
    assert "contact_number" in detail["missing"]["0"]


def test_submit_requires_login(client):
    session_id = open_session(client, adults=1, children=0)["session_id"]
    fill_passengers(client, session_id, 1)
    response = client.post(f"/booking/sessions/{session_id}/submit")
    assert response.status_code == 401


def test_submit_insufficient_seats(client):
    session_id = open_session(client, cabin_class="business", adults=2, children=0)["session_id"]
    fill_passengers(client, session_id, 2)
    response = client.post(f"/booking/sessions/{session_id}/submit", headers=USER)
    assert response.status_code == 409
    assert response.json()["detail"]["message"] == "Not enough seats available for this booking"


def test_booking_confirmation_flow(client):
    session_id = open_session(client)["session_id"]
    fill_passengers(client, session_id, 3)
    client.post(f"/booking/sessions/{session_id}/coupon", json={"code": "SUMMER25"})

    response = client.post(f"/booking/sessions/{session_id}/submit", headers=USER)
    assert response.status_code == 201, response.text
    confirmation = response.json()
    booking = confirmation["booking"]
    assert re.fullmatch(r"[A-Z]{3}[0-9]{3}", booking["booking_reference"])
    assert booking["total_price"] == pytest.approx(10312.5)
    assert booking["booking_status"] == "confirmed"
    assert booking["payment_status"] == "completed"
    assert booking["departure_airport"] == "DEL"

    listing = client.get("/booking/bookings", headers=USER)
    assert listing.status_code == 200
    assert [b["booking_reference"] for b in listing.json()] == [booking["booking_reference"]]

    details = client.get(f"/booking/bookings/{booking['id']}", headers=USER)
    assert details.status_code == 200
    assert len(details.json()["passenger_details"]) == 3
    assert details.json()["passenger_details"][0]["contact_number"] == "+91 98200 00000"


def test_bookings_are_private(client):
    session_id = open_session(client, adults=1, children=0)["session_id"]
    fill_passengers(client, session_id, 1)
    booking_id = client.post(f"/booking/sessions/{session_id}/submit", headers=USER).json()["booking"]["id"]

    other = {"X-User-Id": "someone-else"}
    assert client.get(f"/booking/bookings/{booking_id}", headers=other).status_code == 404
    assert client.get("/booking/bookings", headers=other).json() == []
    assert client.get("/booking/bookings").status_code == 401


def test_close_session(client):
    session_id = open_session(client)["session_id"]
    response = client.delete(f"/booking/sessions/{session_id}")
    assert response.status_code == 200
    assert client.get(f"/booking/sessions/{session_id}").status_code == 404


def test_cancel_payment_before_submit(client):
    session_id = open_session(client)["session_id"]
    response = client.post(f"/booking/sessions/{session_id}/payment/cancel")
    assert response.status_code == 200
    assert response.json() == {"payment_stage": "processing", "payment_progress": 0}
