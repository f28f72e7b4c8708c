from typing import List
from flightdesk.schemas.booking import Passenger

EDITABLE_FIELDS = ("first_name", "last_name", "gender", "contact_number")


def build_roster(adults: int, children: int) -> List[Passenger]:
    """
    Initial roster for a booking: adults first, then children. Only the
    lead passenger (index 0) carries a contact number slot. Infants are
    priced but not rostered.
    """
    roster = []
    for i in range(adults + children):
        roster.append(
            Passenger(
                index=i,
                category="adult" if i < adults else "child",
                contact_number="" if i == 0 else None,
            )
        )
    return roster


def update_passenger(roster: List[Passenger], index: int, **fields) -> Passenger:
    if index < 0 or index >= len(roster):
        raise IndexError(f"No passenger at position {index}")
    passenger = roster[index]
    for field, value in fields.items():
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"Passenger field {field!r} cannot be edited")
        if field == "contact_number" and index != 0:
            continue
        setattr(passenger, field, value)
    return passenger


def _blank(value) -> bool:
    return value is None or not value.strip()


def missing_fields(roster: List[Passenger]) -> dict:
    """Map of passenger index -> names of required fields still empty."""
    missing = {}
    for passenger in roster:
        fields = []
        if _blank(passenger.first_name):
            fields.append("first_name")
        if _blank(passenger.last_name):
            fields.append("last_name")
        if passenger.gender == "unset":
            fields.append("gender")
        if passenger.index == 0 and _blank(passenger.contact_number):
            fields.append("contact_number")
        if fields:
            missing[passenger.index] = fields
    return missing


def is_complete(roster: List[Passenger]) -> bool:
    return not missing_fields(roster)
