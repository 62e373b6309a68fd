"""Claim-level facts derived from extracted data, and claim number generation."""

import secrets
import string
import time
from datetime import date
from typing import Any

from claim_intake.verification.alignment import to_amount

INCIDENT_DATE_FIELDS: tuple[str, ...] = (
    "incident_date",
    "scheduled_departure_date",
    "trip_start_date",
    "date_reported",
    "document_date",
)
INCIDENT_LOCATION_FIELDS: tuple[str, ...] = (
    "incident_location",
    "destination",
    "trip_destination",
    "departure_airport",
)
CLAIMED_AMOUNT_FIELDS: tuple[str, ...] = (
    "total_claimed_amount",
    "claimed_amount",
    "ticket_cost",
    "contents_value",
    "medical_costs",
    "total_trip_cost",
    "document_amount",
)

UNSPECIFIED_LOCATION = "Not specified"

_CLAIM_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def _first_value(values: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = values.get(key)
        if value not in (None, ""):
            return value
    return None


def incident_date(values: dict[str, Any], default_today: bool = True) -> str | None:
    found = _first_value(values, INCIDENT_DATE_FIELDS)
    if found is not None:
        return str(found)
    return date.today().isoformat() if default_today else None


def incident_location(values: dict[str, Any], default: str | None = UNSPECIFIED_LOCATION) -> str | None:
    found = _first_value(values, INCIDENT_LOCATION_FIELDS)
    return str(found) if found is not None else default


def claimed_amount(values: dict[str, Any]) -> float:
    """First non-zero amount in precedence order, else 0."""
    for key in CLAIMED_AMOUNT_FIELDS:
        amount = to_amount(values.get(key))
        if amount:
            return amount
    return 0.0


def generate_claim_number() -> str:
    """``CLM-<epoch millis>-<6 chars A-Z0-9>``; a new value on every call."""
    suffix = "".join(secrets.choice(_CLAIM_SUFFIX_ALPHABET) for _ in range(6))
    return f"CLM-{int(time.time() * 1000)}-{suffix}"
