"""Consistency checks between a document's extracted fields and the claim context."""

import re
from dataclasses import dataclass
from typing import Any

from claim_intake.verification.dates import parse_date
from claim_intake.verification.locations import match_route, semantic_location_match

# ---------------------------------------------------------------------------
# Tolerances
# ---------------------------------------------------------------------------

NAME_PART_MIN_RATIO = 0.8
AMOUNT_OVER_TOLERANCE = 0.10
AMOUNT_UNDER_WARNING_RATIO = 0.5

# category -> (min days, max days, explanation); negative = document dated before incident
DATE_TOLERANCE_WINDOWS: dict[str, tuple[int, int, str]] = {
    "incident_report": (-1, 1, "Incident reports must be dated within 1 day of incident"),
    "booking": (-365, 7, "Booking documents should be dated on or before travel date"),
    "medical": (-1, 7, "Medical reports should be dated within 7 days of incident"),
    "receipt": (-1, 7, "Receipts should be dated on or shortly after incident"),
    "general": (-3, 7, "Document date should be within a few days of incident"),
}

_DOCUMENT_CATEGORY_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("incident_report", ("pir", "incident", "baggage_receipt")),
    ("booking", ("booking", "ticket", "confirmation")),
    ("medical", ("medical", "hospital", "doctor")),
    ("receipt", ("receipt", "invoice")),
]

_TYPE_SEPARATORS_RE = re.compile(r"[-_\s]")

# Entity keys read from extraction output, in priority order.
NAME_KEYS: tuple[str, ...] = ("passengerName", "patientName", "customerName", "name")
DATE_KEYS: tuple[str, ...] = ("date", "documentDate", "issueDate", "travelDate", "dateOfTravel")
AMOUNT_KEYS: tuple[str, ...] = ("amount", "totalAmount", "total")
ORIGIN_KEYS: tuple[str, ...] = ("from", "origin", "originAirport")
DESTINATION_KEYS: tuple[str, ...] = ("to", "destination", "destinationAirport")


@dataclass
class DateAlignment:
    aligns: bool | None
    days_diff: int | None = None
    reason: str = ""


@dataclass
class AmountAlignment:
    aligns: bool | None
    reason: str = ""
    warning: str | None = None


@dataclass
class LocationAlignment:
    aligns: bool | None
    confidence: str | None = None
    reason: str = ""


def first_present(entities: dict[str, Any], keys: tuple[str, ...]) -> Any:
    """Return the first truthy value among *keys*, or ``None``."""
    for key in keys:
        value = entities.get(key)
        if value:
            return value
    return None


def to_amount(value: Any) -> float | None:
    """Coerce amounts like ``"$1,095.00"`` or ``1095`` to float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[^0-9.\-]", "", str(value))
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Name
# ---------------------------------------------------------------------------


def name_matches(extracted_name: str | None, profile_name: str | None) -> bool | None:
    """Compare the name on a document with the claimant's profile name.

    Returns:
        ``True`` on an exact match, a first+last token match, or when at
        least 80% of profile name parts appear in the extracted name;
        ``False`` otherwise; ``None`` when either name is missing.
    """
    if not extracted_name or not profile_name:
        return None

    extracted = extracted_name.lower().strip()
    profile = profile_name.lower().strip()
    if extracted == profile:
        return True

    profile_parts = profile.split()
    extracted_parts = extracted.split()
    if not profile_parts or not extracted_parts:
        return None

    if len(profile_parts) >= 2 and len(extracted_parts) >= 2:
        if profile_parts[0] == extracted_parts[0] and profile_parts[-1] == extracted_parts[-1]:
            return True

    matching = [
        part for part in profile_parts
        if any(part in other or other in part for other in extracted_parts)
    ]
    return len(matching) / len(profile_parts) >= NAME_PART_MIN_RATIO


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------


def document_category(document_type: str | None) -> str:
    if not document_type:
        return "general"
    lowered = document_type.lower()
    for category, keywords in _DOCUMENT_CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return "general"


def align_dates(document_date: Any, incident_date: Any, document_type: str | None = None) -> DateAlignment:
    """Check a document date against the incident date.

    The allowed window depends on the document category: incident
    reports must be within a day, bookings may precede travel by up to
    a year, and so on (see ``DATE_TOLERANCE_WINDOWS``).
    """
    if not document_date or not incident_date:
        return DateAlignment(None, reason="Missing date data")

    doc_day = parse_date(document_date)
    incident_day = parse_date(incident_date)
    if doc_day is None or incident_day is None:
        return DateAlignment(None, reason="Invalid date format")

    days_diff = (doc_day - incident_day).days
    min_days, max_days, tolerance_reason = DATE_TOLERANCE_WINDOWS[document_category(document_type)]

    if min_days <= days_diff <= max_days:
        return DateAlignment(True, days_diff, "Date is within acceptable range")

    direction = "after" if days_diff > 0 else "before"
    return DateAlignment(
        False,
        days_diff,
        f"Date mismatch: document date ({doc_day.isoformat()}) is {abs(days_diff)} days "
        f"{direction} incident date ({incident_day.isoformat()}). {tolerance_reason}",
    )


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------


def align_amounts(document_amount: Any, claimed_amount: Any) -> AmountAlignment:
    """Check a document amount against the claimed amount.

    Partial receipts are fine, but a document may not exceed the claim
    by more than 10%. A document under half the claim passes with a
    warning.
    """
    doc = to_amount(document_amount)
    claimed = to_amount(claimed_amount)
    if doc is None or claimed is None:
        return AmountAlignment(None, reason="Missing amount data")

    if claimed == 0 and doc == 0:
        return AmountAlignment(True, reason="Both amounts are zero")
    if claimed == 0:
        return AmountAlignment(None, warning="Claimed amount is zero but document shows amount")

    if doc > claimed * (1 + AMOUNT_OVER_TOLERANCE):
        percent_over = (doc - claimed) / claimed * 100
        return AmountAlignment(
            False,
            reason=f"Document amount ({doc:g}) is ~{percent_over:.0f}% over the claimed amount ({claimed:g})",
            warning=(
                f"Document shows {percent_over:.1f}% more than claimed - "
                "verify if additional costs should be included"
            ),
        )

    if doc < claimed * AMOUNT_UNDER_WARNING_RATIO:
        return AmountAlignment(
            True,
            reason="Amount is below claimed amount",
            warning=(
                f"Document amount ({doc:g}) is less than 50% of claimed amount ({claimed:g}) "
                "- additional documentation may be needed"
            ),
        )
    return AmountAlignment(True, reason="Amount is within acceptable range")


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------


def align_location(document_location: str | None, claim_location: str | None) -> LocationAlignment:
    if not document_location or not claim_location:
        return LocationAlignment(None, reason="Missing location data")
    match = semantic_location_match(document_location, claim_location)
    return LocationAlignment(match.matches, match.confidence, match.reason)


def align_document_location(entities: dict[str, Any], claim_location: str | None) -> LocationAlignment:
    """Align whichever location the document exposes: a route or a single place."""
    if not claim_location:
        return LocationAlignment(None, reason="Missing claim location")

    origin = first_present(entities, ORIGIN_KEYS)
    destination = first_present(entities, DESTINATION_KEYS)
    if origin or destination:
        route = match_route(origin, destination, claim_location)
        return LocationAlignment(route.aligns, route.matched_endpoint, route.reason)

    location = entities.get("location") or entities.get("airport")
    return align_location(location, claim_location)


# ---------------------------------------------------------------------------
# Document type
# ---------------------------------------------------------------------------


def _compact_type(document_type: str) -> str:
    return _TYPE_SEPARATORS_RE.sub("", document_type.lower())


def document_type_matches(detected_type: str | None, expected_types: list[str]) -> bool:
    """Fuzzy-match a detected document type against the accepted types."""
    expected = [t for t in expected_types if t]
    if not detected_type or not expected:
        return True

    detected = _compact_type(detected_type)
    for expected_type in expected:
        candidate = _compact_type(expected_type)
        if candidate in detected or detected in candidate:
            return True
    return False
