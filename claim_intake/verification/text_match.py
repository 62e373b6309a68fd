"""Anti-hallucination checks: is an extracted value really printed in the document?"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from claim_intake.verification.dates import (
    MONTH_NAMES,
    MONTH_SHORT_NAMES,
    date_representations,
    parse_date,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Field classes
# ---------------------------------------------------------------------------

CRITICAL_FIELDS: tuple[str, ...] = ("passengerName", "name", "patientName", "customerName")
DATE_FIELDS: tuple[str, ...] = ("date", "dateOfTravel", "documentDate", "issueDate", "travelDate")
IMPORTANT_FIELDS: tuple[str, ...] = (
    "flightNumber",
    "baggageTag",
    "baggageTagNumber",
    "pirNumber",
    "referenceNumber",
)
LOCATION_FIELDS: tuple[str, ...] = ("from", "to", "origin", "destination", "location", "airport")

MULTI_WORD_MIN_RATIO = 0.6
PARTIAL_CHAR_MIN_RATIO = 0.8
PARTIAL_MIN_LENGTH = 5
HIGH_CONFIDENCE_BOOST_RATIO = 0.7
UNVERIFIED_CRITICAL_CAP = 0.5

_WHITESPACE_RE = re.compile(r"\s+")
_SPECIAL_CHARS_RE = re.compile(r"[^\w\s-]")


@dataclass
class TextMatch:
    found: bool
    confidence: str  # high | medium | low | not_found
    match: str | None = None


@dataclass
class FieldVerification:
    field: str
    extracted_value: str
    found_in_text: bool
    confidence: str
    text_match: str | None = None


@dataclass
class ExtractionVerification:
    """Outcome of checking every extracted entity against recognized text."""

    verified: dict[str, Any] = field(default_factory=dict)
    unverified: list[str] = field(default_factory=list)
    details: list[FieldVerification] = field(default_factory=list)
    overall_confidence: float = 0.0
    warnings: list[str] = field(default_factory=list)

    def confidence_for(self, key: str) -> str | None:
        for detail in self.details:
            if detail.field == key:
                return detail.confidence
        return None


_NOT_FOUND = TextMatch(found=False, confidence="not_found")


# ---------------------------------------------------------------------------
# Matching primitives
# ---------------------------------------------------------------------------


def normalize_for_matching(text: str) -> str:
    """Lowercase, trim, collapse whitespace and drop punctuation (dashes survive)."""
    collapsed = _WHITESPACE_RE.sub(" ", text.lower().strip())
    return _SPECIAL_CHARS_RE.sub("", collapsed)


def stringify_value(value: Any) -> str:
    """Render an extracted value the way it would be printed on a document."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def find_value_in_text(value: str, text: str, allow_partial: bool = False) -> TextMatch:
    """Look for *value* inside *text* with progressively looser rules.

    Args:
        value: The extracted value to look for.
        text: Recognized document text.
        allow_partial: Permit a positional character-overlap window match,
            used for names and locations where OCR noise is common.

    Returns:
        A ``TextMatch`` with ``high`` for a substring hit, ``medium`` when
        most words of a multi-word value are present, ``low`` for a
        partial window match, otherwise ``not_found``.
    """
    if not value or not text:
        return _NOT_FOUND

    needle = normalize_for_matching(value)
    haystack = normalize_for_matching(text)
    if not needle:
        return _NOT_FOUND

    if needle in haystack:
        return TextMatch(found=True, confidence="high", match=value)

    words = [w for w in needle.split(" ") if len(w) > 2]
    if len(words) > 1:
        matching = [w for w in words if w in haystack]
        if len(matching) == len(words):
            return TextMatch(found=True, confidence="high", match=value)
        if len(matching) >= len(words) * MULTI_WORD_MIN_RATIO:
            return TextMatch(found=True, confidence="medium", match=" ".join(matching))

    if allow_partial and len(needle) > PARTIAL_MIN_LENGTH:
        window = len(needle)
        last_start = int(len(haystack) - window * MULTI_WORD_MIN_RATIO)
        for start in range(0, last_start + 1):
            candidate = haystack[start:start + window]
            hits = sum(1 for a, b in zip(candidate, needle) if a == b)
            if hits >= window * PARTIAL_CHAR_MIN_RATIO:
                return TextMatch(found=True, confidence="low", match=candidate)

    return _NOT_FOUND


def find_date_in_text(value: str, text: str) -> TextMatch:
    """Check whether a date value is printed in *text* in any common form.

    Returns:
        ``high`` when one of the known representations appears verbatim,
        ``medium`` when day, month and year each appear somewhere,
        ``low`` when only day and month do, otherwise ``not_found``.
    """
    if not value or not text:
        return _NOT_FOUND

    day = parse_date(value)
    if day is None:
        return _NOT_FOUND

    haystack = text.lower()
    for form in date_representations(day):
        if form in haystack:
            return TextMatch(found=True, confidence="high", match=form)

    has_day = str(day.day) in haystack
    has_month = (
        MONTH_NAMES[day.month - 1] in haystack
        or MONTH_SHORT_NAMES[day.month - 1] in haystack
        or str(day.month) in haystack
    )
    has_year = str(day.year) in haystack

    if has_day and has_month and has_year:
        return TextMatch(found=True, confidence="medium", match=f"{day.day}/{day.month}/{day.year}")
    if has_day and has_month:
        return TextMatch(found=True, confidence="low", match=f"{day.day}/{day.month}")
    return _NOT_FOUND


# ---------------------------------------------------------------------------
# Entity verification
# ---------------------------------------------------------------------------


def verify_extraction_against_text(
    extracted_entities: dict[str, Any],
    recognized_text: str,
) -> ExtractionVerification:
    """Verify every non-empty extracted entity against the recognized text.

    Unverified critical fields (party names) are treated as probable
    hallucinations: they add a ``CRITICAL`` warning and cap the overall
    confidence at 0.5.

    Args:
        extracted_entities: Field name to value, as returned by extraction.
        recognized_text: The raw text recognized from the document.

    Returns:
        An ``ExtractionVerification`` with per-field details, warnings and
        an overall confidence in ``[0, 1]``.
    """
    result = ExtractionVerification()

    for key, value in extracted_entities.items():
        if value is None or value == "":
            continue

        text_value = stringify_value(value)
        if key in DATE_FIELDS:
            match = find_date_in_text(text_value, recognized_text)
        else:
            allow_partial = key in CRITICAL_FIELDS or key in LOCATION_FIELDS
            match = find_value_in_text(text_value, recognized_text, allow_partial)

        result.details.append(
            FieldVerification(
                field=key,
                extracted_value=text_value,
                found_in_text=match.found,
                confidence=match.confidence,
                text_match=match.match,
            )
        )

        if match.found:
            result.verified[key] = value
            continue

        result.unverified.append(key)
        if key in CRITICAL_FIELDS:
            result.warnings.append(
                f'CRITICAL: Extracted {key} "{text_value}" could not be verified '
                "in document text - possible hallucination"
            )
        elif key in IMPORTANT_FIELDS:
            result.warnings.append(
                f'WARNING: Extracted {key} "{text_value}" could not be verified in document text'
            )
        elif key in DATE_FIELDS:
            result.warnings.append(
                f'WARNING: Extracted date {key} "{text_value}" could not be verified in document text'
            )

    total = len(result.details)
    verified_count = len(result.verified)
    high_count = sum(1 for d in result.details if d.found_in_text and d.confidence == "high")

    confidence = verified_count / total if total else 0.0
    if verified_count and high_count >= verified_count * HIGH_CONFIDENCE_BOOST_RATIO:
        confidence = min(confidence + 0.1, 1.0)

    unverified_critical = [key for key in result.unverified if key in CRITICAL_FIELDS]
    if unverified_critical:
        confidence = min(confidence, UNVERIFIED_CRITICAL_CAP)

    result.overall_confidence = confidence
    logger.debug(
        "Verification complete: total=%d verified=%d confidence=%.2f unverified_critical=%s",
        total,
        verified_count,
        confidence,
        unverified_critical,
    )
    return result
