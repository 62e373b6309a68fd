"""Coverage requirement registry: which fields each coverage type needs."""

import re
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class FieldRequirement:
    field: str
    label: str
    type: str = "text"   # text | number | date | select
    required: bool = True
    description: str = ""
    extraction_hints: tuple[str, ...] = ()
    allowed_values: tuple[str, ...] = ()


@dataclass(frozen=True)
class CoverageRequirement:
    coverage_type_id: str
    name: str
    required_fields: tuple[FieldRequirement, ...] = ()
    optional_fields: tuple[FieldRequirement, ...] = ()
    follow_up_questions: tuple[str, ...] = ()


_KEY_SEPARATORS_RE = re.compile(r"[-\s]+")


def coverage_key(coverage_type_id: str) -> str:
    """Normalise a coverage identifier or display name to its registry key."""
    return _KEY_SEPARATORS_RE.sub("_", coverage_type_id.strip().lower())


class CoverageRegistry:
    """Lookup of ``CoverageRequirement`` entries keyed by coverage type.

    Stages receive a registry instance instead of reading a global table,
    so alternative requirement sets can be swapped in.
    """

    def __init__(self, requirements: list[CoverageRequirement] | None = None):
        self._requirements: dict[str, CoverageRequirement] = {}
        for requirement in requirements or []:
            self.register(requirement)

    def register(self, requirement: CoverageRequirement) -> None:
        self._requirements[coverage_key(requirement.coverage_type_id)] = requirement

    def get(self, coverage_type_id: str) -> CoverageRequirement | None:
        return self._requirements.get(coverage_key(coverage_type_id))

    def requirements_for(self, coverage_type_ids: list[str]) -> list[CoverageRequirement]:
        found = []
        for coverage_type_id in coverage_type_ids:
            requirement = self.get(coverage_type_id)
            if requirement is not None:
                found.append(requirement)
        return found

    def display_name(self, coverage_type_id: str) -> str:
        requirement = self.get(coverage_type_id)
        if requirement is not None:
            return requirement.name
        return coverage_type_id.replace("_", " ").title()

    def required_fields(self, coverage_type_ids: list[str]) -> list[FieldRequirement]:
        """Required fields across all coverage types, first occurrence wins."""
        seen: set[str] = set()
        fields: list[FieldRequirement] = []
        for requirement in self.requirements_for(coverage_type_ids):
            for item in requirement.required_fields:
                if item.field not in seen:
                    seen.add(item.field)
                    fields.append(item)
        return fields

    def all_fields(self, coverage_type_ids: list[str]) -> list[FieldRequirement]:
        seen: set[str] = set()
        fields: list[FieldRequirement] = []
        for requirement in self.requirements_for(coverage_type_ids):
            for item in (*requirement.required_fields, *requirement.optional_fields):
                if item.field not in seen:
                    seen.add(item.field)
                    fields.append(item)
        return fields

    def missing_required_fields(
        self,
        coverage_type_ids: list[str],
        extracted: dict[str, Any],
    ) -> list[FieldRequirement]:
        """Required fields with no usable value in *extracted*."""
        return [
            item for item in self.required_fields(coverage_type_ids)
            if extracted.get(item.field) in (None, "")
        ]

    def follow_up_questions(self, coverage_type_ids: list[str]) -> list[str]:
        return [q for r in self.requirements_for(coverage_type_ids) for q in r.follow_up_questions]


# ---------------------------------------------------------------------------
# Default travel requirements
# ---------------------------------------------------------------------------

_CANCELLATION_REASONS = ("weather", "mechanical", "crew", "airline_decision", "other")

DEFAULT_COVERAGE_REQUIREMENTS: list[CoverageRequirement] = [
    CoverageRequirement(
        coverage_type_id="flight_cancellation",
        name="Flight Cancellation",
        required_fields=(
            FieldRequirement("airline", "Airline", description="Name of the airline",
                             extraction_hints=("airline", "carrier", "airways", "air")),
            FieldRequirement("flight_number", "Flight Number",
                             description="Flight number including carrier code",
                             extraction_hints=("flight", "flight number", "flight #")),
            FieldRequirement("scheduled_departure_date", "Scheduled Departure Date", "date",
                             description="Originally scheduled departure date",
                             extraction_hints=("date", "scheduled", "departure", "on")),
            FieldRequirement("cancellation_reason", "Reason for Cancellation", "select",
                             description="Why the flight was cancelled",
                             allowed_values=_CANCELLATION_REASONS),
            FieldRequirement("booking_confirmation", "Booking Confirmation Number",
                             description="Airline booking reference",
                             extraction_hints=("confirmation", "booking", "reference", "code")),
            FieldRequirement("ticket_cost", "Original Ticket Cost", "number",
                             description="Amount paid for the ticket",
                             extraction_hints=("cost", "paid", "price", "amount", "$")),
        ),
        optional_fields=(
            FieldRequirement("replacement_flight_cost", "Replacement Flight Cost", "number",
                             required=False, description="Cost of replacement flight if purchased"),
            FieldRequirement("additional_expenses", "Additional Expenses", "number",
                             required=False, description="Hotel, meals, transportation costs"),
        ),
        follow_up_questions=(
            "Did you have to book a replacement flight?",
            "Did you incur any additional expenses like hotel or meals?",
            "Do you have receipts for these expenses?",
        ),
    ),
    CoverageRequirement(
        coverage_type_id="baggage_loss",
        name="Baggage Loss",
        required_fields=(
            FieldRequirement("airline", "Airline", description="Airline responsible for baggage",
                             extraction_hints=("airline", "carrier", "airways")),
            FieldRequirement("flight_number", "Flight Number",
                             description="Flight on which baggage was lost",
                             extraction_hints=("flight", "flight number")),
            FieldRequirement("baggage_tag_number", "Baggage Tag Number",
                             description="Baggage claim tag number",
                             extraction_hints=("tag", "baggage tag", "tag number")),
            FieldRequirement("date_reported", "Date Reported to Airline", "date",
                             description="When you reported the loss to the airline",
                             extraction_hints=("reported", "date")),
            FieldRequirement("contents_value", "Estimated Value of Contents", "number",
                             description="Total value of lost items",
                             extraction_hints=("value", "worth", "cost", "$")),
        ),
        optional_fields=(
            FieldRequirement("item_list", "List of Lost Items", required=False,
                             description="Detailed list of items in lost baggage"),
        ),
        follow_up_questions=(
            "Do you have a PIR (Property Irregularity Report) from the airline?",
            "Can you provide an itemized list of the contents?",
            "Do you have receipts for valuable items?",
        ),
    ),
    CoverageRequirement(
        coverage_type_id="trip_cancellation",
        name="Trip Cancellation",
        required_fields=(
            FieldRequirement("trip_destination", "Trip Destination",
                             description="Where you were traveling to",
                             extraction_hints=("destination", "going to", "traveling to")),
            FieldRequirement("trip_start_date", "Trip Start Date", "date",
                             description="Originally scheduled start date",
                             extraction_hints=("start date", "departure date", "leaving on")),
            FieldRequirement("cancellation_reason", "Reason for Cancellation",
                             description="Why you had to cancel the trip",
                             extraction_hints=("reason", "because", "due to")),
            FieldRequirement("total_trip_cost", "Total Trip Cost", "number",
                             description="Total amount paid for the trip",
                             extraction_hints=("cost", "paid", "total", "$")),
            FieldRequirement("non_refundable_amount", "Non-Refundable Amount", "number",
                             description="Amount you could not recover",
                             extraction_hints=("non-refundable", "lost", "cannot recover")),
        ),
        follow_up_questions=(
            "Do you have documentation of the cancellation reason?",
            "What portion of the trip cost is non-refundable?",
        ),
    ),
    CoverageRequirement(
        coverage_type_id="medical_emergency",
        name="Medical Emergency",
        required_fields=(
            FieldRequirement("incident_date", "Date of Incident", "date",
                             description="When the medical emergency occurred",
                             extraction_hints=("date", "when", "occurred on")),
            FieldRequirement("incident_location", "Location",
                             description="Where the emergency occurred",
                             extraction_hints=("location", "where", "at")),
            FieldRequirement("medical_condition", "Medical Condition",
                             description="Nature of the medical emergency",
                             extraction_hints=("condition", "illness", "injury", "medical")),
            FieldRequirement("treatment_received", "Treatment Received",
                             description="Medical treatment provided",
                             extraction_hints=("treatment", "care", "medical attention")),
            FieldRequirement("medical_costs", "Total Medical Costs", "number",
                             description="Total amount of medical expenses",
                             extraction_hints=("cost", "expenses", "paid", "$")),
        ),
        follow_up_questions=(
            "Did you visit a hospital or clinic?",
            "Do you have medical records and receipts?",
        ),
    ),
]


def default_registry() -> CoverageRegistry:
    return CoverageRegistry(DEFAULT_COVERAGE_REQUIREMENTS)
