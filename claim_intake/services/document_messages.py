"""Claimant-facing document names, upload guidance and status messages."""

from dataclasses import dataclass

from claim_intake.models import DocumentStatus

# type key -> (display name, upload guidance)
DOCUMENT_TYPES: dict[str, tuple[str, str]] = {
    "baggage_receipt": (
        "Baggage Claim Receipt",
        "This is the receipt you receive when you report lost baggage at the airport "
        "baggage claims counter.",
    ),
    "airline_pir": (
        "Property Irregularity Report (PIR)",
        "The PIR is given to you at the airport when you report baggage issues. It has a "
        "unique reference number starting with letters and numbers.",
    ),
    "baggage_tag": (
        "Baggage Tag",
        "This is the sticker placed on your bag at check-in. The receipt portion is usually "
        "attached to your boarding pass.",
    ),
    "purchase_receipt": (
        "Purchase Receipt",
        "Upload receipts for valuable items that were in your lost baggage to help verify "
        "their value.",
    ),
    "cancellation_notice": (
        "Flight Cancellation Notice",
        "This is typically an email or text message from the airline informing you of the "
        "cancellation.",
    ),
    "airline_notification": (
        "Airline Notification",
        "Emails, texts, or app notifications from your airline about schedule changes.",
    ),
    "booking_confirmation": (
        "Booking Confirmation",
        "The confirmation email or document you received when you booked your flight.",
    ),
    "boarding_pass": (
        "Boarding Pass",
        "Your physical or digital boarding pass showing you were booked on the flight.",
    ),
    "ticket": ("Flight Ticket", "Your e-ticket receipt or paper ticket showing your booking."),
    "itinerary": (
        "Travel Itinerary",
        "Your complete travel itinerary from the airline or travel agent.",
    ),
    "medical_report": (
        "Medical Report",
        "Request a detailed medical report from your treating physician.",
    ),
    "hospital_bill": (
        "Hospital Bill",
        "Request an itemized bill showing all services and charges.",
    ),
    "medical_bill": (
        "Medical Bill",
        "Bills from any healthcare provider - doctor, clinic, pharmacy, etc.",
    ),
    "prescription": ("Prescription", "The prescription given by your doctor for medications."),
    "discharge_summary": (
        "Discharge Summary",
        "The summary provided when you are discharged from hospital.",
    ),
    "incident_report": (
        "Incident Report",
        "Police report or official incident documentation.",
    ),
    "id_document": (
        "ID Document",
        "Passport, driver's license, or government ID - may be needed for identity verification.",
    ),
    "bank_statement": (
        "Bank Statement",
        "Bank statement showing payments related to your claim.",
    ),
    "receipt": ("Receipt", "Receipts for expenses you're claiming reimbursement for."),
}


@dataclass
class StatusMessage:
    title: str
    message: str
    guidance: str | None = None
    is_blocking: bool = False

    def as_text(self) -> str:
        return f"{self.message} {self.guidance}" if self.guidance else self.message


def get_document_type_name(type_key: str | None) -> str:
    if not type_key:
        return "Document"
    entry = DOCUMENT_TYPES.get(type_key)
    if entry:
        return entry[0]
    return type_key.replace("_", " ").title()


def get_upload_guidance(type_key: str | None) -> str:
    if not type_key:
        return "Please upload a relevant document."
    entry = DOCUMENT_TYPES.get(type_key)
    if entry:
        return entry[1]
    return f"Please upload a {get_document_type_name(type_key)}."


def generate_reupload_message(detected_type: str | None, expected_types: list[str], reason: str = "") -> str:
    """Compose an empathetic request for a different document."""
    expected = [t for t in expected_types if t]
    parts = ["I understand you've uploaded a document, but I need something different for your claim."]
    if detected_type and expected:
        wanted = " or ".join(get_document_type_name(t) for t in expected)
        parts.append(f"This appears to be a {get_document_type_name(detected_type)}, but I need a {wanted}.")
    if reason:
        parts.append(reason)
    if expected:
        parts.append(get_upload_guidance(expected[0]))
    return " ".join(parts)


def validation_message(
    status: str,
    detected_type: str | None,
    expected_type: str | None,
    errors: list[str],
    warnings: list[str],
) -> StatusMessage:
    """Map a document status to the message shown to the claimant."""
    if status == DocumentStatus.VALID.value:
        name = get_document_type_name(detected_type) if detected_type else "document"
        return StatusMessage(
            "Document Accepted",
            f"Your {name} has been successfully validated and saved to your claim.",
        )

    if status == DocumentStatus.NEEDS_REVIEW.value:
        return StatusMessage(
            "Document Saved for Review",
            f"Your document has been saved, but it will be reviewed by our team due to: {', '.join(warnings)}",
            "You can continue with your claim. Our team will review this document during processing.",
        )

    if status == DocumentStatus.INVALID.value:
        message = (
            f"We found the following issues with your document: {'. '.join(errors)}"
            if errors
            else "The document could not be validated."
        )
        return StatusMessage(
            "Document Has Issues",
            message,
            "Please review the issues above and consider uploading a corrected version.",
            is_blocking=True,
        )

    expected_guidance = DOCUMENT_TYPES[expected_type][1] if expected_type in DOCUMENT_TYPES else None
    if detected_type and expected_type and detected_type != expected_type:
        message = (
            f"This appears to be a {get_document_type_name(detected_type)}, but I need a "
            f"{get_document_type_name(expected_type)} for this claim."
        )
        guidance = expected_guidance or f"Please upload a {get_document_type_name(expected_type)}."
    elif errors:
        message = ". ".join(errors)
        guidance = expected_guidance or "Please upload a clearer or correct document."
    else:
        message = "This document cannot be accepted for your claim."
        guidance = expected_guidance or "Please upload the correct document type."
    return StatusMessage("Different Document Needed", message, guidance, is_blocking=True)
