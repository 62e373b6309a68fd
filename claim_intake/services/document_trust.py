"""Document trust pipeline: extraction, verification, alignment and status resolution."""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable

from claim_intake.models import DocumentRecord, DocumentStatus
from claim_intake.services.document_messages import generate_reupload_message, validation_message
from claim_intake.verification.alignment import (
    AMOUNT_KEYS,
    DATE_KEYS,
    DESTINATION_KEYS,
    NAME_KEYS,
    ORIGIN_KEYS,
    AmountAlignment,
    DateAlignment,
    LocationAlignment,
    align_amounts,
    align_dates,
    align_document_location,
    document_type_matches,
    first_present,
    name_matches,
)
from claim_intake.verification.text_match import ExtractionVerification, verify_extraction_against_text

logger = logging.getLogger(__name__)

DEFAULT_AUTHENTICITY = 0.7
MIN_AUTHENTICITY = 0.5
LOW_VERIFICATION_CONFIDENCE = 0.5
DEGRADED_WARNING = "Document processing encountered limitations - document saved for manual review"


@dataclass
class DocumentExtraction:
    """Structured output of a single extraction pass over a document."""

    document_type: str | None = None
    extracted_entities: dict[str, Any] = field(default_factory=dict)
    recognized_text: str = ""
    authenticity_score: float = DEFAULT_AUTHENTICITY
    tampering_detected: bool = False
    is_legitimate: bool = True
    is_relevant: bool = True
    context_matches: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass
class DocumentTrustContext:
    """What the claim says, for cross-checking a document against it."""

    coverage_type: str | None = None
    coverage_type_id: str | None = None
    incident_description: str | None = None
    incident_date: str | None = None
    incident_location: str | None = None
    claimed_amount: float | None = None
    profile_name: str | None = None


@dataclass
class TrustReport:
    status: str
    detected_type: str
    expected_types: list[str]
    extraction: DocumentExtraction
    user_message: str
    reupload_reason: str | None = None
    reupload_guidance: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    verification: ExtractionVerification | None = None
    name_matches: bool | None = None
    date_alignment: DateAlignment | None = None
    amount_alignment: AmountAlignment | None = None
    location_alignment: LocationAlignment | None = None
    type_matches: bool = True
    extraction_failed: bool = False

    @property
    def accepted(self) -> bool:
        return self.status in (DocumentStatus.VALID.value, DocumentStatus.NEEDS_REVIEW.value)

    def verified_entities(self) -> dict[str, Any]:
        """Entities substantiated by recognized text (all of them if unchecked)."""
        if self.verification is None:
            return dict(self.extraction.extracted_entities)
        return dict(self.verification.verified)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


Extractor = Callable[[DocumentRecord, str | None, DocumentTrustContext | None], DocumentExtraction]


class DocumentTrustPipeline:
    """Decide whether an uploaded document can be trusted for a claim.

    The extraction call is injected; any exception it raises is turned
    into a ``needs_review`` report rather than propagated.
    """

    def __init__(self, extractor: Extractor):
        self._extractor = extractor

    def process(
        self,
        document: DocumentRecord,
        expected_types: list[str],
        context: DocumentTrustContext | None = None,
    ) -> TrustReport:
        """Run the full trust pipeline for one document.

        Args:
            document: The stored document to assess.
            expected_types: Document types acceptable for the claim.
            context: Claim details to align against; alignment is
                skipped when omitted.

        Returns:
            A ``TrustReport`` whose ``status`` is one of ``valid``,
            ``needs_review``, ``invalid`` or ``reupload_required``.
        """
        expected = [t for t in expected_types if t]
        primary_type = expected[0] if expected else None

        try:
            extraction = self._extractor(document, primary_type, context)
        except Exception as exc:
            logger.warning("Extraction failed for document_id=%s: %s", document.id, exc)
            return self._degraded_report(expected)

        detected_type = extraction.document_type or "unknown"
        errors = list(extraction.errors)
        warnings = list(extraction.warnings)
        authenticity = extraction.authenticity_score

        verification = None
        if extraction.recognized_text:
            verification = verify_extraction_against_text(
                extraction.extracted_entities, extraction.recognized_text
            )
            warnings.extend(verification.warnings)
            if verification.overall_confidence < LOW_VERIFICATION_CONFIDENCE:
                logger.warning(
                    "Low verification confidence (%.2f) for document_id=%s, possible hallucination",
                    verification.overall_confidence,
                    document.id,
                )
                authenticity = min(authenticity, MIN_AUTHENTICITY)
        else:
            logger.warning("No recognized text for document_id=%s, extraction unverified", document.id)

        entities = extraction.extracted_entities
        name_ok = date_alignment = amount_alignment = location_alignment = None
        if context is not None:
            extracted_name = first_present(entities, NAME_KEYS)
            name_ok = name_matches(extracted_name, context.profile_name)
            if name_ok is False:
                warnings.append(
                    f"Name on document ({extracted_name}) does not match profile name ({context.profile_name})"
                )

            date_alignment = align_dates(first_present(entities, DATE_KEYS), context.incident_date, detected_type)
            if date_alignment.aligns is False:
                warnings.append(date_alignment.reason)

            location_alignment = align_document_location(entities, context.incident_location)
            if location_alignment.aligns is False:
                warnings.append(location_alignment.reason)

            amount_alignment = align_amounts(first_present(entities, AMOUNT_KEYS), context.claimed_amount)
            if amount_alignment.aligns is False:
                warnings.append(amount_alignment.reason)
            if amount_alignment.warning:
                warnings.append(amount_alignment.warning)

        type_ok = document_type_matches(detected_type, expected)
        if not type_ok:
            errors.append(f'Document type "{detected_type}" does not match expected types: {", ".join(expected)}')
        if extraction.tampering_detected:
            errors.append("Document may have been tampered with")
        if authenticity < MIN_AUTHENTICITY:
            errors.append("Document authenticity could not be verified")

        report = TrustReport(
            status=DocumentStatus.VALID.value,
            detected_type=detected_type,
            expected_types=expected,
            extraction=extraction,
            user_message="",
            errors=errors,
            warnings=warnings,
            verification=verification,
            name_matches=name_ok,
            date_alignment=date_alignment,
            amount_alignment=amount_alignment,
            location_alignment=location_alignment,
            type_matches=type_ok,
        )
        report.extraction.authenticity_score = authenticity
        self._resolve_status(report, context, entities)

        message = validation_message(report.status, detected_type, primary_type, errors, warnings)
        report.user_message = message.as_text()
        logger.info(
            "Document trust resolved: document_id=%s status=%s type=%s errors=%d warnings=%d",
            document.id,
            report.status,
            detected_type,
            len(errors),
            len(warnings),
        )
        return report

    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_status(report: TrustReport, context: DocumentTrustContext | None, entities: dict[str, Any]) -> None:
        """First matching condition wins."""
        extraction = report.extraction
        reupload = DocumentStatus.REUPLOAD_REQUIRED.value
        invalid = DocumentStatus.INVALID.value

        if not report.type_matches:
            report.status = reupload
            report.reupload_reason = (
                f"This appears to be a {report.detected_type}, but I need a {' or '.join(report.expected_types)}"
            )
            report.reupload_guidance = generate_reupload_message(report.detected_type, report.expected_types)
        elif extraction.tampering_detected:
            report.status = invalid
            report.reupload_reason = "Document appears to have been modified"
            report.reupload_guidance = "Please upload an original, unmodified document"
        elif extraction.authenticity_score < MIN_AUTHENTICITY:
            report.status = invalid
            report.reupload_reason = "Document could not be verified as authentic"
            report.reupload_guidance = "Please upload a clearer image of the original document"
        elif not extraction.is_relevant:
            coverage = context.coverage_type if context and context.coverage_type else "insurance"
            report.status = reupload
            report.reupload_reason = "This document does not appear to be relevant to your claim"
            report.reupload_guidance = f"Please upload a document related to your {coverage} claim"
        elif context is not None and report.name_matches is False:
            report.status = reupload
            report.reupload_reason = "The name on the document doesn't match your profile name"
            report.reupload_guidance = (
                f'Please upload a document with the name "{context.profile_name}" or update your '
                "profile if the name on the document is correct."
            )
        elif context is not None and report.date_alignment and report.date_alignment.aligns is False:
            report.status = reupload
            report.reupload_reason = (
                f"The date on the document ({first_present(entities, DATE_KEYS)}) does not match "
                f"your incident date ({context.incident_date})"
            )
            report.reupload_guidance = (
                f"Please upload a document that matches your incident date of {context.incident_date}"
            )
        elif context is not None and report.location_alignment and report.location_alignment.aligns is False:
            shown = [
                str(v) for v in (
                    first_present(entities, ORIGIN_KEYS),
                    first_present(entities, DESTINATION_KEYS),
                    entities.get("location"),
                ) if v
            ]
            report.status = reupload
            report.reupload_reason = (
                f"The location on the document ({', '.join(shown)}) does not match your "
                f"incident location ({context.incident_location})"
            )
            report.reupload_guidance = (
                f"Please upload a document that matches your incident location of {context.incident_location}"
            )
        elif context is not None and not extraction.context_matches:
            report.status = reupload
            report.reupload_reason = "The information on the document does not match your claim details"
            report.reupload_guidance = (
                "Please upload a document that matches your claim information "
                "(date, location, flight details, etc.)"
            )
        elif report.errors:
            report.status = invalid
        elif report.warnings:
            report.status = DocumentStatus.NEEDS_REVIEW.value
        else:
            report.status = DocumentStatus.VALID.value

    @staticmethod
    def _degraded_report(expected: list[str]) -> TrustReport:
        extraction = DocumentExtraction(
            document_type=expected[0] if expected else "unknown",
            authenticity_score=0.5,
            is_legitimate=True,
            is_relevant=False,
            context_matches=False,
            warnings=[DEGRADED_WARNING],
        )
        status = DocumentStatus.NEEDS_REVIEW.value
        message = validation_message(status, extraction.document_type, None, [], extraction.warnings)
        return TrustReport(
            status=status,
            detected_type=extraction.document_type,
            expected_types=expected,
            extraction=extraction,
            user_message=message.as_text(),
            warnings=list(extraction.warnings),
            extraction_failed=True,
        )
