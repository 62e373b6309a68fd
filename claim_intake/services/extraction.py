"""Document extractor: pulls structured entities out of recognized document text via the Cerebras LLM."""

import json
import logging
from typing import Any, Callable

from claim_intake.graph.nodes.llm_client import call_llm, parse_json_object
from claim_intake.models import DocumentRecord
from claim_intake.services.document_trust import (
    DEFAULT_AUTHENTICITY,
    DocumentExtraction,
    DocumentTrustContext,
)
from claim_intake.services.pdf_parser import extract_text

logger = logging.getLogger(__name__)

LEGITIMACY_THRESHOLD = 0.7

SYSTEM_PROMPT = """You are a document analysis assistant for travel insurance claims. You will receive the recognized text of ONE uploaded document.

{context}
CRITICAL ANTI-HALLUCINATION RULES:
1. ONLY extract values that appear LITERALLY in the document text.
2. If a field is not present or unclear, set it to null. DO NOT guess or invent values.
3. Copy names, flight numbers, baggage tags and locations exactly as written.
4. Convert dates to ISO format (YYYY-MM-DD) only when the date is printed in the text.
5. Amounts are plain numbers without currency symbols.

Your tasks:
1. Identify the document type (e.g. baggage_receipt, airline_pir, purchase_receipt, cancellation_notice, booking_confirmation, boarding_pass, medical_report, hospital_bill, receipt, incident_report).
2. Extract key entities using these keys when present: passengerName, name, flightNumber, baggageTag, pirNumber, referenceNumber, date, issueDate, from, to, location, airport, amount, currency, airline.
3. Assess legitimacy: score authenticity from 0 to 1 and flag visible signs of tampering or inconsistency.
4. Assess relevance: is this document the kind of evidence the expected document type calls for?
5. Assess context: do the dates, locations and amounts agree with the claim context? If not, set contextMatches to false and explain in errors.

Respond with ONLY a JSON object in this exact format:
{{
  "documentType": "<type>",
  "extractedEntities": {{"<key>": "<value>"}},
  "authenticityScore": <0..1>,
  "tamperingDetected": <true|false>,
  "isRelevant": <true|false>,
  "contextMatches": <true|false>,
  "errors": ["<string>"],
  "warnings": ["<string>"]
}}

Do not include any explanation, commentary, or additional text."""


def _context_block(expected_type: str | None, context: DocumentTrustContext | None) -> str:
    lines = [f"EXPECTED DOCUMENT TYPE: {expected_type or 'unknown'}"]
    if context is not None:
        lines.extend([
            "CLAIM CONTEXT:",
            f"- Coverage Type: {context.coverage_type or 'Not provided'}",
            f"- Incident Description: {context.incident_description or 'Not provided'}",
            f"- Incident Date: {context.incident_date or 'Not provided'}",
            f"- Incident Location: {context.incident_location or 'Not provided'}",
            f"- Claimed Amount: {context.claimed_amount if context.claimed_amount is not None else 'Not provided'}",
        ])
    return "\n".join(lines) + "\n"


def _as_float(value: Any, default: float) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return default


def _as_strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item]


class DocumentExtractor:
    """Callable extractor used by the document trust pipeline.

    The recognized text comes from the file itself (PyMuPDF), never from
    the model, so verification always checks the model's claims against
    what the document actually says.
    """

    def __init__(
        self,
        llm: Callable[[str, str], str] = call_llm,
        text_reader: Callable[[str, str | None], str] = extract_text,
    ):
        self._llm = llm
        self._text_reader = text_reader

    def __call__(
        self,
        document: DocumentRecord,
        expected_type: str | None = None,
        context: DocumentTrustContext | None = None,
    ) -> DocumentExtraction:
        """Extract entities and trust signals from *document*.

        Raises:
            ValueError: If the document has no readable text or the LLM
                reply cannot be parsed.
        """
        text = self._text_reader(document.file_path, document.mime_type)
        prompt = SYSTEM_PROMPT.format(context=_context_block(expected_type, context))
        parsed = parse_json_object(self._llm(prompt, text))

        entities = parsed.get("extractedEntities") or {}
        if not isinstance(entities, dict):
            logger.warning("extractedEntities is not an object for document_id=%s", document.id)
            entities = {}
        entities = {key: value for key, value in entities.items() if value not in (None, "")}

        authenticity = _as_float(parsed.get("authenticityScore"), DEFAULT_AUTHENTICITY)
        tampering = parsed.get("tamperingDetected") is True

        extraction = DocumentExtraction(
            document_type=parsed.get("documentType") or expected_type,
            extracted_entities=entities,
            recognized_text=text,
            authenticity_score=authenticity,
            tampering_detected=tampering,
            is_legitimate=not tampering and authenticity >= LEGITIMACY_THRESHOLD,
            is_relevant=parsed.get("isRelevant") is not False,
            context_matches=parsed.get("contextMatches") is not False,
            errors=_as_strings(parsed.get("errors")),
            warnings=_as_strings(parsed.get("warnings")),
        )
        logger.info(
            "Extraction complete: document_id=%s type=%s entities=%s",
            document.id,
            extraction.document_type,
            json.dumps(sorted(entities)),
        )
        return extraction
