"""Incident classifier: maps a free-text incident report to coverage types via the Cerebras LLM."""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from claim_intake.graph.nodes.llm_client import call_llm, parse_json_object
from claim_intake.models import CoverageTypeInfo

logger = logging.getLogger(__name__)

ALLOWED_CONFIDENCE: set[str] = {"high", "medium", "low"}
DETAIL_KEYS: tuple[str, ...] = ("incident_date", "incident_location", "incident_type", "estimated_amount")

SYSTEM_PROMPT = """You are an insurance claims specialist. Analyze the incident description and determine which coverage type(s) apply.

Available coverage types:
{coverage_types}

RULES:
- Only return IDs from the list above. Never invent an ID.
- If nothing in the list fits the incident, return an empty coverage_type_ids list.
- Only fill extracted_details with facts stated in the description. Use null otherwise.
- incident_date must be ISO format (YYYY-MM-DD).

Respond with ONLY a JSON object in this exact format:
{{
  "coverage_type_ids": ["<id>"],
  "confidence": "high | medium | low",
  "reasoning": "<one or two sentences>",
  "extracted_details": {{
    "incident_date": "<YYYY-MM-DD or null>",
    "incident_location": "<string or null>",
    "incident_type": "<string or null>",
    "estimated_amount": <number or null>
  }}
}}

Do not include any explanation, commentary, or additional text."""


@dataclass
class CategorizationResult:
    coverage_type_ids: list[str]
    confidence: str
    reasoning: str
    extracted_details: dict[str, Any] = field(default_factory=dict)


class IncidentClassifier:
    """Classify incidents against the coverage types a claimant actually holds."""

    def __init__(self, llm: Callable[[str, str], str] = call_llm):
        self._llm = llm

    def classify(self, text: str, candidates: list[CoverageTypeInfo]) -> CategorizationResult:
        """Pick the coverage types that apply to *text*.

        Args:
            text: The claimant's incident description.
            candidates: Coverage types available to the claimant.

        Returns:
            A ``CategorizationResult``; ids outside *candidates* are dropped.

        Raises:
            ValueError: If the LLM reply cannot be parsed.
        """
        listing = "\n".join(
            f"- ID: {c.id}, Name: {c.name}, Description: {c.description or 'N/A'}" for c in candidates
        )
        raw = self._llm(SYSTEM_PROMPT.format(coverage_types=listing), text)
        parsed = parse_json_object(raw)

        allowed_ids = {c.id for c in candidates}
        coverage_type_ids: list[str] = []
        for coverage_type_id in parsed.get("coverage_type_ids") or []:
            if coverage_type_id in allowed_ids and coverage_type_id not in coverage_type_ids:
                coverage_type_ids.append(coverage_type_id)
            elif coverage_type_id not in allowed_ids:
                logger.warning("LLM returned unknown coverage type '%s', dropping", coverage_type_id)

        confidence = str(parsed.get("confidence", "low")).lower()
        if confidence not in ALLOWED_CONFIDENCE:
            logger.warning("LLM returned invalid confidence '%s', defaulting to 'low'", confidence)
            confidence = "low"

        raw_details = parsed.get("extracted_details") or {}
        details = {
            key: raw_details[key]
            for key in DETAIL_KEYS
            if isinstance(raw_details, dict) and raw_details.get(key) not in (None, "")
        }

        return CategorizationResult(
            coverage_type_ids=coverage_type_ids,
            confidence=confidence,
            reasoning=str(parsed.get("reasoning") or ""),
            extracted_details=details,
        )
