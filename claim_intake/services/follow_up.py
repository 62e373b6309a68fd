"""Message field extraction and adaptive follow-up questions for the questioning stage."""

import logging
from typing import Any, Callable

from claim_intake.coverage import FieldRequirement
from claim_intake.graph.nodes.llm_client import call_llm, parse_json_object
from claim_intake.models import ConversationTurn

logger = logging.getLogger(__name__)

FOLLOW_UP_TEMPERATURE = 0.7
HISTORY_TURNS = 6

EXTRACTION_PROMPT = """Extract any relevant claim information from the user message. Only extract information that is explicitly stated.

Fields to look for:
{fields}

RULES:
- Use exactly the field keys listed above.
- Dates must be ISO format (YYYY-MM-DD).
- Numbers are plain numbers without currency symbols.
- Omit any field the message does not state. Never guess.

Respond with ONLY a JSON object mapping field keys to values, e.g. {{"flight_number": "SA-204"}}.
Do not include any explanation, commentary, or additional text."""

FOLLOW_UP_PROMPT = """You are a helpful insurance claims assistant. Your job is to collect required information for a claim.

Coverage types: {coverage}

Still missing:
{missing}
{collected}
Guidelines:
- Ask ONE clear, specific question about the first missing item.
- Be conversational and friendly, not robotic.
- Don't repeat questions that were already asked.
- Be empathetic - users are dealing with incidents.
- Keep it short. Reply with the question only."""


def _describe(requirement: FieldRequirement) -> str:
    line = f"- {requirement.field} ({requirement.type}): {requirement.description or requirement.label}"
    if requirement.extraction_hints:
        line += f". Look for: {', '.join(requirement.extraction_hints)}"
    if requirement.allowed_values:
        line += f". One of: {', '.join(requirement.allowed_values)}"
    return line


def _coerce(requirement: FieldRequirement, value: Any) -> Any:
    if requirement.type == "number" and not isinstance(value, (int, float)):
        try:
            return float(str(value).replace(",", "").lstrip("$"))
        except ValueError:
            return None
    if requirement.allowed_values and str(value) not in requirement.allowed_values:
        return None
    return value


class MessageFieldExtractor:
    """Pull coverage fields stated in a free-text claimant message."""

    def __init__(self, llm: Callable[..., str] = call_llm):
        self._llm = llm

    def extract(self, message: str, fields: list[FieldRequirement]) -> dict[str, Any]:
        """Return ``{field: value}`` for fields the message states.

        Raises:
            ValueError: If the LLM reply cannot be parsed.
        """
        if not fields or not message.strip():
            return {}
        prompt = EXTRACTION_PROMPT.format(fields="\n".join(_describe(f) for f in fields))
        parsed = parse_json_object(self._llm(prompt, message))

        found: dict[str, Any] = {}
        for requirement in fields:
            value = parsed.get(requirement.field)
            if value in (None, "", []):
                continue
            value = _coerce(requirement, value)
            if value is None:
                logger.warning("Discarding unusable value for field=%s", requirement.field)
                continue
            found[requirement.field] = value
        return found


def template_question(requirement: FieldRequirement) -> str:
    if requirement.allowed_values:
        options = ", ".join(value.replace("_", " ") for value in requirement.allowed_values)
        return f"What was the {requirement.label.lower()}? (Options: {options})"
    if requirement.type == "date":
        return f"What is the {requirement.label.lower()}? Please use the format YYYY-MM-DD."
    if requirement.type == "number":
        return f"What is the {requirement.label.lower()}? Please give the amount in USD."
    return f"Could you tell me the {requirement.label.lower()}?"


class FollowUpQuestioner:
    """Ask for the next missing field, via the LLM with a template fallback.

    The returned question never repeats the previous assistant message.
    """

    def __init__(self, llm: Callable[..., str] = call_llm):
        self._llm = llm

    def next_question(
        self,
        coverage_names: list[str],
        missing: list[FieldRequirement],
        collected: list[str],
        turns: list[ConversationTurn],
        extra_questions: list[str] | None = None,
    ) -> str:
        last_asked = next((t.content for t in reversed(turns) if t.role == "assistant"), None)
        candidates = [self._generate(coverage_names, missing, collected, turns)]
        candidates.extend(template_question(requirement) for requirement in missing)
        candidates.extend(extra_questions or [])

        for candidate in candidates:
            if candidate and _normalized(candidate) != _normalized(last_asked):
                return candidate
        # Only one question left and it was just asked: rephrase instead of repeating.
        return f"Sorry, I still need this detail: {missing[0].label}. {missing[0].description}".strip()

    def _generate(
        self,
        coverage_names: list[str],
        missing: list[FieldRequirement],
        collected: list[str],
        turns: list[ConversationTurn],
    ) -> str | None:
        prompt = FOLLOW_UP_PROMPT.format(
            coverage=", ".join(coverage_names),
            missing="\n".join(_describe(f) for f in missing),
            collected=f"\nAlready collected: {', '.join(collected)}\n" if collected else "",
        )
        history = "\n".join(f"{t.role}: {t.content}" for t in turns[-HISTORY_TURNS:])
        try:
            reply = self._llm(prompt, history or "(no conversation yet)", temperature=FOLLOW_UP_TEMPERATURE)
        except Exception as exc:
            logger.warning("Follow-up generation failed, using template: %s", exc)
            return None
        return reply.strip() or None


def _normalized(text: str | None) -> str:
    return " ".join((text or "").lower().split())
