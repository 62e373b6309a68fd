"""Eligibility / required-document rules evaluated against stored answers."""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable

from claim_intake.models import Answer, RuleEvaluation
from claim_intake.verification.dates import parse_date

logger = logging.getLogger(__name__)


@dataclass
class Rule:
    id: str
    name: str
    coverage_type_id: str
    priority: int = 0
    conditions: list[dict[str, Any]] = field(default_factory=list)
    actions: list[dict[str, Any]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


def _to_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_date(value: Any) -> date | None:
    if not value:
        return None
    return parse_date(value)


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "") or value == []


def _compare(value: Any, other: Any, op: Callable[[float, float], bool]) -> bool:
    left, right = _to_number(value), _to_number(other)
    if left is None or right is None:
        return False
    return op(left, right)


def _range(value: Any, bounds: Any, convert: Callable[[Any], Any]) -> tuple[Any, Any, Any] | None:
    if not isinstance(bounds, (list, tuple)) or len(bounds) != 2:
        return None
    converted = convert(value), convert(bounds[0]), convert(bounds[1])
    if any(item is None for item in converted):
        return None
    return converted


def _between(value: Any, bounds: Any) -> bool:
    found = _range(value, bounds, _to_number)
    return found is not None and found[1] <= found[0] <= found[2]


def _not_between(value: Any, bounds: Any) -> bool:
    found = _range(value, bounds, _to_number)
    return found is not None and (found[0] < found[1] or found[0] > found[2])


def _date_between(value: Any, bounds: Any) -> bool:
    found = _range(value, bounds, _to_date)
    return found is not None and found[1] <= found[0] <= found[2]


def _date_compare(value: Any, other: Any, before: bool) -> bool:
    left, right = _to_date(value), _to_date(other)
    if left is None or right is None:
        return False
    return left < right if before else left > right


def _regex(value: Any, pattern: Any) -> bool:
    try:
        return re.search(str(pattern), str(value)) is not None
    except re.error:
        logger.warning("Invalid rule regex: %s", pattern)
        return False


def _text(value: Any) -> str:
    return "" if value is None else str(value).lower()


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda v, c: v == c,
    "not_equals": lambda v, c: v != c,
    "greater_than": lambda v, c: _compare(v, c, lambda a, b: a > b),
    "less_than": lambda v, c: _compare(v, c, lambda a, b: a < b),
    "greater_than_or_equal": lambda v, c: _compare(v, c, lambda a, b: a >= b),
    "less_than_or_equal": lambda v, c: _compare(v, c, lambda a, b: a <= b),
    "contains": lambda v, c: _text(c) in _text(v),
    "not_contains": lambda v, c: _text(c) not in _text(v),
    "in": lambda v, c: isinstance(c, (list, tuple)) and v in c,
    "not_in": lambda v, c: isinstance(c, (list, tuple)) and v not in c,
    "is_empty": lambda v, c: _is_empty(v),
    "is_not_empty": lambda v, c: not _is_empty(v),
    "starts_with": lambda v, c: _text(v).startswith(_text(c)),
    "ends_with": lambda v, c: _text(v).endswith(_text(c)),
    "regex": _regex,
    "between": _between,
    "not_between": _not_between,
    "date_before": lambda v, c: _date_compare(v, c, before=True),
    "date_after": lambda v, c: _date_compare(v, c, before=False),
    "date_between": _date_between,
}


def evaluate_condition(value: Any, operator: str, compare_value: Any) -> bool:
    handler = OPERATORS.get(operator)
    if handler is None:
        logger.warning("Unknown rule operator: %s", operator)
        return False
    return handler(value, compare_value)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def evaluate_rules(rules: list[Rule], answers: list[Answer]) -> RuleEvaluation:
    """Apply *rules* (highest priority first) to the claimant's answers.

    A rule fires when all of its conditions hold; conditions reference
    answers by question id. A rule without conditions always fires.

    Args:
        rules: Active rules for the claim's coverage types.
        answers: Answers given so far.

    Returns:
        The combined ``RuleEvaluation``.
    """
    result = RuleEvaluation()
    answer_map = {answer.question_id: answer.answer_value for answer in answers}

    for rule in sorted(rules, key=lambda r: r.priority, reverse=True):
        conditions_met = all(
            evaluate_condition(answer_map.get(cond.get("field")), cond.get("operator", ""), cond.get("value"))
            for cond in rule.conditions
        )
        if not conditions_met:
            continue

        result.rules_triggered.append(rule.id)
        for action in rule.actions:
            _apply_action(action, result)

    return result


def _apply_action(action: dict[str, Any], result: RuleEvaluation) -> None:
    action_type = action.get("type")
    if action_type == "hide_question":
        question_id = action.get("question_id")
        if question_id and question_id not in result.hidden_questions:
            result.hidden_questions.append(question_id)
    elif action_type == "require_document":
        for document_type in action.get("documents") or []:
            if document_type not in result.required_documents:
                result.required_documents.append(document_type)
    elif action_type == "block_submission":
        result.eligibility_status = "ineligible"
        if action.get("error_message"):
            result.validation_errors.append(action["error_message"])
    elif action_type == "show_error":
        if action.get("error_message"):
            result.validation_errors.append(action["error_message"])
    elif action_type == "calculate":
        logger.debug("Calculation action recorded without evaluation: %s", action.get("calculation"))
    else:
        logger.warning("Unknown rule action: %s", action_type)


class RuleEvaluator:
    """Loads active rules from storage and evaluates them."""

    def __init__(self, rule_source):
        self._rule_source = rule_source

    def evaluate(self, coverage_type_ids: list[str], answers: list[Answer]) -> RuleEvaluation:
        if not coverage_type_ids:
            return RuleEvaluation()
        rules = self._rule_source.active_rules(coverage_type_ids)
        evaluation = evaluate_rules(rules, answers)
        logger.info(
            "Rules evaluated: coverage=%s triggered=%d status=%s required_documents=%s",
            coverage_type_ids,
            len(evaluation.rules_triggered),
            evaluation.eligibility_status,
            evaluation.required_documents,
        )
        return evaluation
