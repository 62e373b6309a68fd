"""Questioning stage: database questions first, then adaptive follow-ups for missing fields."""

import logging
from typing import Any

from claim_intake.coverage import CoverageRegistry
from claim_intake.graph.nodes.base import Stage, StageOutcome
from claim_intake.graph.state_manager import StateManager
from claim_intake.models import (
    ConversationTurn,
    ExtractedField,
    FlowStage,
    FlowState,
    IntakeInput,
    Question,
    ValidationIssue,
)
from claim_intake.services.follow_up import FollowUpQuestioner, MessageFieldExtractor
from claim_intake.services.interfaces import QuestionSource, RulesEngine

logger = logging.getLogger(__name__)

NO_COVERAGE = "Error: Coverage types not set. Please restart claim intake."
INELIGIBLE_INTRO = (
    "Unfortunately, based on the information provided, this claim does not meet the eligibility requirements.\n\n"
)
INELIGIBLE_FALLBACK = "Please contact support for more information."


class QuestioningStage(Stage):
    stage = FlowStage.QUESTIONING

    def __init__(
        self,
        state_manager: StateManager,
        questions: QuestionSource,
        rules: RulesEngine,
        registry: CoverageRegistry,
        field_extractor: MessageFieldExtractor,
        follow_up: FollowUpQuestioner,
    ):
        super().__init__(state_manager)
        self._questions = questions
        self._rules = rules
        self._registry = registry
        self._field_extractor = field_extractor
        self._follow_up = follow_up

    def run(self, state: FlowState, intake_input: IntakeInput, outcome: StageOutcome) -> None:
        if not state.coverage_type_ids:
            self._input_error(outcome, NO_COVERAGE)
            return
        session_id = state.session_id

        if intake_input.message:
            state = self._record_message(outcome, state, intake_input.message)
        if intake_input.question_id and intake_input.answer_value is not None:
            state = self._record_answer(outcome, state, intake_input.question_id, intake_input.answer_value)
            outcome.say("Got it, thank you!\n\n")

        answers = self._questions.answers_for_session(session_id)
        evaluation = self._rules.evaluate(state.coverage_type_ids, answers)

        if not evaluation.is_eligible:
            reason = evaluation.validation_errors[0] if evaluation.validation_errors else INELIGIBLE_FALLBACK
            outcome.say(INELIGIBLE_INTRO, reason)
            self._update(
                outcome,
                session_id,
                validation_passed=False,
                validation_errors=[ValidationIssue(code="INELIGIBLE", message=reason, field="eligibility")],
                validation_results=evaluation.model_dump(),
            )
            return

        question = self._questions.get_next_question(
            state.coverage_type_ids,
            state.questioning.asked_question_ids,
            evaluation.hidden_questions,
        )
        if question is not None:
            self._ask(outcome, state, question)
            return

        if evaluation.required_documents:
            outcome.say("Great! Now I need some documents to continue processing your claim.\n\n")
            self._transition(outcome, session_id, FlowStage.DOCUMENTS)
            return

        missing = self._registry.missing_required_fields(state.coverage_type_ids, state.extracted_values())
        if missing:
            text = self._follow_up.next_question(
                coverage_names=[self._registry.display_name(c) for c in state.coverage_type_ids],
                missing=missing,
                collected=sorted(state.extracted_data),
                turns=state.questioning.turns,
                extra_questions=self._registry.follow_up_questions(state.coverage_type_ids),
            )
            outcome.say(text)
            self._add_turn(outcome, state, "assistant", text)
            return

        self._transition(outcome, session_id, FlowStage.VALIDATION)
        outcome.say("Thank you for providing all the information. Let me validate your claim details...\n\n")

    # ------------------------------------------------------------------

    def _record_message(self, outcome: StageOutcome, state: FlowState, message: str) -> FlowState:
        state = self._add_turn(outcome, state, "user", message)

        fields = self._registry.required_fields(state.coverage_type_ids)
        try:
            values = self._field_extractor.extract(message, fields)
        except Exception as exc:
            logger.warning("Message extraction failed, continuing: session_id=%s error=%s", state.session_id, exc)
            return state
        if not values:
            return state

        extracted = dict(state.extracted_data)
        for name, value in values.items():
            extracted[name] = ExtractedField(value=value, confidence="high", source="user_message")
        logger.info("Fields extracted from message: session_id=%s fields=%s", state.session_id, sorted(values))
        return self._update(outcome, state.session_id, extracted_data=extracted)

    def _record_answer(self, outcome: StageOutcome, state: FlowState, question_id: str, value: Any) -> FlowState:
        self._questions.save_answer(state.session_id, question_id, value)
        outcome.effects.append(f"answer:{question_id}")

        questioning = state.questioning.model_copy(deep=True)
        if question_id not in questioning.asked_question_ids:
            questioning.asked_question_ids.append(question_id)
        if questioning.pending_question_id == question_id:
            questioning.pending_question_id = None
        fields: dict[str, Any] = {"questioning": questioning}

        question = self._questions.get_question(question_id)
        if question is not None and question.field_name:
            extracted = dict(state.extracted_data)
            extracted[question.field_name] = ExtractedField(
                value=value, confidence="high", source="database_question"
            )
            fields["extracted_data"] = extracted

        return self._update(outcome, state.session_id, **fields)

    def _ask(self, outcome: StageOutcome, state: FlowState, question: Question) -> None:
        outcome.say(f"**{question.question_text}**\n\n")
        if question.help_text:
            outcome.say(f"_{question.help_text}_\n\n")
        if question.options:
            outcome.say(f"Options: {', '.join(question.options)}\n\n")

        questioning = state.questioning.model_copy(deep=True)
        questioning.pending_question_id = question.id
        questioning.turns.append(ConversationTurn(role="assistant", content=question.question_text))
        self._update(outcome, state.session_id, questioning=questioning)

    def _add_turn(self, outcome: StageOutcome, state: FlowState, role: str, content: str) -> FlowState:
        questioning = state.questioning.model_copy(deep=True)
        questioning.turns.append(ConversationTurn(role=role, content=content))
        return self._update(outcome, state.session_id, questioning=questioning)
