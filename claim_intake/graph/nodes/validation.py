"""Validation stage: eligibility, required fields, documents and policy limits before a claim is created."""

import logging

from claim_intake.coverage import CoverageRegistry
from claim_intake.graph.nodes.base import Stage, StageOutcome
from claim_intake.graph.state_manager import StateManager
from claim_intake.models import FlowStage, FlowState, IntakeInput, RuleEvaluation, ValidationIssue
from claim_intake.services import claim_facts
from claim_intake.services.document_messages import get_document_type_name
from claim_intake.services.interfaces import DocumentStore, PolicySource, QuestionSource, RulesEngine

logger = logging.getLogger(__name__)


class ValidationStage(Stage):
    """Runs the checks in order; the first failure sends the flow back a stage.

    A policy limit overrun is reported but does not block submission.
    """

    stage = FlowStage.VALIDATION

    def __init__(
        self,
        state_manager: StateManager,
        questions: QuestionSource,
        rules: RulesEngine,
        documents: DocumentStore,
        policies: PolicySource,
        registry: CoverageRegistry,
    ):
        super().__init__(state_manager)
        self._questions = questions
        self._rules = rules
        self._documents = documents
        self._policies = policies
        self._registry = registry

    def run(self, state: FlowState, intake_input: IntakeInput, outcome: StageOutcome) -> None:
        session_id = state.session_id
        values = state.extracted_values()
        outcome.say("Validating your claim information...\n\n")

        # 1. eligibility
        outcome.say("→ Checking eligibility rules...")
        answers = self._questions.answers_for_session(session_id)
        evaluation = self._rules.evaluate(state.coverage_type_ids, answers)
        if not evaluation.is_eligible:
            message = (
                evaluation.validation_errors[0]
                if evaluation.validation_errors
                else "Claim does not meet eligibility requirements"
            )
            outcome.say(" ❌\n\n", f"**Eligibility Issue:** {message}\n\n", "Please review your answers and try again.")
            self._fail(
                outcome,
                state,
                ValidationIssue(code="INELIGIBLE", message=message, field="eligibility"),
                evaluation,
                FlowStage.QUESTIONING,
            )
            return
        outcome.say(" ✓\n")

        # 2. required fields
        outcome.say("→ Checking required information...")
        missing = self._registry.missing_required_fields(state.coverage_type_ids, values)
        if missing:
            outcome.say(" ❌\n\n", "**Missing Information:**\n")
            for requirement in missing:
                outcome.say(f"- {requirement.label}\n")
            outcome.say("\n")
            self._fail(
                outcome,
                state,
                ValidationIssue(
                    code="MISSING_FIELDS",
                    message=f"Missing required information: {', '.join(r.field for r in missing)}",
                ),
                evaluation,
                FlowStage.QUESTIONING,
            )
            outcome.say("Let me ask you a few more questions to complete your claim...")
            return
        outcome.say(" ✓\n")

        # 3. documents, only when rules ask for any
        if evaluation.required_documents:
            outcome.say("→ Checking required documents...")
            check = self._documents.check_required_documents(
                state.uploaded_document_ids, evaluation.required_documents
            )
            if not check.complete:
                outcome.say(" ❌\n\n", "**Missing Documents:**\n")
                for document_type in check.missing_types:
                    outcome.say(f"- {get_document_type_name(document_type)}\n")
                outcome.say("\n")
                self._fail(
                    outcome,
                    state,
                    ValidationIssue(
                        code="MISSING_DOCUMENTS",
                        message=f"Missing required documents: {', '.join(check.missing_types)}",
                    ),
                    evaluation,
                    FlowStage.DOCUMENTS,
                )
                outcome.say("Please upload the required documents to continue.")
                return
            outcome.say(" ✓\n")

        # 4. policy limits (warning only)
        outcome.say("→ Checking policy limits...")
        limits = self._policies.check_policy_limits(
            state.user_id, state.coverage_type_ids, claim_facts.claimed_amount(values)
        )
        if not limits.valid:
            outcome.say(
                " ⚠️\n\n",
                f"**Policy Limit Warning:** {limits.message}\n\n",
                "Your claim exceeds the remaining policy limit, but we will process it for review.\n\n",
            )
        else:
            outcome.say(" ✓\n")

        outcome.say("\n✅ All validations passed!\n\n")
        self._update(
            outcome,
            session_id,
            validation_results=evaluation.model_dump(),
            validation_passed=True,
            validation_errors=[],
            policy_limit_check=limits,
        )
        self._transition(outcome, session_id, FlowStage.FINALIZATION)
        outcome.say("Ready to create your claim...\n\n")

    def _fail(
        self,
        outcome: StageOutcome,
        state: FlowState,
        issue: ValidationIssue,
        evaluation: RuleEvaluation,
        back_to: FlowStage,
    ) -> None:
        logger.info(
            "Validation failed: session_id=%s code=%s back_to=%s", state.session_id, issue.code, back_to.value
        )
        self._update(
            outcome,
            state.session_id,
            validation_passed=False,
            validation_errors=[issue],
            validation_results=evaluation.model_dump(),
        )
        self._transition(outcome, state.session_id, back_to)
