"""Categorization stage: map the incident description onto the claimant's coverage types."""

import logging

from claim_intake.graph.nodes.base import Stage, StageOutcome
from claim_intake.graph.state_manager import StateManager
from claim_intake.models import ExtractedField, FlowStage, FlowState, IntakeInput
from claim_intake.services.classifier import IncidentClassifier
from claim_intake.services.interfaces import PolicySource

logger = logging.getLogger(__name__)

NO_DESCRIPTION = "Please describe your incident to start the claim process."
NO_POLICIES = (
    "You do not have any active policies. Please contact support to set up a policy before filing a claim."
)
NO_MATCH = "I couldn't find a matching coverage type for your incident. Please contact support for assistance."
NEEDS_CLARIFICATION = (
    "I'm not yet sure which of your coverages applies. Could you describe what happened in a bit more detail?"
)

# classifier detail key -> extracted_data field
DETAIL_FIELDS: dict[str, str] = {
    "incident_date": "incident_date",
    "incident_location": "incident_location",
    "estimated_amount": "claimed_amount",
}


class CategorizationStage(Stage):
    """Classifies the incident; never creates a claim."""

    stage = FlowStage.CATEGORIZATION

    def __init__(self, state_manager: StateManager, policies: PolicySource, classifier: IncidentClassifier):
        super().__init__(state_manager)
        self._policies = policies
        self._classifier = classifier

    def run(self, state: FlowState, intake_input: IntakeInput, outcome: StageOutcome) -> None:
        description = (intake_input.message or "").strip()
        if not description:
            self._input_error(outcome, NO_DESCRIPTION)
            return

        outcome.say("Analyzing your incident...\n\n")
        available = self._policies.available_coverage_types(state.user_id)
        logger.info("Coverage types available: session_id=%s count=%d", state.session_id, len(available))
        if not available:
            outcome.say(NO_POLICIES)
            return

        result = self._classifier.classify(description, available)
        if not result.coverage_type_ids:
            outcome.say(NO_MATCH)
            return
        if result.confidence == "low":
            logger.info("Low-confidence categorization, asking to clarify: session_id=%s", state.session_id)
            outcome.say(NEEDS_CLARIFICATION)
            return

        names = " and ".join(c.name for c in available if c.id in result.coverage_type_ids)
        outcome.say(f"I understand you're filing a claim for **{names}**.\n\n")
        if result.reasoning:
            outcome.say(f"_{result.reasoning}_\n\n")

        extracted = dict(state.extracted_data)
        for detail_key, field_name in DETAIL_FIELDS.items():
            value = result.extracted_details.get(detail_key)
            if value is not None and field_name not in extracted:
                extracted[field_name] = ExtractedField(value=value, confidence="medium", source="ai_inference")

        self._update(
            outcome,
            state.session_id,
            coverage_type_ids=result.coverage_type_ids,
            incident_description=description,
            categorization_confidence=result.confidence,
            categorization_reasoning=result.reasoning,
            extracted_data=extracted,
        )
        self._transition(outcome, state.session_id, FlowStage.QUESTIONING)
        outcome.say("Let me ask you a few questions to process your claim...\n\n")
