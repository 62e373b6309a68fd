"""Finalization stage: the only place a claim record is created."""

import logging
from typing import Any

from claim_intake.graph.nodes.base import Stage, StageOutcome
from claim_intake.graph.state_manager import StateManager
from claim_intake.models import ClaimRecord, FlowStage, FlowState, IntakeInput
from claim_intake.services import claim_facts
from claim_intake.services.interfaces import ClaimStore

logger = logging.getLogger(__name__)


class FinalizationStage(Stage):
    stage = FlowStage.FINALIZATION

    def __init__(self, state_manager: StateManager, claims: ClaimStore):
        super().__init__(state_manager)
        self._claims = claims

    def run(self, state: FlowState, intake_input: IntakeInput, outcome: StageOutcome) -> None:
        outcome.say("Creating your claim...\n\n")

        if not state.coverage_type_ids:
            self._input_error(outcome, "Error: Coverage types not set. Cannot create claim.")
            return
        if not state.incident_description:
            self._input_error(outcome, "Error: Incident description missing. Cannot create claim.")
            return

        # A previous attempt may have created the claim but failed to complete the session.
        claim = self._claims.claim_for_session(state.session_id)
        if claim is not None:
            logger.info(
                "Reusing claim from earlier attempt: session_id=%s claim_number=%s",
                state.session_id,
                claim.claim_number,
            )
            outcome.effects.append(f"claim_reused:{claim.claim_number}")
        else:
            claim = self._materialize(outcome, state)
            if claim is None:
                return
            outcome.effects.append(f"claim_created:{claim.claim_number}")
        outcome.say(
            "✓ Claim created successfully!\n\n",
            f"**Claim Number:** {claim.claim_number}\n",
            f"**Claim ID:** {claim.id}\n\n",
        )

        self.state_manager.mark_completed(state.session_id, claim.id, claim.claim_number)
        outcome.effects.append(f"transition:{FlowStage.COMPLETED.value}")

        outcome.say(
            "🎉 Your claim has been submitted for review!\n\n",
            "You can track its status in your dashboard. We'll notify you once it's been reviewed.\n\n",
            "**Summary:**\n",
            f"- Coverage: {len(state.coverage_type_ids)} type(s)\n",
            f"- Incident Date: {claim.incident_date}\n",
            f"- Location: {claim.incident_location}\n",
        )
        if claim.total_claimed_amount > 0:
            outcome.say(f"- Claimed Amount: ${claim.total_claimed_amount:,.2f}\n")
        if state.uploaded_document_ids:
            outcome.say(f"- Documents: {len(state.uploaded_document_ids)} file(s)\n")
        outcome.say("\nThank you for using our claims system! 🙏")

    def _materialize(self, outcome: StageOutcome, state: FlowState) -> ClaimRecord | None:
        claim_number = claim_facts.generate_claim_number()
        values = state.extracted_values()
        data: dict[str, Any] = {
            "claim_number": claim_number,
            "user_id": state.user_id,
            "coverage_type_ids": list(state.coverage_type_ids),
            "incident_type": state.coverage_type_ids[0],
            "incident_description": state.incident_description,
            "incident_date": claim_facts.incident_date(values),
            "incident_location": claim_facts.incident_location(values),
            "total_claimed_amount": claim_facts.claimed_amount(values),
            "currency": "USD",
            "status": "submitted",
        }

        try:
            return self._claims.materialize_claim(
                data, state.session_id, state.uploaded_document_ids, state.extracted_data
            )
        except Exception as exc:
            logger.exception(
                "Claim creation failed: session_id=%s claim_number=%s", state.session_id, claim_number
            )
            outcome.say(f"\n❌ Error creating claim: {exc}\n\n", "Please try again or contact support for assistance.")
            return None
