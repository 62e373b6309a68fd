"""End-to-end and routing tests for the LangGraph intake orchestrator."""

from unittest.mock import MagicMock

import pytest

from claim_intake.db.repositories import ClaimRepository, DocumentRepository
from claim_intake.graph.nodes.finalization import FinalizationStage
from claim_intake.graph.workflow import (
    ERROR_FOOTER,
    STAGE_ORDER,
    ClaimIntakeOrchestrator,
    build_orchestrator,
    completed_narration,
)
from claim_intake.models import FlowStage, FlowState, IntakeInput

from conftest import INCIDENT

BAGGAGE_ANSWERS = [
    ("bl_airline", "SkyAir"),
    ("bl_flight_number", "SA-204"),
    ("bl_tag", "SA123456"),
    ("bl_reported", "2026-03-14"),
    ("bl_value", 800),
]


def _text(chunks: list[str]) -> str:
    return "".join(chunks)


@pytest.fixture
def orchestrator(seeded, llm) -> ClaimIntakeOrchestrator:
    return build_orchestrator(seeded, llm=llm)


class TestEndToEnd:
    def test_baggage_claim_from_description_to_claim(self, orchestrator, seeded, llm, user_id, pir_file) -> None:
        # categorization chains straight into the first question
        text = _text(orchestrator.run("s-1", IntakeInput(user_id=user_id, message=INCIDENT)))
        assert "I understand you're filing a claim for **Baggage Loss**." in text
        assert "**Which airline were you flying with?**" in text
        assert orchestrator.get_state("s-1").current_stage == FlowStage.QUESTIONING

        for question_id, value in BAGGAGE_ANSWERS:
            text = _text(orchestrator.run(
                "s-1", IntakeInput(user_id=user_id, question_id=question_id, answer_value=value)
            ))
        assert "Great! Now I need some documents" in text
        assert orchestrator.get_state("s-1").current_stage == FlowStage.DOCUMENTS

        text = _text(orchestrator.run("s-1", IntakeInput(user_id=user_id)))
        assert "- Property Irregularity Report (PIR)\n" in text

        document = DocumentRepository(seeded).add("s-1", "pir.txt", str(pir_file), "text/plain")
        text = _text(orchestrator.run("s-1", IntakeInput(user_id=user_id, document_id=document.id)))

        state = orchestrator.get_state("s-1")
        assert "✓ Document received: pir.txt" in text
        assert "✅ All validations passed!" in text
        assert state.current_stage == FlowStage.COMPLETED
        assert state.claim_number.startswith("CLM-")
        assert f"**Claim Number:** {state.claim_number}" in text
        assert llm.prompts_containing("document analysis assistant") == 1

        claim = ClaimRepository(seeded).get_claim(state.claim_id)
        assert claim.total_claimed_amount == 800.0
        assert claim.incident_location == "Bengaluru"

        again = orchestrator.run("s-1", IntakeInput(user_id=user_id, message="Any news?"))
        assert again == completed_narration(state)
        assert again[0] == "Your claim has already been submitted!\n\n"

    def test_empty_description_halts(self, orchestrator, user_id) -> None:
        narration = orchestrator.run("s-1", IntakeInput(user_id=user_id, message=""))

        assert narration == ["Please describe your incident to start the claim process."]
        assert orchestrator.get_state("s-1").current_stage == FlowStage.CATEGORIZATION


class TestChaining:
    def test_budget_of_one_stops_after_first_stage(self, seeded, llm, user_id) -> None:
        orchestrator = build_orchestrator(seeded, llm=llm, max_stage_runs=1)

        text = _text(orchestrator.run("s-1", IntakeInput(user_id=user_id, message=INCIDENT)))

        assert "Let me ask you a few questions" in text
        assert "Which airline" not in text
        assert orchestrator.get_state("s-1").current_stage == FlowStage.QUESTIONING

        text = _text(orchestrator.run("s-1", IntakeInput(user_id=user_id)))
        assert text == "**Which airline were you flying with?**\n\n"

    def test_chained_stage_does_not_see_the_message(self, orchestrator, llm, user_id) -> None:
        orchestrator.run("s-1", IntakeInput(user_id=user_id, message=INCIDENT))

        assert llm.prompts_containing("Extract any relevant claim information") == 0
        turns = orchestrator.get_state("s-1").questioning.turns
        assert [turn.role for turn in turns] == ["assistant"]

    def test_finalization_failure_keeps_stage(self, seeded, state_manager, make_state, user_id) -> None:
        claims = MagicMock()
        claims.claim_for_session.return_value = None
        claims.materialize_claim.side_effect = RuntimeError("disk full")
        stages = {stage: MagicMock() for stage in STAGE_ORDER}
        stages[FlowStage.FINALIZATION] = FinalizationStage(state_manager, claims)
        orchestrator = ClaimIntakeOrchestrator(state_manager, stages)
        make_state(
            FlowStage.FINALIZATION,
            coverage_type_ids=["baggage_loss"],
            incident_description="Lost bag",
            extracted={"contents_value": 800},
        )

        narration = orchestrator.run("s-1", IntakeInput(user_id=user_id))

        assert "\n❌ Error creating claim: disk full\n\n" in narration
        assert orchestrator.get_state("s-1").current_stage == FlowStage.FINALIZATION
        claims.materialize_claim.assert_called_once()

    def test_unexpected_error_is_reported(self) -> None:
        state_manager = MagicMock()
        state_manager.load_or_initialize.side_effect = RuntimeError("database unavailable")
        orchestrator = ClaimIntakeOrchestrator(state_manager, {stage: MagicMock() for stage in STAGE_ORDER})

        narration = orchestrator.run("s-1", IntakeInput(user_id="u"))

        assert narration == ["\n\nError: database unavailable\n\n", ERROR_FOOTER]


class TestOrchestratorSetup:
    def test_requires_every_stage(self, state_manager) -> None:
        stages = {stage: MagicMock() for stage in STAGE_ORDER if stage != FlowStage.DOCUMENTS}

        with pytest.raises(ValueError, match="documents"):
            ClaimIntakeOrchestrator(state_manager, stages)

    def test_rejects_empty_budget(self, state_manager) -> None:
        with pytest.raises(ValueError, match="at least 1"):
            ClaimIntakeOrchestrator(state_manager, {stage: MagicMock() for stage in STAGE_ORDER}, max_stage_runs=0)

    def test_reset_state(self, orchestrator, user_id) -> None:
        orchestrator.run("s-1", IntakeInput(user_id=user_id, message=INCIDENT))

        reset = orchestrator.reset_state("s-1")

        assert reset.current_stage == FlowStage.CATEGORIZATION
        assert reset.coverage_type_ids == []
        assert orchestrator.reset_state("missing") is None

    def test_completed_narration(self) -> None:
        state = FlowState(session_id="s-1", user_id="u", claim_id="c-1", claim_number="CLM-1-ABCDEF")

        assert completed_narration(state) == [
            "Your claim has already been submitted!\n\n",
            "Claim Number: CLM-1-ABCDEF\n",
            "Claim ID: c-1\n\n",
            "You can track its status in your dashboard.",
        ]
