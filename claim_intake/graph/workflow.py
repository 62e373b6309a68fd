"""LangGraph workflow definition for the claim intake pipeline."""

import logging
from typing import Any, Callable, Iterator

from langgraph.graph import END, START, StateGraph
from sqlalchemy.orm import sessionmaker

from claim_intake.config import MAX_CHAINED_STAGES
from claim_intake.coverage import CoverageRegistry, default_registry
from claim_intake.db.repositories import (
    ClaimRepository,
    DocumentRepository,
    FlowStateRepository,
    PolicyRepository,
    QuestionRepository,
    RuleRepository,
)
from claim_intake.graph.nodes.base import Stage
from claim_intake.graph.nodes.categorization import CategorizationStage
from claim_intake.graph.nodes.documents import DocumentStage
from claim_intake.graph.nodes.finalization import FinalizationStage
from claim_intake.graph.nodes.llm_client import call_llm
from claim_intake.graph.nodes.questioning import QuestioningStage
from claim_intake.graph.nodes.validation import ValidationStage
from claim_intake.graph.state import IntakeRunState
from claim_intake.graph.state_manager import StateManager
from claim_intake.models import FlowStage, FlowState, IntakeInput
from claim_intake.services.classifier import IncidentClassifier
from claim_intake.services.document_trust import DocumentTrustPipeline, Extractor
from claim_intake.services.extraction import DocumentExtractor
from claim_intake.services.follow_up import FollowUpQuestioner, MessageFieldExtractor
from claim_intake.services.rules import RuleEvaluator

logger = logging.getLogger(__name__)

# Stage pairs after which the next stage runs within the same request.
AUTO_CHAIN: frozenset[tuple[FlowStage, FlowStage]] = frozenset({
    (FlowStage.CATEGORIZATION, FlowStage.QUESTIONING),
    (FlowStage.DOCUMENTS, FlowStage.VALIDATION),
    (FlowStage.VALIDATION, FlowStage.FINALIZATION),
})

STAGE_ORDER: tuple[FlowStage, ...] = (
    FlowStage.CATEGORIZATION,
    FlowStage.QUESTIONING,
    FlowStage.DOCUMENTS,
    FlowStage.VALIDATION,
    FlowStage.FINALIZATION,
)

ERROR_FOOTER = "Please try again or contact support if the issue persists."


def completed_narration(state: FlowState) -> list[str]:
    return [
        "Your claim has already been submitted!\n\n",
        f"Claim Number: {state.claim_number}\n",
        f"Claim ID: {state.claim_id}\n\n",
        "You can track its status in your dashboard.",
    ]


class ClaimIntakeOrchestrator:
    """Route each request to the stage the session is in, chaining forward where allowed.

    Every stage is a node of a LangGraph ``StateGraph``. After a node
    runs, a conditional edge either continues to the newly stored stage
    (auto-chain edges only, while fewer than ``max_stage_runs`` hops have
    run) or ends the invocation.
    """

    def __init__(
        self,
        state_manager: StateManager,
        stages: dict[FlowStage, Stage],
        max_stage_runs: int = MAX_CHAINED_STAGES,
    ):
        missing = [stage.value for stage in STAGE_ORDER if stage not in stages]
        if missing:
            raise ValueError(f"No handler for stages: {', '.join(missing)}")
        if max_stage_runs < 1:
            raise ValueError("max_stage_runs must be at least 1")

        self.state_manager = state_manager
        self.max_stage_runs = max_stage_runs
        self._stages = stages
        self._graph = self._build_graph()

    # ------------------------------------------------------------------
    # Graph construction
    # ------------------------------------------------------------------

    def _build_graph(self):
        graph_builder = StateGraph(IntakeRunState)
        destinations = {stage.value: stage.value for stage in STAGE_ORDER}
        destinations[END] = END

        for stage in STAGE_ORDER:
            graph_builder.add_node(stage.value, self._make_node(self._stages[stage]))
            graph_builder.add_conditional_edges(stage.value, self._route_next, destinations)

        graph_builder.add_conditional_edges(START, self._route_entry, destinations)
        return graph_builder.compile()

    def _make_node(self, handler: Stage) -> Callable[[IntakeRunState], dict[str, Any]]:
        def node(run_state: IntakeRunState) -> dict[str, Any]:
            session_id = run_state["session_id"]
            flow_state = self.state_manager.load(session_id)
            if flow_state is None:
                raise LookupError(f"No intake state for session '{session_id}'")

            first_hop = run_state["stage_runs"] == 0
            hop_input = run_state["intake_input"] if first_hop else run_state["intake_input"].chained()
            outcome = handler.execute(flow_state, hop_input)
            return {
                "stage": outcome.state.current_stage.value,
                "previous_stage": handler.stage.value,
                "narration": outcome.narration,
                "effects": outcome.effects,
                "stage_runs": run_state["stage_runs"] + 1,
                "halted": outcome.fatal,
            }

        return node

    @staticmethod
    def _route_entry(run_state: IntakeRunState) -> str:
        stage = run_state["stage"]
        return stage if stage in {s.value for s in STAGE_ORDER} else END

    def _route_next(self, run_state: IntakeRunState) -> str:
        if run_state["halted"] or run_state["previous_stage"] is None:
            return END
        edge = (FlowStage(run_state["previous_stage"]), FlowStage(run_state["stage"]))
        if edge not in AUTO_CHAIN:
            return END
        if run_state["stage_runs"] >= self.max_stage_runs:
            logger.info(
                "Chaining budget exhausted: session_id=%s runs=%d next=%s",
                run_state["session_id"],
                run_state["stage_runs"],
                run_state["stage"],
            )
            return END
        return run_state["stage"]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def stream(self, session_id: str, intake_input: IntakeInput) -> Iterator[str]:
        """Advance the session and yield narration chunks as each stage finishes."""
        try:
            state = self.state_manager.load_or_initialize(session_id, intake_input.user_id)
            logger.info("Intake request: session_id=%s stage=%s", session_id, state.current_stage.value)

            if state.current_stage == FlowStage.COMPLETED:
                yield from completed_narration(state)
                return

            initial: IntakeRunState = {
                "session_id": session_id,
                "intake_input": intake_input,
                "stage": state.current_stage.value,
                "previous_stage": None,
                "narration": [],
                "effects": [],
                "stage_runs": 0,
                "halted": False,
            }
            config = {"recursion_limit": self.max_stage_runs + 2}
            for update in self._graph.stream(initial, config=config, stream_mode="updates"):
                for node_update in update.values():
                    if node_update:
                        yield from node_update.get("narration", [])
        except Exception as exc:
            logger.exception("Orchestrator error: session_id=%s", session_id)
            yield f"\n\nError: {exc}\n\n"
            yield ERROR_FOOTER

    def run(self, session_id: str, intake_input: IntakeInput) -> list[str]:
        """Advance the session and return the full narration."""
        return list(self.stream(session_id, intake_input))

    def get_state(self, session_id: str) -> FlowState | None:
        return self.state_manager.load(session_id)

    def reset_state(self, session_id: str) -> FlowState | None:
        return self.state_manager.reset(session_id)


def build_orchestrator(
    session_factory: sessionmaker,
    registry: CoverageRegistry | None = None,
    llm: Callable[..., str] = call_llm,
    extractor: Extractor | None = None,
    max_stage_runs: int = MAX_CHAINED_STAGES,
) -> ClaimIntakeOrchestrator:
    """Wire the SQLAlchemy stores, LLM services and stages into an orchestrator.

    Args:
        session_factory: Session factory for the intake database.
        registry: Coverage requirements; the built-in travel set by default.
        llm: Chat completion callable shared by the LLM-backed services.
        extractor: Document extractor; an LLM-backed ``DocumentExtractor`` by default.
        max_stage_runs: Upper bound on stage executions per request.

    Returns:
        A ready ``ClaimIntakeOrchestrator``.
    """
    registry = registry or default_registry()
    state_manager = StateManager(FlowStateRepository(session_factory))
    questions = QuestionRepository(session_factory)
    rules = RuleEvaluator(RuleRepository(session_factory))
    documents = DocumentRepository(session_factory)
    claims = ClaimRepository(session_factory)
    policies = PolicyRepository(session_factory)
    trust = DocumentTrustPipeline(extractor or DocumentExtractor(llm=llm))

    stages: dict[FlowStage, Stage] = {
        FlowStage.CATEGORIZATION: CategorizationStage(state_manager, policies, IncidentClassifier(llm=llm)),
        FlowStage.QUESTIONING: QuestioningStage(
            state_manager,
            questions,
            rules,
            registry,
            MessageFieldExtractor(llm=llm),
            FollowUpQuestioner(llm=llm),
        ),
        FlowStage.DOCUMENTS: DocumentStage(state_manager, questions, rules, documents, trust, policies, registry),
        FlowStage.VALIDATION: ValidationStage(state_manager, questions, rules, documents, policies, registry),
        FlowStage.FINALIZATION: FinalizationStage(state_manager, claims),
    }
    return ClaimIntakeOrchestrator(state_manager, stages, max_stage_runs=max_stage_runs)
