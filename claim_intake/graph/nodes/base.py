"""Common plumbing for intake stage handlers."""

import logging
from dataclasses import dataclass, field
from typing import Any

from claim_intake.graph.state_manager import InvalidTransition, StateManager
from claim_intake.models import FlowStage, FlowState, IntakeInput

logger = logging.getLogger(__name__)

TRANSITION_APOLOGY = (
    "Sorry, your claim could not move to the next step because of an internal error. "
    "Please contact support and mention this session."
)
RETRY_APOLOGY = "Sorry, something went wrong while processing your request. Please try again in a moment."


@dataclass
class StageOutcome:
    """What one stage run said and did.

    Attributes:
        narration: User-facing text chunks, in order.
        effects: Applied side effects, e.g. ``transition:questioning``.
        state: The flow state re-read after the run.
        fatal: The request cannot make progress as sent.
    """

    narration: list[str] = field(default_factory=list)
    effects: list[str] = field(default_factory=list)
    state: FlowState | None = None
    fatal: bool = False

    def say(self, *chunks: str) -> None:
        self.narration.extend(chunk for chunk in chunks if chunk)


class Stage:
    """Base class: subclasses implement ``run`` and mutate state only via helpers."""

    stage: FlowStage

    def __init__(self, state_manager: StateManager):
        self.state_manager = state_manager

    def execute(self, state: FlowState, intake_input: IntakeInput) -> StageOutcome:
        """Run the stage, converting failures into narration.

        Args:
            state: The state loaded for this hop.
            intake_input: Caller input; empty apart from the user on chained hops.

        Returns:
            The ``StageOutcome`` with ``state`` re-read from storage.
        """
        outcome = StageOutcome()
        logger.info("Stage started: session_id=%s stage=%s", state.session_id, self.stage.value)
        try:
            self.run(state, intake_input, outcome)
        except InvalidTransition as exc:
            logger.error("Fatal transition error: session_id=%s stage=%s error=%s", state.session_id, self.stage.value, exc)
            outcome.fatal = True
            outcome.say(TRANSITION_APOLOGY)
        except Exception:
            logger.exception("Stage failed: session_id=%s stage=%s", state.session_id, self.stage.value)
            outcome.say(RETRY_APOLOGY)

        outcome.state = self.state_manager.load(state.session_id) or state
        logger.info(
            "Stage finished: session_id=%s stage=%s now=%s effects=%s",
            state.session_id,
            self.stage.value,
            outcome.state.current_stage.value,
            outcome.effects,
        )
        return outcome

    def run(self, state: FlowState, intake_input: IntakeInput, outcome: StageOutcome) -> None:
        raise NotImplementedError

    # ------------------------------------------------------------------

    def _update(self, outcome: StageOutcome, session_id: str, **fields: Any) -> FlowState:
        updated = self.state_manager.update(session_id, **fields)
        outcome.effects.extend(f"update:{name}" for name in fields)
        return updated

    def _transition(self, outcome: StageOutcome, session_id: str, to_stage: FlowStage) -> FlowState:
        updated = self.state_manager.transition(session_id, to_stage)
        outcome.effects.append(f"transition:{to_stage.value}")
        return updated

    def _input_error(self, outcome: StageOutcome, message: str) -> None:
        outcome.fatal = True
        outcome.say(message)
