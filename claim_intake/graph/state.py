"""Shared state definition for one orchestrator invocation of the intake graph."""

import operator
from typing import Annotated, TypedDict

from claim_intake.models import IntakeInput


class IntakeRunState(TypedDict):
    """Typed state passed through every stage node during one request.

    The persistent ``FlowState`` lives in the database; this only tracks
    the current invocation.

    Attributes:
        session_id: Chat session being advanced.
        intake_input: The caller's input; only the first hop sees it in full.
        stage: Stage stored after the most recent hop.
        previous_stage: Stage the most recent hop ran.
        narration: User-facing chunks, concatenated across hops.
        effects: Side effects reported by each hop.
        stage_runs: Number of stage executions so far.
        halted: The last hop ended with a fatal error.
    """

    session_id: str
    intake_input: IntakeInput
    stage: str
    previous_stage: str | None
    narration: Annotated[list[str], operator.add]
    effects: Annotated[list[str], operator.add]
    stage_runs: int
    halted: bool
