"""Persistence and transition gate for per-session intake state."""

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError

from claim_intake.db.repositories import FlowStateRepository
from claim_intake.models import FlowStage, FlowState, utcnow

logger = logging.getLogger(__name__)

TRANSITIONS: dict[FlowStage, frozenset[FlowStage]] = {
    FlowStage.CATEGORIZATION: frozenset({FlowStage.QUESTIONING}),
    FlowStage.QUESTIONING: frozenset({FlowStage.DOCUMENTS, FlowStage.VALIDATION}),
    FlowStage.DOCUMENTS: frozenset({FlowStage.VALIDATION}),
    FlowStage.VALIDATION: frozenset({FlowStage.FINALIZATION, FlowStage.QUESTIONING, FlowStage.DOCUMENTS}),
    FlowStage.FINALIZATION: frozenset({FlowStage.COMPLETED}),
    FlowStage.COMPLETED: frozenset(),
}

# Written only through transition() / mark_completed().
PROTECTED_FIELDS: frozenset[str] = frozenset({"current_stage", "claim_id", "claim_number"})

_IDENTITY_FIELDS: frozenset[str] = frozenset({"session_id", "user_id", "created_at"})


class InvalidTransition(ValueError):
    """Raised when a stage change is not an edge of ``TRANSITIONS``."""

    def __init__(self, from_stage: FlowStage | str, to_stage: FlowStage | str):
        self.from_stage = FlowStage(from_stage)
        self.to_stage = FlowStage(to_stage)
        super().__init__(
            f"Invalid stage transition from '{self.from_stage.value}' to '{self.to_stage.value}'"
        )


def can_transition(from_stage: FlowStage | str, to_stage: FlowStage | str) -> bool:
    return FlowStage(to_stage) in TRANSITIONS[FlowStage(from_stage)]


class StateManager:
    """The only writer of ``FlowState``.

    Every stage change is checked against ``TRANSITIONS``; a rejected
    change leaves the stored state untouched.
    """

    def __init__(self, repository: FlowStateRepository):
        self._repository = repository

    def load(self, session_id: str) -> FlowState | None:
        return self._repository.get(session_id)

    def load_or_initialize(self, session_id: str, user_id: str) -> FlowState:
        """Return the session's state, creating a fresh one on first contact.

        Two concurrent first contacts race on the unique ``session_id``;
        the loser re-reads the winner's row.
        """
        existing = self._repository.get(session_id)
        if existing is not None:
            return existing

        fresh = FlowState(session_id=session_id, user_id=user_id)
        try:
            self._repository.insert(fresh)
        except IntegrityError:
            logger.info("Intake state already created concurrently: session_id=%s", session_id)
            existing = self._repository.get(session_id)
            if existing is None:
                raise
            return existing

        logger.info("Intake state initialized: session_id=%s user_id=%s", session_id, user_id)
        return fresh

    def update(self, session_id: str, **fields: Any) -> FlowState:
        """Merge *fields* into the stored state.

        Raises:
            ValueError: If a protected or unknown field is given.
            LookupError: If the session has no state.
        """
        refused = sorted(set(fields) & (PROTECTED_FIELDS | _IDENTITY_FIELDS))
        if refused:
            raise ValueError(f"Fields cannot be set through update(): {', '.join(refused)}")
        unknown = sorted(set(fields) - set(FlowState.model_fields))
        if unknown:
            raise ValueError(f"Unknown intake state fields: {', '.join(unknown)}")

        current = self._require(session_id)
        merged = FlowState.model_validate({**current.model_dump(), **fields})
        return self._repository.save(merged, fields)

    def transition(self, session_id: str, to_stage: FlowStage | str) -> FlowState:
        """Move the session to *to_stage*.

        Raises:
            InvalidTransition: If the edge is not allowed.
        """
        current = self._require(session_id)
        target = FlowStage(to_stage)
        if not can_transition(current.current_stage, target):
            raise InvalidTransition(current.current_stage, target)

        current.current_stage = target
        self._repository.save(current, ["current_stage"])
        logger.info("Stage transition: session_id=%s to=%s", session_id, target.value)
        return current

    def mark_completed(self, session_id: str, claim_id: str, claim_number: str) -> FlowState:
        """Set ``completed`` together with the claim identifiers in one write."""
        current = self._require(session_id)
        if not can_transition(current.current_stage, FlowStage.COMPLETED):
            raise InvalidTransition(current.current_stage, FlowStage.COMPLETED)

        current.current_stage = FlowStage.COMPLETED
        current.claim_id = claim_id
        current.claim_number = claim_number
        current.completed_at = utcnow()
        self._repository.save(current, ["current_stage", "claim_id", "claim_number", "completed_at"])
        logger.info("Intake completed: session_id=%s claim_number=%s", session_id, claim_number)
        return current

    def reset(self, session_id: str) -> FlowState | None:
        """Return the session to a fresh ``categorization`` state, keeping the user."""
        current = self._repository.get(session_id)
        if current is None:
            return None
        fresh = FlowState(session_id=session_id, user_id=current.user_id, created_at=current.created_at)
        self._repository.save(fresh, set(FlowState.model_fields) - {"session_id", "created_at"})
        logger.info("Intake state reset: session_id=%s", session_id)
        return fresh

    def delete(self, session_id: str) -> bool:
        deleted = self._repository.delete(session_id)
        if deleted:
            logger.info("Intake state deleted: session_id=%s", session_id)
        return deleted

    def _require(self, session_id: str) -> FlowState:
        state = self._repository.get(session_id)
        if state is None:
            raise LookupError(f"No intake state for session '{session_id}'")
        return state
