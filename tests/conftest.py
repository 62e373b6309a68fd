"""Shared fixtures: in-memory database, demo catalog and a scripted LLM."""

import json
from typing import Any

import pytest
from sqlalchemy.pool import StaticPool

from claim_intake.db import models  # noqa: F401  registers models on Base
from claim_intake.db.database import Base, build_engine, build_session_factory
from claim_intake.db.repositories import FlowStateRepository
from claim_intake.db.seed import DEMO_USER_ID, seed_demo_catalog, seed_demo_user
from claim_intake.graph.state_manager import StateManager
from claim_intake.models import ExtractedField, FlowStage

INCIDENT = "My bag was lost on flight SA-204 from Bengaluru to Delhi"

PIR_TEXT = (
    "AIRLINE PROPERTY IRREGULARITY REPORT\n"
    "Passenger: Asha Rao\n"
    "Flight: SA-204\n"
    "From: BLR To: DEL\n"
    "Date: 2026-03-14\n"
    "Baggage Tag: SA123456\n"
    "PIR Number: DELSA12345\n"
)


class ScriptedLLM:
    """Stand-in for ``call_llm`` that answers by recognising the system prompt."""

    def __init__(self):
        self.classification: dict[str, Any] = {
            "coverage_type_ids": ["baggage_loss"],
            "confidence": "high",
            "reasoning": "Checked baggage did not arrive.",
            "extracted_details": {
                "incident_date": "2026-03-14",
                "incident_location": "Bengaluru",
                "incident_type": "baggage",
                "estimated_amount": None,
            },
        }
        self.message_fields: dict[str, Any] = {}
        self.follow_up = "Could you share a bit more about what happened?"
        self.document: dict[str, Any] = {
            "documentType": "airline_pir",
            "extractedEntities": {
                "passengerName": "Asha Rao",
                "flightNumber": "SA-204",
                "from": "BLR",
                "to": "DEL",
                "date": "2026-03-14",
                "baggageTag": "SA123456",
            },
            "authenticityScore": 0.92,
            "tamperingDetected": False,
            "isRelevant": True,
            "contextMatches": True,
            "errors": [],
            "warnings": [],
        }
        self.calls: list[tuple[str, str]] = []

    def __call__(self, system_prompt: str, user_content: str, temperature: float = 0) -> str:
        self.calls.append((system_prompt, user_content))
        if "insurance claims specialist" in system_prompt:
            return json.dumps(self.classification)
        if "document analysis assistant" in system_prompt:
            return json.dumps(self.document)
        if "Extract any relevant claim information" in system_prompt:
            return json.dumps(self.message_fields)
        if "collect required information" in system_prompt:
            return self.follow_up
        raise AssertionError(f"Unexpected prompt: {system_prompt[:60]}")

    def prompts_containing(self, marker: str) -> int:
        return sum(1 for prompt, _ in self.calls if marker in prompt)


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def seeded(session_factory):
    seed_demo_catalog(session_factory)
    seed_demo_user(session_factory)
    return session_factory


@pytest.fixture
def user_id() -> str:
    return DEMO_USER_ID


@pytest.fixture
def state_manager(session_factory) -> StateManager:
    return StateManager(FlowStateRepository(session_factory))


@pytest.fixture
def make_state(session_factory, state_manager):
    """Create a session's state at *stage* with the given fields already stored."""

    def _make(stage: FlowStage, session_id: str = "s-1", extracted: dict[str, Any] | None = None, **fields):
        state_manager.load_or_initialize(session_id, DEMO_USER_ID)
        if extracted:
            fields["extracted_data"] = {name: ExtractedField(value=value) for name, value in extracted.items()}
        if fields:
            state_manager.update(session_id, **fields)
        repository = FlowStateRepository(session_factory)
        state = repository.get(session_id)
        state.current_stage = stage
        repository.save(state, ["current_stage"])
        return repository.get(session_id)

    return _make


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM()


@pytest.fixture
def pir_file(tmp_path):
    path = tmp_path / "pir.txt"
    path.write_text(PIR_TEXT, encoding="utf-8")
    return path
