"""Unit tests for coverage requirements, claim facts and follow-up questions."""

import re
from datetime import date
from unittest.mock import MagicMock

import pytest

from claim_intake.coverage import CoverageRegistry, CoverageRequirement, FieldRequirement, default_registry
from claim_intake.models import ConversationTurn
from claim_intake.services import claim_facts
from claim_intake.services.follow_up import FollowUpQuestioner, MessageFieldExtractor, template_question

REGISTRY = default_registry()
BAGGAGE_FIELDS = REGISTRY.required_fields(["baggage_loss"])


# ---------------------------------------------------------------------------
# Coverage registry
# ---------------------------------------------------------------------------

class TestCoverageRegistry:
    def test_lookup_accepts_display_names(self) -> None:
        assert REGISTRY.get("Baggage Loss").coverage_type_id == "baggage_loss"
        assert REGISTRY.get("flight-cancellation").name == "Flight Cancellation"

    def test_shared_fields_are_listed_once(self) -> None:
        fields = [f.field for f in REGISTRY.required_fields(["flight_cancellation", "baggage_loss"])]
        assert fields.count("airline") == 1
        assert fields[:2] == ["airline", "flight_number"]
        assert "baggage_tag_number" in fields

    def test_missing_required_fields(self) -> None:
        extracted = {"airline": "SkyAir", "flight_number": "", "contents_value": 0}
        missing = [f.field for f in REGISTRY.missing_required_fields(["baggage_loss"], extracted)]
        assert missing == ["flight_number", "baggage_tag_number", "date_reported"]

    def test_unknown_coverage(self) -> None:
        assert REGISTRY.required_fields(["pet_care"]) == []
        assert REGISTRY.display_name("pet_care") == "Pet Care"

    def test_custom_registry(self) -> None:
        registry = CoverageRegistry([
            CoverageRequirement("rental_car", "Rental Car", required_fields=(FieldRequirement("plate", "Plate"),))
        ])
        assert [f.field for f in registry.all_fields(["rental_car"])] == ["plate"]
        assert registry.follow_up_questions(["rental_car"]) == []


# ---------------------------------------------------------------------------
# Claim facts
# ---------------------------------------------------------------------------

class TestClaimFacts:
    def test_incident_date_precedence(self) -> None:
        values = {"date_reported": "2026-03-15", "incident_date": "2026-03-14"}
        assert claim_facts.incident_date(values) == "2026-03-14"

    def test_incident_date_defaults(self) -> None:
        assert claim_facts.incident_date({}) == date.today().isoformat()
        assert claim_facts.incident_date({}, default_today=False) is None

    def test_incident_location(self) -> None:
        assert claim_facts.incident_location({"destination": "Delhi"}) == "Delhi"
        assert claim_facts.incident_location({}) == "Not specified"
        assert claim_facts.incident_location({}, default=None) is None

    def test_claimed_amount_skips_zero(self) -> None:
        assert claim_facts.claimed_amount({"claimed_amount": 0, "contents_value": "$1,200"}) == 1200.0
        assert claim_facts.claimed_amount({}) == 0.0

    def test_claim_number_format(self) -> None:
        first = claim_facts.generate_claim_number()
        assert re.fullmatch(r"CLM-\d{13}-[A-Z0-9]{6}", first)
        assert first != claim_facts.generate_claim_number()


# ---------------------------------------------------------------------------
# Message field extraction
# ---------------------------------------------------------------------------

class TestMessageFieldExtractor:
    def test_keeps_only_known_usable_fields(self) -> None:
        llm = MagicMock(return_value='{"airline": "SkyAir", "contents_value": "$1,250", "pet": "dog", "baggage_tag_number": ""}')

        values = MessageFieldExtractor(llm=llm).extract("SkyAir lost my bag worth $1,250", BAGGAGE_FIELDS)

        assert values == {"airline": "SkyAir", "contents_value": 1250.0}
        assert "Extract any relevant claim information" in llm.call_args.args[0]

    def test_select_values_must_be_allowed(self) -> None:
        fields = REGISTRY.required_fields(["flight_cancellation"])
        llm = MagicMock(return_value='{"cancellation_reason": "aliens", "ticket_cost": "a lot"}')

        assert MessageFieldExtractor(llm=llm).extract("cancelled", fields) == {}

    def test_blank_message_skips_llm(self) -> None:
        llm = MagicMock()

        assert MessageFieldExtractor(llm=llm).extract("   ", BAGGAGE_FIELDS) == {}
        llm.assert_not_called()


# ---------------------------------------------------------------------------
# Follow-up questions
# ---------------------------------------------------------------------------

class TestFollowUpQuestioner:
    def _missing(self, *names: str) -> list[FieldRequirement]:
        return [f for f in BAGGAGE_FIELDS if f.field in names]

    def test_uses_llm_question(self) -> None:
        llm = MagicMock(return_value="  What is on your baggage tag?  ")

        question = FollowUpQuestioner(llm=llm).next_question(
            ["Baggage Loss"], self._missing("baggage_tag_number"), ["airline"], []
        )

        assert question == "What is on your baggage tag?"
        system_prompt, history = llm.call_args.args
        assert "collect required information for a claim" in system_prompt
        assert "Already collected: airline" in system_prompt
        assert history == "(no conversation yet)"
        assert llm.call_args.kwargs["temperature"] == 0.7

    def test_llm_failure_falls_back_to_template(self) -> None:
        llm = MagicMock(side_effect=RuntimeError("timeout"))

        question = FollowUpQuestioner(llm=llm).next_question(
            ["Baggage Loss"], self._missing("date_reported"), [], []
        )

        assert question == "What is the date reported to airline? Please use the format YYYY-MM-DD."

    def test_never_repeats_last_question(self) -> None:
        llm = MagicMock(return_value="What is the baggage tag number?")
        turns = [ConversationTurn(role="assistant", content="what is the  baggage tag number?")]

        question = FollowUpQuestioner(llm=llm).next_question(
            ["Baggage Loss"], self._missing("baggage_tag_number"), [], turns
        )

        assert question == "Could you tell me the baggage tag number?"

    def test_rephrases_when_every_candidate_was_asked(self) -> None:
        missing = self._missing("airline")
        template = template_question(missing[0])
        llm = MagicMock(return_value=template)
        turns = [ConversationTurn(role="assistant", content=template)]

        question = FollowUpQuestioner(llm=llm).next_question(["Baggage Loss"], missing, [], turns)

        assert question == "Sorry, I still need this detail: Airline. Airline responsible for baggage"

    @pytest.mark.parametrize(
        "field, expected",
        [
            ("contents_value", "What is the estimated value of contents? Please give the amount in USD."),
            ("airline", "Could you tell me the airline?"),
        ],
    )
    def test_template_question(self, field, expected) -> None:
        requirement = next(f for f in BAGGAGE_FIELDS if f.field == field)
        assert template_question(requirement) == expected

    def test_template_lists_options(self) -> None:
        requirement = next(
            f for f in REGISTRY.required_fields(["flight_cancellation"]) if f.field == "cancellation_reason"
        )
        assert template_question(requirement).endswith("(Options: weather, mechanical, crew, airline decision, other)")
