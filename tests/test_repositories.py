"""Tests for the SQLAlchemy-backed stores against an in-memory database."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from claim_intake.db.models import (
    ClaimAnswerRow,
    ClaimDocumentRow,
    ClaimExtractedInfoRow,
    ClaimRow,
    PolicyRow,
    UserPolicyRow,
)
from claim_intake.db.repositories import (
    ClaimRepository,
    DocumentRepository,
    PolicyRepository,
    QuestionRepository,
    RuleRepository,
)
from claim_intake.db.seed import DEMO_USER_ID, seed_demo_catalog, seed_demo_user
from claim_intake.models import ExtractedField
from claim_intake.services.document_trust import DocumentExtraction, TrustReport


def _report(document_type: str, status: str) -> TrustReport:
    extraction = DocumentExtraction(document_type=document_type, extracted_entities={"flightNumber": "SA-204"})
    return TrustReport(
        status=status,
        detected_type=document_type,
        expected_types=["airline_pir"],
        extraction=extraction,
        user_message="ok",
    )


class TestQuestionRepository:
    def test_next_question_skips_asked_and_hidden(self, seeded) -> None:
        questions = QuestionRepository(seeded)

        assert questions.get_next_question(["baggage_loss"], [], []).id == "bl_airline"
        assert questions.get_next_question(["baggage_loss"], ["bl_airline"], ["bl_flight_number"]).id == "bl_tag"
        assert questions.get_next_question([], [], []) is None

    def test_next_question_none_when_all_asked(self, seeded) -> None:
        asked = ["bl_airline", "bl_flight_number", "bl_tag", "bl_reported", "bl_value"]
        assert QuestionRepository(seeded).get_next_question(["baggage_loss"], asked, []) is None

    def test_get_question(self, seeded) -> None:
        question = QuestionRepository(seeded).get_question("fc_reason")

        assert question.field_type == "select"
        assert question.options == ["weather", "mechanical", "crew", "airline_decision", "other"]
        assert QuestionRepository(seeded).get_question("nope") is None

    def test_answers_are_upserted(self, seeded) -> None:
        questions = QuestionRepository(seeded)

        questions.save_answer("s-1", "bl_value", 500)
        questions.save_answer("s-1", "bl_value", {"amount": 800})
        questions.save_answer("s-2", "bl_value", 10)

        answers = questions.answers_for_session("s-1")
        assert [(a.question_id, a.answer_value) for a in answers] == [("bl_value", {"amount": 800})]


class TestRuleRepository:
    def test_only_active_rules_for_coverage(self, seeded) -> None:
        rules = RuleRepository(seeded).active_rules(["baggage_loss"])

        assert [r.id for r in rules] == ["bl_pir_required"]
        assert rules[0].actions == [{"type": "require_document", "documents": ["airline_pir"]}]


class TestDocumentRepository:
    def test_add_and_list(self, session_factory) -> None:
        documents = DocumentRepository(session_factory)

        first = documents.add("s-1", "pir.pdf", "/tmp/pir.pdf", "application/pdf")
        documents.add("s-2", "other.pdf", "/tmp/other.pdf")

        listed = documents.list_by_session("s-1")
        assert [d.id for d in listed] == [first.id]
        assert listed[0].processed_at is None
        assert documents.get(first.id).file_name == "pir.pdf"

    def test_save_trust_report(self, session_factory) -> None:
        documents = DocumentRepository(session_factory)
        record = documents.add("s-1", "pir.pdf", "/tmp/pir.pdf")

        saved = documents.save_trust_report(record.id, _report("airline_pir", "valid"))

        assert saved.status == "valid"
        assert saved.document_type == "airline_pir"
        assert saved.extracted_entities == {"flightNumber": "SA-204"}
        assert saved.trust_report["status"] == "valid"
        assert saved.processed_at is not None

    def test_save_trust_report_unknown_document(self, session_factory) -> None:
        with pytest.raises(LookupError):
            DocumentRepository(session_factory).save_trust_report("nope", _report("airline_pir", "valid"))

    def test_required_documents_need_accepted_status(self, session_factory) -> None:
        documents = DocumentRepository(session_factory)
        rejected = documents.add("s-1", "a.pdf", "/tmp/a.pdf")
        documents.save_trust_report(rejected.id, _report("airline_pir", "reupload_required"))

        check = documents.check_required_documents([rejected.id], ["airline_pir"])
        assert not check.complete and check.missing_types == ["airline_pir"]

        reviewed = documents.add("s-1", "b.pdf", "/tmp/b.pdf")
        documents.save_trust_report(reviewed.id, _report("Airline PIR", "needs_review"))

        check = documents.check_required_documents([rejected.id, reviewed.id], ["airline_pir"])
        assert check.complete and check.missing_types == []

    def test_required_documents_without_uploads(self, session_factory) -> None:
        check = DocumentRepository(session_factory).check_required_documents([], ["airline_pir", "baggage_tag"])
        assert check.missing_types == ["airline_pir", "baggage_tag"]
        assert DocumentRepository(session_factory).check_required_documents([], []).complete


class TestClaimRepository:
    def _data(self, claim_number: str = "CLM-1-AAAAAA") -> dict:
        return {
            "claim_number": claim_number,
            "user_id": DEMO_USER_ID,
            "coverage_type_ids": ["baggage_loss"],
            "incident_type": "baggage_loss",
            "incident_description": "Lost bag",
            "incident_date": "2026-03-14",
            "incident_location": "Bengaluru",
            "total_claimed_amount": 800.0,
            "currency": "USD",
            "status": "submitted",
        }

    def test_materialize_links_everything(self, seeded) -> None:
        QuestionRepository(seeded).save_answer("s-1", "bl_airline", "SkyAir")
        document = DocumentRepository(seeded).add("s-1", "pir.pdf", "/tmp/pir.pdf")
        extracted = {
            "airline": ExtractedField(value="SkyAir", source="database_question"),
            "contents_value": ExtractedField(value=800, confidence="medium", source="user_message"),
        }

        claim = ClaimRepository(seeded).materialize_claim(self._data(), "s-1", [document.id], extracted)

        with seeded() as session:
            assert session.scalar(select(ClaimAnswerRow.claim_id)) == claim.id
            assert session.scalar(select(ClaimDocumentRow.claim_id)) == claim.id
            info = {row.field_name: row for row in session.scalars(select(ClaimExtractedInfoRow))}
        assert info["contents_value"].field_value == 800
        assert info["contents_value"].confidence == "medium"
        assert info["airline"].source == "database_question"
        assert ClaimRepository(seeded).get_claim(claim.id).claim_number == "CLM-1-AAAAAA"

    def test_claim_for_session(self, seeded) -> None:
        claims = ClaimRepository(seeded)
        assert claims.claim_for_session("s-1") is None

        claim = claims.materialize_claim(self._data(), "s-1", [], {})

        assert claims.claim_for_session("s-1").id == claim.id
        assert claims.claim_for_session("s-2") is None

    def test_materialize_is_all_or_nothing(self, seeded) -> None:
        claims = ClaimRepository(seeded)
        claims.materialize_claim(self._data(), "s-1", [], {})
        QuestionRepository(seeded).save_answer("s-2", "bl_airline", "SkyAir")

        with pytest.raises(IntegrityError):
            claims.materialize_claim(self._data(), "s-2", [], {})

        with seeded() as session:
            assert len(session.scalars(select(ClaimRow)).all()) == 1
            assert session.scalar(select(ClaimAnswerRow.claim_id).where(ClaimAnswerRow.session_id == "s-2")) is None


class TestPolicyRepository:
    def test_available_coverage_types(self, seeded) -> None:
        available = PolicyRepository(seeded).available_coverage_types(DEMO_USER_ID)

        assert sorted(c.id for c in available) == ["baggage_loss", "flight_cancellation"]
        assert PolicyRepository(seeded).available_coverage_types("stranger") == []

    def test_legacy_coverage_items_become_slugs(self, seeded) -> None:
        with seeded() as session, session.begin():
            session.add(PolicyRow(id="legacy", name="Legacy", coverage_items=[{"name": "Trip Delay"}, "junk"]))
        seed_demo_user(seeded, user_id="legacy-user", policy_id="legacy")

        available = PolicyRepository(seeded).available_coverage_types("legacy-user")

        assert [(c.id, c.name, c.category) for c in available] == [("trip_delay", "Trip Delay", "travel")]

    def test_policy_limits(self, seeded) -> None:
        policies = PolicyRepository(seeded)

        within = policies.check_policy_limits(DEMO_USER_ID, ["baggage_loss"], 800)
        assert within.valid
        assert (within.policy_limit, within.deductible, within.remaining_limit) == (2000.0, 50.0, 2000.0)
        assert within.message == "Claim amount $800 is within policy limit."

    def test_policy_limits_subtract_paid_claims(self, seeded) -> None:
        with seeded() as session, session.begin():
            session.add(ClaimRow(
                id="old", claim_number="CLM-0-OLD000", user_id=DEMO_USER_ID, coverage_type_ids=["baggage_loss"],
                incident_description="Earlier loss", total_claimed_amount=1500.0, status="paid",
            ))
            session.add(ClaimRow(
                id="open", claim_number="CLM-0-OPEN00", user_id=DEMO_USER_ID, coverage_type_ids=["baggage_loss"],
                incident_description="Pending", total_claimed_amount=900.0, status="submitted",
            ))

        check = PolicyRepository(seeded).check_policy_limits(DEMO_USER_ID, ["baggage_loss"], 800)

        assert not check.valid
        assert check.previously_claimed == 1500.0
        assert check.message == "Claim amount $800 exceeds remaining limit of $500."

    def test_profile(self, seeded) -> None:
        assert PolicyRepository(seeded).get_profile(DEMO_USER_ID).full_name == "Asha Rao"
        assert PolicyRepository(seeded).get_profile("stranger") is None

    def test_seeding_is_idempotent(self, seeded) -> None:
        seed_demo_catalog(seeded)
        assert len(PolicyRepository(seeded).available_coverage_types(DEMO_USER_ID)) == 2

    def test_reseeding_user_keeps_one_policy_link(self, seeded) -> None:
        seed_demo_user(seeded)
        seed_demo_user(seeded)

        with seeded() as session:
            links = session.scalars(select(UserPolicyRow).where(UserPolicyRow.user_id == DEMO_USER_ID)).all()
        assert len(links) == 1
        assert PolicyRepository(seeded).check_policy_limits(DEMO_USER_ID, ["baggage_loss"], 800).policy_limit == 2000.0
