"""Collaborator contracts the intake stages depend on."""

from typing import Any, Protocol

from sqlalchemy.orm import Session

from claim_intake.models import (
    Answer,
    ClaimRecord,
    CoverageTypeInfo,
    DocumentRecord,
    ExtractedField,
    PolicyLimitCheck,
    Question,
    RequiredDocumentsCheck,
    RuleEvaluation,
    UserProfile,
)


class RulesEngine(Protocol):
    def evaluate(self, coverage_type_ids: list[str], answers: list[Answer]) -> RuleEvaluation: ...


class QuestionSource(Protocol):
    def get_next_question(
        self, coverage_type_ids: list[str], asked_ids: list[str], hidden_ids: list[str]
    ) -> Question | None: ...

    def get_question(self, question_id: str) -> Question | None: ...

    def save_answer(self, session_id: str, question_id: str, value: Any) -> Answer: ...

    def answers_for_session(self, session_id: str) -> list[Answer]: ...


class DocumentStore(Protocol):
    def list_by_session(self, session_id: str) -> list[DocumentRecord]: ...

    def get(self, document_id: str) -> DocumentRecord | None: ...

    def save_trust_report(self, document_id: str, report: Any) -> DocumentRecord: ...

    def check_required_documents(
        self, document_ids: list[str], required_types: list[str]
    ) -> RequiredDocumentsCheck: ...


class ClaimStore(Protocol):
    def create_claim(self, data: dict[str, Any], db: Session | None = None) -> ClaimRecord: ...

    def link_answers(self, session_id: str, claim_id: str, db: Session | None = None) -> int: ...

    def link_documents(self, document_ids: list[str], claim_id: str, db: Session | None = None) -> int: ...

    def save_extracted_information(
        self, claim_id: str, field_name: str, item: ExtractedField, db: Session | None = None
    ) -> None: ...

    def materialize_claim(
        self,
        data: dict[str, Any],
        session_id: str,
        document_ids: list[str],
        extracted: dict[str, ExtractedField],
    ) -> ClaimRecord: ...

    def claim_for_session(self, session_id: str) -> ClaimRecord | None: ...


class PolicySource(Protocol):
    def available_coverage_types(self, user_id: str) -> list[CoverageTypeInfo]: ...

    def check_policy_limits(
        self, user_id: str, coverage_type_ids: list[str], claimed_amount: float
    ) -> PolicyLimitCheck: ...

    def get_profile(self, user_id: str) -> UserProfile | None: ...
