"""Pydantic models shared by the intake stages, stores and API."""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Enums ──────────────────────────────────────────────────────────────

class FlowStage(str, enum.Enum):
    CATEGORIZATION = "categorization"
    QUESTIONING = "questioning"
    DOCUMENTS = "documents"
    VALIDATION = "validation"
    FINALIZATION = "finalization"
    COMPLETED = "completed"


class DocumentStatus(str, enum.Enum):
    VALID = "valid"
    NEEDS_REVIEW = "needs_review"
    INVALID = "invalid"
    REUPLOAD_REQUIRED = "reupload_required"


ACCEPTED_DOCUMENT_STATUSES: frozenset[str] = frozenset(
    {DocumentStatus.VALID.value, DocumentStatus.NEEDS_REVIEW.value}
)


# ── Flow state ─────────────────────────────────────────────────────────

class ExtractedField(BaseModel):
    value: Any
    confidence: str = "high"   # high | medium | low
    source: str = "user_message"   # user_message | database_question | document | ai_inference
    extracted_at: datetime = Field(default_factory=utcnow)


class ConversationTurn(BaseModel):
    role: str   # user | assistant
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


class QuestioningState(BaseModel):
    asked_question_ids: list[str] = Field(default_factory=list)
    pending_question_id: Optional[str] = None   # last database question put to the claimant
    turns: list[ConversationTurn] = Field(default_factory=list)

    def last_assistant_message(self) -> Optional[str]:
        for turn in reversed(self.turns):
            if turn.role == "assistant":
                return turn.content
        return None


class ValidationIssue(BaseModel):
    code: str
    message: str
    field: Optional[str] = None


class DocumentIssue(BaseModel):
    document_id: str
    file_name: str
    status: str
    reason: Optional[str] = None
    guidance: Optional[str] = None


class PolicyLimitCheck(BaseModel):
    valid: bool
    policy_limit: float = 0.0
    deductible: float = 0.0
    previously_claimed: float = 0.0
    remaining_limit: float = 0.0
    claimed_amount: float = 0.0
    message: str = ""


class FlowState(BaseModel):
    """Persisted progress of one claimant session through the intake stages."""

    session_id: str
    user_id: str
    current_stage: FlowStage = FlowStage.CATEGORIZATION
    coverage_type_ids: list[str] = Field(default_factory=list)
    incident_description: Optional[str] = None
    categorization_confidence: Optional[str] = None
    categorization_reasoning: Optional[str] = None
    questioning: QuestioningState = Field(default_factory=QuestioningState)
    extracted_data: dict[str, ExtractedField] = Field(default_factory=dict)
    uploaded_document_ids: list[str] = Field(default_factory=list)
    document_issues: list[DocumentIssue] = Field(default_factory=list)
    validation_passed: Optional[bool] = None
    validation_errors: list[ValidationIssue] = Field(default_factory=list)
    validation_results: Optional[dict[str, Any]] = None
    policy_limit_check: Optional[PolicyLimitCheck] = None
    claim_id: Optional[str] = None
    claim_number: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    def extracted_values(self) -> dict[str, Any]:
        return {name: item.value for name, item in self.extracted_data.items()}


# ── Caller input ───────────────────────────────────────────────────────

class IntakeInput(BaseModel):
    user_id: str
    message: Optional[str] = None
    question_id: Optional[str] = None
    answer_value: Any = None
    document_id: Optional[str] = None

    def chained(self) -> IntakeInput:
        """Input handed to a stage reached by auto-chaining: identity only."""
        return IntakeInput(user_id=self.user_id)


# ── Collaborator records ───────────────────────────────────────────────

class CoverageTypeInfo(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None


class Question(BaseModel):
    id: str
    coverage_type_id: str
    question_text: str
    field_type: str = "text"
    field_name: Optional[str] = None
    is_required: bool = True
    options: list[str] = Field(default_factory=list)
    help_text: Optional[str] = None
    order_index: int = 0


class Answer(BaseModel):
    question_id: str
    answer_value: Any
    answered_at: datetime = Field(default_factory=utcnow)


class RuleEvaluation(BaseModel):
    eligibility_status: str = "eligible"   # eligible | ineligible
    validation_errors: list[str] = Field(default_factory=list)
    hidden_questions: list[str] = Field(default_factory=list)
    required_documents: list[str] = Field(default_factory=list)
    rules_triggered: list[str] = Field(default_factory=list)

    @property
    def is_eligible(self) -> bool:
        return self.eligibility_status != "ineligible"


class DocumentRecord(BaseModel):
    id: str
    session_id: Optional[str] = None
    claim_id: Optional[str] = None
    file_name: str
    file_path: str
    mime_type: Optional[str] = None
    document_type: Optional[str] = None
    recognized_text: Optional[str] = None
    extracted_entities: dict[str, Any] = Field(default_factory=dict)
    authenticity_score: Optional[float] = None
    tampering_detected: bool = False
    is_relevant: Optional[bool] = None
    context_matches: Optional[bool] = None
    status: Optional[str] = None
    trust_report: Optional[dict[str, Any]] = None
    uploaded_at: datetime = Field(default_factory=utcnow)
    processed_at: Optional[datetime] = None


class RequiredDocumentsCheck(BaseModel):
    complete: bool
    missing_types: list[str] = Field(default_factory=list)


class UserProfile(BaseModel):
    user_id: str
    full_name: Optional[str] = None


class ClaimRecord(BaseModel):
    id: str
    claim_number: str
    user_id: str
    status: str = "submitted"
    total_claimed_amount: float = 0.0
    currency: str = "USD"
    incident_date: Optional[str] = None
    incident_location: Optional[str] = None
