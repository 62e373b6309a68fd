"""SQLAlchemy ORM models: intake state, reference data, answers, documents and claims."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from claim_intake.db.database import Base

_STAGES = ("categorization", "questioning", "documents", "validation", "finalization", "completed")


class IntakeStateRow(Base):
    __tablename__ = "claim_intake_state"
    __table_args__ = (
        CheckConstraint(
            "current_stage IN (" + ", ".join(f"'{stage}'" for stage in _STAGES) + ")",
            name="ck_intake_state_stage",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    current_stage: Mapped[str] = mapped_column(String(32), default="categorization")
    coverage_type_ids: Mapped[list] = mapped_column(JSON, default=list)
    incident_description: Mapped[Optional[str]] = mapped_column(Text)
    categorization_confidence: Mapped[Optional[str]] = mapped_column(String(16))
    categorization_reasoning: Mapped[Optional[str]] = mapped_column(Text)
    questioning: Mapped[dict] = mapped_column(JSON, default=dict)
    extracted_data: Mapped[dict] = mapped_column(JSON, default=dict)
    uploaded_document_ids: Mapped[list] = mapped_column(JSON, default=list)
    document_issues: Mapped[list] = mapped_column(JSON, default=list)
    validation_passed: Mapped[Optional[bool]] = mapped_column(Boolean)
    validation_errors: Mapped[list] = mapped_column(JSON, default=list)
    validation_results: Mapped[Optional[dict]] = mapped_column(JSON)
    policy_limit_check: Mapped[Optional[dict]] = mapped_column(JSON)
    claim_id: Mapped[Optional[str]] = mapped_column(String(64))   # set only when completed
    claim_number: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


# ── Reference data ─────────────────────────────────────────────────────

class CoverageTypeRow(Base):
    __tablename__ = "coverage_types"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128))
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(64))


class PolicyRow(Base):
    __tablename__ = "policies"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128))
    coverage_items: Mapped[list] = mapped_column(JSON, default=list)   # legacy [{"name": ...}]


class PolicyCoverageRow(Base):
    __tablename__ = "policy_coverage_types"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    policy_id: Mapped[str] = mapped_column(ForeignKey("policies.id"), index=True)
    coverage_type_id: Mapped[str] = mapped_column(ForeignKey("coverage_types.id"))
    coverage_limit: Mapped[float] = mapped_column(Float, default=0.0)
    deductible: Mapped[float] = mapped_column(Float, default=0.0)


class UserPolicyRow(Base):
    __tablename__ = "user_policies"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    policy_id: Mapped[str] = mapped_column(ForeignKey("policies.id"))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class UserProfileRow(Base):
    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(256))


class QuestionRow(Base):
    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    coverage_type_id: Mapped[str] = mapped_column(String(64), index=True)
    question_text: Mapped[str] = mapped_column(Text)
    field_type: Mapped[str] = mapped_column(String(32), default="text")
    field_name: Mapped[Optional[str]] = mapped_column(String(64))   # extracted_data key this answer fills
    is_required: Mapped[bool] = mapped_column(Boolean, default=True)
    options: Mapped[list] = mapped_column(JSON, default=list)
    help_text: Mapped[Optional[str]] = mapped_column(Text)
    order_index: Mapped[int] = mapped_column(Integer, default=0)


class RuleRow(Base):
    __tablename__ = "rules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    coverage_type_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(256))
    priority: Mapped[int] = mapped_column(Integer, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    conditions: Mapped[list] = mapped_column(JSON, default=list)
    actions: Mapped[list] = mapped_column(JSON, default=list)


# ── Claimant data ──────────────────────────────────────────────────────

class ClaimAnswerRow(Base):
    __tablename__ = "claim_answers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    session_id: Mapped[str] = mapped_column(String(128), index=True)
    question_id: Mapped[str] = mapped_column(String(64))
    answer_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    claim_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    answered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ClaimDocumentRow(Base):
    __tablename__ = "claim_documents"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(128), index=True)
    claim_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    file_name: Mapped[str] = mapped_column(String(256))
    file_path: Mapped[str] = mapped_column(Text)
    mime_type: Mapped[Optional[str]] = mapped_column(String(128))
    document_type: Mapped[Optional[str]] = mapped_column(String(64))
    recognized_text: Mapped[Optional[str]] = mapped_column(Text)
    extracted_entities: Mapped[dict] = mapped_column(JSON, default=dict)
    authenticity_score: Mapped[Optional[float]] = mapped_column(Float)
    tampering_detected: Mapped[bool] = mapped_column(Boolean, default=False)
    is_relevant: Mapped[Optional[bool]] = mapped_column(Boolean)
    context_matches: Mapped[Optional[bool]] = mapped_column(Boolean)
    status: Mapped[Optional[str]] = mapped_column(String(32))   # valid | needs_review | invalid | reupload_required
    trust_report: Mapped[Optional[dict]] = mapped_column(JSON)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class ClaimRow(Base):
    __tablename__ = "claims"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    claim_number: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    session_id: Mapped[Optional[str]] = mapped_column(String(128))
    coverage_type_ids: Mapped[list] = mapped_column(JSON, default=list)
    incident_type: Mapped[Optional[str]] = mapped_column(String(64))
    incident_description: Mapped[str] = mapped_column(Text)
    incident_date: Mapped[Optional[str]] = mapped_column(String(32))
    incident_location: Mapped[Optional[str]] = mapped_column(String(256))
    total_claimed_amount: Mapped[float] = mapped_column(Float, default=0.0)
    currency: Mapped[str] = mapped_column(String(8), default="USD")
    status: Mapped[str] = mapped_column(String(32), default="submitted")   # submitted | approved | paid | rejected
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ClaimExtractedInfoRow(Base):
    __tablename__ = "claim_extracted_information"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    claim_id: Mapped[str] = mapped_column(ForeignKey("claims.id"), index=True)
    field_name: Mapped[str] = mapped_column(String(128))
    field_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    confidence: Mapped[str] = mapped_column(String(16), default="high")
    source: Mapped[str] = mapped_column(String(32), default="ai_inference")
    extracted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
