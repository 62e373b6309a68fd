"""SQLAlchemy-backed stores used by the intake stages."""

import logging
import re
import uuid
from contextlib import contextmanager
from datetime import timezone
from typing import Any, Iterable, Iterator

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from claim_intake.db.models import (
    ClaimAnswerRow,
    ClaimDocumentRow,
    ClaimExtractedInfoRow,
    ClaimRow,
    CoverageTypeRow,
    IntakeStateRow,
    PolicyCoverageRow,
    PolicyRow,
    QuestionRow,
    RuleRow,
    UserPolicyRow,
    UserProfileRow,
)
from claim_intake.models import (
    ACCEPTED_DOCUMENT_STATUSES,
    Answer,
    ClaimRecord,
    CoverageTypeInfo,
    DocumentRecord,
    ExtractedField,
    FlowState,
    PolicyLimitCheck,
    Question,
    RequiredDocumentsCheck,
    UserProfile,
    utcnow,
)
from claim_intake.services.rules import Rule
from claim_intake.verification.alignment import document_type_matches

logger = logging.getLogger(__name__)

_DATETIME_FIELDS: set[str] = {"created_at", "updated_at", "completed_at"}
_PAID_OUT_STATUSES: tuple[str, ...] = ("approved", "paid")


@contextmanager
def _unit_of_work(session_factory: sessionmaker, db: Session | None = None) -> Iterator[Session]:
    """Reuse the caller's session, or open one that commits on exit."""
    if db is not None:
        yield db
        return
    with session_factory() as session, session.begin():
        yield session


# ---------------------------------------------------------------------------
# Flow state
# ---------------------------------------------------------------------------


class FlowStateRepository:
    """One ``claim_intake_state`` row per chat session."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _to_state(row: IntakeStateRow) -> FlowState:
        values = {name: getattr(row, name) for name in FlowState.model_fields}
        # SQLite hands back naive datetimes
        for name in _DATETIME_FIELDS:
            if values[name] is not None and values[name].tzinfo is None:
                values[name] = values[name].replace(tzinfo=timezone.utc)
        return FlowState.model_validate(values)

    @staticmethod
    def _column_values(state: FlowState, fields: Iterable[str]) -> dict[str, Any]:
        as_json = state.model_dump(mode="json")
        return {
            name: getattr(state, name) if name in _DATETIME_FIELDS else as_json[name]
            for name in fields
        }

    def get(self, session_id: str) -> FlowState | None:
        with self._session_factory() as session:
            row = session.scalar(select(IntakeStateRow).where(IntakeStateRow.session_id == session_id))
            return self._to_state(row) if row is not None else None

    def insert(self, state: FlowState) -> FlowState:
        """Insert a new state row.

        Raises:
            sqlalchemy.exc.IntegrityError: If a row for the session exists.
        """
        with _unit_of_work(self._session_factory) as session:
            session.add(IntakeStateRow(**self._column_values(state, FlowState.model_fields)))
        return state

    def save(self, state: FlowState, fields: Iterable[str]) -> FlowState:
        """Write only *fields* of *state*; ``updated_at`` is always refreshed."""
        state.updated_at = utcnow()
        values = self._column_values(state, {*fields, "updated_at"})
        with _unit_of_work(self._session_factory) as session:
            row = session.scalar(select(IntakeStateRow).where(IntakeStateRow.session_id == state.session_id))
            if row is None:
                raise LookupError(f"No intake state for session '{state.session_id}'")
            for name, value in values.items():
                setattr(row, name, value)
        return state

    def delete(self, session_id: str) -> bool:
        with _unit_of_work(self._session_factory) as session:
            result = session.execute(delete(IntakeStateRow).where(IntakeStateRow.session_id == session_id))
            return result.rowcount > 0


# ---------------------------------------------------------------------------
# Questions, answers and rules
# ---------------------------------------------------------------------------


def _to_question(row: QuestionRow) -> Question:
    return Question(
        id=row.id,
        coverage_type_id=row.coverage_type_id,
        question_text=row.question_text,
        field_type=row.field_type,
        field_name=row.field_name,
        is_required=row.is_required,
        options=list(row.options or []),
        help_text=row.help_text,
        order_index=row.order_index,
    )


class QuestionRepository:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_next_question(
        self, coverage_type_ids: list[str], asked_ids: list[str], hidden_ids: list[str]
    ) -> Question | None:
        """First question by ``order_index`` that is neither asked nor hidden."""
        if not coverage_type_ids:
            return None
        excluded = {*asked_ids, *hidden_ids}
        with self._session_factory() as session:
            rows = session.scalars(
                select(QuestionRow)
                .where(QuestionRow.coverage_type_id.in_(coverage_type_ids))
                .order_by(QuestionRow.order_index, QuestionRow.id)
            )
            for row in rows:
                if row.id not in excluded:
                    return _to_question(row)
        return None

    def get_question(self, question_id: str) -> Question | None:
        with self._session_factory() as session:
            row = session.get(QuestionRow, question_id)
            return _to_question(row) if row is not None else None

    def save_answer(self, session_id: str, question_id: str, value: Any) -> Answer:
        """Store an answer; answering the same question again replaces it."""
        answered_at = utcnow()
        with _unit_of_work(self._session_factory) as session:
            row = session.scalar(
                select(ClaimAnswerRow).where(
                    ClaimAnswerRow.session_id == session_id,
                    ClaimAnswerRow.question_id == question_id,
                )
            )
            if row is None:
                row = ClaimAnswerRow(session_id=session_id, question_id=question_id)
                session.add(row)
            row.answer_value = value
            row.answered_at = answered_at
        logger.info("Answer saved: session_id=%s question_id=%s", session_id, question_id)
        return Answer(question_id=question_id, answer_value=value, answered_at=answered_at)

    def answers_for_session(self, session_id: str) -> list[Answer]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(ClaimAnswerRow)
                .where(ClaimAnswerRow.session_id == session_id)
                .order_by(ClaimAnswerRow.answered_at, ClaimAnswerRow.id)
            )
            return [
                Answer(question_id=row.question_id, answer_value=row.answer_value, answered_at=row.answered_at)
                for row in rows
            ]


class RuleRepository:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def active_rules(self, coverage_type_ids: list[str]) -> list[Rule]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(RuleRow).where(
                    RuleRow.coverage_type_id.in_(coverage_type_ids),
                    RuleRow.is_active.is_(True),
                )
            )
            return [
                Rule(
                    id=row.id,
                    name=row.name,
                    coverage_type_id=row.coverage_type_id,
                    priority=row.priority,
                    conditions=list(row.conditions or []),
                    actions=list(row.actions or []),
                )
                for row in rows
            ]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


def _to_document(row: ClaimDocumentRow) -> DocumentRecord:
    return DocumentRecord(
        id=row.id,
        session_id=row.session_id,
        claim_id=row.claim_id,
        file_name=row.file_name,
        file_path=row.file_path,
        mime_type=row.mime_type,
        document_type=row.document_type,
        recognized_text=row.recognized_text,
        extracted_entities=dict(row.extracted_entities or {}),
        authenticity_score=row.authenticity_score,
        tampering_detected=bool(row.tampering_detected),
        is_relevant=row.is_relevant,
        context_matches=row.context_matches,
        status=row.status,
        trust_report=row.trust_report,
        uploaded_at=row.uploaded_at,
        processed_at=row.processed_at,
    )


class DocumentRepository:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def add(self, session_id: str, file_name: str, file_path: str, mime_type: str | None = None) -> DocumentRecord:
        """Register an accepted upload; trust processing happens later."""
        row = ClaimDocumentRow(
            id=str(uuid.uuid4()),
            session_id=session_id,
            file_name=file_name,
            file_path=file_path,
            mime_type=mime_type,
            extracted_entities={},
            uploaded_at=utcnow(),
        )
        with _unit_of_work(self._session_factory) as session:
            session.add(row)
        logger.info("Document registered: session_id=%s document_id=%s file=%s", session_id, row.id, file_name)
        return _to_document(row)

    def list_by_session(self, session_id: str) -> list[DocumentRecord]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(ClaimDocumentRow)
                .where(ClaimDocumentRow.session_id == session_id)
                .order_by(ClaimDocumentRow.uploaded_at)
            )
            return [_to_document(row) for row in rows]

    def get(self, document_id: str) -> DocumentRecord | None:
        with self._session_factory() as session:
            row = session.get(ClaimDocumentRow, document_id)
            return _to_document(row) if row is not None else None

    def save_trust_report(self, document_id: str, report: Any) -> DocumentRecord:
        """Persist the outcome of one trust pass on the document record."""
        extraction = report.extraction
        with _unit_of_work(self._session_factory) as session:
            row = session.get(ClaimDocumentRow, document_id)
            if row is None:
                raise LookupError(f"Document '{document_id}' not found")
            row.document_type = report.detected_type
            row.recognized_text = extraction.recognized_text or None
            row.extracted_entities = dict(extraction.extracted_entities)
            row.authenticity_score = extraction.authenticity_score
            row.tampering_detected = extraction.tampering_detected
            row.is_relevant = extraction.is_relevant
            row.context_matches = extraction.context_matches
            row.status = report.status
            row.trust_report = report.to_dict()
            row.processed_at = utcnow()
            return _to_document(row)

    def check_required_documents(self, document_ids: list[str], required_types: list[str]) -> RequiredDocumentsCheck:
        """Which required types have no accepted document among *document_ids*."""
        if not document_ids:
            return RequiredDocumentsCheck(complete=not required_types, missing_types=list(required_types))

        with self._session_factory() as session:
            present = [
                row.document_type
                for row in session.scalars(
                    select(ClaimDocumentRow).where(
                        ClaimDocumentRow.id.in_(document_ids),
                        ClaimDocumentRow.status.in_(ACCEPTED_DOCUMENT_STATUSES),
                    )
                )
                if row.document_type
            ]

        missing = [
            required for required in required_types
            if not any(document_type_matches(detected, [required]) for detected in present)
        ]
        return RequiredDocumentsCheck(complete=not missing, missing_types=missing)


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------


def _to_claim(row: ClaimRow) -> ClaimRecord:
    return ClaimRecord(
        id=row.id,
        claim_number=row.claim_number,
        user_id=row.user_id,
        status=row.status,
        total_claimed_amount=row.total_claimed_amount,
        currency=row.currency,
        incident_date=row.incident_date,
        incident_location=row.incident_location,
    )


class ClaimRepository:
    """Creates claims and links the session's answers, documents and fields."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create_claim(self, data: dict[str, Any], db: Session | None = None) -> ClaimRecord:
        row = ClaimRow(id=data.get("id") or str(uuid.uuid4()), **{k: v for k, v in data.items() if k != "id"})
        with _unit_of_work(self._session_factory, db) as session:
            session.add(row)
            session.flush()
            return _to_claim(row)

    def link_answers(self, session_id: str, claim_id: str, db: Session | None = None) -> int:
        with _unit_of_work(self._session_factory, db) as session:
            rows = session.scalars(select(ClaimAnswerRow).where(ClaimAnswerRow.session_id == session_id)).all()
            for row in rows:
                row.claim_id = claim_id
            return len(rows)

    def link_documents(self, document_ids: list[str], claim_id: str, db: Session | None = None) -> int:
        if not document_ids:
            return 0
        with _unit_of_work(self._session_factory, db) as session:
            rows = session.scalars(select(ClaimDocumentRow).where(ClaimDocumentRow.id.in_(document_ids))).all()
            for row in rows:
                row.claim_id = claim_id
            return len(rows)

    def save_extracted_information(
        self, claim_id: str, field_name: str, item: ExtractedField, db: Session | None = None
    ) -> None:
        with _unit_of_work(self._session_factory, db) as session:
            session.add(
                ClaimExtractedInfoRow(
                    claim_id=claim_id,
                    field_name=field_name,
                    field_value=item.model_dump(mode="json")["value"],
                    confidence=item.confidence or "high",
                    source=item.source or "ai_inference",
                    extracted_at=item.extracted_at,
                )
            )

    def materialize_claim(
        self,
        data: dict[str, Any],
        session_id: str,
        document_ids: list[str],
        extracted: dict[str, ExtractedField],
    ) -> ClaimRecord:
        """Create the claim and link everything to it in one transaction.

        Nothing is written if any step fails.
        """
        with _unit_of_work(self._session_factory) as session:
            claim = self.create_claim({**data, "session_id": session_id}, db=session)
            answers = self.link_answers(session_id, claim.id, db=session)
            documents = self.link_documents(document_ids, claim.id, db=session)
            for field_name, item in extracted.items():
                self.save_extracted_information(claim.id, field_name, item, db=session)
        logger.info(
            "Claim materialized: claim_number=%s answers=%d documents=%d fields=%d",
            claim.claim_number,
            answers,
            documents,
            len(extracted),
        )
        return claim

    def get_claim(self, claim_id: str) -> ClaimRecord | None:
        with self._session_factory() as session:
            row = session.get(ClaimRow, claim_id)
            return _to_claim(row) if row is not None else None

    def claim_for_session(self, session_id: str) -> ClaimRecord | None:
        """The claim already materialized from *session_id*, if any."""
        with self._session_factory() as session:
            row = session.scalar(
                select(ClaimRow).where(ClaimRow.session_id == session_id).order_by(ClaimRow.submitted_at).limit(1)
            )
            return _to_claim(row) if row is not None else None


# ---------------------------------------------------------------------------
# Policies and profiles
# ---------------------------------------------------------------------------


def _slug(name: str) -> str:
    return re.sub(r"\s+", "_", name.strip().lower())


class PolicyRepository:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _active_policy_ids(session: Session, user_id: str) -> list[str]:
        return list(
            session.scalars(
                select(UserPolicyRow.policy_id).where(
                    UserPolicyRow.user_id == user_id,
                    UserPolicyRow.is_active.is_(True),
                )
            )
        )

    def available_coverage_types(self, user_id: str) -> list[CoverageTypeInfo]:
        """Coverage types from the user's active policies.

        Linked coverage types come first; legacy ``coverage_items`` names
        become slug ids in the ``travel`` category.
        """
        found: dict[str, CoverageTypeInfo] = {}
        with self._session_factory() as session:
            policy_ids = self._active_policy_ids(session, user_id)
            if not policy_ids:
                return []

            linked = session.execute(
                select(CoverageTypeRow)
                .join(PolicyCoverageRow, PolicyCoverageRow.coverage_type_id == CoverageTypeRow.id)
                .where(PolicyCoverageRow.policy_id.in_(policy_ids))
            ).scalars()
            for row in linked:
                found.setdefault(
                    row.id,
                    CoverageTypeInfo(id=row.id, name=row.name, description=row.description, category=row.category),
                )

            for policy in session.scalars(select(PolicyRow).where(PolicyRow.id.in_(policy_ids))):
                for item in policy.coverage_items or []:
                    name = item.get("name") if isinstance(item, dict) else None
                    if not name:
                        continue
                    found.setdefault(
                        _slug(name),
                        CoverageTypeInfo(
                            id=_slug(name),
                            name=name,
                            description=f"Coverage for {name.lower()}",
                            category="travel",
                        ),
                    )

        return list(found.values())

    def check_policy_limits(self, user_id: str, coverage_type_ids: list[str], claimed_amount: float) -> PolicyLimitCheck:
        """Compare *claimed_amount* with what is left of the policy limit."""
        policy_limit = 0.0
        deductible = 0.0
        with self._session_factory() as session:
            policy_ids = self._active_policy_ids(session, user_id)
            if policy_ids:
                links = session.scalars(
                    select(PolicyCoverageRow).where(
                        PolicyCoverageRow.policy_id.in_(policy_ids),
                        PolicyCoverageRow.coverage_type_id.in_(coverage_type_ids),
                    )
                )
                for link in links:
                    policy_limit = max(policy_limit, link.coverage_limit or 0.0)
                    deductible = max(deductible, link.deductible or 0.0)

            previous = session.scalars(
                select(ClaimRow).where(ClaimRow.user_id == user_id, ClaimRow.status.in_(_PAID_OUT_STATUSES))
            )
            previously_claimed = sum(
                claim.total_claimed_amount or 0.0
                for claim in previous
                if set(claim.coverage_type_ids or []) & set(coverage_type_ids)
            )

        remaining = policy_limit - previously_claimed
        valid = claimed_amount <= remaining
        message = (
            f"Claim amount ${claimed_amount:g} is within policy limit."
            if valid
            else f"Claim amount ${claimed_amount:g} exceeds remaining limit of ${remaining:g}."
        )
        return PolicyLimitCheck(
            valid=valid,
            policy_limit=policy_limit,
            deductible=deductible,
            previously_claimed=previously_claimed,
            remaining_limit=remaining,
            claimed_amount=claimed_amount,
            message=message,
        )

    def get_profile(self, user_id: str) -> UserProfile | None:
        with self._session_factory() as session:
            row = session.get(UserProfileRow, user_id)
            return UserProfile(user_id=row.user_id, full_name=row.full_name) if row is not None else None
