"""Documents stage: collect required documents and run each new upload through the trust pipeline."""

import logging
import re

from claim_intake.coverage import CoverageRegistry
from claim_intake.graph.nodes.base import Stage, StageOutcome
from claim_intake.graph.state_manager import StateManager
from claim_intake.models import (
    DocumentIssue,
    DocumentRecord,
    ExtractedField,
    FlowStage,
    FlowState,
    IntakeInput,
)
from claim_intake.services import claim_facts
from claim_intake.services.document_messages import get_document_type_name
from claim_intake.services.document_trust import DocumentTrustContext, DocumentTrustPipeline, TrustReport
from claim_intake.services.interfaces import DocumentStore, PolicySource, QuestionSource, RulesEngine

logger = logging.getLogger(__name__)

_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def document_field_name(entity_key: str) -> str:
    """``flightNumber`` -> ``document_flight_number``."""
    snake = _CAMEL_BOUNDARY_RE.sub("_", entity_key).lower().replace(" ", "_")
    return f"document_{snake}"


class DocumentStage(Stage):
    stage = FlowStage.DOCUMENTS

    def __init__(
        self,
        state_manager: StateManager,
        questions: QuestionSource,
        rules: RulesEngine,
        documents: DocumentStore,
        trust: DocumentTrustPipeline,
        policies: PolicySource,
        registry: CoverageRegistry,
    ):
        super().__init__(state_manager)
        self._questions = questions
        self._rules = rules
        self._documents = documents
        self._trust = trust
        self._policies = policies
        self._registry = registry

    def run(self, state: FlowState, intake_input: IntakeInput, outcome: StageOutcome) -> None:
        session_id = state.session_id
        answers = self._questions.answers_for_session(session_id)
        required = self._rules.evaluate(state.coverage_type_ids, answers).required_documents

        if not required:
            self._transition(outcome, session_id, FlowStage.VALIDATION)
            outcome.say("No documents required for this claim. Proceeding to validation...\n\n")
            return

        uploaded = self._documents.list_by_session(session_id)
        if intake_input.document_id:
            received = next((d for d in uploaded if d.id == intake_input.document_id), None)
            if received is not None:
                outcome.say(f"✓ Document received: {received.file_name}\n\n")
            else:
                logger.warning("Unknown document_id=%s for session_id=%s", intake_input.document_id, session_id)
                outcome.say("I couldn't find that upload. Please try attaching the document again.\n\n")

        document_ids = [d.id for d in uploaded]
        if document_ids != state.uploaded_document_ids:
            state = self._update(outcome, session_id, uploaded_document_ids=document_ids)

        pending = [d for d in uploaded if d.processed_at is None]
        if pending:
            state = self._process(outcome, state, pending, required)

        check = self._documents.check_required_documents(document_ids, required)
        if not check.complete:
            outcome.say("I need the following documents to process your claim:\n\n")
            for document_type in check.missing_types:
                outcome.say(f"- {get_document_type_name(document_type)}\n")
            outcome.say("\nPlease upload these documents using the paperclip icon. 📎")
            return

        outcome.say("✓ All required documents received!\n\n")
        self._transition(outcome, session_id, FlowStage.VALIDATION)
        outcome.say("Proceeding to validation...\n\n")

    # ------------------------------------------------------------------

    def _process(
        self,
        outcome: StageOutcome,
        state: FlowState,
        pending: list[DocumentRecord],
        required: list[str],
    ) -> FlowState:
        context = self._trust_context(state)
        issues = {issue.document_id: issue for issue in state.document_issues}
        extracted = dict(state.extracted_data)
        reports: list[tuple[str, TrustReport]] = []

        for document in pending:
            outcome.say(f"Processing {document.file_name}...")
            report = self._trust.process(document, required, context)
            reports.append((document.id, report))
            outcome.effects.append(f"document:{document.id}:{report.status}")
            outcome.say(" ✓\n\n" if report.accepted else " ⚠️\n\n", f"{report.user_message}\n\n")

            if report.accepted:
                issues.pop(document.id, None)
                extracted.update(self._document_fields(report))
                continue

            issues[document.id] = DocumentIssue(
                document_id=document.id,
                file_name=document.file_name,
                status=report.status,
                reason=report.reupload_reason,
                guidance=report.reupload_guidance,
            )
            if report.reupload_reason:
                outcome.say(f"**Why:** {report.reupload_reason}\n\n")
            if report.reupload_guidance:
                outcome.say(f"**What to do:** {report.reupload_guidance}\n\n")

        state = self._update(
            outcome, state.session_id, document_issues=list(issues.values()), extracted_data=extracted
        )
        # Documents stay pending until their fields are in the session state.
        for document_id, report in reports:
            self._documents.save_trust_report(document_id, report)
        return state

    @staticmethod
    def _document_fields(report: TrustReport) -> dict[str, ExtractedField]:
        fields: dict[str, ExtractedField] = {}
        for key, value in report.verified_entities().items():
            if value in (None, ""):
                continue
            confidence = report.verification.confidence_for(key) if report.verification else None
            fields[document_field_name(key)] = ExtractedField(
                value=value, confidence=confidence or "medium", source="document"
            )
        return fields

    def _trust_context(self, state: FlowState) -> DocumentTrustContext:
        values = state.extracted_values()
        coverage_type_id = state.coverage_type_ids[0] if state.coverage_type_ids else None
        profile = self._policies.get_profile(state.user_id)
        return DocumentTrustContext(
            coverage_type=self._registry.display_name(coverage_type_id) if coverage_type_id else None,
            coverage_type_id=coverage_type_id,
            incident_description=state.incident_description,
            incident_date=claim_facts.incident_date(values, default_today=False),
            incident_location=claim_facts.incident_location(values, default=None),
            claimed_amount=claim_facts.claimed_amount(values) or None,
            profile_name=profile.full_name if profile else None,
        )
