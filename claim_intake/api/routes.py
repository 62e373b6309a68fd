"""API route definitions for the claim intake pipeline."""

import logging
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from claim_intake.config import UPLOAD_DIR
from claim_intake.db.repositories import DocumentRepository
from claim_intake.graph.workflow import ClaimIntakeOrchestrator
from claim_intake.models import FlowState, IntakeInput

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_CONTENT_TYPES: set[str] = {
    "application/pdf",
    "text/plain",
    "image/jpeg",
    "image/png",
    "image/webp",
}
ALLOWED_EXTENSIONS: set[str] = {".pdf", ".txt", ".jpg", ".jpeg", ".png", ".webp"}


class IntakeRequest(BaseModel):
    user_id: str
    message: str | None = None
    question_id: str | None = None
    answer_value: Any = None
    document_id: str | None = None


class SessionLocks:
    """One lock per chat session so a session never runs two requests at once.

    A session's lock is dropped once no request holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, list[Any]] = {}

    @contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(session_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[session_id]

    def active(self) -> list[str]:
        with self._guard:
            return list(self._locks)


session_locks = SessionLocks()


def get_orchestrator(request: Request) -> ClaimIntakeOrchestrator:
    return request.app.state.orchestrator


def get_document_store(request: Request) -> DocumentRepository:
    return request.app.state.document_store


def _validate_session_id(session_id: str) -> str:
    """Validate that session_id is a non-empty string.

    Raises:
        HTTPException: If session_id is empty or whitespace-only.
    """
    stripped = session_id.strip()
    if not stripped:
        logger.warning("Received empty session_id")
        raise HTTPException(status_code=400, detail="session_id must not be empty.")
    return stripped


def _validate_upload(file: UploadFile) -> None:
    """Validate that the uploaded file is a PDF, plain text or an image.

    Raises:
        HTTPException: If the content type or extension is not accepted.
    """
    if file.content_type not in ALLOWED_CONTENT_TYPES:
        logger.warning("Invalid content type: %s for file: %s", file.content_type, file.filename)
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type '{file.content_type}'. Upload a PDF, text file or image.",
        )

    extension = Path(file.filename or "").suffix.lower()
    if extension not in ALLOWED_EXTENSIONS:
        logger.warning("Invalid file extension: %s", extension)
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file extension '{extension}'. Accepted: {', '.join(sorted(ALLOWED_EXTENSIONS))}.",
        )


async def _save_upload(file: UploadFile, session_id: str) -> Path:
    """Persist the uploaded file under ``UPLOAD_DIR`` or a fresh temp directory.

    Raises:
        HTTPException: If the file cannot be saved.
    """
    try:
        if UPLOAD_DIR:
            target_dir = Path(UPLOAD_DIR) / session_id
            target_dir.mkdir(parents=True, exist_ok=True)
            target_dir = Path(tempfile.mkdtemp(prefix="doc_", dir=target_dir))
        else:
            target_dir = Path(tempfile.mkdtemp(prefix="claim_"))
        destination = target_dir / Path(file.filename or "upload").name
        content = await file.read()
        destination.write_bytes(content)
        logger.info("Saved uploaded file to %s (%d bytes)", destination, len(content))
        return destination
    except Exception as exc:
        logger.exception("Failed to save uploaded file")
        raise HTTPException(status_code=500, detail="Failed to save uploaded file.") from exc


@router.post("/api/intake/{session_id}/messages", status_code=200)
def post_message(
    session_id: str,
    body: IntakeRequest,
    orchestrator: ClaimIntakeOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """Advance the session with a message, answer or document reference.

    Requests for the same session wait for each other. The turn runs to
    completion under the session lock, then its narration chunks are
    streamed back as plain text.
    """
    validated = _validate_session_id(session_id)
    intake_input = IntakeInput(**body.model_dump())
    with session_locks.hold(validated):
        narration = orchestrator.run(validated, intake_input)
    return StreamingResponse(iter(narration), media_type="text/plain; charset=utf-8")


@router.post("/api/intake/{session_id}/documents", status_code=201)
async def upload_document(
    session_id: str,
    file: UploadFile = File(..., description="Supporting document for the claim"),
    documents: DocumentRepository = Depends(get_document_store),
) -> dict[str, Any]:
    """Store an upload for the session and register it as a claim document.

    The returned ``document_id`` is then sent with the next message so the
    documents stage processes it.
    """
    validated = _validate_session_id(session_id)
    _validate_upload(file)
    saved_path = await _save_upload(file, validated)
    record = documents.add(validated, file.filename or saved_path.name, str(saved_path), file.content_type)
    logger.info("Document received: session_id=%s document_id=%s file=%s", validated, record.id, record.file_name)
    return {
        "document_id": record.id,
        "session_id": validated,
        "filename": record.file_name,
        "status": "received",
    }


@router.get("/api/intake/{session_id}/state", status_code=200)
def get_state(
    session_id: str,
    orchestrator: ClaimIntakeOrchestrator = Depends(get_orchestrator),
) -> FlowState:
    state = orchestrator.get_state(_validate_session_id(session_id))
    if state is None:
        raise HTTPException(status_code=404, detail="No intake state for this session.")
    return state


@router.delete("/api/intake/{session_id}/state", status_code=200)
def reset_state(
    session_id: str,
    orchestrator: ClaimIntakeOrchestrator = Depends(get_orchestrator),
) -> FlowState:
    """Start the session over from categorization."""
    state = orchestrator.reset_state(_validate_session_id(session_id))
    if state is None:
        raise HTTPException(status_code=404, detail="No intake state for this session.")
    return state


@router.get("/health", status_code=200)
async def health_check() -> dict[str, str]:
    """Liveness / readiness health check endpoint."""
    return {"status": "ok"}
