"""FastAPI application entrypoint for the Claim Intake Pipeline."""

import logging
import os
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from claim_intake.api.routes import router
from claim_intake.config import LOG_LEVEL
from claim_intake.db.database import SessionLocal, init_db
from claim_intake.db.repositories import DocumentRepository
from claim_intake.graph.workflow import build_orchestrator

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and wire the orchestrator once per process."""
    init_db()
    app.state.orchestrator = build_orchestrator(SessionLocal)
    app.state.document_store = DocumentRepository(SessionLocal)
    logger.info("Claim intake service ready")
    yield


app = FastAPI(
    title="Claim Intake Pipeline",
    description="Conversational intake that turns incident reports and documents into validated claims.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(router)


def main() -> None:
    """Launch the Uvicorn server with configuration from environment variables."""
    port = int(os.getenv("PORT", "8000"))
    logger.info("Starting server on port %d", port)
    uvicorn.run(
        "claim_intake.main:app",
        host="0.0.0.0",
        port=port,
        log_level=LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
