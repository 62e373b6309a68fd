"""Environment-driven settings for the claim intake service."""

import os

CEREBRAS_MODEL: str = os.getenv("CEREBRAS_MODEL", "gpt-oss-120b")
LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))

DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./claim_intake.db")

# Upper bound on stage executions per orchestrator invocation (first stage included).
MAX_CHAINED_STAGES: int = int(os.getenv("MAX_CHAINED_STAGES", "4"))

UPLOAD_DIR: str | None = os.getenv("UPLOAD_DIR")

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
