"""Shared Cerebras LLM client for intake stages and document extraction."""

import json
import os
import re
from typing import Any

from cerebras.cloud.sdk import Cerebras

from claim_intake.config import CEREBRAS_MODEL, LLM_TIMEOUT_SECONDS

_client: Cerebras | None = None

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def get_cerebras_client() -> Cerebras:
    """Return a cached Cerebras client, initialised on first call.

    Requests are bounded by ``LLM_TIMEOUT_SECONDS`` and never retried
    by the client; callers decide whether to try again.

    Raises:
        RuntimeError: If CEREBRAS_API_KEY is not set.
    """
    global _client
    if _client is None:
        api_key = os.getenv("CEREBRAS_API_KEY")
        if not api_key:
            raise RuntimeError("CEREBRAS_API_KEY environment variable is not set.")
        _client = Cerebras(api_key=api_key, timeout=LLM_TIMEOUT_SECONDS, max_retries=0)
    return _client


def call_llm(system_prompt: str, user_content: str, temperature: float = 0) -> str:
    """Send a chat completion request to Cerebras and return raw content.

    Args:
        system_prompt: The system-level instruction.
        user_content: The user-level input text.
        temperature: Sampling temperature; extraction keeps the default 0.

    Returns:
        The raw string content from the LLM response.

    Raises:
        RuntimeError: If the API call returns no content.
    """
    client = get_cerebras_client()
    response = client.chat.completions.create(
        model=CEREBRAS_MODEL,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_content},
        ],
        temperature=temperature,
        top_p=1,
        stream=False,
    )
    content = response.choices[0].message.content
    if not content:
        raise RuntimeError("LLM returned an empty response.")
    return content.strip()


def parse_json_object(raw: str) -> dict[str, Any]:
    """Parse an LLM reply that should contain a single JSON object.

    Tolerates a surrounding markdown code fence.

    Raises:
        ValueError: If the reply is not a JSON object.
    """
    cleaned = _CODE_FENCE_RE.sub("", raw.strip())
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ValueError(f"LLM reply is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError("LLM reply is not a JSON object.")
    return parsed
