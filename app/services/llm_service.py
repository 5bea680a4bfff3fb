"""Text-generation client.

Every model call in this app wants one JSON object back: the assistant's
chat turn, the fields of a vendor reply, a comparison narrative. llm_json
is the only entry point. It returns that object or None, and never raises.

Business Rules:
- No LLM_API_KEY → no request, None
- 429 and 5xx responses or transport errors are retried with backoff
  (1s, 2s); any other non-200 status gives up at once
- Output may arrive fenced or wrapped in chatter; the first JSON object
  in it is used, anything else (arrays, scalars) counts as no answer

Called by: services/ai_assistant.py, services/response_parser.py,
           services/comparison_service.py
Depends on: app.http_client, app.config
"""

import asyncio
import json
import re

import httpx
from loguru import logger

from app.config import settings
from app.http_client import http

TRANSIENT_STATUSES = frozenset({429, 500, 502, 503, 504})
ATTEMPTS = 3
BACKOFF_SECONDS = 1.0
JSON_REMINDER = " Reply with a single JSON object and nothing else."

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class _TransientError(Exception):
    """The request may succeed if sent again."""


def build_messages(prompt: str | list[dict], system: str = "") -> list[dict]:
    """Chat messages for a bare prompt or an existing conversation history."""
    turns = [{"role": "user", "content": prompt}] if isinstance(prompt, str) else list(prompt)
    if not system:
        return turns
    if "json" not in system.lower():
        system += JSON_REMINDER
    return [{"role": "system", "content": system}, *turns]


async def _post(payload: dict) -> str | None:
    """One request. Message content, or None when the endpoint refused it."""
    try:
        resp = await http.post(
            settings.llm_api_url,
            headers={"Authorization": f"Bearer {settings.llm_api_key}"},
            json=payload,
            timeout=settings.llm_timeout_seconds,
        )
    except (httpx.HTTPError, OSError) as e:
        raise _TransientError(str(e)) from e

    if resp.status_code in TRANSIENT_STATUSES:
        raise _TransientError(f"HTTP {resp.status_code}: {resp.text[:200]}")
    if resp.status_code != 200:
        logger.warning("Model request rejected: HTTP {} {}", resp.status_code, resp.text[:200])
        return None

    data = resp.json()
    usage = data.get("usage") or {}
    logger.info(
        "Model reply | {} | {} prompt / {} completion tokens",
        payload["model"], usage.get("prompt_tokens", "?"), usage.get("completion_tokens", "?"),
    )
    choices = data.get("choices") or []
    if not choices:
        return None
    return (choices[0].get("message") or {}).get("content")


async def _post_with_retry(payload: dict) -> str | None:
    for attempt in range(1, ATTEMPTS + 1):
        try:
            return await _post(payload)
        except _TransientError as e:
            if attempt == ATTEMPTS:
                logger.warning("Model request failed after {} attempts: {}", ATTEMPTS, e)
                return None
            delay = BACKOFF_SECONDS * 2 ** (attempt - 1)
            logger.warning("Model request attempt {} failed ({}), retrying in {}s", attempt, e, delay)
            await asyncio.sleep(delay)
    return None


async def llm_json(
    prompt: str | list[dict],
    *,
    system: str = "",
    max_tokens: int = 1024,
    temperature: float = 0.2,
) -> dict | None:
    """Ask the model for a JSON object. prompt is a user message or a chat history."""
    if not settings.llm_api_key:
        logger.warning("LLM_API_KEY not set, model request skipped")
        return None

    payload = {
        "model": settings.llm_model,
        "messages": build_messages(prompt, system),
        "max_tokens": max_tokens,
        "temperature": temperature,
        "response_format": {"type": "json_object"},
    }
    text = await _post_with_retry(payload)
    return parse_json_object(text) if text else None


def parse_json_object(text: str | None) -> dict | None:
    """First JSON object in model output, tolerating code fences and surrounding prose."""
    if not text:
        return None
    cleaned = _FENCE.sub("", text.strip())
    candidates = [cleaned]
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if 0 <= start < end:
        candidates.append(cleaned[start:end + 1])

    for candidate in candidates:
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    logger.debug("No JSON object in model output: {}...", text[:100])
    return None
