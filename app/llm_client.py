"""Generation gateway over an OpenAI-compatible chat completions endpoint."""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Protocol

from app.config import settings
from app.models.errors import (
    CredentialError,
    GatewayTimeoutError,
    GenerationParseError,
    classify_gateway_error,
)
from app.services import logger as log_service

PROVIDER_NAME = "Gemini"


class GenerationGateway(Protocol):
    async def generate(self, prompt: str, *, caller: str) -> str: ...


def get_model() -> str:
    """Get the configured generation model id."""
    return settings.generation_model


class GenerationClient:
    """Sends one prompt per call and returns the raw generated text.

    Each research session builds its own client from the key the user supplied.
    """

    def __init__(
        self,
        api_key: str,
        *,
        model: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        if not api_key or not api_key.strip():
            raise CredentialError(
                f"{PROVIDER_NAME} API key is not set. Please provide a valid API key."
            )
        from openai import AsyncOpenAI

        self.model = model or get_model()
        self.timeout = timeout or settings.generation_timeout_seconds
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=(base_url or settings.generation_base_url).strip(),
        )

    async def generate(self, prompt: str, *, caller: str) -> str:
        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": prompt}],
                    max_tokens=settings.generation_max_tokens,
                    temperature=settings.generation_temperature,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            log_service.log_llm_call(
                model=self.model, caller=caller, duration_ms=elapsed_ms, status="timeout", error="timeout"
            )
            raise GatewayTimeoutError(
                f"{PROVIDER_NAME} did not respond within {self.timeout:.0f} seconds. Please try again later."
            ) from e
        except Exception as e:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            log_service.log_llm_call(
                model=self.model, caller=caller, duration_ms=elapsed_ms, status="error", error=str(e)
            )
            raise classify_gateway_error(e, provider=PROVIDER_NAME) from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        usage = getattr(response, "usage", None)
        log_service.log_llm_call(
            model=self.model,
            caller=caller,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            duration_ms=elapsed_ms,
        )
        return _extract_response_text(response)


def _extract_response_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    content = getattr(message, "content", None)
    return content.strip() if isinstance(content, str) else ""


def find_json_object(text: str) -> str | None:
    """Return the first balanced top-level ``{...}`` span in ``text``.

    Braces inside JSON strings are ignored, so prose around the object and
    braces within values do not confuse the scan.
    """
    start = text.find("{")
    if start < 0:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def extract_json_object(raw_text: str) -> dict[str, Any]:
    """Parse the first balanced JSON object embedded in generated text."""
    candidate = find_json_object(raw_text or "")
    if candidate is None:
        raise GenerationParseError(
            f"Could not extract JSON response from {PROVIDER_NAME}. "
            "Please try again with more specific business details."
        )
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise GenerationParseError(
            f"{PROVIDER_NAME} returned malformed JSON ({e.msg}). "
            "Please try again with more specific business details."
        ) from e
    return parsed
