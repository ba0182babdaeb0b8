"""OpenRouter-compatible oracle client with slot-based configuration."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from mundus.errors import OracleSchemaError, OracleTransportError

logger = logging.getLogger(__name__)

ERROR_DETAIL_MAX_CHARS = 400

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


@dataclass
class LLMSlotConfig:
    """Configuration for a single oracle slot."""

    slot: str
    provider_name: str
    api_endpoint: str
    model_id: str
    api_key: str
    max_tokens: int | None = None
    temperature: float = 0.7
    extra_params: dict[str, Any] = field(default_factory=dict)

    @property
    def completions_url(self) -> str:
        return f"{self.api_endpoint.rstrip('/')}/chat/completions"


def _error_detail(response: httpx.Response) -> str:
    """Pull the provider's own message out of an error response."""
    detail = response.text.strip()
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            detail = str(error.get("message") or error.get("code") or detail)
        elif error:
            detail = str(error)
        elif body.get("message"):
            detail = str(body["message"])
    return detail[:ERROR_DETAIL_MAX_CHARS]


class LLMClient:
    """Vendor-agnostic oracle client using the chat-completions API shape."""

    def __init__(
        self,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._slots: dict[str, LLMSlotConfig] = {}

    def configure_slot(self, config: LLMSlotConfig) -> None:
        self._slots[config.slot] = config

    def get_slot(self, slot: str) -> LLMSlotConfig:
        if slot not in self._slots:
            raise ValueError(f"Oracle slot '{slot}' not configured")
        return self._slots[slot]

    async def _complete(
        self,
        slot: str,
        messages: list[dict[str, str]],
        temperature: float | None,
        max_tokens: int | None,
        response_format: dict[str, Any] | None = None,
    ) -> str:
        config = self.get_slot(slot)
        payload: dict[str, Any] = {
            "model": config.model_id,
            "messages": messages,
            "temperature": config.temperature if temperature is None else temperature,
        }
        tokens = max_tokens or config.max_tokens
        if tokens:
            payload["max_tokens"] = tokens
        if response_format:
            payload["response_format"] = response_format
        payload.update(config.extra_params)

        url = config.completions_url
        logger.info("Oracle request to %s slot=%s model=%s", url, slot, config.model_id)
        try:
            response = await self._client.post(
                url,
                json=payload,
                headers={"Authorization": f"Bearer {config.api_key}"},
            )
        except httpx.HTTPError as exc:
            raise OracleTransportError(
                f"Oracle request to {url} failed: {exc}", details={"slot": slot}
            ) from exc

        if response.is_error:
            details: dict[str, Any] = {"slot": slot}
            if response.headers.get("retry-after"):
                details["retry_after"] = response.headers["retry-after"]
            raise OracleTransportError(
                f"Oracle request failed ({response.status_code}) at {url}: {_error_detail(response)}",
                status_code=response.status_code,
                details=details,
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise OracleTransportError(
                f"Oracle returned an unreadable completion envelope for slot={slot}"
            ) from exc

        logger.info("Oracle response slot=%s usage=%s", slot, data.get("usage", {}))
        return content or ""

    async def generate(
        self,
        slot: str,
        messages: list[dict[str, str]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_format: dict | None = None,
    ) -> str:
        """Return the assistant message as free-form text."""
        return await self._complete(slot, messages, temperature, max_tokens, response_format)

    async def generate_structured(
        self,
        slot: str,
        messages: list[dict[str, str]],
        *,
        schema_name: str,
        schema: dict[str, Any],
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """Ask for output constrained to ``schema`` and return the parsed object.

        The provider is trusted to enforce the schema, but the reply is still
        checked to be a JSON object.

        Raises:
            OracleSchemaError: If the content is not a JSON object.
        """
        response_format = {
            "type": "json_schema",
            "json_schema": {"name": schema_name, "strict": True, "schema": schema},
        }
        content = await self._complete(slot, messages, temperature, max_tokens, response_format)
        text = strip_json_fencing(content)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise OracleSchemaError(
                f"Structured response for '{schema_name}' is not valid JSON: {exc.msg}",
                slot=slot,
                details={"preview": text[:200]},
            ) from exc
        if not isinstance(data, dict):
            raise OracleSchemaError(
                f"Structured response for '{schema_name}' must be a JSON object, got {type(data).__name__}",
                slot=slot,
            )
        return data

    async def close(self) -> None:
        await self._client.aclose()


def strip_json_fencing(text: str) -> str:
    """Return the body of a markdown code fence, or the trimmed text if unfenced."""
    text = (text or "").strip()
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text


async def generate_with_validation(
    client: LLMClient,
    slot: str,
    messages: list[dict[str, str]],
    validate_fn: Callable[[Any], None],
    *,
    temperature: float | None = None,
    max_tokens: int | None = None,
    repair_retry: bool = True,
) -> Any:
    """Parse free-text output as JSON and validate it.

    ``validate_fn`` raises ``ValueError`` or ``TypeError`` on bad data. On the
    first failure the oracle sees its own answer plus the error and gets one
    chance to correct it; the second failure propagates.
    """
    repairs_left = 1 if repair_retry else 0
    conversation = list(messages)
    while True:
        response_text = await client.generate(
            slot, conversation, temperature=temperature, max_tokens=max_tokens
        )
        text = strip_json_fencing(response_text)
        try:
            data = json.loads(text)
            validate_fn(data)
            return data
        except (ValueError, TypeError) as e:
            if not repairs_left:
                raise
            repairs_left -= 1
            logger.warning("Oracle output for slot=%s was invalid, requesting repair: %s", slot, e)
            conversation = conversation + [
                {"role": "assistant", "content": response_text},
                {
                    "role": "user",
                    "content": (
                        f"Your previous output was invalid JSON for this task:\n{text}\n\n"
                        f"Problem: {e!s}\n\n"
                        "Reply with ONLY the corrected JSON object."
                    ),
                },
            ]
