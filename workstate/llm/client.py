"""OpenAI-compatible chat-completions client (OpenRouter by default)."""

from __future__ import annotations

import json
import socket
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..config import LLMConfig
from ..logging import get_logger
from ..models import TokenUsage
from .catalog import ModelSpec, lookup_model
from .errors import (
    AuthenticationError,
    InvalidResponseError,
    ProviderConnectionError,
    error_for_status,
)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "openai/gpt-5.2-nano"

Transport = Callable[[Request, float], bytes]


@dataclass
class ModelRequest:
    """Represents one chat-completions call."""

    prompt: str
    system: Optional[str]
    model: str
    temperature: Optional[float]
    max_tokens: Optional[int]
    response_format: Optional[Dict[str, Any]]


@dataclass
class ModelResponse:
    content: str
    usage: TokenUsage
    model: str


class ModelClient:
    """Sends prompts to the configured provider and maps failures to typed errors."""

    def __init__(
        self,
        model: str | None = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str | None = None,
        temperature: Optional[float] = 0.3,
        max_tokens: Optional[int] = 2048,
        request_timeout: float = 60.0,
        transport: Transport | None = None,
    ) -> None:
        self.model = model or DEFAULT_MODEL
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.request_timeout = request_timeout
        self._transport = transport or _urlopen_transport
        self.logger = get_logger("llm.client")

    @classmethod
    def from_config(cls, config: LLMConfig, *, transport: Transport | None = None) -> "ModelClient":
        return cls(
            config.model,
            base_url=config.base_url,
            api_key=config.api_key,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            request_timeout=config.request_timeout,
            transport=transport,
        )

    @property
    def spec(self) -> ModelSpec:
        return lookup_model(self.model)

    @property
    def supports_structured_output(self) -> bool:
        return self.spec.supports_structured_output

    def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        response_format: Dict[str, Any] | None = None,
        max_tokens: int | None = None,
    ) -> ModelResponse:
        """Send the prompt and return the response text with provider-reported usage."""
        if not self.api_key:
            raise AuthenticationError("No API key configured for the model provider")

        request = ModelRequest(
            prompt=prompt,
            system=system,
            model=self.model,
            temperature=self.temperature,
            max_tokens=max_tokens or self.max_tokens,
            response_format=response_format if self.supports_structured_output else None,
        )
        http_request = self._build_http_request(request)
        self.logger.debug("Requesting %s (structured=%s)", request.model, bool(request.response_format))

        try:
            raw = self._transport(http_request, self.request_timeout)
        except HTTPError as exc:
            detail = _read_error_body(exc)
            raise error_for_status(exc.code, detail) from exc
        except URLError as exc:
            raise ProviderConnectionError(f"Model provider unreachable: {exc.reason}") from exc
        except (socket.timeout, TimeoutError, ConnectionError) as exc:
            raise ProviderConnectionError(f"Model provider connection failed: {exc}") from exc

        return self._parse_response(raw, request.model)

    def _build_http_request(self, request: ModelRequest) -> Request:
        payload: Dict[str, Any] = {
            "model": request.model,
            "messages": _build_messages(request.system, request.prompt),
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        if request.max_tokens is not None:
            payload["max_tokens"] = request.max_tokens
        if request.response_format is not None:
            payload["response_format"] = request.response_format

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        return Request(
            f"{self.base_url}/chat/completions",
            data=json.dumps(payload).encode("utf-8"),
            headers=headers,
            method="POST",
        )

    @staticmethod
    def _parse_response(raw: bytes, model: str) -> ModelResponse:
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidResponseError("Model provider returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise InvalidResponseError("Model provider returned a non-object body")

        content = _extract_content(payload)
        if not content.strip():
            raise InvalidResponseError("Model provider returned an empty response")
        return ModelResponse(
            content=content.strip(),
            usage=_extract_usage(payload.get("usage")),
            model=str(payload.get("model") or model),
        )


def _urlopen_transport(request: Request, timeout: float) -> bytes:  # pragma: no cover - network
    with urlopen(request, timeout=timeout) as response:
        return response.read()


def _read_error_body(exc: HTTPError) -> str:
    try:
        body = exc.read()
    except (OSError, AttributeError):
        return str(exc.reason or "")
    if not body:
        return str(exc.reason or "")
    return body.decode("utf-8", errors="ignore").strip()


def _build_messages(system: str | None, prompt: str) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})
    return messages


def _extract_content(payload: dict[str, object]) -> str:
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return ""
    first = choices[0]
    if not isinstance(first, dict):
        return ""
    message = first.get("message")
    if isinstance(message, dict):
        content = message.get("content")
        if isinstance(content, str):
            return content
    text = first.get("text")
    if isinstance(text, str):
        return text
    return ""


def _extract_usage(value: object) -> TokenUsage:
    if not isinstance(value, dict):
        return TokenUsage()
    prompt = _as_int(value.get("prompt_tokens"))
    completion = _as_int(value.get("completion_tokens"))
    total = _as_int(value.get("total_tokens")) or prompt + completion
    return TokenUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


def _as_int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


__all__ = ["DEFAULT_BASE_URL", "DEFAULT_MODEL", "ModelClient", "ModelRequest", "ModelResponse"]
