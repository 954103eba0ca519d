"""Text-completion transport for the candidate and repair services.

Services depend only on the `LLM` protocol: an async callable taking the
calling stage ("candidates" or "distractor_repair") and a rendered prompt,
returning the raw completion text. `HttpLLM` is the one real implementation.

Transport failures surface as LLMError with the HTTP status in the message,
which is what retry.is_transient_error() keys on (429, 503).
"""

from __future__ import annotations

import logging
from typing import Literal, NamedTuple, Protocol

import httpx

logger = logging.getLogger(__name__)

ProviderFormat = Literal["koboldcpp", "openai"]


class LLM(Protocol):
    async def __call__(self, stage: str, prompt: str) -> str: ...


class LLMError(RuntimeError):
    """Raised when the completion backend is unreachable or answers badly."""


class _WireFormat(NamedTuple):
    path: str
    length_field: str
    results_field: str
    sends_model: bool


_WIRE_FORMATS: dict[str, _WireFormat] = {
    # {"prompt", "max_length"} -> {"results": [{"text"}]}
    "koboldcpp": _WireFormat("/api/v1/generate", "max_length", "results", False),
    # {"prompt", "model", "max_tokens"} -> {"choices": [{"text"}]}
    "openai": _WireFormat("/v1/completions", "max_tokens", "choices", True),
}


class HttpLLM:
    """Async httpx client for KoboldCpp or OpenAI-compatible completion APIs.

    `max_tokens` caps the completion length (sent as the format's length
    field); 0 leaves the backend default. `model` is only sent in the
    openai format.
    """

    def __init__(
        self,
        provider_url: str,
        api_key: str = "",
        provider_format: ProviderFormat = "koboldcpp",
        model: str = "",
        timeout: float = 120.0,
        max_tokens: int = 0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._api_key = api_key
        self._wire = _WIRE_FORMATS[provider_format]
        self._format = provider_format
        self._model = model
        self._timeout = timeout
        self._max_tokens = max_tokens

    @property
    def url(self) -> str:
        return self._base_url + self._wire.path

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _body(self, prompt: str) -> dict:
        body: dict = {"prompt": prompt}
        if self._wire.sends_model and self._model:
            body["model"] = self._model
        if self._max_tokens > 0:
            body[self._wire.length_field] = self._max_tokens
        return body

    def _completion_text(self, data: dict) -> str:
        entries = data.get(self._wire.results_field)
        if not entries or not isinstance(entries[0], dict) or "text" not in entries[0]:
            raise LLMError(f"Unexpected response format from {self._format} backend")
        return entries[0]["text"]

    async def __call__(self, stage: str, prompt: str) -> str:
        logger.debug("llm call stage=%s url=%s prompt_len=%d", stage, self.url, len(prompt))
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(self.url, json=self._body(prompt), headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise LLMError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.TimeoutException as e:
            raise LLMError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise LLMError(f"LLM backend returned HTTP {e.response.status_code}") from e

        text = self._completion_text(resp.json())
        logger.debug("llm response stage=%s len=%d", stage, len(text))
        return text
