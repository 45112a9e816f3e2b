"""Model gateway plumbing.

``GatewayCaller`` wraps any :class:`ModelGateway` with the call policy the
orchestrator relies on: every call is bounded by a timeout, retryable
provider failures are retried with exponential back-off, and all failures
leave as :class:`ProviderTransient` or :class:`ProviderFatal`.

``OllamaGateway`` is the bundled HTTP implementation, speaking the Ollama
``/api/chat`` protocol (NDJSON when streaming).
"""

import asyncio
import contextlib
import json
import logging
from typing import Any, AsyncIterator

import httpx

from heysme_agent.constants import (
    MODEL_MAX_RETRIES,
    MODEL_MAX_TOKENS,
    MODEL_RETRY_BACKOFF_SECONDS,
    MODEL_TIMEOUT_SECONDS,
)
from heysme_agent.errors import (
    InvalidRequestError,
    ProviderError,
    ProviderFatal,
    ProviderTransient,
)
from heysme_agent.interfaces import ModelGateway
from heysme_agent.models.gateway import ChatMessage, GenerationResult

logger = logging.getLogger(__name__)


class GatewayCaller:
    """Timeout + retry policy around a :class:`ModelGateway`.

    Args:
        gateway: the provider implementation.
        timeout: seconds allowed per ``generate`` attempt, and for a whole
            ``stream`` attempt.
        max_retries: retries after the first attempt (retryable failures only).
        backoff: base delay; attempt ``n`` waits ``backoff * 2**n``.
        max_tokens: output cap forwarded to every call.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        *,
        timeout: float = MODEL_TIMEOUT_SECONDS,
        max_retries: int = MODEL_MAX_RETRIES,
        backoff: float = MODEL_RETRY_BACKOFF_SECONDS,
        max_tokens: int | None = MODEL_MAX_TOKENS,
    ) -> None:
        self._gateway = gateway
        self._timeout = timeout
        self._max_retries = max_retries
        self._backoff = backoff
        self._max_tokens = max_tokens

    @property
    def gateway(self) -> ModelGateway:
        return self._gateway

    async def generate(
        self,
        messages: list[ChatMessage],
        *,
        schema: dict[str, Any] | None = None,
    ) -> GenerationResult:
        """Complete call with timeout and retries."""
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(
                    self._gateway.generate(
                        messages, schema=schema, max_tokens=self._max_tokens,
                    ),
                    timeout=self._timeout,
                )
            except (ProviderError, TimeoutError) as exc:
                await self._before_retry(exc, attempt)
                attempt += 1

    async def stream(self, messages: list[ChatMessage]) -> AsyncIterator[str]:
        """Streamed call with timeout and retries.

        A failed attempt is retried only if it produced no fragment yet;
        once text has reached the consumer, a failure ends the stream with
        :class:`ProviderTransient`.  Closing this generator closes the
        underlying gateway stream.
        """
        loop = asyncio.get_running_loop()
        attempt = 0
        while True:
            started = False
            deadline = loop.time() + self._timeout
            try:
                async with contextlib.aclosing(
                    self._gateway.stream(messages, max_tokens=self._max_tokens)
                ) as chunks:
                    iterator = aiter(chunks)
                    while True:
                        try:
                            async with asyncio.timeout_at(deadline):
                                text = await anext(iterator)
                        except StopAsyncIteration:
                            return
                        started = True
                        yield text
            except (ProviderError, TimeoutError) as exc:
                if started:
                    raise _as_orchestrator_error(exc) from exc
                await self._before_retry(exc, attempt)
                attempt += 1

    async def _before_retry(self, exc: Exception, attempt: int) -> None:
        """Raise if ``exc`` is final, otherwise sleep the back-off delay."""
        retryable = isinstance(exc, TimeoutError) or getattr(exc, "retryable", False)
        if not retryable or attempt >= self._max_retries:
            raise _as_orchestrator_error(exc) from exc
        delay = self._backoff * (2 ** attempt)
        logger.warning(
            "Model call failed (attempt %d/%d, retrying in %.2fs): %s",
            attempt + 1, self._max_retries + 1, delay, _describe(exc),
        )
        await asyncio.sleep(delay)


def _describe(exc: Exception) -> str:
    if isinstance(exc, TimeoutError):
        return "timed out"
    return str(exc) or type(exc).__name__


def _as_orchestrator_error(exc: Exception) -> ProviderTransient | ProviderFatal:
    if isinstance(exc, ProviderError) and not exc.retryable:
        return ProviderFatal(_describe(exc))
    return ProviderTransient(_describe(exc))


# ------------------------------------------------------------------
# Ollama
# ------------------------------------------------------------------

class OllamaGateway(ModelGateway):
    """Ollama ``/api/chat`` client.

    Args:
        base_url: server URL, e.g. ``http://localhost:11434``.
        model: model name, e.g. ``llama3.2``.
        timeout: HTTP-level timeout; the caller's timeout still applies.
        temperature: sampling temperature.
        client: pre-built client (tests inject one with a mock transport).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3.2",
        *,
        timeout: float = MODEL_TIMEOUT_SECONDS,
        temperature: float = 0.7,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._temperature = temperature
        self._client = client or httpx.AsyncClient(
            base_url=self._base_url, timeout=timeout,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _payload(
        self,
        messages: list[ChatMessage],
        *,
        stream: bool,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        options: dict[str, Any] = {"temperature": self._temperature}
        if max_tokens is not None:
            options["num_predict"] = max_tokens
        return {
            "model": self._model,
            "messages": [m.model_dump() for m in messages],
            "stream": stream,
            "options": options,
        }

    async def generate(
        self,
        messages: list[ChatMessage],
        *,
        schema: dict[str, Any] | None = None,
        max_tokens: int | None = None,
    ) -> GenerationResult:
        payload = self._payload(messages, stream=False, max_tokens=max_tokens)
        if schema is not None:
            payload["format"] = schema

        logger.debug("Ollama request: model=%s, messages=%d", self._model, len(messages))
        try:
            response = await self._client.post("/api/chat", json=payload)
        except httpx.HTTPError as exc:
            raise _transport_error(exc) from exc
        if response.status_code != 200:
            raise _status_error(response.status_code, response.text, self._model)

        content = response.json().get("message", {}).get("content", "")
        if schema is None:
            return GenerationResult(text=content)

        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            # Sampling may produce broken JSON; another attempt can succeed
            raise ProviderError(f"model returned invalid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ProviderError("model returned JSON that is not an object")
        return GenerationResult(text=content, data=data)

    async def stream(
        self,
        messages: list[ChatMessage],
        *,
        max_tokens: int | None = None,
    ) -> AsyncIterator[str]:
        payload = self._payload(messages, stream=True, max_tokens=max_tokens)
        logger.debug("Ollama stream request: model=%s, messages=%d", self._model, len(messages))
        try:
            async with self._client.stream("POST", "/api/chat", json=payload) as response:
                if response.status_code != 200:
                    body = await response.aread()
                    raise _status_error(
                        response.status_code,
                        body.decode("utf-8", errors="replace"),
                        self._model,
                    )
                async for line in response.aiter_lines():
                    if not line:
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning("Skipping unparseable Ollama line: %.200s", line)
                        continue
                    if "error" in chunk:
                        raise ProviderError(f"Ollama stream error: {chunk['error']}")
                    text = chunk.get("message", {}).get("content", "")
                    if text:
                        yield text
                    if chunk.get("done"):
                        return
        except httpx.HTTPError as exc:
            raise _transport_error(exc) from exc


def _transport_error(exc: httpx.HTTPError) -> ProviderError:
    if isinstance(exc, httpx.ConnectError):
        return ProviderError(f"cannot connect to model service: {exc}")
    if isinstance(exc, httpx.TimeoutException):
        return ProviderError("model request timed out")
    return ProviderError(f"model request failed: {exc}")


def _status_error(status: int, text: str, model: str) -> ProviderError:
    logger.error("Ollama HTTP error: %d - %.200s", status, text)
    if status >= 500 or status == 429:
        return ProviderError(f"model service error {status}: {text[:200]}")
    if status == 404 or "not found" in text.lower():
        return InvalidRequestError(f"model '{model}' is not available")
    return InvalidRequestError(f"model rejected request ({status}): {text[:200]}")
