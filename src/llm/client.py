"""
LLM client for dynamic follow-up generation.

One hosted provider (Anthropic Messages API) behind a small abstract
interface, so the follow-up generator can be tested against a fake.

Every call:
- is bounded by a timeout and retried once on timeout or HTTP 429
- reports token usage, because each call is costed by the ledger
- logs start/finish events with latency
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import httpx
import structlog

from src.core.config import settings
from src.core.exceptions import ConfigurationError, LLMRateLimitError, LLMTimeoutError

log = structlog.get_logger(__name__)


# Override the model via GENERATION_MODEL in .env if needed. The per-attempt
# timeout is derived from GENERATION_TIMEOUT_SECONDS, see attempt_budget().
GENERATION_DEFAULTS: Dict[str, Any] = dict(
    provider="anthropic",
    model="claude-sonnet-4-6",
    temperature=0.7,  # Some variety between follow-ups
    max_tokens=300,  # A single question, never a paragraph
    retry_delay=1.0,
)

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"

MAX_ATTEMPTS = 2


def attempt_budget(total_timeout: float, retry_delay: float) -> Tuple[float, float]:
    """Split an overall deadline into (per-attempt timeout, retry delay).

    Every attempt plus the backoff between them fits inside
    ``total_timeout``; the delay is capped at a tenth of it.
    """
    delay = min(retry_delay, total_timeout * 0.1)
    return (total_timeout - delay) / MAX_ATTEMPTS, delay


@dataclass
class LLMResponse:
    """Completion text plus what the provider billed for it."""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    raw_response: Optional[Dict[str, Any]] = None

    @property
    def input_tokens(self) -> int:
        return int(self.usage.get("input_tokens", 0) or 0)

    @property
    def output_tokens(self) -> int:
        return int(self.usage.get("output_tokens", 0) or 0)


class LLMClient(ABC):
    """Provider-agnostic completion interface."""

    @abstractmethod
    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """
        Run one completion.

        Args:
            prompt: User message
            system: Optional system prompt
            temperature: Sampling temperature override
            max_tokens: Response length cap override
            timeout: Per-attempt timeout override in seconds

        Returns:
            LLMResponse with the text and token usage
        """


class AnthropicClient(LLMClient):
    """Claude via the Anthropic Messages API, over httpx."""

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        api_key: Optional[str] = None,
        base_url: str = ANTHROPIC_BASE_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_base_delay: float = 1.0,
    ):
        """
        Args:
            model: Model id (e.g. claude-sonnet-4-6)
            temperature: Default sampling temperature
            max_tokens: Default response length cap
            timeout: Default per-attempt timeout in seconds
            api_key: Falls back to settings.anthropic_api_key
            base_url: API root, overridable for proxies
            transport: httpx transport (tests pass httpx.MockTransport)
            retry_base_delay: Seconds to wait before the retry

        Raises:
            ConfigurationError: If no API key is available
        """
        self.api_key = api_key or settings.anthropic_api_key
        if not self.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY not configured. Set it in .env.")

        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.base_url = base_url
        self.transport = transport
        self.retry_base_delay = retry_base_delay

        log.info("anthropic_client_initialized", model=model, timeout=timeout)

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "content-type": "application/json",
            "anthropic-version": ANTHROPIC_VERSION,
        }

    def _payload(
        self, prompt: str, system: Optional[str], temperature: float, max_tokens: int
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            body["system"] = system
        return body

    async def _post(self, body: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        """One attempt; raises httpx errors untouched."""
        async with httpx.AsyncClient(timeout=timeout, transport=self.transport) as client:
            response = await client.post(
                f"{self.base_url}/messages", headers=self._headers(), json=body
            )
            response.raise_for_status()
            return response.json()

    def _parse(self, data: Dict[str, Any], latency_ms: float) -> LLMResponse:
        blocks = data.get("content") or []
        text = blocks[0].get("text", "") if blocks else ""
        usage = data.get("usage") or {}
        return LLMResponse(
            content=text,
            model=data.get("model", self.model),
            usage={
                "input_tokens": usage.get("input_tokens", 0),
                "output_tokens": usage.get("output_tokens", 0),
            },
            latency_ms=latency_ms,
            raw_response=data,
        )

    async def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """
        Call the Messages API, retrying once on timeout or rate limit.

        Raises:
            LLMTimeoutError: Both attempts timed out
            LLMRateLimitError: Both attempts were rate limited (429)
            httpx.HTTPStatusError: Any other HTTP error (not retried)
        """
        temperature = self.temperature if temperature is None else temperature
        max_tokens = self.max_tokens if max_tokens is None else max_tokens
        timeout = self.timeout if timeout is None else timeout
        body = self._payload(prompt, system, temperature, max_tokens)

        attempt = 0
        while True:
            attempt += 1
            last_attempt = attempt >= MAX_ATTEMPTS
            started = time.perf_counter()

            log.debug(
                "llm_call_start",
                provider="anthropic",
                model=self.model,
                prompt_length=len(prompt),
                system_length=len(system) if system else 0,
                attempt=attempt,
            )

            try:
                # httpx timeouts apply per network phase; wait_for bounds the attempt
                data = await asyncio.wait_for(self._post(body, timeout), timeout)
            except (httpx.TimeoutException, asyncio.TimeoutError) as e:
                log.warning(
                    "llm_timeout",
                    provider="anthropic",
                    attempt=attempt,
                    timeout_seconds=timeout,
                )
                if last_attempt:
                    raise LLMTimeoutError(
                        f"LLM call timed out after {attempt} attempts (timeout={timeout}s)"
                    ) from e
                await self._backoff(attempt, "llm_retry_after_timeout")
                continue
            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code != 429:
                    log.error("llm_http_error", provider="anthropic", status_code=status_code)
                    raise
                log.warning("llm_rate_limit", provider="anthropic", attempt=attempt)
                if last_attempt:
                    raise LLMRateLimitError(
                        f"Rate limit exceeded after {attempt} attempts"
                    ) from e
                await self._backoff(attempt, "llm_retry_after_rate_limit")
                continue

            result = self._parse(data, (time.perf_counter() - started) * 1000)
            log.info(
                "llm_call_complete",
                provider="anthropic",
                model=self.model,
                latency_ms=round(result.latency_ms, 2),
                input_tokens=result.input_tokens,
                output_tokens=result.output_tokens,
                attempt=attempt,
            )
            return result

    async def _backoff(self, attempt: int, event: str) -> None:
        delay = self.retry_base_delay * (2 ** (attempt - 1))
        log.info(event, delay_seconds=delay, next_attempt=attempt + 1)
        await asyncio.sleep(delay)


def get_generation_llm_client(
    api_key: Optional[str] = None, total_timeout: Optional[float] = None
) -> LLMClient:
    """
    Build the follow-up generation client from GENERATION_DEFAULTS.

    settings.generation_model overrides the default model. Both attempts and
    the backoff between them fit inside ``total_timeout`` (default
    settings.generation_timeout_seconds), the deadline the assessment
    service enforces on a generation.

    Raises:
        ConfigurationError: If the API key is missing
    """
    defaults = GENERATION_DEFAULTS
    if total_timeout is None:
        total_timeout = settings.generation_timeout_seconds
    timeout, retry_delay = attempt_budget(total_timeout, defaults["retry_delay"])
    return AnthropicClient(
        model=settings.generation_model or defaults["model"],
        temperature=defaults["temperature"],
        max_tokens=defaults["max_tokens"],
        timeout=timeout,
        api_key=api_key,
        retry_base_delay=retry_delay,
    )
