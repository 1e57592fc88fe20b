"""
Translation Client

Performs one request/response cycle against an OpenAI-compatible provider:
- builds the chat completion request
- waits on the rate limiter before every attempt
- retries transparently on rate-limit responses
- classifies everything else into ConfigError, TransportError or ParseError
"""

import asyncio
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from translate_dispatch.ai.exceptions import (
    ConfigError,
    ParseError,
    RateLimitError,
    TransportError,
)
from translate_dispatch.ai.providers import Provider
from translate_dispatch.config import DEFAULT_RATE_LIMIT_RETRY_DELAY, DEFAULT_TIMEOUT
from translate_dispatch.logger import get_logger

logger = get_logger(__name__)

RATE_LIMIT_PATTERN = re.compile(r"rate\s*limit|too\s+many\s+requests|rpm", re.IGNORECASE)
EMPTY_CONTENT_MESSAGE = "Translation API returned empty content"


def get_httpx_timeout(timeout_config: Any) -> httpx.Timeout:
    """
    Convert timeout configuration to httpx.Timeout object.

    Args:
        timeout_config: Either a number (read timeout) or a dict with
            connect, write, read, pool keys

    Returns:
        httpx.Timeout object
    """
    if isinstance(timeout_config, dict):
        return httpx.Timeout(
            connect=timeout_config.get('connect', 10.0),
            write=timeout_config.get('write', 60.0),
            read=timeout_config.get('read', float(DEFAULT_TIMEOUT)),
            pool=timeout_config.get('pool', 10.0),
        )
    else:
        timeout_value = float(timeout_config) if timeout_config else float(DEFAULT_TIMEOUT)
        return httpx.Timeout(
            connect=10.0,
            write=60.0,
            read=timeout_value,
            pool=10.0,
        )


def build_request_body(text: str, provider: Provider, system_prompt: str = "") -> Dict[str, Any]:
    messages: List[Dict[str, str]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": text})
    return {
        "model": provider.model,
        "temperature": provider.temperature,
        "messages": messages,
    }


def _error_message(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return None


def _first_choice(data: Any) -> Dict[str, Any]:
    if not isinstance(data, dict):
        return {}
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return choices[0]
    return {}


def extract_response_content(data: Any) -> str:
    """
    Pull the translated text out of a decoded chat completion body.

    Uses choices[0].message.content, falling back to choices[0].text.

    Raises:
        ParseError: If no non-empty string is found. The message carries the
            body's error.message when present.
    """
    choice = _first_choice(data)
    message = choice.get("message")
    content = message.get("content") if isinstance(message, dict) else None
    if content is None:
        content = choice.get("text")

    if not content or not isinstance(content, str):
        raise ParseError(_error_message(data) or EMPTY_CONTENT_MESSAGE)
    return content


def is_rate_limit_response(status_code: int, data: Any, response_text: str) -> bool:
    """429, or an error message / raw body mentioning a rate limit."""
    if status_code == 429:
        return True
    message = _error_message(data) or (response_text if isinstance(response_text, str) else "")
    if not message:
        return False
    return bool(RATE_LIMIT_PATTERN.search(message))


def _decode_json(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


class TranslationClient:
    """Async OpenAI-compatible chat completion client for single text units."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        rate_limiter=None,
        retry_delay: float = DEFAULT_RATE_LIMIT_RETRY_DELAY,
        max_rate_limit_retries: Optional[int] = None,
        timeout: Any = DEFAULT_TIMEOUT,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Args:
            http_client: Shared httpx.AsyncClient; one is created (and owned) when omitted
            rate_limiter: RateLimiter consulted before every attempt
            retry_delay: Seconds to wait after a rate-limit response
            max_rate_limit_retries: Give up with RateLimitError after this many
                rate-limit retries. None retries forever.
            timeout: Request timeout, see get_httpx_timeout
            sleep: Awaitable sleep taking seconds (asyncio.sleep by default)
        """
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=get_httpx_timeout(timeout))
        self.rate_limiter = rate_limiter
        self.retry_delay = retry_delay
        self.max_rate_limit_retries = max_rate_limit_retries
        self._sleep = sleep or asyncio.sleep

    async def __aenter__(self) -> "TranslationClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def send(self, text: str, provider: Provider, system_prompt: str = "", rate_limiter=None) -> str:
        """
        Translate one text unit with ``provider``.

        ``rate_limiter`` overrides the client's own limiter for this call; it is
        acquired before every attempt, retries included.

        Raises:
            ConfigError: The provider has no API key
            TransportError: Non-2xx, non-rate-limit response or network failure
            ParseError: Invalid JSON or no usable content
            RateLimitError: Rate-limit retries exceeded max_rate_limit_retries
        """
        if not provider.api_key:
            raise ConfigError(
                f"API key not configured for provider '{provider.name}'",
                details={"provider": provider.id, "missing_field": "api_key"},
            )

        url = provider.endpoint
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {provider.api_key}",
        }
        body = build_request_body(text, provider, system_prompt)
        limiter = rate_limiter if rate_limiter is not None else self.rate_limiter
        rate_limited_attempts = 0

        while True:
            if limiter is not None:
                await limiter.acquire(provider.id, provider.requests_per_minute)

            logger.debug(f"  Calling provider '{provider.id}' (model: {provider.model}, {len(text)} chars)")
            try:
                response = await self._http.post(url, headers=headers, json=body)
            except httpx.TimeoutException:
                raise TransportError(f"Provider '{provider.name}' request timeout")
            except httpx.HTTPError as e:
                raise TransportError(f"Provider '{provider.name}' request failed: {e}")

            data = _decode_json(response)

            if response.is_success:
                if data is None:
                    raise ParseError("Translation API returned an empty or invalid JSON response")
                content = extract_response_content(data)
                logger.debug(f"  Received {len(content)} chars from provider '{provider.id}'")
                return content

            if is_rate_limit_response(response.status_code, data, response.text):
                rate_limited_attempts += 1
                if self.max_rate_limit_retries is not None and rate_limited_attempts > self.max_rate_limit_retries:
                    raise RateLimitError(
                        f"Provider '{provider.name}' still rate limited after {self.max_rate_limit_retries} retries",
                        attempts=rate_limited_attempts,
                        details={"provider": provider.id},
                    )
                logger.warning(
                    f"Provider '{provider.id}' rate limited (HTTP {response.status_code}). "
                    f"Waiting {self.retry_delay}s before retry {rate_limited_attempts}..."
                )
                await self._sleep(self.retry_delay)
                continue

            error_text = _error_message(data) or f"HTTP {response.status_code}: {response.reason_phrase or 'request failed'}"
            logger.error(f"Provider '{provider.id}' API error ({response.status_code}): {error_text}")
            raise TransportError(error_text, status_code=response.status_code)
