"""
AI Configuration Service

Validates that the configuration yields at least one usable provider before a
translation session starts, and builds the client used by the session.
"""

from typing import Any, Dict, Optional, Tuple

import httpx

from translate_dispatch.ai.client import TranslationClient
from translate_dispatch.ai.exceptions import ConfigError
from translate_dispatch.ai.providers import Provider, resolve_providers
from translate_dispatch.config import (
    DEFAULT_RATE_LIMIT_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    get_float_setting,
    get_int_setting,
)
from translate_dispatch.logger import get_logger

logger = get_logger(__name__)


def validate_ai_config(config: Dict[str, Any]) -> Tuple[Provider, ...]:
    """
    Validate that the configured providers can be used.

    Returns:
        The resolved providers.

    Raises:
        ConfigError: If no resolved provider has an API key, with code and details.
    """
    providers = resolve_providers(config)
    usable = [provider for provider in providers if provider.api_key]
    if not usable:
        names = ", ".join(provider.name for provider in providers)
        raise ConfigError(
            f"API key not configured for {names}. Please set it in the configuration.",
            code="ai_config_missing",
            details={"providers": [provider.id for provider in providers], "missing_field": "api_key"},
        )

    missing = [provider.id for provider in providers if not provider.api_key]
    if missing:
        logger.warning(f"Providers without API key will fail their first unit: {', '.join(missing)}")
    return providers


def build_client(
    config: Dict[str, Any],
    http_client: Optional[httpx.AsyncClient] = None,
    sleep=None,
) -> TranslationClient:
    """Create a TranslationClient from the retry and timeout settings."""
    max_retries = get_int_setting(config, "max_rate_limit_retries", None)
    if max_retries is not None and max_retries < 0:
        max_retries = None
    timeout = config.get("timeout")
    if not isinstance(timeout, dict):
        timeout = get_float_setting(config, "timeout", DEFAULT_TIMEOUT)
    return TranslationClient(
        http_client=http_client,
        retry_delay=get_float_setting(config, "rate_limit_retry_delay", DEFAULT_RATE_LIMIT_RETRY_DELAY),
        max_rate_limit_retries=max_retries,
        timeout=timeout,
        sleep=sleep,
    )
