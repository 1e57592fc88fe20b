"""
AI Module

This module provides the provider registry, the translation client and
related errors.
"""

from translate_dispatch.ai.exceptions import (
    ConfigError,
    ParseError,
    RateLimitError,
    TranslationError,
    TransportError,
)
from translate_dispatch.ai.providers import Prompt, Provider, resolve_providers
from translate_dispatch.ai.client import TranslationClient
from translate_dispatch.ai.service import validate_ai_config

__all__ = [
    'ConfigError',
    'ParseError',
    'Prompt',
    'Provider',
    'RateLimitError',
    'TranslationClient',
    'TranslationError',
    'TransportError',
    'resolve_providers',
    'validate_ai_config',
]
