"""Web application package for translate-dispatch."""

from typing import Any, Dict, Optional

import httpx
from flask import Flask

from translate_dispatch.config import load_config


def create_app(
    config: Optional[Dict[str, Any]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Flask:
    """Application factory for the job API."""
    from .app import build_app  # Import here to avoid circular imports

    return build_app(config if config is not None else load_config(), transport=transport)


__all__ = ["create_app"]
