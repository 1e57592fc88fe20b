"""Settings inspection API routes."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from translate_dispatch.ai.providers import (
    get_all_providers,
    parse_prompts,
    resolve_providers,
)
from translate_dispatch.logger import get_logger

settings_bp = Blueprint("settings", __name__)
logger = get_logger(__name__)


@settings_bp.get("/providers")
def get_providers():
    """Return registered and participating providers (API keys masked) and prompts."""
    config = current_app.config["DISPATCH_CONFIG"]
    active = resolve_providers(config)
    logger.debug("Provider settings requested")
    return jsonify({
        "providers": [provider.to_dict() for provider in get_all_providers(config)],
        "active": [provider.id for provider in active],
        "mode": "parallel" if len(active) > 1 else "serial",
        "reassign_on_failure": bool(config.get("reassign_on_failure", False)),
        "prompts": [
            {"id": prompt.id, "name": prompt.name, "content": prompt.content}
            for prompt in parse_prompts(config.get("prompts"))
        ],
        "prompt_selection": config.get("prompt_selection"),
    })
