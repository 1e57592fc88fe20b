"""Translation job API routes."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from flask import Blueprint, current_app, jsonify, request

from translate_dispatch.ai.exceptions import TranslationError
from translate_dispatch.ai.service import validate_ai_config
from translate_dispatch.logger import get_logger
from translate_dispatch.web.tasks import (
    cancel_job,
    create_translation_job,
    get_job,
    serialize_job,
)

translation_bp = Blueprint("translation", __name__)
logger = get_logger(__name__)


def _validate_documents(documents: Any) -> Optional[str]:
    """Return an error message when the documents payload is malformed."""
    if not isinstance(documents, list) or not documents:
        return "documents must be a non-empty list"
    for index, document in enumerate(documents):
        if not isinstance(document, dict):
            return f"documents[{index}] must be an object"
        units = document.get("units")
        if not isinstance(units, list):
            return f"documents[{index}].units must be a list"
        for position, unit in enumerate(units):
            if isinstance(unit, str):
                continue
            if not isinstance(unit, dict) or not isinstance(unit.get("text"), str):
                return f"documents[{index}].units[{position}] must be a string or an object with a text field"
    return None


@translation_bp.post("/translate")
def start_translation_job():
    """Start an asynchronous translation job."""
    data: Dict[str, Any] = request.get_json(silent=True) or {}
    documents = data.get("documents")
    prompt_ids = data.get("prompt_ids")
    reassign_on_failure = data.get("reassign_on_failure")
    timeout = data.get("timeout")

    error = _validate_documents(documents)
    if error:
        return jsonify({"error": error}), 400

    if prompt_ids is not None:
        if not isinstance(prompt_ids, list) or not all(isinstance(p, str) for p in prompt_ids):
            return jsonify({"error": "prompt_ids must be a list of strings"}), 400

    if reassign_on_failure is not None and not isinstance(reassign_on_failure, bool):
        return jsonify({"error": "reassign_on_failure must be a boolean"}), 400

    if timeout is not None:
        try:
            timeout = float(timeout)
            if timeout <= 0:
                raise ValueError
        except (TypeError, ValueError):
            return jsonify({"error": "timeout must be a positive number"}), 400

    config = current_app.config["DISPATCH_CONFIG"]

    # Validate AI configuration
    try:
        validate_ai_config(config)
    except TranslationError as e:
        logger.warning("AI configuration validation failed: %s", e)
        error_response = {"error": str(e), "code": e.code or "ai_config_error"}
        if e.details:
            error_response["details"] = e.details
        return jsonify(error_response), 400

    try:
        job = create_translation_job(
            documents,
            config,
            prompt_ids=prompt_ids,
            reassign_on_failure=reassign_on_failure,
            timeout=timeout,
            transport=current_app.config.get("HTTP_TRANSPORT"),
        )
        return jsonify({"job_id": job.job_id, "job": serialize_job(job)}), 202
    except Exception as e:
        logger.exception("Failed to create translation job: %s", e)
        return jsonify({"error": f"Failed to create translation job: {str(e)}"}), 500


@translation_bp.get("/translate/<job_id>")
def get_translation_progress(job_id: str):
    """Return status for an asynchronous translation job."""
    job = get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found or expired"}), 404
    return jsonify(serialize_job(job))


@translation_bp.post("/translate/<job_id>/cancel")
def cancel_translation_job(job_id: str):
    """Cancel a running translation job."""
    job = get_job(job_id)
    if not job:
        return jsonify({"error": "Job not found or expired"}), 404

    if cancel_job(job_id):
        return jsonify({"status": "cancellation_requested", "job_id": job_id})
    return jsonify({"error": "Job has already finished"}), 400
