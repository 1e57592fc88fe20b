"""
Background job helpers for long-running translation sessions.

Each job runs its own asyncio event loop in a daemon thread; the registry is
shared with the Flask request threads and guarded by a lock.
"""

from __future__ import annotations

import asyncio
import threading
import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

import httpx

from translate_dispatch.logger import get_logger
from translate_dispatch.translation.manager import (
    Document,
    TranslationManager,
    summarize_results,
)
from translate_dispatch.translation.progress import ProgressAggregator

logger = get_logger(__name__)


@dataclass
class JobState:
    """In-memory representation of an asynchronous translation job."""

    job_id: str
    documents: List[Dict[str, Any]] = field(default_factory=list)
    prompt_ids: List[str] = field(default_factory=list)
    reassign_on_failure: Optional[bool] = None
    timeout: Optional[float] = None
    cancel_requested: bool = False
    state: str = "pending"  # pending|running|completed|failed|cancelled
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    progress: Dict[str, Any] = field(default_factory=dict)
    results: Optional[List[Dict[str, Any]]] = None
    summary: List[str] = field(default_factory=list)
    error: Optional[str] = None
    last_update: float = field(default_factory=time.time)

    def request_cancel(self):
        """Mark this job as requested for cancellation."""
        self.cancel_requested = True
        self.last_update = time.time()

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        # Documents can be large; the caller already has them
        payload.pop("documents", None)
        payload["document_count"] = len(self.documents)
        return payload


_jobs: Dict[str, JobState] = {}
_threads: Dict[str, threading.Thread] = {}
_runners: Dict[str, "_JobRunner"] = {}
_jobs_lock = threading.Lock()
_JOB_RETENTION_SECONDS = 600  # Retain job info for 10 minutes after completion


class _JobRunner:
    """Owns the event loop and manager of one job so it can be cancelled from another thread."""

    def __init__(self, job: JobState, config: Dict[str, Any], transport: Optional[httpx.AsyncBaseTransport]):
        self.job = job
        self.config = config
        self.transport = transport
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self.manager: Optional[TranslationManager] = None

    def cancel(self) -> None:
        loop, manager = self.loop, self.manager
        if loop is not None and manager is not None and not loop.is_closed():
            loop.call_soon_threadsafe(manager.cancel)

    def run(self) -> None:
        job = self.job
        job.state = "running"
        job.started_at = time.time()
        job.last_update = job.started_at
        try:
            results = asyncio.run(self._translate())
            with _jobs_lock:
                job.results = [result.to_dict() for result in results]
                job.summary = summarize_results(results)
                job.state = "cancelled" if job.cancel_requested else "completed"
                job.finished_at = time.time()
                job.last_update = job.finished_at
            logger.info(
                "Translation job %s finished (state=%s, translated=%s)",
                job.job_id,
                job.state,
                sum(result.count for result in results),
            )
        except Exception as exc:
            error_type = type(exc).__name__
            error_message = str(exc)
            with _jobs_lock:
                job.state = "failed"
                job.error = f"{error_type}: {error_message}"
                job.finished_at = time.time()
                job.last_update = job.finished_at
            logger.exception(
                "✗ Translation job %s failed: %s: %s",
                job.job_id,
                error_type,
                error_message,
            )

    async def _translate(self):
        job = self.job
        self.loop = asyncio.get_running_loop()

        def on_change(progress: ProgressAggregator):
            with _jobs_lock:
                job.progress = progress.snapshot()
                job.last_update = time.time()

        progress = ProgressAggregator(on_change=on_change)
        documents = [Document.from_dict(data, index) for index, data in enumerate(job.documents)]

        http_client = None
        if self.transport is not None:
            http_client = httpx.AsyncClient(transport=self.transport)
        try:
            self.manager = TranslationManager(config=self.config, http_client=http_client)
            if job.cancel_requested:
                self.manager.cancel()
            return await self.manager.translate_documents(
                documents,
                prompt_ids=job.prompt_ids or None,
                reassign_on_failure=job.reassign_on_failure,
                progress=progress,
                timeout=job.timeout,
            )
        finally:
            if http_client is not None:
                await http_client.aclose()


def create_translation_job(
    documents: List[Dict[str, Any]],
    config: Dict[str, Any],
    prompt_ids: Optional[List[str]] = None,
    reassign_on_failure: Optional[bool] = None,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> JobState:
    """
    Create and launch an asynchronous translation job.

    Args:
        documents: Raw documents, each {"title", "units": [{"ref", "text"}]}.
        config: Configuration dict used to resolve providers and prompts.
        prompt_ids: Optional prompt ids for the system message.
        reassign_on_failure: Overrides the configured reassignment policy.
        timeout: Optional per-document time limit in seconds.
        transport: Optional httpx transport (used by tests).

    Returns:
        JobState for the new job (already registered and running in background).
    """
    job_id = uuid.uuid4().hex
    job_state = JobState(
        job_id=job_id,
        documents=documents,
        prompt_ids=prompt_ids or [],
        reassign_on_failure=reassign_on_failure,
        timeout=timeout,
    )
    runner = _JobRunner(job_state, config, transport)

    thread = threading.Thread(
        target=runner.run,
        name=f"translation-job-{job_id}",
        daemon=True,
    )
    with _jobs_lock:
        _cleanup_jobs_locked()
        _jobs[job_id] = job_state
        _threads[job_id] = thread
        _runners[job_id] = runner

    thread.start()
    logger.info(
        "Translation job %s started (documents=%s, prompts=%s)",
        job_id,
        len(documents),
        job_state.prompt_ids or "default",
    )
    return job_state


def get_job(job_id: str) -> Optional[JobState]:
    """Fetch a job by ID (if still retained)."""
    with _jobs_lock:
        job = _jobs.get(job_id)
        if job and job.finished_at and (time.time() - job.finished_at) > _JOB_RETENTION_SECONDS:
            # Expired; remove
            _forget_locked(job_id)
            return None
        return job


def cancel_job(job_id: str) -> bool:
    """
    Request cancellation of a running job.

    Args:
        job_id: The job ID to cancel.

    Returns:
        True if job was found and cancellation requested, False otherwise.
    """
    with _jobs_lock:
        job = _jobs.get(job_id)
        runner = _runners.get(job_id)
        if not job:
            return False
        if job.state in ("completed", "failed", "cancelled"):
            return False  # Already finished
        job.request_cancel()
    if runner is not None:
        runner.cancel()
    logger.info("Cancellation requested for job %s", job_id)
    return True


def wait_for_job(job_id: str, timeout: Optional[float] = None) -> bool:
    """Block until the job's thread ends. False if still running after ``timeout``."""
    with _jobs_lock:
        thread = _threads.get(job_id)
    if thread is None:
        return True
    thread.join(timeout)
    return not thread.is_alive()


def serialize_job(job: JobState) -> Dict[str, Any]:
    """Convert JobState into JSON-safe dict."""
    with _jobs_lock:
        return job.to_dict()


def _forget_locked(job_id: str) -> None:
    _jobs.pop(job_id, None)
    _threads.pop(job_id, None)
    _runners.pop(job_id, None)


def _cleanup_jobs_locked():
    """Remove completed jobs that exceeded retention period (call with lock held)."""
    now = time.time()
    expired = [
        job_id
        for job_id, job in _jobs.items()
        if job.finished_at and (now - job.finished_at) > _JOB_RETENTION_SECONDS
    ]
    for job_id in expired:
        _forget_locked(job_id)
