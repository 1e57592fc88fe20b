"""
Translation Manager Module

Main TranslationManager class that coordinates a translation session:
- Validate provider configuration
- Dispatch each document's units to the configured providers
- Keep one progress aggregator across all documents
- Summarize per-document outcomes
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

import httpx

from translate_dispatch.ai.providers import resolve_system_prompt
from translate_dispatch.ai.service import build_client, validate_ai_config
from translate_dispatch.config import load_config, get_float_setting
from translate_dispatch.logger import get_logger
from translate_dispatch.translation.dispatcher import (
    CANCELLED,
    Dispatcher,
    DispatchResult,
    DispatchStatus,
    TranslationUnit,
    UnitOutcome,
    build_result,
    finish_status,
)
from translate_dispatch.translation.progress import ProgressAggregator
from translate_dispatch.translation.rate_limiter import RateLimiter

logger = get_logger(__name__)


@dataclass
class Document:
    """A titled batch of units translated as one dispatch."""
    title: str
    units: List[TranslationUnit] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], index: int = 0) -> "Document":
        title = str(data.get("title") or f"Document {index + 1}")
        units = []
        for position, raw in enumerate(data.get("units") or []):
            if isinstance(raw, str):
                units.append(TranslationUnit(text=raw, ref=position))
            elif isinstance(raw, dict):
                units.append(TranslationUnit(text=str(raw.get("text") or ""), ref=raw.get("ref", position)))
        return cls(title=title, units=units)


def result_log_lines(results: Iterable[DispatchResult]) -> List[str]:
    """One log line per document, grouped by status."""
    results = list(results)
    lines = []
    for result in results:
        if result.status == DispatchStatus.TRANSLATED:
            lines.append(f"[done] {result.title} ({result.count} units)")
    for result in results:
        if result.status == DispatchStatus.PARTIAL:
            lines.append(f"[partial] {result.title} ({result.count} units, {result.reason})")
    for result in results:
        if result.status == DispatchStatus.SKIPPED:
            lines.append(f"[skipped] {result.title} ({result.reason})")
    for result in results:
        if result.status == DispatchStatus.FAILED:
            lines.append(f"[failed] {result.title} ({result.reason})")
    return lines


def summarize_results(results: Iterable[DispatchResult]) -> List[str]:
    """Human-readable summary blocks, one per non-empty status group."""
    results = list(results)
    groups = [
        ("Translated", DispatchStatus.TRANSLATED, lambda r: f"{r.title} ({r.count} units)"),
        ("Partially completed", DispatchStatus.PARTIAL, lambda r: f"{r.title} ({r.count} units, {r.reason})"),
        ("Skipped", DispatchStatus.SKIPPED, lambda r: f"{r.title} ({r.reason})"),
        ("Failed", DispatchStatus.FAILED, lambda r: f"{r.title} ({r.reason})"),
    ]
    messages = []
    for heading, status, describe in groups:
        matching = [describe(result) for result in results if result.status == status]
        if matching:
            messages.append(f"{heading}:\n" + "\n".join(matching))
    return messages


class TranslationManager:
    """
    Manages translation sessions over one or more documents.

    Features:
    - Serial or parallel dispatch depending on the resolved providers
    - One rate limiter shared by every document of the manager
    - Progress tracking across documents
    - Cooperative cancellation
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep=None,
        clock=None,
    ):
        """
        Initialize translation manager.

        Args:
            config: Configuration dict (loaded from the config file when omitted)
            http_client: httpx.AsyncClient shared by all requests
            sleep: Awaitable sleep used for throttling and rate-limit backoff
            clock: Millisecond clock used by the rate limiter

        Raises:
            ConfigError: If no usable provider is configured
        """
        self.config = config if config is not None else load_config()
        self.providers = validate_ai_config(self.config)
        self.rate_limiter = RateLimiter(clock=clock, sleep=sleep)
        self._http_client = http_client
        self._sleep = sleep
        self._dispatcher: Optional[Dispatcher] = None
        self._cancel_requested = False

        logger.info(
            f"Initialized translation manager with providers: "
            f"{', '.join(provider.id for provider in self.providers)}"
        )

    def cancel(self) -> None:
        """Stop the running document and skip the remaining ones."""
        self._cancel_requested = True
        if self._dispatcher is not None:
            self._dispatcher.cancel()

    async def translate_documents(
        self,
        documents: Iterable[Document],
        prompt_ids: Optional[List[str]] = None,
        reassign_on_failure: Optional[bool] = None,
        progress: Optional[ProgressAggregator] = None,
        on_unit_translated: Optional[Callable[[UnitOutcome], None]] = None,
        timeout: Optional[float] = None,
    ) -> List[DispatchResult]:
        """
        Translate every document in order.

        Blank units are dropped before counting. Each document is one dispatch
        batch; the aggregator's total covers the whole session.

        Returns:
            One DispatchResult per document, in input order.
        """
        progress = progress or ProgressAggregator()
        system_prompt = resolve_system_prompt(self.config, prompt_ids)
        if reassign_on_failure is None:
            reassign_on_failure = bool(self.config.get("reassign_on_failure", False))
        if timeout is None:
            timeout = get_float_setting(self.config, "dispatch_timeout", None)

        prepared = [
            Document(title=document.title, units=[unit for unit in document.units if unit.text.strip()])
            for document in documents
        ]
        progress.start_batch(sum(len(document.units) for document in prepared))

        results: List[DispatchResult] = []
        client = build_client(self.config, http_client=self._http_client, sleep=self._sleep)
        try:
            for document in prepared:
                if self._cancel_requested:
                    results.append(build_result(
                        0, CANCELLED, document.title,
                        outcomes=[UnitOutcome(unit=unit) for unit in document.units],
                    ))
                    continue

                progress.set_status(f"Translating: {document.title}")
                self._dispatcher = Dispatcher(
                    self.providers,
                    client,
                    system_prompt=system_prompt,
                    reassign_on_failure=reassign_on_failure,
                    rate_limiter=self.rate_limiter,
                    progress=progress,
                    on_unit_translated=on_unit_translated,
                    timeout=timeout,
                )
                if self._cancel_requested:
                    self._dispatcher.cancel()
                results.append(await self._dispatcher.run(document.units, title=document.title))
        finally:
            self._dispatcher = None
            await client.aclose()

        for line in result_log_lines(results):
            progress.append_log(line)
        progress.finish_batch(finish_status(results))
        return results
