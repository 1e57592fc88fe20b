"""
Translation Progress

Contains the ProviderProgress dataclass and the ProgressAggregator that keeps
overall counters, a status line and a capped log for presentation layers.
"""

from dataclasses import dataclass, asdict
from typing import Any, Callable, Dict, Iterable, List, Optional

from translate_dispatch.config import MAX_LOG_ENTRIES
from translate_dispatch.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ProviderProgress:
    """Progress of one provider's worker within a dispatch batch."""
    provider_id: str
    name: str
    total: int = 0                   # Units taken by this provider
    done: int = 0                    # Units translated
    failed: int = 0                  # Units that failed on this provider
    last_error: Optional[str] = None

    @property
    def remaining(self) -> int:
        return self.total - self.done - self.failed

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["remaining"] = self.remaining
        return payload


class ProgressAggregator:
    """
    Counters for a translation session.

    All mutations are plain field updates; callers on the same event loop can
    use it without locking. Listeners are invoked synchronously.
    """

    def __init__(
        self,
        on_provider_progress: Optional[Callable[[List[ProviderProgress]], None]] = None,
        on_log: Optional[Callable[[str], None]] = None,
        on_change: Optional[Callable[["ProgressAggregator"], None]] = None,
        max_log_entries: int = MAX_LOG_ENTRIES,
    ):
        self.total = 0
        self.done = 0
        self.status = "Waiting"
        self.logs: List[str] = []
        self.providers: Dict[str, ProviderProgress] = {}
        self.max_log_entries = max_log_entries
        self._on_provider_progress = on_provider_progress
        self._on_log = on_log
        self._on_change = on_change

    def _call(self, listener, *args) -> None:
        """Invoke a listener; its errors are logged and never reach the dispatch workers."""
        if not listener:
            return
        try:
            listener(*args)
        except Exception:
            logger.exception(f"Progress listener {getattr(listener, '__name__', listener)!r} failed")

    def _changed(self) -> None:
        self._call(self._on_change, self)

    def start_batch(self, total: int) -> None:
        self.total = max(0, int(total))
        self.done = 0
        self.status = "Translating" if self.total > 0 else "No translatable units"
        self.logs = []
        self._changed()

    def set_status(self, status: str) -> None:
        self.status = status
        self._changed()

    def record_unit_done(self, step: int = 1) -> None:
        self.done = min(self.total, self.done + step)
        self._changed()

    def set_providers(self, providers: Iterable[Any]) -> None:
        """Reset per-provider records for a new dispatch batch."""
        self.providers = {
            provider.id: ProviderProgress(provider_id=provider.id, name=provider.name or provider.id)
            for provider in providers
        }
        self._notify_providers()

    def record_provider_progress(
        self,
        provider_id: str,
        total: int = 0,
        done: int = 0,
        failed: int = 0,
        last_error: Optional[str] = None,
    ) -> ProviderProgress:
        """Apply counter deltas to one provider's record."""
        record = self.providers.get(provider_id)
        if record is None:
            record = ProviderProgress(provider_id=provider_id, name=provider_id)
            self.providers[provider_id] = record
        record.total += total
        record.done += done
        record.failed += failed
        if last_error is not None:
            record.last_error = last_error
        self._notify_providers()
        return record

    def provider_snapshot(self) -> List[ProviderProgress]:
        return [
            ProviderProgress(**asdict(record))
            for record in self.providers.values()
        ]

    def _notify_providers(self) -> None:
        if self._on_provider_progress:
            self._call(self._on_provider_progress, self.provider_snapshot())
        self._changed()

    def append_log(self, message: str) -> None:
        self.logs.append(message)
        if len(self.logs) > self.max_log_entries:
            del self.logs[: len(self.logs) - self.max_log_entries]
        self._call(self._on_log, message)
        self._changed()

    def finish_batch(self, status: str) -> None:
        self.status = status
        self._changed()

    def progress_text(self) -> str:
        if self.total <= 0:
            return "0/0 (0%)"
        percent = round(self.done / self.total * 100)
        return f"{self.done}/{self.total} ({percent}%)"

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe view of the current state."""
        return {
            "total": self.total,
            "done": self.done,
            "status": self.status,
            "progress_text": self.progress_text(),
            "providers": [record.to_dict() for record in self.providers.values()],
            "logs": list(self.logs),
        }
