"""
Translation module - Core dispatch functionality

This module provides:
- RateLimiter: Per-provider sliding-window throttle
- ProgressAggregator / ProviderProgress: Progress tracking
- Dispatcher: Serial and parallel dispatch of text units
- TranslationManager: Multi-document translation sessions
"""

from translate_dispatch.translation.rate_limiter import RateLimiter
from translate_dispatch.translation.progress import ProgressAggregator, ProviderProgress
from translate_dispatch.translation.dispatcher import (
    Dispatcher,
    DispatchResult,
    DispatchStatus,
    TranslationUnit,
    UnitOutcome,
    UnitStatus,
    WorkQueue,
    dispatch,
)
from translate_dispatch.translation.manager import (
    Document,
    TranslationManager,
    summarize_results,
)
