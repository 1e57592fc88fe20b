"""
Provider and Prompt Registry

This module turns loosely-typed configuration blobs into validated values:
- Provider: an OpenAI-compatible endpoint with credentials, model and rate limit
- Prompt: a named system-prompt fragment

Every function here is pure: no network access, no file access.
"""

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from translate_dispatch.config import (
    DEFAULT_API_BASE_URL,
    DEFAULT_MODEL,
    DEFAULT_PROMPTS,
    DEFAULT_TEMPERATURE,
    LEGACY_PROVIDER_ID,
)
from translate_dispatch.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Provider:
    """A configured translation endpoint. Identity is ``id``."""
    id: str
    name: str = field(compare=False)
    api_base_url: str = field(compare=False)
    api_key: str = field(default="", compare=False, repr=False)
    model: str = field(default=DEFAULT_MODEL, compare=False)
    requests_per_minute: float = field(default=0, compare=False)
    temperature: float = field(default=DEFAULT_TEMPERATURE, compare=False)

    @property
    def is_rate_limited(self) -> bool:
        return is_finite_limit(self.requests_per_minute)

    @property
    def endpoint(self) -> str:
        return f"{self.api_base_url}/chat/completions"

    def to_dict(self, mask_key: bool = True) -> Dict[str, Any]:
        api_key = self.api_key
        if mask_key and api_key:
            api_key = f"{api_key[:3]}***" if len(api_key) > 6 else "***"
        return {
            "id": self.id,
            "name": self.name,
            "api_base_url": self.api_base_url,
            "api_key": api_key,
            "model": self.model,
            "rpm": self.requests_per_minute,
            "temperature": self.temperature,
        }


@dataclass(frozen=True)
class Prompt:
    """A named system-prompt fragment."""
    id: str
    name: str
    content: str


def is_finite_limit(rpm: Any) -> bool:
    """True when ``rpm`` is a positive finite number."""
    if isinstance(rpm, bool) or not isinstance(rpm, (int, float)):
        return False
    return math.isfinite(rpm) and rpm > 0


def _load_list(raw: Any) -> Optional[List[Any]]:
    """Decode a JSON string or pass a list through; anything else is None."""
    if isinstance(raw, str):
        if not raw.strip():
            return None
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring configuration blob that is not valid JSON")
            return None
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return None


def _text(item: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = item.get(key)
        if value is not None:
            return str(value).strip()
    return ""


def _number(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _rpm(item: Dict[str, Any]) -> float:
    value = item.get("rpm", item.get("requests_per_minute", item.get("requestsPerMinute")))
    if value is None or isinstance(value, bool):
        return 0
    try:
        # inf is kept: it means unlimited, like any other non-finite value
        return float(value)
    except (TypeError, ValueError):
        return 0


def parse_provider(item: Any) -> Optional[Provider]:
    """Validate a single raw provider entry; None when it is unusable."""
    if not isinstance(item, dict):
        return None

    provider_id = _text(item, "id")
    name = _text(item, "name")
    api_base_url = _text(item, "api_base_url", "apiBaseUrl").rstrip("/")
    if not provider_id or not name or not api_base_url:
        return None

    return Provider(
        id=provider_id,
        name=name,
        api_base_url=api_base_url,
        api_key=_text(item, "api_key", "apiKey"),
        model=_text(item, "model") or DEFAULT_MODEL,
        requests_per_minute=_rpm(item),
        temperature=_number(item.get("temperature"), DEFAULT_TEMPERATURE),
    )


def parse_providers(raw: Any) -> List[Provider]:
    """
    Validate a list of raw provider configurations.

    Args:
        raw: JSON string or list of dicts

    Returns:
        Providers in configuration order. Entries missing id, name or
        api_base_url are dropped, as are later duplicates of an id.
    """
    entries = _load_list(raw) or []
    providers: List[Provider] = []
    seen = set()
    for entry in entries:
        provider = parse_provider(entry)
        if provider is None:
            logger.debug(f"Dropping invalid provider entry: {entry!r}"[:200])
            continue
        if provider.id in seen:
            logger.warning(f"Duplicate provider id '{provider.id}' ignored")
            continue
        seen.add(provider.id)
        providers.append(provider)
    return providers


def legacy_provider(config: Dict[str, Any]) -> Provider:
    """Build the single fallback provider from the flat ``legacy`` section."""
    legacy = config.get("legacy")
    if not isinstance(legacy, dict):
        legacy = {}
    return Provider(
        id=LEGACY_PROVIDER_ID,
        name="Legacy",
        api_base_url=(_text(legacy, "api_base_url", "apiBaseUrl") or DEFAULT_API_BASE_URL).rstrip("/"),
        api_key=_text(legacy, "api_key", "apiKey"),
        model=_text(legacy, "model") or DEFAULT_MODEL,
        requests_per_minute=_rpm(legacy),
        temperature=DEFAULT_TEMPERATURE,
    )


def get_all_providers(config: Dict[str, Any]) -> List[Provider]:
    providers = parse_providers(config.get("providers"))
    return providers if providers else [legacy_provider(config)]


def _selection_ids(raw: Any) -> List[str]:
    if isinstance(raw, str) and raw and not raw.lstrip().startswith("["):
        return [raw.strip()]
    entries = _load_list(raw) or []
    return [str(entry).strip() for entry in entries if entry is not None and str(entry).strip()]


def resolve_selected_provider(config: Dict[str, Any]) -> Provider:
    """The provider named by ``provider_selection``, else the first registered one."""
    providers = get_all_providers(config)
    selected_id = config.get("provider_selection") or ""
    for provider in providers:
        if provider.id == selected_id:
            return provider
    return providers[0]


def resolve_providers(config: Dict[str, Any]) -> Tuple[Provider, ...]:
    """
    Resolve the providers taking part in a dispatch batch.

    Serial mode (parallel disabled) yields exactly one provider. Parallel mode
    yields the registered providers named in ``parallel_providers``, in
    registration order; an empty or unknown selection falls back to the
    selected provider.
    """
    if not config.get("parallel_enabled"):
        return (resolve_selected_provider(config),)

    selected_ids = set(_selection_ids(config.get("parallel_providers")))
    if not selected_ids:
        return (resolve_selected_provider(config),)

    selected = tuple(p for p in get_all_providers(config) if p.id in selected_ids)
    return selected if selected else (resolve_selected_provider(config),)


def _default_prompts() -> List[Prompt]:
    return [Prompt(**prompt) for prompt in DEFAULT_PROMPTS]


def parse_prompts(raw: Any) -> List[Prompt]:
    """Validate prompt entries; a blob that is not a list yields the defaults."""
    entries = _load_list(raw)
    if entries is None:
        return _default_prompts()

    prompts = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        prompt_id = _text(entry, "id")
        name = _text(entry, "name")
        content = str(entry.get("content") or "")
        if prompt_id and name and content:
            prompts.append(Prompt(id=prompt_id, name=name, content=content))
    return prompts


def select_prompts(
    prompts: Sequence[Prompt],
    prompt_ids: Optional[Iterable[str]] = None,
    default_selection: Any = None,
) -> List[Prompt]:
    """
    Pick the prompts that make up the system message.

    Explicit ``prompt_ids`` win; when none of them match, the first default
    prompt is used. Without explicit ids the configured single selection is
    used, falling back to the first registered prompt.
    """
    ids = [prompt_id for prompt_id in (prompt_ids or []) if prompt_id]
    if ids:
        wanted = set(ids)
        selected = [prompt for prompt in prompts if prompt.id in wanted]
        return selected if selected else _default_prompts()[:1]

    selection = _selection_ids(default_selection)
    if not selection:
        return [prompts[0]] if prompts else _default_prompts()[:1]
    for prompt in prompts:
        if prompt.id == selection[0]:
            return [prompt]
    return _default_prompts()[:1]


def build_system_prompt(prompts: Iterable[Prompt]) -> str:
    """Concatenate prompts, each under a bracketed label."""
    return "\n\n".join(f"【{prompt.name}】\n{prompt.content}" for prompt in prompts)


def resolve_system_prompt(config: Dict[str, Any], prompt_ids: Optional[Iterable[str]] = None) -> str:
    prompts = parse_prompts(config.get("prompts"))
    return build_system_prompt(select_prompts(prompts, prompt_ids, config.get("prompt_selection")))
