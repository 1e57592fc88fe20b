import copy
import json
import os
from pathlib import Path
from typing import Dict, Any, Optional

from translate_dispatch.logger import get_logger

logger = get_logger(__name__)

# Dispatch constants
RATE_LIMIT_WINDOW_MS = 60_000
DEFAULT_RATE_LIMIT_RETRY_DELAY = 60.0  # Seconds to wait after a rate-limit response
DEFAULT_TIMEOUT = 120
MAX_LOG_ENTRIES = 200

# Provider constants
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.2
DEFAULT_API_BASE_URL = "https://api.openai.com/v1"
LEGACY_PROVIDER_ID = "legacy"

# Get base directory (project root)
BASE_DIR = Path(__file__).parent.parent
CONFIG_DIR = BASE_DIR / "config"
CONFIG_FILE = CONFIG_DIR / "config.json"
CONFIG_ENV_VAR = "TRANSLATE_DISPATCH_CONFIG"

# Default prompts
DEFAULT_PROMPTS = [
    {
        "id": "translate-zh",
        "name": "Translate to Chinese",
        "content": "Translate the following text into Chinese, keeping terminology accurate.",
    },
    {
        "id": "summary-zh",
        "name": "Chinese key points",
        "content": "Summarize the following text in Chinese as a list of at most 5 key points.",
    },
]

# Default configuration template
DEFAULT_CONFIG = {
    "providers": [
        {
            "id": "openai",
            "name": "OpenAI",
            "api_base_url": DEFAULT_API_BASE_URL,
            "api_key": "",
            "model": DEFAULT_MODEL,
            "rpm": 2000,
            "temperature": DEFAULT_TEMPERATURE,
        }
    ],
    "provider_selection": "openai",
    "parallel_enabled": False,
    "parallel_providers": [],
    "reassign_on_failure": False,
    "prompts": DEFAULT_PROMPTS,
    "prompt_selection": "translate-zh",
    # Used only when "providers" holds no valid entry
    "legacy": {
        "api_base_url": DEFAULT_API_BASE_URL,
        "api_key": "",
        "model": DEFAULT_MODEL,
        "rpm": 2000,
    },
    "rate_limit_retry_delay": DEFAULT_RATE_LIMIT_RETRY_DELAY,
    "max_rate_limit_retries": None,
    "timeout": DEFAULT_TIMEOUT,  # Per-request timeout in seconds
    "dispatch_timeout": None,  # Seconds allowed for one document's batch; None waits indefinitely
    "log_mode": "off",
}


def get_config_path() -> Path:
    """Config file location, overridable through the environment."""
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override)
    return CONFIG_FILE


def default_config() -> Dict[str, Any]:
    """Return a deep copy of the default configuration."""
    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge a partial configuration over the defaults (top-level keys only)."""
    config = default_config()
    if not isinstance(overrides, dict):
        return config
    for key, value in overrides.items():
        if key == "legacy" and isinstance(value, dict):
            config["legacy"].update(value)
        else:
            config[key] = copy.deepcopy(value)
    return config


def load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the configuration from the JSON config file.

    Missing, unreadable or malformed files fall back to the defaults.
    """
    config_path = Path(path) if path else get_config_path()
    if not config_path.exists():
        logger.debug(f"Config file not found, using defaults: {config_path}")
        return default_config()

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse config file {config_path}: {e}")
        logger.warning("Using default configuration")
        return default_config()
    except OSError as e:
        logger.error(f"Failed to read config file {config_path}: {e}")
        logger.warning("Using default configuration")
        return default_config()

    if not isinstance(raw, dict):
        logger.warning(f"Config file {config_path} does not hold a JSON object, using defaults")
        return default_config()

    logger.debug(f"Configuration loaded from {config_path}")
    return merge_config(raw)


def get_float_setting(config: Dict[str, Any], key: str, default: Optional[float]) -> Optional[float]:
    """Read a numeric setting, falling back to ``default`` when malformed."""
    value = config.get(key, default)
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value for '{key}': {value!r}, using {default!r}")
        return default


def get_int_setting(config: Dict[str, Any], key: str, default: Optional[int]) -> Optional[int]:
    """Read an integer setting, falling back to ``default`` when malformed."""
    value = config.get(key, default)
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid value for '{key}': {value!r}, using {default!r}")
        return default
