"""Tests for configuration loading."""

import json

from translate_dispatch import config as config_module
from translate_dispatch.config import (
    DEFAULT_CONFIG,
    get_config_path,
    get_float_setting,
    get_int_setting,
    load_config,
    merge_config,
)


def test_missing_file_yields_defaults(tmp_path):
    assert load_config(tmp_path / "nope.json") == DEFAULT_CONFIG


def test_malformed_file_yields_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    assert load_config(path) == DEFAULT_CONFIG


def test_non_object_file_yields_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")
    assert load_config(path) == DEFAULT_CONFIG


def test_file_overrides_are_merged(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"parallel_enabled": True, "legacy": {"api_key": "sk-file"}}), encoding="utf-8")

    config = load_config(path)

    assert config["parallel_enabled"] is True
    assert config["legacy"]["api_key"] == "sk-file"
    assert config["legacy"]["model"] == DEFAULT_CONFIG["legacy"]["model"]
    assert config["rate_limit_retry_delay"] == 60.0


def test_environment_variable_selects_file(tmp_path, monkeypatch):
    path = tmp_path / "custom.json"
    path.write_text(json.dumps({"provider_selection": "from-env"}), encoding="utf-8")
    monkeypatch.setenv(config_module.CONFIG_ENV_VAR, str(path))

    assert get_config_path() == path
    assert load_config()["provider_selection"] == "from-env"


def test_defaults_are_not_shared():
    first = merge_config(None)
    first["providers"].append({"id": "extra"})
    first["legacy"]["api_key"] = "changed"
    assert merge_config({}) == DEFAULT_CONFIG


def test_numeric_settings_fall_back_when_malformed():
    config = {"delay": "abc", "retries": "3", "flag": True}
    assert get_float_setting(config, "delay", 60.0) == 60.0
    assert get_float_setting(config, "missing", None) is None
    assert get_int_setting(config, "retries", None) == 3
    assert get_int_setting(config, "flag", 1) == 1
