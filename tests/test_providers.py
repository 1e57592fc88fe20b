"""Tests for the provider and prompt registry."""

import json
import math

import pytest

from translate_dispatch.ai.providers import (
    Prompt,
    Provider,
    build_system_prompt,
    get_all_providers,
    is_finite_limit,
    parse_prompts,
    parse_providers,
    resolve_providers,
    resolve_selected_provider,
    resolve_system_prompt,
    select_prompts,
)
from translate_dispatch.config import DEFAULT_MODEL, DEFAULT_TEMPERATURE, merge_config


class TestParseProviders:
    def test_drops_entries_missing_required_fields(self):
        providers = parse_providers([
            {"id": "ok", "name": "OK", "api_base_url": "https://ok.example.com"},
            {"name": "No id", "api_base_url": "https://x.example.com"},
            {"id": "noname", "api_base_url": "https://x.example.com"},
            {"id": "nourl", "name": "No URL"},
            {"id": "  ", "name": "Blank", "api_base_url": "https://x.example.com"},
            "not a dict",
            None,
        ])
        assert [p.id for p in providers] == ["ok"]

    def test_accepts_camel_case_json_blob(self):
        raw = json.dumps([{
            "id": "openai",
            "name": "OpenAI",
            "apiBaseUrl": "https://api.openai.com/v1/",
            "apiKey": " sk-123 ",
            "model": "gpt-4o",
            "rpm": 30,
            "temperature": 0.7,
        }])
        [provider] = parse_providers(raw)
        assert provider.api_base_url == "https://api.openai.com/v1"
        assert provider.endpoint == "https://api.openai.com/v1/chat/completions"
        assert provider.api_key == "sk-123"
        assert provider.model == "gpt-4o"
        assert provider.requests_per_minute == 30
        assert provider.temperature == 0.7

    def test_malformed_fields_fall_back_to_defaults(self):
        [provider] = parse_providers([{
            "id": "p",
            "name": "P",
            "api_base_url": "https://p.example.com",
            "rpm": "lots",
            "temperature": "warm",
        }])
        assert provider.model == DEFAULT_MODEL
        assert provider.requests_per_minute == 0
        assert provider.temperature == DEFAULT_TEMPERATURE
        assert not provider.is_rate_limited

    @pytest.mark.parametrize("raw", ["", "not json", "{}", 42, None, {"id": "x"}])
    def test_non_list_input_yields_nothing(self, raw):
        assert parse_providers(raw) == []

    def test_duplicate_ids_keep_first(self):
        providers = parse_providers([
            {"id": "p", "name": "First", "api_base_url": "https://one.example.com"},
            {"id": "p", "name": "Second", "api_base_url": "https://two.example.com"},
        ])
        assert len(providers) == 1
        assert providers[0].name == "First"

    def test_identity_is_id(self):
        a = Provider(id="x", name="A", api_base_url="https://a")
        b = Provider(id="x", name="B", api_base_url="https://b", api_key="k")
        assert a == b
        assert len({a, b}) == 1

    def test_to_dict_masks_key(self):
        provider = Provider(id="x", name="X", api_base_url="https://x", api_key="sk-secret-value")
        assert provider.to_dict()["api_key"] == "sk-***"
        assert provider.to_dict(mask_key=False)["api_key"] == "sk-secret-value"


@pytest.mark.parametrize(
    "rpm, expected",
    [(10, True), (0.5, True), (0, False), (-5, False), (math.inf, False), (math.nan, False), (None, False), (True, False)],
)
def test_is_finite_limit(rpm, expected):
    assert is_finite_limit(rpm) is expected


class TestResolveProviders:
    def test_serial_uses_selected_provider(self, config_factory):
        config = config_factory(provider_selection="beta")
        assert resolve_providers(config) == (Provider(id="beta", name="", api_base_url=""),)

    def test_unknown_selection_falls_back_to_first(self, config_factory):
        config = config_factory(provider_selection="gamma")
        assert resolve_selected_provider(config).id == "alpha"

    def test_no_valid_providers_uses_legacy(self):
        config = merge_config({
            "providers": [{"id": "broken"}],
            "legacy": {"api_key": "sk-legacy", "rpm": "12"},
        })
        [provider] = get_all_providers(config)
        assert provider.id == "legacy"
        assert provider.api_key == "sk-legacy"
        assert provider.requests_per_minute == 12
        assert provider.temperature == DEFAULT_TEMPERATURE

    def test_parallel_keeps_registration_order(self, config_factory):
        config = config_factory(parallel_enabled=True, parallel_providers=["beta", "alpha"])
        assert [p.id for p in resolve_providers(config)] == ["alpha", "beta"]
        assert resolve_providers(config)[1].api_base_url == "https://beta.example.com/v1"

    def test_parallel_accepts_json_selection(self, config_factory):
        config = config_factory(parallel_enabled=True, parallel_providers='["beta"]')
        assert [p.id for p in resolve_providers(config)] == ["beta"]

    @pytest.mark.parametrize("selection", [[], ["nobody"], "", None])
    def test_parallel_empty_or_unknown_selection_falls_back(self, config_factory, selection):
        config = config_factory(parallel_enabled=True, parallel_providers=selection, provider_selection="beta")
        assert [p.id for p in resolve_providers(config)] == ["beta"]

    def test_parallel_disabled_ignores_selection(self, config_factory):
        config = config_factory(parallel_enabled=False, parallel_providers=["alpha", "beta"])
        assert [p.id for p in resolve_providers(config)] == ["alpha"]


class TestPrompts:
    def test_parse_prompts_falls_back_to_defaults_for_non_list(self):
        prompts = parse_prompts("garbage")
        assert prompts and all(isinstance(p, Prompt) for p in prompts)

    def test_parse_prompts_drops_incomplete(self):
        prompts = parse_prompts([
            {"id": "a", "name": "A", "content": "do A"},
            {"id": "b", "name": "B"},
            {"name": "C", "content": "do C"},
        ])
        assert [p.id for p in prompts] == ["a"]

    def test_select_explicit_ids(self):
        prompts = parse_prompts([
            {"id": "a", "name": "A", "content": "do A"},
            {"id": "b", "name": "B", "content": "do B"},
        ])
        assert [p.id for p in select_prompts(prompts, ["b", "a"])] == ["a", "b"]

    def test_select_unknown_ids_uses_first_default(self):
        prompts = parse_prompts([{"id": "a", "name": "A", "content": "do A"}])
        [prompt] = select_prompts(prompts, ["zzz"])
        assert prompt.id == "translate-zh"

    def test_select_configured_selection(self):
        prompts = parse_prompts([
            {"id": "a", "name": "A", "content": "do A"},
            {"id": "b", "name": "B", "content": "do B"},
        ])
        assert [p.id for p in select_prompts(prompts, None, "b")] == ["b"]
        assert [p.id for p in select_prompts(prompts, None, None)] == ["a"]

    def test_build_system_prompt_labels_each_prompt(self):
        text = build_system_prompt([Prompt("a", "Academic", "Be formal."), Prompt("b", "Terms", "Keep terms.")])
        assert text == "【Academic】\nBe formal.\n\n【Terms】\nKeep terms."

    def test_build_system_prompt_empty(self):
        assert build_system_prompt([]) == ""

    def test_resolve_system_prompt_from_config(self):
        config = merge_config({
            "prompts": [{"id": "a", "name": "A", "content": "do A"}],
            "prompt_selection": "a",
        })
        assert resolve_system_prompt(config) == "【A】\ndo A"
