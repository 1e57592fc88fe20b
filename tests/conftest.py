"""Shared fixtures: fake time, fake providers and fake HTTP."""

import asyncio
import json
from typing import Callable, List

import httpx
import pytest

from translate_dispatch.ai.providers import Provider
from translate_dispatch.config import merge_config


class FakeClock:
    """Millisecond clock whose async sleep advances time instantly."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds * 1000
        await asyncio.sleep(0)


class ScriptedClient:
    """Stands in for TranslationClient; behaviour[provider_id](text, call_index) returns or raises."""

    def __init__(self, behaviour):
        self.behaviour = behaviour
        self.calls = []

    async def send(self, text, provider, system_prompt="", rate_limiter=None):
        index = sum(1 for provider_id, _ in self.calls if provider_id == provider.id)
        self.calls.append((provider.id, text))
        await asyncio.sleep(0)
        return self.behaviour[provider.id](text, index)

    def texts_for(self, provider_id):
        return [text for pid, text in self.calls if pid == provider_id]

    async def aclose(self):
        pass


def make_provider(provider_id: str = "a", rpm: float = 0, api_key: str = "sk-test", **kwargs) -> Provider:
    return Provider(
        id=provider_id,
        name=kwargs.pop("name", provider_id.upper()),
        api_base_url=kwargs.pop("api_base_url", f"https://{provider_id}.example.com/v1"),
        api_key=api_key,
        model=kwargs.pop("model", "test-model"),
        requests_per_minute=rpm,
        temperature=kwargs.pop("temperature", 0.2),
    )


def chat_response(content, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, json={"choices": [{"message": {"content": content}}]})


def request_json(request: httpx.Request):
    return json.loads(request.content.decode("utf-8"))


def translating_handler(prefix: str = "T:") -> Callable[[httpx.Request], httpx.Response]:
    """Echo the user message back with a prefix."""
    def handler(request: httpx.Request) -> httpx.Response:
        body = request_json(request)
        return chat_response(prefix + body["messages"][-1]["content"])
    return handler


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Never read a developer's real config file."""
    monkeypatch.setenv("TRANSLATE_DISPATCH_CONFIG", str(tmp_path / "missing-config.json"))


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provider_factory():
    return make_provider


@pytest.fixture
def config_factory():
    def factory(**overrides):
        base = {
            "providers": [
                {
                    "id": "alpha",
                    "name": "Alpha",
                    "api_base_url": "https://alpha.example.com/v1",
                    "api_key": "sk-alpha",
                    "model": "alpha-model",
                    "rpm": 0,
                },
                {
                    "id": "beta",
                    "name": "Beta",
                    "api_base_url": "https://beta.example.com/v1/",
                    "api_key": "sk-beta",
                    "model": "beta-model",
                    "rpm": 0,
                },
            ],
            "provider_selection": "alpha",
        }
        base.update(overrides)
        return merge_config(base)
    return factory
