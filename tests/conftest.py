"""Shared pytest fixtures."""

import asyncio
from pathlib import Path

import pytest
import yaml

from config.config_loader import AppConfig, DefaultsConfig, ModelConfig, OptionsConfig
from llm_synth.models import Message, ProviderResult, RequestOptions, Role, TokenUsage
from llm_synth.providers.base import ChatCompletion, ChatProvider, FragmentCallback
from llm_synth.registry import ProviderDescriptor, Registry


class FakeProvider(ChatProvider):
    """Test double ChatProvider with scripted content, delay and failure."""

    def __init__(
        self,
        provider_name: str = "fake",
        content: str = "Fake response",
        *,
        configured: bool = True,
        delay: float = 0.0,
        error: Exception | None = None,
        fragments: list[str] | None = None,
    ) -> None:
        env = f"{provider_name.upper()}_API_KEY"
        super().__init__(
            ModelConfig(
                name=provider_name,
                sdk="fake",
                model="fake-model",
                api_key_env=env,
                timeout_sec=30,
                max_tokens=4096,
            ),
            credentials={env: "sk-test"} if configured else {},
        )
        self._content = content
        self._delay = delay
        self._error = error
        self._fragments = fragments
        self.calls: list[tuple[str, list[Message], RequestOptions]] = []

    def _create_client(self, api_key: str) -> object:
        return object()

    async def chat(self, conversation: list[Message], options: RequestOptions) -> ChatCompletion:
        self.calls.append(("chat", conversation, options))
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error:
            raise self._error
        return ChatCompletion(
            content=self._content,
            model="fake-model",
            usage=TokenUsage(input_tokens=5, output_tokens=7, total_tokens=12),
            finish_reason="stop",
        )

    async def stream_chat(
        self,
        conversation: list[Message],
        on_fragment: FragmentCallback,
        options: RequestOptions,
    ) -> ChatCompletion:
        self.calls.append(("stream", conversation, options))
        content = ""
        for fragment in self._fragments if self._fragments is not None else [self._content]:
            if self._delay:
                await asyncio.sleep(self._delay)
            content += fragment
            on_fragment(fragment, content)
        if self._error:
            raise self._error
        return ChatCompletion(content=content, model="fake-model")


def make_registry(*providers: ChatProvider) -> Registry:
    return Registry(
        ProviderDescriptor(
            key=p.key(),
            display_name=p.key().title(),
            icon="*",
            color="#123456",
            provider=p,
        )
        for p in providers
    )


def ok_result(key: str, content: str, latency_ms: int) -> ProviderResult:
    return ProviderResult.ok(key, key.title(), "*", "#123456", content, latency_ms)


def failed_result(key: str, error: str = "boom") -> ProviderResult:
    return ProviderResult.failed(key, key.title(), "*", "#123456", error)


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="openai",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
        label="Test",
        icon="T",
        color="#000000",
    )


@pytest.fixture
def sample_app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(
            output_dir=tmp_path / "exports",
            data_dir=tmp_path / "data",
            selected_models=["chatgpt", "claude"],
            stream=False,
        ),
        models={
            "chatgpt": ModelConfig(
                name="chatgpt", sdk="openai", model="gpt-4o-mini",
                api_key_env="TEST_OPENAI_KEY", timeout_sec=60, max_tokens=4096,
                label="ChatGPT", icon="🤖", color="#10a37f",
            ),
            "claude": ModelConfig(
                name="claude", sdk="anthropic", model="claude-sonnet-4-20250514",
                api_key_env="TEST_ANTHROPIC_KEY", timeout_sec=60, max_tokens=4096,
                label="Claude", icon="🧠", color="#cc785c",
            ),
        },
        options=OptionsConfig(),
    )


@pytest.fixture
def sample_conversation() -> list[Message]:
    return [
        Message(Role.SYSTEM, "Be concise."),
        Message(Role.USER, "Should we use YAML or JSON for config?"),
    ]


@pytest.fixture
def settings_file(tmp_path: Path) -> Path:
    """A settings.yaml whose data and export dirs live under tmp_path."""
    settings = {
        "defaults": {
            "selected_models": ["alpha", "beta"],
            "stream": False,
            "output_dir": str(tmp_path / "exports"),
            "data_dir": str(tmp_path / "data"),
            "history_limit": 50,
        },
        "options": {"temperature": 0.5, "max_tokens": 2048},
        "models": {
            "alpha": {
                "sdk": "openai",
                "model": "alpha-1",
                "api_key_env": "TEST_ALPHA_KEY",
                "timeout_sec": 60,
                "max_tokens": 4096,
                "label": "Alpha",
                "icon": "A",
                "color": "#111111",
            },
            "beta": {
                "sdk": "anthropic",
                "model": "beta-1",
                "api_key_env": "TEST_BETA_KEY",
                "timeout_sec": 60,
                "max_tokens": 4096,
                "label": "Beta",
            },
        },
    }
    path = tmp_path / "settings.yaml"
    path.write_text(yaml.dump(settings), encoding="utf-8")
    return path
