"""Abstract base and error taxonomy for all chat-completion providers."""

import os
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from config.config_loader import ModelConfig
from llm_synth.models import Message, RequestOptions, TokenUsage

# (fragment, cumulative_text)
FragmentCallback = Callable[[str, str], None]


class ProviderError(Exception):
    """Base for every per-provider failure. Never aborts a round."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class NotConfiguredError(ProviderError):
    """No credential available; raised before any network call."""


class TransportError(ProviderError):
    """Network-level failure or adapter timeout (no HTTP response received)."""

    def __init__(self, provider_name: str, message: str) -> None:
        super().__init__(
            provider_name,
            f"Network error: {message}. Check your connection, proxy or firewall settings.",
        )


class ProviderAPIError(ProviderError):
    """Provider answered with a non-2xx status."""

    def __init__(self, provider_name: str, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        prefix = f"API error {status_code}" if status_code is not None else "API error"
        super().__init__(provider_name, f"{prefix}: {message}")


class ProtocolError(ProviderError):
    """Response did not match the expected shape."""


@dataclass
class ChatCompletion:
    content: str
    model: str
    usage: TokenUsage | None = None
    finish_reason: str | None = None


class ChatProvider(ABC):
    """Uniform capability every provider adapter exposes to the orchestrator."""

    def __init__(self, config: ModelConfig, credentials: Mapping[str, str] | None = None) -> None:
        self._config = config
        self._credentials = credentials if credentials is not None else os.environ
        self._client: Any = None
        self._client_key: str | None = None

    @abstractmethod
    def _create_client(self, api_key: str) -> Any:
        """Build the SDK client for api_key. Called lazily by _get_client."""
        ...

    def _get_client(self) -> Any:
        """Return the SDK client, rebuilding it when the stored key changed."""
        api_key = self._require_api_key()
        if self._client is None or api_key != self._client_key:
            self._client = self._create_client(api_key)
            self._client_key = api_key
        return self._client

    def key(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    def _api_key(self) -> str:
        return (self._credentials.get(self._config.api_key_env) or "").strip()

    def _require_api_key(self) -> str:
        api_key = self._api_key()
        if not api_key:
            raise NotConfiguredError(self._config.name, f"Missing API key: {self._config.api_key_env}")
        return api_key

    def _model_for(self, options: RequestOptions) -> str:
        return options.model or self._config.model

    def _max_tokens_for(self, options: RequestOptions) -> int:
        return options.max_tokens or self._config.max_tokens

    def _timed_out(self) -> TransportError:
        return TransportError(self._config.name, f"request timed out after {self._config.timeout_sec}s")

    def is_configured(self) -> bool:
        """True when a credential is present. Reads local credentials only."""
        return bool(self._api_key())

    @abstractmethod
    async def chat(self, conversation: list[Message], options: RequestOptions) -> ChatCompletion:
        """Single-shot completion.

        Raises:
            NotConfiguredError, TransportError, ProviderAPIError, ProtocolError.
        """
        ...

    @abstractmethod
    async def stream_chat(
        self,
        conversation: list[Message],
        on_fragment: FragmentCallback,
        options: RequestOptions,
    ) -> ChatCompletion:
        """Stream a completion, calling on_fragment(fragment, cumulative) in order.

        Malformed fragments are skipped. Returns the final cumulative content.
        """
        ...
