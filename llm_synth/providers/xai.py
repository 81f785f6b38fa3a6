"""xAI Grok provider using openai SDK (OpenAI-compatible API)."""

from collections.abc import Mapping

from openai import AsyncOpenAI

from config.config_loader import ModelConfig
from llm_synth.providers.base import ProviderError
from llm_synth.providers.openai_provider import OpenAIProvider


class XAIProvider(OpenAIProvider):
    """xAI Grok provider via OpenAI-compatible API."""

    def __init__(self, config: ModelConfig, credentials: Mapping[str, str] | None = None) -> None:
        if not config.base_url:
            raise ProviderError(config.name, "base_url is required for xAI provider")
        super().__init__(config, credentials)

    def _create_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, base_url=self._config.base_url)
