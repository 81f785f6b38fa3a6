"""Provider registry: key -> adapter plus display metadata."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from config.config_loader import AppConfig
from llm_synth.providers.anthropic import AnthropicProvider
from llm_synth.providers.base import ChatProvider, ProviderError
from llm_synth.providers.gemini import GeminiProvider
from llm_synth.providers.openai_provider import OpenAIProvider
from llm_synth.providers.xai import XAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[ChatProvider]] = {
    "openai": OpenAIProvider,
    "google-genai": GeminiProvider,
    "anthropic": AnthropicProvider,
    "xai": XAIProvider,
}


@dataclass(frozen=True)
class ProviderDescriptor:
    key: str
    display_name: str
    icon: str
    color: str
    provider: ChatProvider


class Registry:
    """Read-only (after startup) mapping of provider keys to descriptors."""

    def __init__(self, descriptors: Iterable[ProviderDescriptor] = ()) -> None:
        self._descriptors: dict[str, ProviderDescriptor] = {}
        for descriptor in descriptors:
            self.register(descriptor)

    def register(self, descriptor: ProviderDescriptor) -> None:
        if descriptor.key in self._descriptors:
            raise ValueError(f"Provider '{descriptor.key}' already registered")
        self._descriptors[descriptor.key] = descriptor

    def __contains__(self, key: object) -> bool:
        return key in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def get(self, key: str) -> ProviderDescriptor:
        return self._descriptors[key]

    def list_descriptors(self) -> list[ProviderDescriptor]:
        return list(self._descriptors.values())

    def is_configured(self, key: str) -> bool:
        descriptor = self._descriptors.get(key)
        return descriptor is not None and descriptor.provider.is_configured()

    def resolve_active(self, requested_keys: Iterable[str]) -> list[str]:
        """Filter to keys that are registered and configured, keeping caller order.

        Unknown or unconfigured keys are dropped silently.
        """
        active: list[str] = []
        for key in requested_keys:
            if key in active:
                continue
            if self.is_configured(key):
                active.append(key)
            else:
                logger.debug("Provider '%s' not active (unknown or unconfigured)", key)
        return active


def build_registry(config: AppConfig, credentials: Mapping[str, str] | None = None) -> Registry:
    """Instantiate one adapter per configured model, in settings order."""
    registry = Registry()
    for name, model_cfg in config.models.items():
        provider_cls = PROVIDER_CLASSES.get(model_cfg.sdk)
        if provider_cls is None:
            logger.warning("Provider '%s' uses unknown sdk '%s', skipping", name, model_cfg.sdk)
            continue
        try:
            provider = provider_cls(model_cfg, credentials)
        except ProviderError as exc:
            logger.warning("Failed to instantiate provider '%s': %s", name, exc)
            continue
        registry.register(
            ProviderDescriptor(
                key=name,
                display_name=model_cfg.label or name,
                icon=model_cfg.icon,
                color=model_cfg.color,
                provider=provider,
            )
        )
    return registry
