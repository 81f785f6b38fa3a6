"""Fan-out/fan-in orchestration: parallel provider calls with a settle-all barrier."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from typing import Any

from llm_synth.conversation import normalize_conversation
from llm_synth.models import Message, ProviderResult, RequestOptions, ResultSet
from llm_synth.providers.base import ChatCompletion, ChatProvider, NotConfiguredError, ProviderError
from llm_synth.registry import ProviderDescriptor, Registry

logger = logging.getLogger(__name__)

# (provider_key, fragment, cumulative_text)
ChunkCallback = Callable[[str, str, str], None]
# (provider_key, final_result)
DoneCallback = Callable[[str, ProviderResult], None]

ProviderCall = Callable[[ChatProvider], Awaitable[ChatCompletion]]


class NoProvidersConfiguredError(RuntimeError):
    """None of the selected providers is known and configured. Raised before dispatch."""

    def __init__(self, requested: Iterable[str]) -> None:
        self.requested = list(requested)
        super().__init__(
            "No models configured. Add API keys with `llm-synth settings set-key` "
            "or set them in .env."
        )


def _elapsed_ms(start: float) -> int:
    return max(0, int((time.monotonic() - start) * 1000))


def _failed(descriptor: ProviderDescriptor, error: str, latency_ms: int = 0) -> ProviderResult:
    return ProviderResult.failed(
        provider_key=descriptor.key,
        display_name=descriptor.display_name,
        icon=descriptor.icon,
        color=descriptor.color,
        error=error,
        latency_ms=latency_ms,
    )


def _coerce_options(options: RequestOptions | Mapping[str, Any] | None) -> RequestOptions:
    if options is None:
        return RequestOptions()
    if isinstance(options, RequestOptions):
        return options
    return RequestOptions.from_mapping(options)


class Orchestrator:
    """Dispatches one round to every active provider and waits for all of them."""

    def __init__(self, registry: Registry) -> None:
        self._registry = registry

    @property
    def registry(self) -> Registry:
        return self._registry

    def resolve_active(self, selected_keys: Iterable[str]) -> list[str]:
        return self._registry.resolve_active(selected_keys)

    def _activate(self, selected_keys: Iterable[str]) -> list[str]:
        selected = list(selected_keys)
        active = self._registry.resolve_active(selected)
        if not active:
            raise NoProvidersConfiguredError(selected)
        logger.info("Dispatching round to %d provider(s): %s", len(active), ", ".join(active))
        return active

    async def _settle(self, key: str, call: ProviderCall) -> ProviderResult:
        """Run one provider call and turn its outcome into a ProviderResult.

        Never raises for provider-side failures.
        """
        descriptor = self._registry.get(key)
        provider = descriptor.provider
        if not provider.is_configured():
            # Credential disappeared between resolution and dispatch
            err = NotConfiguredError(key, "API key not configured")
            logger.warning("Provider %s skipped: %s", key, err)
            return _failed(descriptor, str(err))

        start = time.monotonic()
        try:
            completion = await call(provider)
        except ProviderError as exc:
            logger.warning("Provider %s failed: %s", key, exc)
            return _failed(descriptor, str(exc), _elapsed_ms(start))
        except Exception as exc:
            err = ProviderError(key, f"Unexpected error: {exc}")
            logger.warning("Provider %s unexpected failure: %s", key, exc)
            return _failed(descriptor, str(err), _elapsed_ms(start))

        return ProviderResult.ok(
            provider_key=key,
            display_name=descriptor.display_name,
            icon=descriptor.icon,
            color=descriptor.color,
            content=completion.content,
            latency_ms=_elapsed_ms(start),
            usage=completion.usage,
        )

    async def _join(self, active: list[str], calls: list[Awaitable[ProviderResult]]) -> ResultSet:
        """Barrier over all dispatched calls; an escaped exception fails only its own key."""
        settled = await asyncio.gather(*calls, return_exceptions=True)

        results: ResultSet = {}
        for key, outcome in zip(active, settled):
            if isinstance(outcome, ProviderResult):
                results[key] = outcome
                continue
            if isinstance(outcome, (KeyboardInterrupt, SystemExit)):
                raise outcome
            logger.warning("Provider %s raised outside its call: %r", key, outcome)
            results[key] = _failed(self._registry.get(key), str(outcome) or "Unknown error")

        succeeded = sum(1 for r in results.values() if r.success)
        logger.info("Round complete: %d/%d providers succeeded", succeeded, len(results))
        return results

    async def query_all(
        self,
        selected_keys: Iterable[str],
        conversation: Iterable[Message | Mapping[str, Any]],
        options: RequestOptions | Mapping[str, Any] | None = None,
    ) -> ResultSet:
        """Query every active provider in parallel (non-streaming).

        Returns:
            ResultSet with exactly one entry per active provider.

        Raises:
            NoProvidersConfiguredError: If no selected provider is active.
        """
        active = self._activate(selected_keys)
        messages = normalize_conversation(conversation)
        opts = _coerce_options(options)

        calls = [
            self._settle(key, lambda p: p.chat(messages, opts))
            for key in active
        ]
        return await self._join(active, calls)

    async def stream_all(
        self,
        selected_keys: Iterable[str],
        conversation: Iterable[Message | Mapping[str, Any]],
        on_chunk: ChunkCallback,
        on_provider_done: DoneCallback | None = None,
        options: RequestOptions | Mapping[str, Any] | None = None,
    ) -> ResultSet:
        """Stream from every active provider in parallel.

        on_chunk(key, fragment, cumulative) fires for each fragment, in order per
        provider. on_provider_done(key, result) fires once per provider as soon
        as its stream ends. Returns only after every provider has finished.

        Raises:
            NoProvidersConfiguredError: If no selected provider is active.
        """
        active = self._activate(selected_keys)
        messages = normalize_conversation(conversation)
        opts = _coerce_options(options)

        async def stream_one(key: str) -> ProviderResult:
            def forward(fragment: str, cumulative: str) -> None:
                on_chunk(key, fragment, cumulative)

            result = await self._settle(key, lambda p: p.stream_chat(messages, forward, opts))
            if on_provider_done:
                on_provider_done(key, result)
            return result

        return await self._join(active, [stream_one(key) for key in active])
