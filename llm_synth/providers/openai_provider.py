"""OpenAI provider using openai SDK with native async."""

import asyncio
import logging
import time
from typing import Any

import openai
from openai import AsyncOpenAI

from llm_synth.models import Message, RequestOptions, TokenUsage
from llm_synth.providers.base import (
    ChatCompletion,
    ChatProvider,
    FragmentCallback,
    ProtocolError,
    ProviderAPIError,
    ProviderError,
    TransportError,
)

logger = logging.getLogger(__name__)


def translate_openai_error(provider_name: str, exc: openai.OpenAIError) -> ProviderError:
    """Map an openai SDK exception onto the provider error taxonomy."""
    if isinstance(exc, openai.APIConnectionError):  # includes APITimeoutError
        return TransportError(provider_name, str(exc))
    if isinstance(exc, openai.APIStatusError):
        return ProviderAPIError(provider_name, exc.message, exc.status_code)
    if isinstance(exc, openai.APIResponseValidationError):
        return ProtocolError(provider_name, f"Unexpected response shape: {exc}")
    return ProviderError(provider_name, f"API call failed: {exc}")


def _fragment_text(provider_name: str, chunk: Any) -> str:
    """Pull the delta text out of one streamed chunk."""
    if not getattr(chunk, "choices", None):
        return ""  # usage-only chunk
    try:
        return chunk.choices[0].delta.content or ""
    except (AttributeError, IndexError) as exc:
        raise ProtocolError(provider_name, f"Malformed stream chunk: {exc}") from exc


class OpenAIProvider(ChatProvider):
    """OpenAI chat completions via openai SDK."""

    def _create_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key)

    def _request_kwargs(self, conversation: list[Message], options: RequestOptions) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self._model_for(options),
            "messages": [m.to_dict() for m in conversation],
            "temperature": options.temperature,
            "max_tokens": self._max_tokens_for(options),
        }
        if options.top_p is not None:
            kwargs["top_p"] = options.top_p
        return kwargs

    async def chat(self, conversation: list[Message], options: RequestOptions) -> ChatCompletion:
        client = self._get_client()
        kwargs = self._request_kwargs(conversation, options)
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                client.chat.completions.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise self._timed_out() from exc
        except openai.OpenAIError as exc:
            raise translate_openai_error(self._config.name, exc) from exc

        latency = time.monotonic() - start

        choice = response.choices[0] if response.choices else None
        if choice is None or choice.message is None:
            raise ProtocolError(self._config.name, "Response contained no choices")

        usage: TokenUsage | None = None
        if response.usage:
            usage = TokenUsage(
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        logger.info(
            "%s chat: %.2fs, %s tokens",
            self._config.name,
            latency,
            usage.total_tokens if usage else None,
        )

        return ChatCompletion(
            content=choice.message.content or "",
            model=response.model or kwargs["model"],
            usage=usage,
            finish_reason=choice.finish_reason,
        )

    async def stream_chat(
        self,
        conversation: list[Message],
        on_fragment: FragmentCallback,
        options: RequestOptions,
    ) -> ChatCompletion:
        client = self._get_client()
        kwargs = self._request_kwargs(conversation, options)

        async def consume() -> str:
            content = ""
            stream = await client.chat.completions.create(**kwargs, stream=True)
            async for chunk in stream:
                try:
                    fragment = _fragment_text(self._config.name, chunk)
                except ProtocolError as exc:
                    logger.debug("Skipping fragment: %s", exc)
                    continue
                if fragment:
                    content += fragment
                    on_fragment(fragment, content)
            return content

        try:
            content = await asyncio.wait_for(consume(), timeout=self._config.timeout_sec)
        except TimeoutError as exc:
            raise self._timed_out() from exc
        except openai.OpenAIError as exc:
            raise translate_openai_error(self._config.name, exc) from exc

        return ChatCompletion(content=content, model=kwargs["model"])
