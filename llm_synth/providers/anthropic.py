"""Anthropic Claude provider using anthropic SDK with native async."""

import asyncio
import logging
import time
from typing import Any

import anthropic as anthropic_sdk

from llm_synth.conversation import split_system
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


def translate_anthropic_error(provider_name: str, exc: anthropic_sdk.AnthropicError) -> ProviderError:
    if isinstance(exc, anthropic_sdk.APIConnectionError):
        return TransportError(provider_name, str(exc))
    if isinstance(exc, anthropic_sdk.APIStatusError):
        return ProviderAPIError(provider_name, exc.message, exc.status_code)
    if isinstance(exc, anthropic_sdk.APIResponseValidationError):
        return ProtocolError(provider_name, f"Unexpected response shape: {exc}")
    return ProviderError(provider_name, f"API call failed: {exc}")


class AnthropicProvider(ChatProvider):
    """Anthropic Claude provider via anthropic SDK.

    The Messages API takes the system prompt as a separate parameter, so the
    normalized conversation's system entry is lifted out of the message list.
    """

    def _create_client(self, api_key: str) -> anthropic_sdk.AsyncAnthropic:
        return anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def _request_kwargs(self, conversation: list[Message], options: RequestOptions) -> dict[str, Any]:
        system, turns = split_system(conversation)
        kwargs: dict[str, Any] = {
            "model": self._model_for(options),
            "max_tokens": self._max_tokens_for(options),
            "temperature": options.temperature,
            "messages": [m.to_dict() for m in turns],
        }
        if system:
            kwargs["system"] = system
        if options.top_p is not None:
            kwargs["top_p"] = options.top_p
        return kwargs

    async def chat(self, conversation: list[Message], options: RequestOptions) -> ChatCompletion:
        client = self._get_client()
        kwargs = self._request_kwargs(conversation, options)
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                client.messages.create(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise self._timed_out() from exc
        except anthropic_sdk.AnthropicError as exc:
            raise translate_anthropic_error(self._config.name, exc) from exc

        latency = time.monotonic() - start

        if response.content is None:
            raise ProtocolError(self._config.name, "Response has no content blocks")
        text_blocks = [b.text for b in response.content if b.type == "text"]
        content = "\n".join(text_blocks)

        usage: TokenUsage | None = None
        if response.usage:
            usage = TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )

        logger.info(
            "%s chat: %.2fs, %s tokens",
            self._config.name,
            latency,
            usage.total_tokens if usage else None,
        )

        return ChatCompletion(
            content=content,
            model=response.model or kwargs["model"],
            usage=usage,
            finish_reason=response.stop_reason,
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
            stream = await client.messages.create(**kwargs, stream=True)
            async for event in stream:
                if getattr(event, "type", None) != "content_block_delta":
                    continue
                fragment = getattr(getattr(event, "delta", None), "text", None)
                if fragment is None:
                    # input_json_delta and friends carry no text
                    logger.debug("Skipping non-text delta from %s", self._config.name)
                    continue
                if fragment:
                    content += fragment
                    on_fragment(fragment, content)
            return content

        try:
            content = await asyncio.wait_for(consume(), timeout=self._config.timeout_sec)
        except TimeoutError as exc:
            raise self._timed_out() from exc
        except anthropic_sdk.AnthropicError as exc:
            raise translate_anthropic_error(self._config.name, exc) from exc

        return ChatCompletion(content=content, model=kwargs["model"])
