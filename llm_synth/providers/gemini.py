"""Gemini provider using google-genai SDK with native async."""

import asyncio
import logging
import time
from typing import Any

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from llm_synth.conversation import split_system
from llm_synth.models import Message, RequestOptions, Role, TokenUsage
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

_DEFAULT_TOP_P = 0.95


def translate_genai_error(provider_name: str, exc: Exception) -> ProviderError:
    if isinstance(exc, httpx.TransportError):
        return TransportError(provider_name, str(exc))
    if isinstance(exc, genai_errors.APIError):
        return ProviderAPIError(provider_name, exc.message or str(exc), exc.code)
    return ProviderError(provider_name, f"API call failed: {exc}")


def _to_contents(turns: list[Message]) -> list[genai_types.Content]:
    return [
        genai_types.Content(
            role="model" if m.role is Role.ASSISTANT else "user",
            parts=[genai_types.Part(text=m.content)],
        )
        for m in turns
    ]


class GeminiProvider(ChatProvider):
    """Google Gemini provider via google-genai SDK."""

    def _create_client(self, api_key: str) -> genai.Client:
        return genai.Client(api_key=api_key)

    def _request_kwargs(self, conversation: list[Message], options: RequestOptions) -> dict[str, Any]:
        system, turns = split_system(conversation)
        return {
            "model": self._model_for(options),
            "contents": _to_contents(turns),
            "config": genai_types.GenerateContentConfig(
                system_instruction=system,
                temperature=options.temperature,
                max_output_tokens=self._max_tokens_for(options),
                top_p=options.top_p if options.top_p is not None else _DEFAULT_TOP_P,
            ),
        }

    async def chat(self, conversation: list[Message], options: RequestOptions) -> ChatCompletion:
        client = self._get_client()
        kwargs = self._request_kwargs(conversation, options)
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(**kwargs),
                timeout=self._config.timeout_sec,
            )
        except TimeoutError as exc:
            raise self._timed_out() from exc
        except (genai_errors.APIError, httpx.HTTPError) as exc:
            raise translate_genai_error(self._config.name, exc) from exc

        latency = time.monotonic() - start

        if not response.candidates:
            raise ProtocolError(self._config.name, "No response from Gemini")

        usage: TokenUsage | None = None
        if response.usage_metadata:
            usage = TokenUsage(
                input_tokens=response.usage_metadata.prompt_token_count,
                output_tokens=response.usage_metadata.candidates_token_count,
                total_tokens=response.usage_metadata.total_token_count,
            )

        logger.info(
            "%s chat: %.2fs, %s tokens",
            self._config.name,
            latency,
            usage.total_tokens if usage else None,
        )

        finish_reason = response.candidates[0].finish_reason
        return ChatCompletion(
            content=response.text or "",
            model=kwargs["model"],
            usage=usage,
            finish_reason=str(finish_reason) if finish_reason is not None else None,
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
            async for chunk in await client.aio.models.generate_content_stream(**kwargs):
                try:
                    fragment = chunk.text or ""
                except (AttributeError, ValueError) as exc:
                    logger.debug("Skipping fragment: %s", ProtocolError(self._config.name, str(exc)))
                    continue
                if fragment:
                    content += fragment
                    on_fragment(fragment, content)
            return content

        try:
            content = await asyncio.wait_for(consume(), timeout=self._config.timeout_sec)
        except TimeoutError as exc:
            raise self._timed_out() from exc
        except (genai_errors.APIError, httpx.HTTPError) as exc:
            raise translate_genai_error(self._config.name, exc) from exc

        return ChatCompletion(content=content, model=kwargs["model"])
