"""Dataclasses for a synthesis round: messages, options, results. No I/O."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Stance(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"


@dataclass(frozen=True)
class Message:
    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class RequestOptions:
    model: str | None = None      # None -> adapter's configured model
    temperature: float = 0.7
    max_tokens: int | None = None  # None -> adapter's configured max_tokens
    top_p: float | None = None
    stream: bool = False

    def __post_init__(self) -> None:
        if not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be in [0, 1], got {self.temperature}")
        if self.max_tokens is not None and self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive, got {self.max_tokens}")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "RequestOptions":
        """Build options from a loose dict. Unknown keys are ignored."""
        kwargs: dict[str, Any] = {}
        if raw.get("model"):
            kwargs["model"] = str(raw["model"])
        if raw.get("temperature") is not None:
            kwargs["temperature"] = float(raw["temperature"])
        max_tokens = raw.get("max_tokens", raw.get("maxTokens"))
        if max_tokens is not None:
            kwargs["max_tokens"] = int(max_tokens)
        top_p = raw.get("top_p", raw.get("topP"))
        if top_p is not None:
            kwargs["top_p"] = float(top_p)
        if raw.get("stream") is not None:
            kwargs["stream"] = bool(raw["stream"])
        return cls(**kwargs)


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int | None = None
    output_tokens: int | None = None
    total_tokens: int | None = None

    def to_dict(self) -> dict[str, int | None]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True)
class ProviderResult:
    provider_key: str
    display_name: str
    icon: str
    color: str
    content: str | None
    usage: TokenUsage | None
    latency_ms: int
    success: bool
    error: str | None

    def __post_init__(self) -> None:
        if self.success and (self.content is None or self.error is not None):
            raise ValueError("successful result needs content and no error")
        if not self.success and (self.error is None or self.content is not None):
            raise ValueError("failed result needs an error and no content")
        if self.latency_ms < 0:
            raise ValueError("latency_ms must be non-negative")

    @classmethod
    def ok(
        cls,
        provider_key: str,
        display_name: str,
        icon: str,
        color: str,
        content: str,
        latency_ms: int,
        usage: TokenUsage | None = None,
    ) -> "ProviderResult":
        return cls(provider_key, display_name, icon, color, content, usage, latency_ms, True, None)

    @classmethod
    def failed(
        cls,
        provider_key: str,
        display_name: str,
        icon: str,
        color: str,
        error: str,
        latency_ms: int = 0,
    ) -> "ProviderResult":
        return cls(provider_key, display_name, icon, color, None, None, latency_ms, False, error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "provider_key": self.provider_key,
            "display_name": self.display_name,
            "icon": self.icon,
            "color": self.color,
            "content": self.content,
            "usage": self.usage.to_dict() if self.usage else None,
            "latency_ms": self.latency_ms,
            "success": self.success,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ProviderResult":
        usage_raw = raw.get("usage")
        return cls(
            provider_key=raw["provider_key"],
            display_name=raw.get("display_name", raw["provider_key"]),
            icon=raw.get("icon", ""),
            color=raw.get("color", ""),
            content=raw.get("content"),
            usage=TokenUsage(**usage_raw) if usage_raw else None,
            latency_ms=int(raw.get("latency_ms", 0)),
            success=bool(raw["success"]),
            error=raw.get("error"),
        )


# provider key -> result, in active-provider order
ResultSet = dict[str, ProviderResult]


@dataclass(frozen=True)
class Disagreement:
    topic: str
    stances: dict[str, Stance]

    @property
    def participating_providers(self) -> list[str]:
        return list(self.stances)

    def to_dict(self) -> dict[str, Any]:
        return {
            "topic": self.topic,
            "stances": {k: v.value for k, v in self.stances.items()},
            "providers": self.participating_providers,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Disagreement":
        return cls(topic=raw["topic"], stances={k: Stance(v) for k, v in raw["stances"].items()})


@dataclass(frozen=True)
class SynthesizedResult:
    content: str
    primary_provider_key: str | None
    model_count: int
    disagreements: list[Disagreement] = field(default_factory=list)
    all_results: ResultSet = field(default_factory=dict)

    @property
    def primary_result(self) -> ProviderResult | None:
        if self.primary_provider_key is None:
            return None
        return self.all_results.get(self.primary_provider_key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "primary_provider_key": self.primary_provider_key,
            "model_count": self.model_count,
            "disagreements": [d.to_dict() for d in self.disagreements],
            "all_results": {k: r.to_dict() for k, r in self.all_results.items()},
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "SynthesizedResult":
        return cls(
            content=raw["content"],
            primary_provider_key=raw.get("primary_provider_key"),
            model_count=int(raw.get("model_count", 0)),
            disagreements=[Disagreement.from_dict(d) for d in raw.get("disagreements", [])],
            all_results={k: ProviderResult.from_dict(r) for k, r in raw.get("all_results", {}).items()},
        )
