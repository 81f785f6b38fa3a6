"""Conversation normalization and the chat session record kept in history."""

import secrets
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from llm_synth.models import Message, Role, SynthesizedResult

_TITLE_MAX_LEN = 50


def _coerce(message: Message | Mapping[str, Any]) -> Message:
    if isinstance(message, Message):
        return message
    try:
        role = Role(str(message["role"]))
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Invalid message role in {dict(message)!r}") from exc
    return Message(role=role, content=str(message.get("content") or ""))


def normalize_conversation(messages: Iterable[Message | Mapping[str, Any]]) -> list[Message]:
    """Return the normalized form passed to every adapter.

    Empty messages are dropped and all system entries are merged into a single
    leading system message. Relative order of user/assistant turns is kept.
    """
    system_parts: list[str] = []
    turns: list[Message] = []
    for raw in messages:
        msg = _coerce(raw)
        if not msg.content.strip():
            continue
        if msg.role is Role.SYSTEM:
            system_parts.append(msg.content)
        else:
            turns.append(msg)
    if system_parts:
        turns.insert(0, Message(Role.SYSTEM, "\n\n".join(system_parts)))
    return turns


def split_system(conversation: list[Message]) -> tuple[str | None, list[Message]]:
    """Separate the (single) system prompt from the chat turns."""
    system = next((m.content for m in conversation if m.role is Role.SYSTEM), None)
    return system, [m for m in conversation if m.role is not Role.SYSTEM]


def new_chat_id() -> str:
    return f"{int(time.time() * 1000):x}{secrets.token_hex(4)}"


@dataclass
class ChatTurn:
    role: Role
    content: str
    timestamp: float = field(default_factory=time.time)
    synthesized: SynthesizedResult | None = None  # assistant turns only

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.synthesized is not None:
            data["synthesized"] = self.synthesized.to_dict()
        return data

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ChatTurn":
        synthesized = raw.get("synthesized")
        return cls(
            role=Role(raw["role"]),
            content=raw["content"],
            timestamp=float(raw.get("timestamp", 0.0)),
            synthesized=SynthesizedResult.from_dict(synthesized) if synthesized else None,
        )


@dataclass
class ChatSession:
    id: str = field(default_factory=new_chat_id)
    turns: list[ChatTurn] = field(default_factory=list)
    timestamp: float = field(default_factory=time.time)

    @property
    def title(self) -> str:
        first_user = next((t for t in self.turns if t.role is Role.USER), None)
        if first_user is None:
            return "New Chat"
        text = first_user.content
        return text[:_TITLE_MAX_LEN] + ("..." if len(text) > _TITLE_MAX_LEN else "")

    def add_user(self, content: str) -> ChatTurn:
        turn = ChatTurn(Role.USER, content)
        self.turns.append(turn)
        return turn

    def add_assistant(self, synthesized: SynthesizedResult) -> ChatTurn:
        turn = ChatTurn(Role.ASSISTANT, synthesized.content, synthesized=synthesized)
        self.turns.append(turn)
        return turn

    def to_messages(self, system: str | None = None) -> list[Message]:
        """Conversation sent to providers: optional system prompt plus all turns."""
        raw: list[Message] = []
        if system:
            raw.append(Message(Role.SYSTEM, system))
        raw.extend(Message(t.role, t.content) for t in self.turns)
        return normalize_conversation(raw)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "messages": [t.to_dict() for t in self.turns],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "ChatSession":
        return cls(
            id=str(raw["id"]),
            turns=[ChatTurn.from_dict(m) for m in raw.get("messages", [])],
            timestamp=float(raw.get("timestamp", 0.0)),
        )
