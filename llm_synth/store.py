"""Best-effort JSON file stores for user settings and chat history."""

import json
import logging
import os
import time
from collections import ChainMap
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from llm_synth.conversation import ChatSession

logger = logging.getLogger(__name__)

VIEWS = ("unified", "split")


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable store file %s: %s", path, exc)
        return default


def _write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


@dataclass
class Settings:
    api_keys: dict[str, str] = field(default_factory=dict)  # env var name -> key
    selected_models: list[str] | None = None
    stream_responses: bool | None = None
    default_view: str | None = None  # "unified" or "split"


class SettingsStore:
    """User settings persisted in ``settings.json`` under the data dir."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Settings:
        raw = _read_json(self._path, {})
        if not isinstance(raw, dict):
            logger.warning("Settings file %s is not an object, ignoring", self._path)
            return Settings()
        return Settings(
            api_keys={str(k): str(v) for k, v in (raw.get("api_keys") or {}).items()},
            selected_models=raw.get("selected_models"),
            stream_responses=raw.get("stream_responses"),
            default_view=raw.get("default_view"),
        )

    def save(self, settings: Settings) -> None:
        _write_json(
            self._path,
            {
                "api_keys": settings.api_keys,
                "selected_models": settings.selected_models,
                "stream_responses": settings.stream_responses,
                "default_view": settings.default_view,
            },
        )

    def set_api_key(self, env_name: str, api_key: str) -> None:
        settings = self.load()
        api_key = api_key.strip()
        if api_key:
            settings.api_keys[env_name] = api_key
        else:
            settings.api_keys.pop(env_name, None)
        self.save(settings)

    def set_selected_models(self, keys: list[str]) -> None:
        if not keys:
            raise ValueError("At least one model must be selected")
        settings = self.load()
        settings.selected_models = keys
        self.save(settings)

    def set_stream(self, enabled: bool) -> None:
        settings = self.load()
        settings.stream_responses = enabled
        self.save(settings)

    def set_default_view(self, view: str) -> None:
        if view not in VIEWS:
            raise ValueError(f"Unknown view '{view}', expected one of: {', '.join(VIEWS)}")
        settings = self.load()
        settings.default_view = view
        self.save(settings)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)

    def credentials(self, environ: Mapping[str, str] | None = None) -> ChainMap:
        """Saved keys first, then the process environment."""
        return ChainMap(self.load().api_keys, dict(environ if environ is not None else os.environ))


class HistoryStore:
    """Most-recent-first list of chat sessions in ``history.json``."""

    def __init__(self, path: Path, limit: int = 50) -> None:
        self._path = path
        self._limit = limit

    def _load_raw(self) -> list[dict]:
        raw = _read_json(self._path, [])
        if not isinstance(raw, list):
            logger.warning("History file %s is not a list, ignoring", self._path)
            return []
        return raw

    def list(self) -> list[ChatSession]:
        sessions: list[ChatSession] = []
        for entry in self._load_raw():
            try:
                sessions.append(ChatSession.from_dict(entry))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed history entry: %s", exc)
        return sessions

    def get(self, chat_id: str) -> ChatSession | None:
        return next((s for s in self.list() if s.id == chat_id), None)

    def save(self, session: ChatSession) -> None:
        """Insert or replace the session. New chats go to the front; the list is capped."""
        if not session.turns:
            return
        session.timestamp = time.time()
        sessions = self.list()
        existing = next((i for i, s in enumerate(sessions) if s.id == session.id), None)
        if existing is not None:
            sessions[existing] = session
        else:
            sessions.insert(0, session)
        _write_json(self._path, [s.to_dict() for s in sessions[: self._limit]])

    def delete(self, chat_id: str) -> bool:
        sessions = self.list()
        remaining = [s for s in sessions if s.id != chat_id]
        if len(remaining) == len(sessions):
            return False
        _write_json(self._path, [s.to_dict() for s in remaining])
        return True

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)
