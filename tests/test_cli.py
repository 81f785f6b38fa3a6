"""Tests for llm_synth/cli.py: selection precedence and commands via CliRunner."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from llm_synth import cli
from llm_synth.cli import (
    AppContext,
    _build_options,
    _determine_selection,
    _determine_split,
    _determine_stream,
    main,
)
from llm_synth.store import HistoryStore, SettingsStore
from tests.conftest import FakeProvider, make_registry


@pytest.fixture
def app(sample_app_config, tmp_path: Path) -> AppContext:
    return AppContext(
        config=sample_app_config,
        settings=SettingsStore(tmp_path / "data" / "settings.json"),
        history=HistoryStore(tmp_path / "data" / "history.json"),
    )


@pytest.fixture
def fake_providers(monkeypatch):
    """Replace the real registry with two scripted providers."""
    providers = {
        "alpha": FakeProvider("alpha", "Python is better than Ruby for this task", fragments=["Python is ", "better"]),
        "beta": FakeProvider("beta", "Python is worse and has many issues"),
    }
    monkeypatch.setattr(cli, "build_registry", lambda config, credentials=None: make_registry(*providers.values()))
    return providers


def _invoke(settings_file: Path, *args: str):
    return CliRunner().invoke(main, ["--settings", str(settings_file), *args])


# --- selection precedence ---

def test_selection_models_arg_wins(app):
    app.settings.set_selected_models(["claude"])
    assert _determine_selection(app, "chatgpt, gemini", ["claude"]) == ["chatgpt", "gemini"]


def test_selection_file_beats_saved(app):
    app.settings.set_selected_models(["claude"])
    assert _determine_selection(app, None, ["gemini"]) == ["gemini"]


def test_selection_saved_beats_default(app):
    app.settings.set_selected_models(["claude"])
    assert _determine_selection(app, None, None) == ["claude"]


def test_selection_falls_back_to_config(app):
    assert _determine_selection(app, None, None) == ["chatgpt", "claude"]


def test_stream_precedence(app):
    assert _determine_stream(app, None, None) is False
    app.settings.set_stream(True)
    assert _determine_stream(app, None, None) is True
    assert _determine_stream(app, None, False) is False
    assert _determine_stream(app, True, False) is True


def test_build_options_uses_config_defaults(app):
    options = _build_options(app, None, None)
    assert options.temperature == 0.7
    assert options.max_tokens == 4096

    options = _build_options(app, 0.1, 256)
    assert options.temperature == 0.1
    assert options.max_tokens == 256


# --- commands ---

def test_ask_non_streaming(settings_file, fake_providers, tmp_path):
    result = _invoke(settings_file, "ask", "Python or Ruby?", "--no-stream")

    assert result.exit_code == 0, result.output
    assert "Synthesized Answer" in result.output
    assert "Primary:" in result.output
    assert "Chat ID:" in result.output
    assert fake_providers["alpha"].calls[0][0] == "chat"
    assert fake_providers["alpha"].calls[0][2].temperature == 0.5

    sessions = HistoryStore(tmp_path / "data" / "history.json").list()
    assert len(sessions) == 1
    assert sessions[0].title == "Python or Ruby?"


def test_ask_streaming(settings_file, fake_providers):
    result = _invoke(settings_file, "ask", "Python or Ruby?", "--stream", "--no-save")

    assert result.exit_code == 0, result.output
    kind, _, options = fake_providers["alpha"].calls[0]
    assert kind == "stream"
    assert options.stream is True
    assert "Chat ID:" not in result.output


def test_ask_split_and_system(settings_file, fake_providers):
    result = _invoke(settings_file, "ask", "Python or Ruby?", "--no-stream", "--split", "--system", "Be terse.")

    assert result.exit_code == 0, result.output
    assert "Individual Responses" in result.output
    conversation = fake_providers["beta"].calls[0][1]
    assert conversation[0].content == "Be terse."


def test_ask_models_flag_limits_providers(settings_file, fake_providers):
    result = _invoke(settings_file, "ask", "Hi?", "--no-stream", "--models", "beta")

    assert result.exit_code == 0, result.output
    assert fake_providers["alpha"].calls == []
    assert len(fake_providers["beta"].calls) == 1


def test_ask_from_file(settings_file, fake_providers, tmp_path):
    question = tmp_path / "question.md"
    question.write_text("---\nmodels: alpha\nstream: false\n---\nWhich language?\n", encoding="utf-8")

    result = _invoke(settings_file, "ask", "--file", str(question))

    assert result.exit_code == 0, result.output
    assert fake_providers["beta"].calls == []
    assert fake_providers["alpha"].calls[0][0] == "chat"
    assert fake_providers["alpha"].calls[0][1][-1].content == "Which language?"


def test_ask_continues_chat(settings_file, fake_providers, tmp_path):
    _invoke(settings_file, "ask", "First question?", "--no-stream")
    chat_id = HistoryStore(tmp_path / "data" / "history.json").list()[0].id

    result = _invoke(settings_file, "ask", "Follow-up?", "--no-stream", "--chat", chat_id)

    assert result.exit_code == 0, result.output
    conversation = fake_providers["alpha"].calls[-1][1]
    assert [m.content for m in conversation][0] == "First question?"
    assert conversation[-1].content == "Follow-up?"
    sessions = HistoryStore(tmp_path / "data" / "history.json").list()
    assert len(sessions) == 1
    assert len(sessions[0].turns) == 4


def test_ask_unknown_chat(settings_file, fake_providers):
    result = _invoke(settings_file, "ask", "Hi?", "--chat", "nope")
    assert result.exit_code == 1
    assert "No saved chat" in result.output


def test_ask_requires_question(settings_file, fake_providers):
    result = _invoke(settings_file, "ask")
    assert result.exit_code == 1


def test_ask_without_configured_providers(settings_file, monkeypatch):
    monkeypatch.setattr(
        cli,
        "build_registry",
        lambda config, credentials=None: make_registry(FakeProvider("alpha", configured=False)),
    )

    result = _invoke(settings_file, "ask", "Hi?", "--no-stream")

    assert result.exit_code == 1
    assert "No models configured" in result.output


def test_ask_all_failed_prints_fallback(settings_file, monkeypatch):
    monkeypatch.setattr(
        cli,
        "build_registry",
        lambda config, credentials=None: make_registry(FakeProvider("alpha", error=RuntimeError("down"))),
    )

    result = _invoke(settings_file, "ask", "Hi?", "--no-stream")

    assert result.exit_code == 0, result.output
    assert "All models failed to respond" in result.output


def test_history_and_export(settings_file, fake_providers, tmp_path):
    _invoke(settings_file, "ask", "Python or Ruby?", "--no-stream")
    chat_id = HistoryStore(tmp_path / "data" / "history.json").list()[0].id

    listing = _invoke(settings_file, "history", "list")
    assert chat_id in listing.output

    shown = _invoke(settings_file, "history", "show", chat_id)
    assert shown.exit_code == 0
    assert "Python or Ruby?" in shown.output

    out_dir = tmp_path / "out"
    exported = _invoke(settings_file, "export", chat_id, "--format", "json", "--output", str(out_dir))
    assert exported.exit_code == 0, exported.output
    data = json.loads((out_dir / f"chat-{chat_id}.json").read_text(encoding="utf-8"))
    assert data["chatId"] == chat_id

    exported_md = _invoke(settings_file, "export", chat_id)
    assert exported_md.exit_code == 0, exported_md.output
    assert list((tmp_path / "exports").glob(f"chat-{chat_id}-*.md"))

    deleted = _invoke(settings_file, "history", "delete", chat_id)
    assert "Deleted" in deleted.output
    assert _invoke(settings_file, "export", chat_id).exit_code == 1


def test_history_clear(settings_file, fake_providers, tmp_path):
    _invoke(settings_file, "ask", "Hi?", "--no-stream")
    result = _invoke(settings_file, "history", "clear", "--yes")
    assert result.exit_code == 0
    assert HistoryStore(tmp_path / "data" / "history.json").list() == []


def test_settings_set_key(settings_file, tmp_path):
    result = _invoke(settings_file, "settings", "set-key", "alpha", "sk-alpha")

    assert result.exit_code == 0, result.output
    saved = SettingsStore(tmp_path / "data" / "settings.json").load()
    assert saved.api_keys == {"TEST_ALPHA_KEY": "sk-alpha"}

    _invoke(settings_file, "settings", "set-key", "alpha")
    assert SettingsStore(tmp_path / "data" / "settings.json").load().api_keys == {}


def test_settings_set_key_unknown_provider(settings_file):
    result = _invoke(settings_file, "settings", "set-key", "nobody", "sk-x")
    assert result.exit_code == 1
    assert "Unknown provider" in result.output


def test_settings_select_and_stream(settings_file, tmp_path):
    assert _invoke(settings_file, "settings", "select", "beta").exit_code == 0
    assert _invoke(settings_file, "settings", "stream", "on").exit_code == 0

    saved = SettingsStore(tmp_path / "data" / "settings.json").load()
    assert saved.selected_models == ["beta"]
    assert saved.stream_responses is True

    assert _invoke(settings_file, "settings", "reset", "--yes").exit_code == 0
    assert not (tmp_path / "data" / "settings.json").exists()


def test_saved_key_configures_real_registry(settings_file, monkeypatch):
    monkeypatch.delenv("TEST_ALPHA_KEY", raising=False)
    _invoke(settings_file, "settings", "set-key", "alpha", "sk-alpha")

    result = _invoke(settings_file, "providers")

    assert result.exit_code == 0, result.output
    assert "alpha-1" in result.output
    assert "yes" in result.output


def test_saved_split_view_used_by_ask_and_history(settings_file, fake_providers, tmp_path):
    assert _invoke(settings_file, "settings", "view", "split").exit_code == 0

    asked = _invoke(settings_file, "ask", "Python or Ruby?", "--no-stream")
    assert asked.exit_code == 0, asked.output
    assert "Individual Responses" in asked.output

    chat_id = HistoryStore(tmp_path / "data" / "history.json").list()[0].id
    shown = _invoke(settings_file, "history", "show", chat_id)
    assert "Individual Responses" in shown.output

    _invoke(settings_file, "settings", "view", "unified")
    unified = _invoke(settings_file, "ask", "Python or Ruby?", "--no-stream", "--no-save")
    assert "Individual Responses" not in unified.output


def test_determine_split(app):
    assert _determine_split(app, False) is False
    assert _determine_split(app, True) is True
    app.settings.set_default_view("split")
    assert _determine_split(app, False) is True
