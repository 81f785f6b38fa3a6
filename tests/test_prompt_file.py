"""Unit tests for llm_synth/prompt_file.py — no API calls."""

import textwrap
from pathlib import Path

from llm_synth.prompt_file import parse_prompt_file


def test_parse_no_frontmatter(tmp_path: Path) -> None:
    """File without frontmatter returns full content and empty metadata."""
    f = tmp_path / "question.md"
    f.write_text("Should we use Redis or Memcached?", encoding="utf-8")
    content, metadata = parse_prompt_file(f)
    assert content == "Should we use Redis or Memcached?"
    assert metadata == {}


def test_parse_with_frontmatter(tmp_path: Path) -> None:
    """Recognized keys are normalized, unknown keys dropped."""
    f = tmp_path / "question.md"
    f.write_text(
        textwrap.dedent("""\
            ---
            models: claude, chatgpt
            stream: false
            system: Answer in one paragraph.
            rounds: 3
            ---
            REST or GraphQL for a public API?
        """),
        encoding="utf-8",
    )
    content, metadata = parse_prompt_file(f)
    assert content == "REST or GraphQL for a public API?"
    assert metadata == {
        "models": ["claude", "chatgpt"],
        "stream": False,
        "system": "Answer in one paragraph.",
    }


def test_parse_models_as_yaml_list(tmp_path: Path) -> None:
    f = tmp_path / "question.md"
    f.write_text("---\nmodels:\n  - gemini\n  - grok\n---\nHello?\n", encoding="utf-8")
    _, metadata = parse_prompt_file(f)
    assert metadata["models"] == ["gemini", "grok"]


def test_parse_empty_system_ignored(tmp_path: Path) -> None:
    f = tmp_path / "question.md"
    f.write_text("---\nsystem: ''\n---\nHello?\n", encoding="utf-8")
    _, metadata = parse_prompt_file(f)
    assert "system" not in metadata
