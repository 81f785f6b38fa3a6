"""Integration tests — real API calls, no mocks. Requires .env with 2+ API keys."""

import os
from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv()

# Skip entire module if fewer than 2 API keys are set
_AVAILABLE_KEYS = [
    k for k in ["ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY", "XAI_API_KEY"]
    if os.environ.get(k, "").strip()
]
pytestmark = pytest.mark.integration

if len(_AVAILABLE_KEYS) < 2:
    pytestmark = pytest.mark.skip(reason=f"Need 2+ API keys, found {len(_AVAILABLE_KEYS)}")


async def test_full_round_pipeline(tmp_path: Path):
    """Run one real round with available providers, verify no crash."""
    from config.config_loader import load_config
    from llm_synth.conversation import ChatSession
    from llm_synth.models import RequestOptions
    from llm_synth.orchestrator import Orchestrator
    from llm_synth.output import export_markdown
    from llm_synth.registry import build_registry
    from llm_synth.synthesis import synthesize

    config = load_config()
    orchestrator = Orchestrator(build_registry(config))
    active = orchestrator.resolve_active(config.models)

    assert len(active) >= 2, f"Need 2+ configured providers, got {active}"

    session = ChatSession()
    session.add_user("In two sentences: should a small team use a monorepo for Python microservices?")

    results = await orchestrator.query_all(active, session.to_messages("Be concise."), RequestOptions(max_tokens=300))

    assert list(results) == active
    for result in results.values():
        if result.success:
            assert result.content, f"Empty content from {result.provider_key}"

    synthesized = synthesize(results, config.disagreement)
    assert synthesized.content
    session.add_assistant(synthesized)

    saved = export_markdown(session, tmp_path / "exports")
    assert saved.exists()
    assert "## AI Response" in saved.read_text(encoding="utf-8")


async def test_streaming_round():
    from config.config_loader import load_config
    from llm_synth.models import Message, Role
    from llm_synth.orchestrator import Orchestrator
    from llm_synth.registry import build_registry

    config = load_config()
    orchestrator = Orchestrator(build_registry(config))
    active = orchestrator.resolve_active(config.models)
    chunks: dict[str, int] = {}
    done: list[str] = []

    def on_chunk(key: str, fragment: str, cumulative: str) -> None:
        chunks[key] = len(cumulative)

    results = await orchestrator.stream_all(
        active,
        [Message(Role.USER, "Name three prime numbers.")],
        on_chunk,
        lambda key, result: done.append(key),
    )

    assert sorted(done) == sorted(active)
    for key, result in results.items():
        if result.success:
            assert chunks.get(key) == len(result.content)
