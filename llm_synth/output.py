"""Rich console output and Markdown/JSON export of chat sessions."""

import json
import logging
import re
from datetime import datetime
from pathlib import Path

import frontmatter
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from llm_synth.conversation import ChatSession
from llm_synth.models import ProviderResult, Role, SynthesizedResult
from llm_synth.registry import Registry

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _response_preview(content: str, words: int = 50) -> str:
    """Return first N words of a response."""
    all_words = content.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def _label(result: ProviderResult) -> str:
    return " ".join(p for p in (result.icon, result.display_name) if p)


def _style(result: ProviderResult) -> str:
    # Rich rejects unparseable colors; fall back to dim
    return result.color if re.fullmatch(r"#[0-9a-fA-F]{6}", result.color or "") else "dim"


def print_results(results: dict[str, ProviderResult], full: bool = False) -> None:
    """Print every provider's answer (or error) as a panel."""
    console.print(Rule("[bold cyan]Individual Responses[/bold cyan]"))
    for result in results.values():
        title = f"[bold]{_label(result)}[/bold]"
        if result.success:
            body = Markdown(result.content) if full else _response_preview(result.content or "")
            tokens = f" | {result.usage.total_tokens} tokens" if result.usage and result.usage.total_tokens else ""
            subtitle = f"{result.latency_ms / 1000:.1f}s{tokens}"
            console.print(Panel(body, title=title, subtitle=subtitle, border_style=_style(result)))
        else:
            console.print(Panel(Text(result.error or "", style="red"), title=title, border_style="red"))


def print_disagreements(synthesized: SynthesizedResult) -> None:
    if not synthesized.disagreements:
        console.print(Text("No significant disagreements detected", style="dim"))
        return
    table = Table(title="Possible disagreements", title_style="bold yellow")
    table.add_column("Topic")
    table.add_column("Stances")
    for d in synthesized.disagreements:
        stances = ", ".join(
            f"{synthesized.all_results[k].display_name if k in synthesized.all_results else k}: {s.value}"
            for k, s in d.stances.items()
        )
        table.add_row(d.topic, stances)
    console.print(table)


def print_synthesis(synthesized: SynthesizedResult) -> None:
    """Print the primary answer with a one-line summary of the round."""
    console.print(Rule("[bold green]Synthesized Answer[/bold green]"))
    primary = synthesized.primary_result
    if primary is None:
        console.print(Text(synthesized.content, style="bold red"))
        return
    failed = sum(1 for r in synthesized.all_results.values() if not r.success)
    console.print(
        Text(
            f"Primary: {_label(primary)} | "
            f"Latency: {primary.latency_ms / 1000:.1f}s | "
            f"Models responded: {synthesized.model_count}"
            + (f" | Failed: {failed}" if failed else ""),
            style="dim",
        )
    )
    console.print(Markdown(synthesized.content))


def print_providers(registry: Registry) -> None:
    table = Table(title="Providers")
    table.add_column("Key")
    table.add_column("Name")
    table.add_column("Model")
    table.add_column("Configured")
    for d in registry.list_descriptors():
        ok = d.provider.is_configured()
        table.add_row(
            d.key,
            f"{d.icon} {d.display_name}".strip(),
            d.provider.model_string(),
            "[green]yes[/green]" if ok else "[red]no[/red]",
        )
    console.print(table)


def print_history(sessions: list[ChatSession]) -> None:
    if not sessions:
        console.print("No chat history yet.")
        return
    table = Table(title="Chat history")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Date")
    table.add_column("Turns", justify="right")
    for s in sessions:
        table.add_row(
            s.id,
            s.title,
            datetime.fromtimestamp(s.timestamp).strftime("%Y-%m-%d %H:%M"),
            str(len(s.turns)),
        )
    console.print(table)


def render_markdown(session: ChatSession) -> str:
    """Markdown transcript of a session, with YAML front matter."""
    lines: list[str] = [
        f"# {session.title}",
        "",
        f"*Exported on {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}*",
        "",
        "---",
        "",
    ]

    for turn in session.turns:
        if turn.role is Role.USER:
            lines += ["## You", "", turn.content, ""]
        elif turn.role is Role.ASSISTANT:
            lines += ["## AI Response", "", turn.content, ""]
            synthesized = turn.synthesized
            if synthesized is not None:
                primary = synthesized.primary_result
                if primary is not None:
                    lines += [f"*Primary: {primary.display_name} | Models: {synthesized.model_count}*", ""]
                if synthesized.disagreements:
                    lines.append("**Possible disagreements:**")
                    lines.append("")
                    for d in synthesized.disagreements:
                        stances = ", ".join(f"{k}: {s.value}" for k, s in d.stances.items())
                        lines.append(f'- "{d.topic}": {stances}')
                    lines.append("")
                successful = [r for r in synthesized.all_results.values() if r.success]
                if successful:
                    lines += ["<details>", "<summary>Individual Model Responses</summary>", ""]
                    for r in successful:
                        lines += [f"### {_label(r)}", "", r.content or "", ""]
                    lines += ["</details>", ""]
        lines += ["---", ""]

    post = frontmatter.Post(
        "\n".join(lines),
        id=session.id,
        title=session.title,
        exported_at=datetime.now().isoformat(timespec="seconds"),
    )
    return frontmatter.dumps(post) + "\n"


def export_markdown(session: ChatSession, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / f"chat-{session.id}-{_slug(session.title) or 'untitled'}.md"
    filepath.write_text(render_markdown(session), encoding="utf-8")
    logger.info("Chat exported to: %s", filepath)
    return filepath


def export_json(session: ChatSession, output_dir: Path) -> Path:
    output_dir.mkdir(parents=True, exist_ok=True)
    filepath = output_dir / f"chat-{session.id}.json"
    data = {
        "chatId": session.id,
        "title": session.title,
        "exportedAt": datetime.now().isoformat(timespec="seconds"),
        "messages": [t.to_dict() for t in session.turns],
    }
    filepath.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Chat exported to: %s", filepath)
    return filepath
