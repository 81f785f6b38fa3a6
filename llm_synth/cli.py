"""Click CLI: config loading, provider selection, one synthesis round per question."""

import asyncio
import logging
import sys
from dataclasses import dataclass, replace
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config
from llm_synth.conversation import ChatSession
from llm_synth.models import Message, ProviderResult, RequestOptions, Role, SynthesizedResult
from llm_synth.orchestrator import NoProvidersConfiguredError, Orchestrator
from llm_synth.output import (
    export_json,
    export_markdown,
    print_disagreements,
    print_history,
    print_providers,
    print_results,
    print_synthesis,
)
from llm_synth.prompt_file import parse_prompt_file
from llm_synth.registry import build_registry
from llm_synth.store import VIEWS, HistoryStore, SettingsStore
from llm_synth.synthesis import synthesize

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


@dataclass
class AppContext:
    config: AppConfig
    settings: SettingsStore
    history: HistoryStore


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _build_orchestrator(app: AppContext) -> Orchestrator:
    return Orchestrator(build_registry(app.config, app.settings.credentials()))


def _determine_selection(
    app: AppContext,
    models_arg: str | None,
    file_models: list[str] | None,
) -> list[str]:
    """Precedence: --models > prompt file front matter > saved settings > config default."""
    if models_arg:
        return [m.strip() for m in models_arg.split(",") if m.strip()]
    if file_models:
        return file_models
    saved = app.settings.load().selected_models
    if saved:
        return list(saved)
    return list(app.config.defaults.selected_models)


def _determine_stream(app: AppContext, stream_flag: bool | None, file_stream: bool | None) -> bool:
    if stream_flag is not None:
        return stream_flag
    if file_stream is not None:
        return file_stream
    saved = app.settings.load().stream_responses
    if saved is not None:
        return saved
    return app.config.defaults.stream


def _determine_split(app: AppContext, split_flag: bool) -> bool:
    """--split wins; otherwise the saved default view."""
    return split_flag or app.settings.load().default_view == "split"


def _build_options(app: AppContext, temperature: float | None, max_tokens: int | None) -> RequestOptions:
    defaults = app.config.options
    return RequestOptions(
        temperature=temperature if temperature is not None else defaults.temperature,
        max_tokens=max_tokens if max_tokens is not None else defaults.max_tokens,
        top_p=defaults.top_p,
    )


async def _run_round(
    app: AppContext,
    orchestrator: Orchestrator,
    selected: list[str],
    conversation: list[Message],
    options: RequestOptions,
    stream: bool,
) -> SynthesizedResult:
    """Run one round with a live progress display and synthesize the results."""
    registry = orchestrator.registry
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        if stream:
            tasks = {
                key: progress.add_task(f"{registry.get(key).display_name}: waiting...", total=None)
                for key in orchestrator.resolve_active(selected)
            }

            def on_chunk(key: str, fragment: str, cumulative: str) -> None:
                if key in tasks:
                    progress.update(
                        tasks[key],
                        description=f"{registry.get(key).display_name}: {len(cumulative)} chars",
                    )

            def on_provider_done(key: str, result: ProviderResult) -> None:
                if key in tasks:
                    progress.remove_task(tasks[key])
                if result.success:
                    progress.print(f"[green]OK  [/green] {result.display_name} ({result.latency_ms / 1000:.1f}s)")
                else:
                    progress.print(f"[red]FAIL[/red] {result.display_name}: {result.error}")

            results = await orchestrator.stream_all(
                selected, conversation, on_chunk, on_provider_done, replace(options, stream=True)
            )
        else:
            progress.add_task("Multiple AIs are thinking...", total=None)
            results = await orchestrator.query_all(selected, conversation, options)

    return synthesize(results, app.config.disagreement)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to settings.yaml (default: bundled config)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, settings_path: Path | None) -> None:
    """LLM Synthesizer -- ask several chat models at once and compare their answers.

    \b
    Examples:
      llm-synth ask "Should we use REST or GraphQL?"
      llm-synth ask "SQL or NoSQL?" --models claude,chatgpt --no-stream
      llm-synth ask --file question.md --split
      llm-synth ask "And for analytics?" --chat <ID>
      llm-synth export <ID> --format md
    """
    # Model responses may contain characters the Windows console code page can't encode
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config(settings_path) if settings_path else load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    data_dir = config.defaults.data_dir
    ctx.obj = AppContext(
        config=config,
        settings=SettingsStore(data_dir / "settings.json"),
        history=HistoryStore(data_dir / "history.json", limit=config.defaults.history_limit),
    )


@main.command()
@click.argument("question", required=False)
@click.option("--file", "question_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              help="Read question from .md file (front matter: models, stream, system)")
@click.option("--models", default=None, help="Comma-separated provider keys (default: saved selection)")
@click.option("--stream/--no-stream", "stream_flag", default=None, help="Stream responses as they arrive")
@click.option("--system", default=None, help="System prompt sent to every provider")
@click.option("--chat", "chat_id", default=None, help="Continue a saved chat by ID")
@click.option("--temperature", type=click.FloatRange(0.0, 1.0), default=None)
@click.option("--max-tokens", type=click.IntRange(min=1), default=None)
@click.option("--split", is_flag=True, help="Also show every provider's full answer (default: saved view)")
@click.option("--no-save", is_flag=True, help="Do not store this turn in chat history")
@click.pass_obj
def ask(
    app: AppContext,
    question: str | None,
    question_file: Path | None,
    models: str | None,
    stream_flag: bool | None,
    system: str | None,
    chat_id: str | None,
    temperature: float | None,
    max_tokens: int | None,
    split: bool,
    no_save: bool,
) -> None:
    """Ask every selected provider and show the synthesized answer."""
    meta: dict = {}
    if question_file:
        question_text, meta = parse_prompt_file(question_file)
    elif question:
        question_text = question
    else:
        console.print("[bold red]Error:[/bold red] Provide a QUESTION argument or --file.")
        sys.exit(1)

    if not question_text.strip():
        console.print("[bold red]Error:[/bold red] Question is empty.")
        sys.exit(1)

    if chat_id:
        session = app.history.get(chat_id)
        if session is None:
            console.print(f"[bold red]Error:[/bold red] No saved chat with ID {chat_id}.")
            sys.exit(1)
    else:
        session = ChatSession()

    selected = _determine_selection(app, models, meta.get("models"))
    stream = _determine_stream(app, stream_flag, meta.get("stream"))
    options = _build_options(app, temperature, max_tokens)
    orchestrator = _build_orchestrator(app)

    session.add_user(question_text)
    conversation = session.to_messages(system or meta.get("system"))

    try:
        synthesized = asyncio.run(_run_round(app, orchestrator, selected, conversation, options, stream))
    except NoProvidersConfiguredError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        console.print(f"[dim]Selected: {', '.join(selected) or '(none)'}[/dim]")
        sys.exit(1)

    session.add_assistant(synthesized)

    if _determine_split(app, split):
        print_results(synthesized.all_results, full=True)
    print_synthesis(synthesized)
    print_disagreements(synthesized)

    if not no_save:
        app.history.save(session)
        console.print(f"\n[dim]Chat ID: {session.id} (continue with --chat {session.id})[/dim]")


@main.command()
@click.pass_obj
def providers(app: AppContext) -> None:
    """List providers and whether each has an API key."""
    print_providers(build_registry(app.config, app.settings.credentials()))


@main.group()
def history() -> None:
    """Browse saved chats."""


@history.command("list")
@click.pass_obj
def history_list(app: AppContext) -> None:
    print_history(app.history.list())


@history.command("show")
@click.argument("chat_id")
@click.option("--split", is_flag=True, help="Show every provider's answer for each turn")
@click.pass_obj
def history_show(app: AppContext, chat_id: str, split: bool) -> None:
    session = app.history.get(chat_id)
    if session is None:
        console.print(f"[bold red]Error:[/bold red] No saved chat with ID {chat_id}.")
        sys.exit(1)
    console.print(f"[bold]{session.title}[/bold]\n")
    split = _determine_split(app, split)
    for turn in session.turns:
        if turn.role is Role.USER:
            console.print(f"[bold cyan]You:[/bold cyan] {turn.content}\n")
        elif turn.synthesized is not None:
            if split:
                print_results(turn.synthesized.all_results, full=True)
            print_synthesis(turn.synthesized)
            print_disagreements(turn.synthesized)
        else:
            console.print(Markdown(turn.content))


@history.command("delete")
@click.argument("chat_id")
@click.pass_obj
def history_delete(app: AppContext, chat_id: str) -> None:
    if app.history.delete(chat_id):
        console.print(f"Deleted chat {chat_id}.")
    else:
        console.print(f"[yellow]No saved chat with ID {chat_id}.[/yellow]")


@history.command("clear")
@click.confirmation_option(prompt="Delete all saved chats?")
@click.pass_obj
def history_clear(app: AppContext) -> None:
    app.history.clear()
    console.print("Chat history cleared.")


@main.command()
@click.argument("chat_id")
@click.option("--format", "fmt", type=click.Choice(["md", "json"]), default="md", show_default=True)
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.pass_obj
def export(app: AppContext, chat_id: str, fmt: str, output_path: str | None) -> None:
    """Export a saved chat as Markdown or JSON."""
    session = app.history.get(chat_id)
    if session is None:
        console.print(f"[bold red]Error:[/bold red] No saved chat with ID {chat_id}.")
        sys.exit(1)
    output_dir = Path(output_path) if output_path else app.config.defaults.output_dir
    saved = export_markdown(session, output_dir) if fmt == "md" else export_json(session, output_dir)
    console.print(f"[dim]Saved to: {saved}[/dim]")


@main.group()
def settings() -> None:
    """Manage saved API keys and preferences."""


@settings.command("set-key")
@click.argument("provider")
@click.argument("api_key", required=False)
@click.pass_obj
def settings_set_key(app: AppContext, provider: str, api_key: str | None) -> None:
    """Save (or, with no KEY, remove) the API key for PROVIDER."""
    model_cfg = app.config.models.get(provider)
    if model_cfg is None:
        console.print(f"[bold red]Error:[/bold red] Unknown provider '{provider}'. "
                      f"Known: {', '.join(app.config.models)}")
        sys.exit(1)
    app.settings.set_api_key(model_cfg.api_key_env, api_key or "")
    console.print(f"{'Saved' if api_key else 'Removed'} API key for {provider}.")


@settings.command("select")
@click.argument("models")
@click.pass_obj
def settings_select(app: AppContext, models: str) -> None:
    """Set the default provider selection (comma-separated keys)."""
    keys = [m.strip() for m in models.split(",") if m.strip()]
    unknown = [k for k in keys if k not in app.config.models]
    if unknown:
        console.print(f"[yellow]Warning:[/yellow] unknown provider(s): {', '.join(unknown)}")
    try:
        app.settings.set_selected_models(keys)
    except ValueError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        sys.exit(1)
    console.print(f"Selected: {', '.join(keys)}")


@settings.command("stream")
@click.argument("state", type=click.Choice(["on", "off"]))
@click.pass_obj
def settings_stream(app: AppContext, state: str) -> None:
    app.settings.set_stream(state == "on")
    console.print(f"Streaming {state}.")


@settings.command("view")
@click.argument("view", type=click.Choice(list(VIEWS)))
@click.pass_obj
def settings_view(app: AppContext, view: str) -> None:
    """Default answer view: unified (synthesis only) or split (every provider)."""
    app.settings.set_default_view(view)
    console.print(f"Default view: {view}.")


@settings.command("reset")
@click.confirmation_option(prompt="Remove all saved keys and preferences?")
@click.pass_obj
def settings_reset(app: AppContext) -> None:
    app.settings.clear()
    console.print("Settings reset.")


if __name__ == "__main__":
    main()
