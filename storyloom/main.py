"""storyloom CLI - inspect a saved session snapshot."""

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import Config
from .decisions.models import GameStateSnapshot
from .enums import FactCategory, GenerationMode
from .errors import StoryloomError
from .llm import LLMManager
from .logging_config import setup_logging
from .core.session import NarrativeSession
from .settings import EngineSettings

console = Console()


def print_banner():
    """Print the storyloom banner."""
    banner = Text()
    banner.append("storyloom", style="bold cyan")
    banner.append(" - narrative memory & decision engine", style="cyan")
    console.print(Panel(banner, border_style="cyan", padding=(0, 2)))


def print_provider_info() -> bool:
    """Print LLM provider information."""
    try:
        manager = LLMManager()
        provider = manager.primary_provider
        console.print(f"[dim]LLM Provider: [green]{provider}[/green][/dim]")
        console.print(f"[dim]Decision Model: {manager.get_provider().default_model}[/dim]")

        available = manager.list_available_providers()
        others = [p for p in available if p != provider]
        if others:
            console.print(f"[dim]Also available: {', '.join(others)}[/dim]")
    except ValueError as e:
        console.print(f"[red]LLM Error: {e}[/red]")
        return False
    return True


def load_session(path: Path) -> NarrativeSession:
    """Load a snapshot for viewing; never calls a model."""
    session = NarrativeSession.load(path, settings=EngineSettings(generation_mode=GenerationMode.TEMPLATE))
    return session


def show_facts(session: NarrativeSession, category: str | None, include_invalid: bool):
    if category:
        facts = session.facts.get_facts_by_category(category, include_invalid=include_invalid)
    else:
        facts = session.facts.all_facts(include_invalid=include_invalid)

    if not facts:
        console.print("[dim]No facts stored.[/dim]")
        return

    table = Table(title=f"World facts ({len(facts)})", show_lines=False)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Category", style="magenta")
    table.add_column("Content")
    table.add_column("Imp", justify="right")
    table.add_column("Conf", justify="right")
    table.add_column("v", justify="right")
    table.add_column("Tags", style="dim")
    for fact in facts:
        content = fact.content if fact.is_valid else f"[strike dim]{fact.content}[/strike dim]"
        table.add_row(
            fact.id,
            str(fact.category),
            content,
            str(fact.importance),
            str(fact.confidence),
            str(fact.version),
            ", ".join(sorted(fact.tags)),
        )
    console.print(table)


def show_history(session: NarrativeSession, limit: int | None):
    current = session.current_decision
    if current:
        lines = [f"[bold]{current.prompt}[/bold]"]
        lines += [f"  [yellow]{o.id}[/yellow]: {o.text}" for o in current.options]
        console.print(Panel("\n".join(lines), title="[dim]Awaiting choice[/dim]", border_style="yellow"))

    records = session.history.get_history(limit)
    if not records:
        console.print("[dim]No decisions recorded.[/dim]")
        return

    table = Table(title=f"Decision history ({len(session.history)})")
    table.add_column("Decision", style="cyan", no_wrap=True)
    table.add_column("Prompt")
    table.add_column("Choice", style="green")
    table.add_column("Outcome", style="dim")
    for record in records:
        table.add_row(record.decision_id, record.prompt, record.option_text, record.narrative_outcome)
    console.print(table)


async def show_context(
    session: NarrativeSession,
    location: str | None,
    characters: list[str],
    topics: list[str],
    budget: int | None,
):
    state = GameStateSnapshot(
        current_location=location,
        active_characters=tuple(characters),
        recent_topics=tuple(topics),
    )
    assembled = await session.build_context(state, token_budget=budget)
    console.print(Panel(
        assembled.text or "[dim](empty)[/dim]",
        title=f"[dim]Context ({assembled.token_estimate} tokens, {len(assembled.included_ids)} elements)[/dim]",
        border_style="dim",
    ))
    if assembled.summarized:
        console.print("[dim]History was summarized.[/dim]")
    if assembled.truncated:
        console.print("[yellow]History was truncated.[/yellow]")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storyloom", description=__doc__)
    sub = parser.add_subparsers(dest="command", required=True)

    facts = sub.add_parser("facts", help="List world facts")
    facts.add_argument("snapshot", type=Path)
    facts.add_argument("--category", choices=[c.value for c in FactCategory])
    facts.add_argument("--all", action="store_true", help="Include invalidated facts")

    history = sub.add_parser("history", help="List recorded decisions")
    history.add_argument("snapshot", type=Path)
    history.add_argument("--limit", type=int)

    context = sub.add_parser("context", help="Assemble context for a situation")
    context.add_argument("snapshot", type=Path)
    context.add_argument("--location")
    context.add_argument("--character", action="append", default=[])
    context.add_argument("--topic", action="append", default=[])
    context.add_argument("--budget", type=int)

    sub.add_parser("providers", help="Show configured LLM providers")
    return parser


def main(argv: list[str] | None = None):
    """Entry point for the CLI."""
    args = build_parser().parse_args(argv)
    setup_logging("DEBUG" if Config.DEBUG else Config.LOG_LEVEL, Config.LOG_LEVELS)

    if args.command == "providers":
        print_banner()
        issues = Config.validate()
        for issue in issues:
            console.print(f"  [red]• {issue}[/red]")
        sys.exit(0 if print_provider_info() and not issues else 1)

    try:
        session = load_session(args.snapshot)
        if args.command == "facts":
            show_facts(session, args.category, args.all)
        elif args.command == "history":
            show_history(session, args.limit)
        elif args.command == "context":
            asyncio.run(show_context(session, args.location, args.character, args.topic, args.budget))
    except FileNotFoundError:
        console.print(f"[red]Snapshot not found: {args.snapshot}[/red]")
        sys.exit(1)
    except StoryloomError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
