#!/usr/bin/env python3
"""Spec Wizard CLI - build a software specification by chatting.

Usage:
    # Create the tables, then start a session
    python main.py init-db
    python main.py new

    # Chat; the specification is re-synthesized after every turn
    python main.py chat <session-id> "I want an app for dog walkers"

    # Share, resume and hand off
    python main.py link <session-id>
    python main.py resume <token>
    python main.py finalize <session-id>
"""

import json
import logging
import sys
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from agents import parse_quick_options
from client import FileOfflineQueue, OfflineQueue, SessionCache
from config import settings
from contracts import REQUIRED_SECTIONS, Message, Role, Session
from orchestrator import SessionManager, SpecWizard, SpecWizardError
from providers import list_providers as get_available_providers
from storage import create_db_engine, create_session_factory, init_db


console = Console()


def build_session_manager(offline_queue: Optional[OfflineQueue] = None) -> SessionManager:
    return SessionManager(
        create_session_factory(create_db_engine()),
        offline_queue=offline_queue or FileOfflineQueue(),
    )


def print_specification(session: Session) -> None:
    """Render the plain-English view of a session's specification."""
    state = session.state
    summary = state.specification.plain_english_summary

    console.print(Panel.fit(
        summary.overview or "[dim]No overview yet[/dim]",
        title=f"Specification v{state.specification.version}",
    ))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Section")
    table.add_column("Content")
    table.add_row("Target users", summary.target_users or "-")
    table.add_row("Key features", "\n".join(summary.key_features) or "-")
    table.add_row("Flows", "\n".join(summary.flows) or "-")
    table.add_row("Rules & constraints", "\n".join(summary.rules_and_constraints) or "-")
    table.add_row("Non-functional", "\n".join(summary.non_functional) or "-")
    table.add_row("MVP (in)", "\n".join(summary.mvp_definition.included) or "-")
    table.add_row("MVP (out)", "\n".join(summary.mvp_definition.excluded) or "-")
    console.print(table)

    missing = state.completeness.missing_sections
    done = len(REQUIRED_SECTIONS) - len([s for s in missing if s in REQUIRED_SECTIONS])
    console.print(f"\n[dim]Progress:[/dim] {done}/{len(REQUIRED_SECTIONS)} sections")
    if missing:
        console.print(f"[yellow]Missing:[/yellow] {', '.join(missing)}")
    if state.completeness.ready_for_handoff:
        console.print("[green]Ready for handoff[/green]")


@click.group()
@click.option("--log-level", default=None, help="Log level (default: settings.log_level)")
def cli(log_level):
    """Spec Wizard: conversational specification builder.

    Chat about the software you want built; a structured specification is
    kept up to date after every message.
    """
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@cli.command("init-db")
def init_db_command():
    """Create the database tables."""
    init_db(create_db_engine())
    console.print(f"[green]Database ready:[/green] {settings.database_url}")


@cli.command()
def new():
    """Start a new session."""
    session = SpecWizard(build_session_manager()).start()
    cache = SessionCache()
    cache.restore_session(session.state, session.id)
    cache.save()
    console.print(f"[green]Session:[/green] {session.id}")


@cli.command()
@click.argument("session_id")
@click.argument("message")
def chat(session_id, message):
    """Send MESSAGE to the session and print the reply.

    Messages queued offline for the session are synced first. When the
    store cannot be reached, MESSAGE itself is queued for the next chat or
    resume.
    """
    queue = FileOfflineQueue()
    try:
        manager = build_session_manager(queue)
        synced = manager.sync_offline_messages(session_id)
        result = SpecWizard(manager).send_message(session_id, message)
    except SpecWizardError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except OperationalError as e:
        queue.append(session_id, Message.user(message))
        console.print(f"[yellow]Store unreachable, message queued offline:[/yellow] {e.orig}")
        return
    except Exception as e:
        console.print(f"[red]Turn failed:[/red] {e}")
        console.print("[dim]Your message was saved; try again shortly.[/dim]")
        sys.exit(1)

    if synced:
        console.print(f"[dim]Synced {synced} offline messages[/dim]")

    parsed = parse_quick_options(result.reply.content)
    if parsed:
        text, options = parsed
        console.print(Panel(text, title="Assistant"))
        console.print("  ".join(f"[reverse] {opt} [/reverse]" for opt in options))
    else:
        console.print(Panel(result.reply.content, title="Assistant"))
    console.print(
        f"[dim]Specification:[/dim] v{result.spec_version}  "
        f"[dim]Missing:[/dim] {', '.join(result.missing_sections) or 'none'}"
    )
    cache = SessionCache.load()
    cache.restore_session(result.state, session_id)
    cache.save()


@cli.command()
@click.argument("session_id")
@click.option("--json", "as_json", is_flag=True, help="Print the full session state as JSON")
def show(session_id, as_json):
    """Show a session's specification and conversation."""
    session = build_session_manager().get_session(session_id)
    if session is None:
        console.print(f"[red]Error:[/red] Session not found: {session_id}")
        sys.exit(1)

    if as_json:
        console.print_json(json.dumps(session.to_wire()))
        return

    console.print(f"[dim]Status:[/dim] {session.status.value}")
    for message in session.state.conversation_history:
        colour = "cyan" if message.role == Role.USER else "magenta"
        console.print(f"[{colour}]{message.role.value}:[/{colour}] {message.content}")
    console.print()
    print_specification(session)


@cli.command()
@click.argument("session_id")
def link(session_id):
    """Generate a shareable magic link (replaces any previous link)."""
    manager = build_session_manager()
    try:
        token = manager.generate_magic_link(session_id)
    except SpecWizardError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    console.print(f"[green]Magic link:[/green] {manager.build_magic_link_url(token)}")
    console.print(f"[dim]Token:[/dim] {token}")


@cli.command()
@click.argument("token")
def resume(token):
    """Resume a session from a magic-link TOKEN and sync its offline messages."""
    manager = build_session_manager()
    cache = SessionCache.load()
    try:
        session = cache.resume_from_magic_link(manager, token)
        synced = cache.flush_offline(manager)
    except (SpecWizardError, SQLAlchemyError) as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    cache.save()
    console.print(f"[green]Resumed session:[/green] {session.id}")
    if synced:
        console.print(f"[dim]Synced {synced} offline messages[/dim]")
    print_specification(session)


@cli.command()
@click.argument("session_id")
def finalize(session_id):
    """Polish the specification for handoff."""
    wizard = SpecWizard(build_session_manager())
    try:
        wizard.finalize(session_id)
    except SpecWizardError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    print_specification(wizard.session_manager.get_session(session_id))


@cli.command()
@click.argument("session_id")
def abandon(session_id):
    """Mark a session abandoned. Its data is kept."""
    try:
        build_session_manager().abandon_session(session_id)
    except SpecWizardError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    console.print(f"[yellow]Abandoned:[/yellow] {session_id}")


@cli.command()
def providers():
    """List LLM providers and whether their API keys are set."""
    console.print("[bold]Available LLM Providers:[/bold]\n")
    for name, available in get_available_providers().items():
        status = "[green]✓ Ready[/green]" if available else "[red]✗ No API key[/red]"
        console.print(f"  {name:12} {status}")
    console.print("\n[dim]Set API keys via environment variables:[/dim]")
    console.print("  ANTHROPIC_API_KEY, OPENAI_API_KEY, GOOGLE_API_KEY, DEEPSEEK_API_KEY")
    console.print(f"\n[dim]Chat model:[/dim] {settings.chat_model}")
    console.print(f"[dim]Synthesis model:[/dim] {settings.synthesis_model}")


if __name__ == "__main__":
    cli()
