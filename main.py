#!/usr/bin/env python3
"""
doo - Command Template Launcher
===============================

Main entry point.

Usage:
    doo                          # List available commands
    doo <name> [args...]         # Resolve and run a command
    doo var [#N [value]]         # List, show or set persistent variables
    doo context [name]           # List or switch contexts
    doo import <path|owner/repo> # Import one config source
    doo import-repo <owner/repo> # Import every YAML file of a repository
    doo sync [--yes]             # Re-fetch imported sources
"""

import argparse
import sys
from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, IntPrompt
from rich.table import Table

from commands.registry import Conflict
from commands.resolver import placeholders
from core.errors import DooError, ErrorHandler
from core.launcher import Launcher
from infra.logging import InvocationContext, configure_logging, get_logger
from infra.settings import Settings

console = Console()
err_console = Console(stderr=True)

BUILTINS = ("var", "context", "import", "import-repo", "sync")


def prompt_conflict(conflict: Conflict) -> int:
    """Ask which source should provide a collided command."""
    err_console.print(
        f"[bold yellow]⚠[/bold yellow] Command [bold cyan]{conflict.name}[/bold cyan] "
        "found in multiple config files:"
    )
    for i, (source_id, template) in enumerate(conflict.options, start=1):
        err_console.print(f"  {i}) [blue]{source_id}[/blue]: {escape(template)}")

    choice = IntPrompt.ask(
        "Which config file should be used?",
        console=err_console,
        choices=[str(i) for i in range(1, len(conflict.options) + 1)],
        default=1,
    )
    return choice - 1


def print_commands(launcher: Launcher, query: str = "") -> None:
    """Print the merged command list."""
    definitions = launcher.search(query)
    if not definitions:
        console.print("[red]No commands available.[/red]")
        return

    conflicts = launcher.load_registry().conflicts
    table = Table(title=f"doo commands (context: {launcher.active_context()})", title_style="bold cyan")
    table.add_column("Name", style="bold cyan", no_wrap=True)
    table.add_column("Command")
    table.add_column("Args", style="yellow")
    table.add_column("Description", style="dim")
    table.add_column("Source", style="blue")

    for definition in definitions:
        name = definition.name
        if name in conflicts:
            name = f"{name} [yellow](!)[/yellow]"
        table.add_row(
            name,
            escape(definition.template),
            " ".join(placeholders(definition.template)),
            escape(definition.description or ""),
            definition.source_id,
        )

    console.print(table)


def print_source_errors(launcher: Launcher) -> None:
    for error in launcher.source_errors():
        err_console.print(f"[yellow]⚠ Skipped source[/yellow] {error.source_id}: {escape(error.reason)}")


def handle_var(launcher: Launcher, argv: List[str], context: Optional[str]) -> int:
    parser = argparse.ArgumentParser(prog="doo var", description="Manage persistent variables")
    parser.add_argument("name", nargs="?", help="Variable name (e.g. #1)")
    parser.add_argument("value", nargs="?", help="Variable value")
    parser.add_argument("--unset", action="store_true", help="Remove the variable")
    args = parser.parse_args(argv)

    ctx = launcher.context_or_active(context)

    if args.name is None:
        variables = launcher.list_variables(ctx)
        if not variables:
            console.print(f"No variables set in context [bold blue]{ctx}[/bold blue]")
            return 0
        table = Table(title=f"Variables ({ctx})", title_style="bold blue")
        table.add_column("Name", style="cyan")
        table.add_column("Value", style="yellow")
        for key, value in variables.items():
            table.add_row(key, escape(value))
        console.print(table)
        return 0

    if args.unset:
        if launcher.remove_variable(args.name, ctx):
            console.print(f"[bold green]✓[/bold green] Variable {args.name} removed from context {ctx}")
            return 0
        console.print(f"[yellow]Variable {args.name} is not set in context {ctx}[/yellow]")
        return 1

    if args.value is None:
        value = launcher.get_variable(args.name, ctx)
        if value is None:
            console.print(f"[yellow]Variable {args.name} is not set in context {ctx}[/yellow]")
            return 1
        console.print(value, markup=False, highlight=False)
        return 0

    launcher.set_variable(args.name, args.value, ctx)
    console.print(
        f"[bold green]✓[/bold green] Variable [bold cyan]{args.name}[/bold cyan] set to "
        f"[yellow]{escape(args.value)}[/yellow] in context [bold blue]{ctx}[/bold blue]"
    )
    return 0


def handle_context(launcher: Launcher, argv: List[str]) -> int:
    parser = argparse.ArgumentParser(prog="doo context", description="List or switch contexts")
    parser.add_argument("name", nargs="?", help="Context to switch to")
    args = parser.parse_args(argv)

    if args.name is None:
        active = launcher.active_context()
        for name in launcher.list_contexts():
            marker = "[bold green]*[/bold green]" if name == active else " "
            console.print(f"{marker} {name}")
        return 0

    launcher.switch_context(args.name)
    console.print(f"[bold green]✓[/bold green] Switched to context [bold blue]{args.name}[/bold blue]")
    return 0


def handle_import(launcher: Launcher, argv: List[str]) -> int:
    parser = argparse.ArgumentParser(
        prog="doo import", description="Import a config file from a local path or a GitHub repository"
    )
    parser.add_argument("ref", help="Path to a config file or owner/repo")
    args = parser.parse_args(argv)

    with console.status(f"Importing {args.ref}..."):
        source = launcher.import_single(args.ref)

    origin = f" from {source.origin.repo} ({source.origin.visibility.value})" if source.origin else ""
    console.print(
        f"[bold green]✓[/bold green] Imported {len(source)} command(s){origin} "
        f"as [bold cyan]{source.source_id}[/bold cyan]"
    )
    return 0


def handle_import_repo(launcher: Launcher, argv: List[str]) -> int:
    parser = argparse.ArgumentParser(
        prog="doo import-repo", description="Import all YAML config files from a GitHub repository"
    )
    parser.add_argument("repo", help="GitHub repository (owner/repo)")
    args = parser.parse_args(argv)

    with console.status(f"Cloning {args.repo}..."):
        report = launcher.import_repo(args.repo)

    console.print(
        f"[bold green]✓[/bold green] Imported {len(report.imported)} config file(s) "
        f"from [bold cyan]{args.repo}[/bold cyan]:"
    )
    for source in report.imported:
        console.print(f"  • [cyan]{source.source_id}[/cyan] ({len(source)} command(s))")
    for filename, reason in report.skipped.items():
        console.print(f"  [yellow]⚠ Skipped {filename}[/yellow]: {escape(reason)}")
    return 0


def handle_sync(launcher: Launcher, argv: List[str], interactive: bool) -> int:
    parser = argparse.ArgumentParser(prog="doo sync", description="Sync imported configs with their origins")
    parser.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")
    args = parser.parse_args(argv)

    if not args.yes:
        if not interactive:
            err_console.print("[red]Refusing to sync without confirmation; pass --yes[/red]")
            return 1
        console.print("[yellow]⚠ Sync overwrites all local changes in imported configs.[/yellow]")
        if not Confirm.ask("Do you want to continue with the sync?", default=False):
            console.print("Sync cancelled.")
            return 0

    with console.status("Syncing imported configs..."):
        report = launcher.sync_all()

    if report.total == 0:
        console.print("No imported configs with remote origins found. Nothing to sync.")
        return 0

    for source_id in report.updated:
        console.print(f"  [green]✓ updated[/green]   {source_id}")
    for source_id in report.unchanged:
        console.print(f"  [dim]= unchanged[/dim] {source_id}")
    for source_id in report.removed:
        console.print(f"  [yellow]- removed[/yellow]   {source_id}")
    for source_id, reason in report.failed.items():
        console.print(f"  [red]✗ failed[/red]    {source_id}: {escape(reason)}")

    console.print(
        f"\n[bold]Sync summary:[/bold] {len(report.updated)} updated, {len(report.unchanged)} unchanged, "
        f"{len(report.removed)} removed, {len(report.failed)} failed"
    )
    return 0 if report.ok else 1


def handle_run(launcher: Launcher, name: str, argv: List[str], context: Optional[str]) -> int:
    resolved = launcher.resolve(name, argv, context)

    if launcher.settings.dry_run:
        console.print(resolved, markup=False, highlight=False)
        return 0

    err_console.print(f"[bold green]Executing:[/bold green] {escape(resolved)}")
    result = launcher.execute(resolved)
    if not result.success:
        err_console.print(f"[bold red]✗[/bold red] Command exited with code {result.exit_code}")
    return result.exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="doo",
        description="Run named command templates with persistent variables and contexts",
        epilog=f"Built-in commands: {', '.join(BUILTINS)}",
    )
    parser.add_argument(
        "--log-level", "-l",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: DOO_LOG_LEVEL or WARNING)",
    )
    parser.add_argument("--context", "-c", help="Use this context for this invocation only")
    parser.add_argument("--dry-run", "-n", action="store_true", help="Print the resolved command only")
    parser.add_argument("--non-interactive", action="store_true", help="Never prompt; fail on ambiguity")
    parser.add_argument("--search", "-s", default="", help="Filter the command list")
    parser.add_argument("command", nargs="?", help="Command name or built-in")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="Arguments for the command")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    settings = Settings.from_env()
    if args.log_level:
        settings.log_level = args.log_level
    if args.non_interactive:
        settings.non_interactive = True
    settings.dry_run = args.dry_run

    interactive = not settings.non_interactive and sys.stdin.isatty()
    if not interactive:
        settings.non_interactive = True

    configure_logging(
        level=settings.log_level_value,
        log_dir=str(settings.log_dir) if settings.log_dir else None,
        file=settings.log_dir is not None,
    )
    logger = get_logger("main")
    error_handler = ErrorHandler()

    with InvocationContext():
        launcher = None
        try:
            launcher = Launcher(settings, conflict_resolver=prompt_conflict if interactive else None)

            command = args.command
            if command is None:
                print_source_errors(launcher)
                print_commands(launcher, args.search)
                return 0
            if command == "var":
                return handle_var(launcher, args.args, args.context)
            if command == "context":
                return handle_context(launcher, args.args)
            if command == "import":
                return handle_import(launcher, args.args)
            if command == "import-repo":
                return handle_import_repo(launcher, args.args)
            if command == "sync":
                return handle_sync(launcher, args.args, interactive)

            print_source_errors(launcher)
            return handle_run(launcher, command, args.args, args.context)

        except DooError as e:
            err_console.print(f"[bold red]Error:[/bold red] {escape(error_handler.handle(e))}")
            return 1
        except KeyboardInterrupt:
            err_console.print("\n[yellow]Interrupted by user[/yellow]")
            return 130
        except Exception as e:
            logger.exception("Fatal error")
            err_console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
            return 1
        finally:
            if launcher is not None:
                launcher.close()


if __name__ == "__main__":
    sys.exit(main())
