"""fungi CLI — run a fungus or try FUNGI code locally."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from fungi.exceptions import MalformedProgram
from fungi.language.rules import DEFAULT_RULE_SYSTEM, evaluate, parse, serialize
from fungi.types import RuleSystem

console = Console()

app = typer.Typer(
    name="fungi",
    help="fungi -- a self-modifying Fediverse bot that evolves in the open.",
    no_args_is_help=True,
)


def _load_program(path: Path | None) -> RuleSystem:
    if path is None:
        return DEFAULT_RULE_SYSTEM
    try:
        return parse(path.read_text(encoding="utf-8"))
    except MalformedProgram as e:
        console.print(f"[red]Malformed program:[/red] {e}")
        raise typer.Exit(code=1)


@app.command("serve")
def serve():
    """Run the fungus lifecycle and the control API."""
    from fungi.serve import main

    asyncio.run(main())


@app.command("check")
def check(
    path: Path = typer.Argument(help="File containing FUNGI code"),
):
    """Parse a program and show its rules."""
    rule_system = _load_program(path)
    if rule_system.is_empty:
        console.print("[yellow]Empty program.[/yellow]")
        return

    table = Table(title=f"{len(rule_system.rules)} rules")
    table.add_column("#", style="dim")
    table.add_column("Pattern", style="cyan")
    table.add_column("Response")
    for i, rule in enumerate(rule_system.rules, 1):
        table.add_row(str(i), rule.pattern, rule.response)
    console.print(table)
    console.print(f"[dim]{serialize(rule_system)}[/dim]")


@app.command("ask")
def ask(
    text: str = typer.Argument(help="What to say to the fungus"),
    program: Optional[Path] = typer.Option(None, "--program", "-p", help="FUNGI code file"),
):
    """Answer a text with a program (the default one unless given)."""
    rule_system = _load_program(program)
    console.print(evaluate(rule_system, text))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
