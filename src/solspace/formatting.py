"""Pretty-print support for solspace output objects.

Uses rich library for formatted terminal output.
All functions accept their target object and print to a rich Console.

To avoid circular imports, this module does NOT import domain models
at module level. Functions access object attributes dynamically.
"""
from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text


def _make_console(file: Any = None) -> Console:
    """Create a Console, optionally writing to a file-like object."""
    if file is not None:
        return Console(file=file, force_terminal=True, width=100)
    return Console()


def _score_style(score: float) -> str:
    if score >= 0.8:
        return "bold green"
    if score >= 0.5:
        return "yellow"
    return "red"


def _preview(value: Any, limit: int = 60) -> str:
    if value is None:
        return ""
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    text = text.replace("\n", " ")
    return text if len(text) <= limit else text[: limit - 3] + "..."


def pprint_attempt(attempt: Any, *, abbreviate: bool = False, file: Any = None) -> None:
    """Pretty-print an Attempt.

    Args:
        attempt: An Attempt instance.
        abbreviate: If True, truncate long descriptions and metadata.
        file: Optional file-like object for output (used in tests).
    """
    console = _make_console(file)

    body_parts: list[str] = []
    body_parts.append(f"[bold]Hash:[/bold]        {attempt.hash}")
    body_parts.append(f"[bold]Created:[/bold]     {attempt.timestamp.isoformat()}")

    desc = attempt.description
    if abbreviate and len(desc) > 120:
        desc = desc[:117] + "..."
    body_parts.append(f"[bold]Description:[/bold] {escape(desc)}")

    if "evaluation" in attempt.metadata:
        score = attempt.evaluation
        body_parts.append(
            f"[bold]Evaluation:[/bold]  [{_score_style(score)}]{score:.3f}[/{_score_style(score)}]"
        )

    extra = {k: v for k, v in attempt.metadata.items() if k != "evaluation"}
    if extra:
        rendered = json.dumps(extra, indent=2, ensure_ascii=False, default=str)
        if abbreviate and len(rendered) > 200:
            rendered = rendered[:197] + "..."
        body_parts.append("")
        body_parts.append("[bold]Metadata:[/bold]")
        body_parts.append(escape(rendered))

    console.print(Panel(
        "\n".join(body_parts),
        title=f"[bold]Attempt {attempt.hash[:8]}[/bold]",
        border_style="blue",
    ))

    if attempt.diff:
        console.print(Syntax(attempt.diff, "diff", theme="ansi_dark", word_wrap=True))


def pprint_history(attempts: list[Any], *, title: str = "Attempt History", file: Any = None) -> None:
    """Pretty-print an attempt history as a table, newest first."""
    console = _make_console(file)

    table = Table(title=title, show_lines=False)
    table.add_column("Hash", style="yellow", width=10)
    table.add_column("Created", style="dim", width=20)
    table.add_column("Description", no_wrap=False)
    table.add_column("Score", justify="right", width=7)

    for attempt in attempts:
        score_cell = Text("")
        if "evaluation" in attempt.metadata:
            score = attempt.evaluation
            score_cell = Text(f"{score:.3f}", style=_score_style(score))
        table.add_row(
            Text(attempt.hash[:8]),
            Text(attempt.timestamp.strftime("%Y-%m-%d %H:%M:%S")),
            Text(attempt.description),
            score_cell,
        )

    console.print(table)
    console.print(Text(f"  {len(attempts)} attempts", style="dim"))


def pprint_best_solutions(best: list[Any], *, threshold: float | None = None, file: Any = None) -> None:
    """Pretty-print the best attempt of each space.

    Args:
        best: BestSolution instances.
        threshold: Convergence threshold; scores reaching it are marked.
        file: Optional file-like object for output (used in tests).
    """
    console = _make_console(file)

    table = Table(title="Best Solutions", show_lines=False)
    table.add_column("Space", style="cyan")
    table.add_column("Hash", style="yellow", width=10)
    table.add_column("Score", justify="right", width=7)
    table.add_column("Solution", no_wrap=False)

    for entry in best:
        label = f"{entry.score:.3f}"
        if threshold is not None and entry.score >= threshold:
            label += "*"
        table.add_row(
            Text(entry.space),
            Text(entry.hash[:8]),
            Text(label, style=_score_style(entry.score)),
            Text(_preview(entry.solution)),
        )

    console.print(table)
    if not best:
        console.print("[dim]No solution spaces[/dim]")


def pprint_converged(converged: Any, *, file: Any = None) -> None:
    """Pretty-print a ConvergedSolution and the sources it was built from."""
    console = _make_console(file)

    header = Text()
    header.append("Converged ", style="bold")
    header.append(converged.hash[:8], style="yellow")
    header.append("  score ", style="dim")
    header.append(f"{converged.evaluation:.3f}", style=_score_style(converged.evaluation))
    console.print(Panel(header, border_style="green", expand=False))

    console.print(Text(f"  {_preview(converged.solution, 90)}"))
    if converged.source_solutions:
        pprint_best_solutions(converged.source_solutions, file=file)
