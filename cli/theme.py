"""Unified Rich theme and reusable UI helper functions for the CLI."""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.theme import Theme
from rich.tree import Tree

LIBRARIUM_THEME = Theme({
    "app.title": "bold",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "muted": "dim",
    "accent": "cyan",
    "genre": "bold",
    "stat.label": "dim",
    "stat.value": "bold",
    "rank": "blue",
    "author.name": "bold cyan",
})


def get_console() -> Console:
    """Return a Console instance with the librarium theme applied."""
    return Console(theme=LIBRARIUM_THEME)


def app_header(title: str = "librarium") -> Rule:
    """Return a Rule element for the application header banner."""
    return Rule(title=f"[bold]{title}[/]", style="dim")


def command_panel(title: str, fields: dict[str, str]) -> Panel:
    """Return a Panel displaying command parameters.

    Args:
        title: Panel title (e.g. "Search").
        fields: Ordered dict of label -> value pairs.
    """
    lines = []
    for label, value in fields.items():
        lines.append(f"  [stat.label]{label}:[/] [stat.value]{value}[/]")
    body = "\n".join(lines)
    return Panel(body, title=f"[bold]{title}[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))


def success_panel(title: str, body: str) -> Panel:
    """Return a green-bordered Panel for success results."""
    return Panel(body, title=f"[success]{title}[/]", box=box.ROUNDED, border_style="green", padding=(0, 2))


def results_table(result) -> Table:
    """Build a Rich Table of one search result page.

    Args:
        result: SearchResult with ranked books.
    """
    source = "[muted]cached[/]" if result.cached else "[success]generated[/]"
    table = Table(
        title=f"Page {result.page_number} ({source})",
        box=box.ROUNDED, border_style="dim", show_lines=True,
    )
    table.add_column("#", style="rank", justify="right")
    table.add_column("Title", style="bold")
    table.add_column("Author", style="author.name")
    table.add_column("Pages", justify="right")
    table.add_column("Summary")

    for ranked in result.books:
        summary = ranked.book.summary
        if len(summary) > 120:
            summary = summary[:120] + "..."
        table.add_row(
            str(ranked.rank),
            ranked.book.title,
            ranked.author.pen_name,
            str(ranked.book.page_count),
            summary,
        )
    return table


def sections_tree(result) -> Tree:
    """Build a Rich Tree of the sections of every book on a result page."""
    tree = Tree("[bold]Sections[/]")
    for ranked in result.books:
        branch = tree.add(f"[rank]{ranked.rank}.[/] {ranked.book.title}")
        sections = ranked.book.sections
        for s in sections[:6]:
            branch.add(f"[muted]p.{s.from_page}-{s.to_page}[/] {s.title}")
        if len(sections) > 6:
            branch.add(f"[muted]... ({len(sections)} sections)[/]")
    return tree
