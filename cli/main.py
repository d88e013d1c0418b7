"""CLI entry point for librarium.

Usage:
  librarium init-db                  Create and seed the database
  librarium serve                    Run the HTTP API
  librarium user create -e EMAIL     Create a user with signup credits
  librarium search -u EMAIL -t TEXT  Run a search locally
  librarium --help                   List all commands
"""

import asyncio
import logging
import sys

import click
from rich.table import Table

from cli.theme import (
    get_console,
    app_header,
    command_panel,
    success_panel,
    results_table,
    sections_tree,
)
from billing.ledger import CreditLedger
from config.exceptions import InvalidConfigError, LibrariumError
from config.settings import Settings, load_settings
from config.logging_config import setup_logging
from models.database import Database
from workflow.callbacks import RichProgressCallback

console = get_console()


def _load_settings() -> Settings:
    try:
        return load_settings()
    except InvalidConfigError as e:
        console.print(f"[error]{e}[/]")
        sys.exit(2)


def _init_logging(verbose: bool):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    settings = _load_settings()
    # Console logging would tear through the progress display
    setup_logging(level=level, log_dir=settings.log_dir, console_enabled=verbose)


def _open_db() -> tuple[Settings, Database]:
    settings = _load_settings()
    return settings, Database(settings.sqlite_db_path)


def _require_user(db: Database, email: str):
    user = db.get_user_by_email(email)
    if user is None:
        console.print(f"[error]No user with email {email}[/]")
        sys.exit(1)
    return user


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """librarium: search an infinite library of generated books.

    \b
    Examples:
      librarium init-db
      librarium user create -e reader@example.com
      librarium search -u reader@example.com -t "a detective in Victorian London" -g mystery
      librarium serve
    """
    _init_logging(verbose)


# ---------------------------------------------------------------------------
# init-db / serve
# ---------------------------------------------------------------------------

@cli.command(name="init-db")
def init_db():
    """Create tables and seed the catalog (safe to re-run)."""
    settings, db = _open_db()
    console.print(success_panel(
        "Database ready",
        f"  [stat.label]Path:[/] {settings.sqlite_db_path}\n"
        f"  [stat.label]Genres:[/] {db.count_rows('genres')}  "
        f"[muted]|[/]  [stat.label]Languages:[/] {db.count_rows('languages')}  "
        f"[muted]|[/]  [stat.label]Models:[/] {db.count_rows('llm_models')}",
    ))


@cli.command()
@click.option("--host", default=None, help="Bind address (default from settings)")
@click.option("--port", default=None, type=int, help="Port (default from settings)")
def serve(host, port):
    """Run the HTTP API with uvicorn."""
    import uvicorn
    from server.api_app import create_app

    settings = _load_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    console.print(app_header())
    console.print(f"Serving on [info]http://{host}:{port}[/]")
    uvicorn.run(create_app(settings), host=host, port=port)


# ---------------------------------------------------------------------------
# user commands
# ---------------------------------------------------------------------------

@cli.group()
def user():
    """Manage users and their provider keys."""


@user.command(name="create")
@click.option("--email", "-e", required=True, help="User email")
@click.option("--credits", "-c", "credits_", default=None, type=int,
              help="Starting credits (default: signup_credits setting)")
def user_create(email, credits_):
    """Create a user and print their API token."""
    settings, db = _open_db()
    try:
        new_user = db.create_user(email)
    except LibrariumError as e:
        console.print(f"[error]{e}[/]")
        sys.exit(1)
    balance = CreditLedger(db, settings).open_account(new_user.id, signup_credits=credits_)
    console.print(success_panel(
        "User created",
        f"  [stat.label]ID:[/] {new_user.id}\n"
        f"  [stat.label]Email:[/] {new_user.email}\n"
        f"  [stat.label]Credits:[/] [stat.value]{balance}[/]\n"
        f"  [stat.label]API token:[/] [accent]{new_user.api_token}[/]",
    ))


@user.command(name="add-key")
@click.option("--email", "-e", required=True, help="User email")
@click.option("--domain", "-d", required=True, help="Model domain, e.g. anthropic")
@click.option("--api-key", "-k", required=True, help="The user's own provider key")
def user_add_key(email, domain, api_key):
    """Store a user's own provider key; their searches on that domain are not metered."""
    _, db = _open_db()
    target = _require_user(db, email)
    db.add_api_key(target.id, domain, api_key)
    console.print(f"[success]Stored {domain} key for {email}[/]")


# ---------------------------------------------------------------------------
# credits commands
# ---------------------------------------------------------------------------

@cli.group()
def credits():
    """Inspect and top up credit balances."""


@credits.command(name="grant")
@click.option("--email", "-e", required=True, help="User email")
@click.option("--amount", "-a", required=True, type=int, help="Credits to add")
@click.option("--description", default="Manual grant", help="Transaction description")
def credits_grant(email, amount, description):
    """Add credits to a user's balance."""
    settings, db = _open_db()
    target = _require_user(db, email)
    ledger = CreditLedger(db, settings)
    try:
        ledger.grant(target.id, amount, description)
    except (ValueError, LibrariumError) as e:
        console.print(f"[error]{e}[/]")
        sys.exit(1)
    console.print(f"[success]Granted {amount} credits.[/] Balance: [stat.value]{ledger.balance(target.id)}[/]")


@credits.command(name="show")
@click.option("--email", "-e", required=True, help="User email")
@click.option("--limit", "-l", default=10, help="Transactions to list")
def credits_show(email, limit):
    """Show a user's balance and recent transactions."""
    settings, db = _open_db()
    target = _require_user(db, email)
    ledger = CreditLedger(db, settings)
    summary = ledger.summary(target.id)
    transactions, total = ledger.transactions(target.id, limit=limit)

    console.print(command_panel(email, {
        "Credits": str(summary.credits),
        "Held": str(summary.held_credits),
        "Available": str(summary.available),
    }))

    table = Table(title=f"Transactions ({len(transactions)} of {total})", border_style="dim")
    table.add_column("When", style="muted")
    table.add_column("Type")
    table.add_column("Amount", justify="right")
    table.add_column("Description")
    for t in transactions:
        color = "green" if t.amount > 0 else "red"
        table.add_row(str(t.created_at), t.transaction_type.value, f"[{color}]{t.amount:+d}[/]", t.description)
    console.print(table)


# ---------------------------------------------------------------------------
# search / catalog
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--user-email", "-u", default=None, help="Run as this user (required on a cache miss)")
@click.option("--text", "-t", default=None, help="Free-text description of the book")
@click.option("--genre", "-g", default=None, help="Genre slug (detected from text if omitted)")
@click.option("--language", "-l", default=None, help="Language code (detected from text if omitted)")
@click.option("--tag", "tags", multiple=True, help="Tag slug; repeatable")
@click.option("--model-id", "-m", default=2, type=int, help="Generation model id (see 'librarium catalog')")
@click.option("--page", "-p", default=1, type=int, help="Result page number")
def search(user_email, text, genre, language, tags, model_id, page):
    """Run a search through the local pipeline and print the results.

    Example:
      librarium search -u reader@example.com -t "a detective in Victorian London" -g mystery
    """
    from tools.agent_sdk_client import AgentSDKClient
    from tools.generation_gateway import ContentGeneratorGateway
    from tools.search_key import validate_search_request
    from workflow.graph import SearchPipeline

    settings, db = _open_db()
    user_id = _require_user(db, user_email).id if user_email else None

    try:
        request = validate_search_request(
            model_id=model_id, free_text=text, language_code=language,
            genre_slug=genre, tag_slugs=tags, page_number=page, page_size=settings.page_size,
        )
    except LibrariumError as e:
        console.print(f"[error]{e}[/]")
        sys.exit(2)

    console.print(app_header())
    console.print(command_panel("Search", {
        "Text": text or "-",
        "Genre": genre or "auto",
        "Language": language or "auto",
        "Tags": ", ".join(sorted(tags)) or "-",
        "Model": str(model_id),
        "Page": str(page),
    }))

    pipeline = SearchPipeline(db, ContentGeneratorGateway(AgentSDKClient(settings), settings), settings)
    callback = RichProgressCallback(console=console)
    try:
        callback.start()
        try:
            result = asyncio.run(pipeline.run(request, user_id, callback=callback))
        finally:
            callback.stop()
    except KeyboardInterrupt:
        console.print("\n[warning]Interrupted[/]")
        sys.exit(130)
    except LibrariumError as e:
        console.print(f"\n[error]Search failed: {e}[/]")
        sys.exit(1)

    console.print(results_table(result))
    console.print(sections_tree(result))
    if user_id and not result.cached:
        console.print(f"Balance: [stat.value]{CreditLedger(db, settings).balance(user_id)}[/] credits")


@cli.command()
def catalog():
    """List genres, languages and models with their credit costs."""
    _, db = _open_db()

    genres = Table(title="Genres", border_style="dim")
    genres.add_column("Slug", style="genre")
    genres.add_column("Label")
    for g in db.list_genres():
        genres.add_row(g.slug, g.label)
    console.print(genres)

    languages = Table(title="Languages", border_style="dim")
    languages.add_column("Code", style="accent")
    languages.add_column("Label")
    for lang in db.list_languages():
        languages.add_row(lang.code, lang.label)
    console.print(languages)

    models = Table(title="Models", border_style="dim")
    models.add_column("ID", style="rank", justify="right")
    models.add_column("Name", style="bold")
    models.add_column("Domain")
    models.add_column("Search credits", justify="right")
    models.add_column("Page credits", justify="right")
    for m in db.list_models():
        models.add_row(
            str(m.id), m.name, m.domain_code,
            str(m.search_credits if m.search_credits is not None else "-"),
            str(m.page_generation_credits if m.page_generation_credits is not None else "-"),
        )
    console.print(models)


if __name__ == "__main__":
    cli()
