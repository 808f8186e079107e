# ===== IMPORTS & DEPENDENCIES =====
import asyncio
import logging
import aiohttp
import typer
from aiohttp import web
from pathlib import Path

# --- Configuration ---
from boardgame_hype.config import LOG_LEVEL, DATABASE_PATH, RELAY_HOST, RELAY_PORT

# --- Core Components ---
from boardgame_hype.core.collection import CollectionManager, sort_entries
from boardgame_hype.core.errors import CatalogError, user_message
from boardgame_hype.core.fetch_policy import NETWORK_ERRORS
from boardgame_hype.core.hype import calculate_hype_score, hype_label
from boardgame_hype.core.profile import ProfileService
from boardgame_hype.core.session import CollectionSession
from boardgame_hype.core.store import SqliteDocumentStore

# --- Data Models ---
from boardgame_hype.models.game import ImportProgress, SORT_KEYS

# --- Data Sources ---
from boardgame_hype.sources.csv_export import parse_collection_csv
from boardgame_hype.sources.geek_page import GeekPageScraper
from boardgame_hype.sources.xml_api import CatalogApiClient

# --- Relay ---
from boardgame_hype.relay import create_app

# ===== CONFIGURATION & CONSTANTS =====
logging.basicConfig(
    level=LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

app = typer.Typer(help="Track a board game collection backed by BoardGameGeek data.", no_args_is_help=True)

UserOption = typer.Option(..., "--user", "-u", help="Id of the collection owner.")
DatabaseOption = typer.Option(DATABASE_PATH, "--db", help="Path of the SQLite document store.")


def _print_progress(progress: ImportProgress) -> None:
    current = f" - {progress['current']}" if progress.get('current') else ""
    typer.echo(f"[{progress['phase']}] {progress['done']}/{progress['total']}{current}")


def _fail(error: Exception) -> None:
    typer.secho(user_message(error), fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)

# ===== COMMANDS =====
@app.command("import-csv")
def import_csv(path: Path, user: str = UserOption, db: str = DatabaseOption) -> None:
    """Import a BGG collection CSV export, keeping your labels, notes and hype."""
    games = parse_collection_csv(path.read_text(encoding='utf-8-sig'))
    store = SqliteDocumentStore(db)
    with CollectionSession(store, user) as session:
        manager = CollectionManager(store, user, session=session)
        summary = manager.import_games(games, on_progress=_print_progress)
    typer.echo(f"Imported {summary['total']} games: {summary['created']} new, {summary['updated']} updated, {summary['failed']} failed.")


@app.command()
def sync(username: str, user: str = UserOption, db: str = DatabaseOption) -> None:
    """Pull the owned games of a BGG user into the collection."""
    async def run():
        async with aiohttp.ClientSession() as session:
            manager = CollectionManager(SqliteDocumentStore(db), user)
            return await manager.refresh_from_catalog(CatalogApiClient(session), username, on_progress=_print_progress)

    try:
        summary = asyncio.run(run())
    except (CatalogError, *NETWORK_ERRORS) as e:
        _fail(e)
    typer.echo(f"Synced {summary['total']} games: {summary['created']} new, {summary['updated']} updated.")


@app.command()
def enrich(user: str = UserOption, db: str = DatabaseOption) -> None:
    """Fill in missing thumbnails, descriptions and tags from BGG game pages."""
    async def run():
        async with aiohttp.ClientSession() as session:
            scraper = GeekPageScraper(session)
            manager = CollectionManager(SqliteDocumentStore(db), user)
            return await manager.enrich_missing(scraper.fetch_game_by_id, on_progress=_print_progress)

    summary = asyncio.run(run())
    typer.echo(f"Enriched {summary['enriched']} of {summary['total']} games ({summary['failed']} failed).")


@app.command()
def search(query: str) -> None:
    """Search BGG for board games by name."""
    async def run():
        async with aiohttp.ClientSession() as session:
            return await CatalogApiClient(session).search(query)

    try:
        results = asyncio.run(run())
    except CatalogError as e:
        _fail(e)
    for result in results:
        year = result['year_published'] or '?'
        typer.echo(f"{result['id']:>8}  {result['name']} ({year})")


@app.command()
def add(url: str, user: str = UserOption, db: str = DatabaseOption) -> None:
    """Add a game to the collection from its BGG page URL."""
    async def run():
        async with aiohttp.ClientSession() as session:
            return await GeekPageScraper(session).fetch_game(url)

    try:
        game = asyncio.run(run())
    except CatalogError as e:
        _fail(e)
    entry = CollectionManager(SqliteDocumentStore(db), user).add_game(game)
    typer.echo(f"Added '{entry['name']}' ({entry['bgg_id']}).")


@app.command("list")
def list_games(
    user: str = UserOption,
    db: str = DatabaseOption,
    sort: str = typer.Option("name", help=f"One of: {', '.join(SORT_KEYS)}"),
    show_hidden: bool = typer.Option(False, "--show-hidden", help="Include hidden games."),
) -> None:
    """List the collection with each game's current hype."""
    store = SqliteDocumentStore(db)
    with CollectionSession(store, user) as session:
        entries = CollectionManager(store, user, session=session).entries()
    try:
        ordered = sort_entries(entries, key=sort, include_hidden=show_hidden)
    except ValueError as e:
        raise typer.BadParameter(str(e))
    for entry in ordered:
        score = calculate_hype_score(entry.get('hype_events'))
        typer.echo(f"{entry.get('bgg_id', ''):>8}  {score:5.2f} {hype_label(score):<8} {entry.get('name', '')}")


@app.command()
def clear(user: str = UserOption, db: str = DatabaseOption, yes: bool = typer.Option(False, "--yes", "-y")) -> None:
    """Delete every game in the collection."""
    if not yes:
        typer.confirm(f"Delete the whole collection of '{user}'?", abort=True)
    commits = CollectionManager(SqliteDocumentStore(db), user).clear()
    typer.echo(f"Collection cleared in {commits} batches.")


@app.command()
def profile(
    username: str,
    user: str = UserOption,
    db: str = DatabaseOption,
    public: bool = typer.Option(False, "--public/--private", help="Share the collection under this username."),
) -> None:
    """Claim a public username for the collection."""
    try:
        saved = ProfileService(SqliteDocumentStore(db)).save_profile(user, username, public)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="USERNAME")
    visibility = "public" if saved['is_public'] else "private"
    typer.echo(f"Profile '{saved['username']}' saved ({visibility}).")


@app.command()
def public(username: str, db: str = DatabaseOption) -> None:
    """Show someone's public collection by username."""
    profiles = ProfileService(SqliteDocumentStore(db))
    owner = profiles.get_user_id_by_username(username)
    if owner is None or not profiles.is_user_public(owner):
        typer.secho(f"No public collection for '{username}'.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    for entry in sort_entries(profiles.load_public_collection(owner)):
        labels = f" [{', '.join(entry['labels'])}]" if entry.get('labels') else ""
        typer.echo(f"{entry.get('bgg_id', ''):>8}  {entry.get('name', '')}{labels}")


@app.command()
def serve(host: str = RELAY_HOST, port: int = RELAY_PORT) -> None:
    """Run the BGG relay (search, thing, collection and scrape endpoints)."""
    logger.info(f"🚀 Starting relay on {host}:{port}")
    web.run_app(create_app(), host=host, port=port)

# ===== INITIALIZATION & STARTUP =====
def main() -> None:
    app()


if __name__ == "__main__":
    main()
