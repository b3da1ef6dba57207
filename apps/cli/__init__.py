"""apkg-tool CLI application."""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from packages.apkg.collection import find_dangling_references
from packages.apkg.container import ApkgContainer
from packages.common.config import get_settings
from packages.common.exceptions import ApkgError
from packages.common.logging import configure_logging, get_logger, set_correlation_id

app = typer.Typer(
    name="apkg-tool",
    help="Inspect and rewrite Anki .apkg packages",
    no_args_is_help=True,
)

console = Console()
logger = get_logger(module=__name__)


@app.command()
def version() -> None:
    """Show version information."""
    console.print("apkg-tool 0.1.0")


@app.command()
def inspect(
    input_path: str = typer.Option(
        ...,
        "--input",
        "-i",
        help="Path to the .apkg archive to read",
    ),
    output_path: str | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the collection back to this archive",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
) -> None:
    """Load an archive, summarize its contents and optionally save a copy."""
    settings = get_settings()
    configure_logging(debug=verbose or settings.debug, json_output=settings.log_json)
    set_correlation_id()

    source = Path(input_path).expanduser().resolve()
    destination = Path(output_path).expanduser().resolve() if output_path else None

    if destination is not None and destination == source:
        console.print("[red]Error:[/red] Input and output must be different files")
        raise typer.Exit(1)

    try:
        container = ApkgContainer.open(source, settings)
        with container:
            collection = container.collection

            table = Table(title=f"Package: {source.name}")
            table.add_column("Entity", style="cyan")
            table.add_column("Count", justify="right", style="green")

            table.add_row("Models", str(len(collection.models)))
            table.add_row("Decks", str(len(collection.decks)))
            table.add_row("Deck configs", str(len(collection.deck_configs)))
            table.add_row("Notes", str(len(collection.notes)))
            table.add_row("Cards", str(len(collection.cards)))
            table.add_row("Review log", str(len(collection.revlog)))
            table.add_row("Graves", str(len(collection.graves)))
            table.add_row("Media", str(len(container.media_entries)))

            console.print(table)

            for problem in find_dangling_references(collection):
                logger.warning("dangling_reference", detail=problem)

            if destination is not None:
                container.save(destination)
                console.print(f"[green]Saved:[/green] {destination}")

    except ApkgError as e:
        logger.error("inspect_failed", error=e)
        console.print(f"[red]{type(e).__name__}:[/red] {e}")
        raise typer.Exit(1) from None


if __name__ == "__main__":
    app()
