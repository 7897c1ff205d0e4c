"""
CLI components (using typer)
"""

from datetime import datetime, timezone
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from fluxtiles.providers.core import StoreUnavailableError
from fluxtiles.settings import settings

CONSOLE = Console()

APP = typer.Typer()


def _print_reports(reports):
    table = Table(title="Tile pyramid")
    table.add_column("Level", justify="right")
    table.add_column("From")
    table.add_column("Written", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Failed", justify="right")

    for report in reports:
        table.add_row(
            str(report.level),
            report.start.isoformat(),
            str(report.written),
            str(report.skipped),
            str(report.failed),
        )

    CONSOLE.print(table)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)

    return moment


@APP.command()
def create():
    """
    Build the whole tile pyramid from the dataset start.
    """
    builder = settings.create_builder()

    try:
        reports = builder.create_cache()
    except StoreUnavailableError as e:
        CONSOLE.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    _print_reports(reports)


@APP.command()
def update():
    """
    Recompute the most recent tile of every level and extend the pyramid up to now.
    """
    builder = settings.create_builder()

    try:
        reports = builder.update_cache()
    except StoreUnavailableError as e:
        CONSOLE.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    _print_reports(reports)


@APP.command()
def reindex():
    """
    Rebuild the tile index from the cache directory.
    """
    store = settings.create_store()

    try:
        store.check()
    except StoreUnavailableError as e:
        CONSOLE.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    number_of_tiles = store.reindex(duration=settings.zoom.duration)

    CONSOLE.print(f"Indexed {number_of_tiles} tiles from {settings.cache_path}.")


@APP.command()
def info():
    """
    Show the number of tiles and the most recent tile of every level.
    """
    store = settings.create_store()

    try:
        store.check()
    except StoreUnavailableError as e:
        CONSOLE.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    counts = store.index.counts()
    now = datetime.now(timezone.utc)

    table = Table(title=f"Tiles in {settings.cache_path}")
    table.add_column("Level", justify="right")
    table.add_column("Tiles", justify="right")
    table.add_column("Most recent")

    for level in settings.zoom.levels():
        latest = store.latest_before(level=level, now=now)
        table.add_row(
            str(level),
            str(counts.get(level, 0)),
            latest.isoformat() if latest is not None else "-",
        )

    CONSOLE.print(table)


@APP.command()
def ingest(filenames: list[Path]):
    """
    Add GOES new_avg CSV files to the sample store.
    """
    from fluxtiles.database import get_engine
    from fluxtiles.ingest.csv import goes_new_avg_converter
    from fluxtiles.ingest.samples import SampleStore

    converter = goes_new_avg_converter()
    samples = SampleStore(engine=get_engine(settings.database_url))

    for filename in filenames:
        with filename.open("r") as handle:
            parsed = converter.parse(
                handle, start=settings.dataset_start, end=datetime.now(timezone.utc)
            )

        samples.add(parsed)
        CONSOLE.print(f"Added {len(parsed)} samples from {filename}.")


@APP.command()
def download(start: datetime, end: datetime):
    """
    Download GOES new_avg files covering START to END into the sample store.
    """
    from fluxtiles.database import get_engine
    from fluxtiles.ingest.downloader import GoesNewAvgDownloader
    from fluxtiles.ingest.samples import SampleStore

    downloader = GoesNewAvgDownloader(
        min_goes_nr=settings.min_goes_nr, max_goes_nr=settings.max_goes_nr
    )
    samples = SampleStore(engine=get_engine(settings.database_url))

    total = 0
    for month in downloader.download(_as_utc(start), _as_utc(end)):
        total += samples.add(month)

    CONSOLE.print(f"Added {total} samples.")


def main():
    global APP

    APP()
