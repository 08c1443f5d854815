"""CLI entrypoint for revgeo."""

from __future__ import annotations

import logging

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from revgeo.builder import build_index
from revgeo.config import IndexConfig
from revgeo.errors import RevGeoError
from revgeo.loader import load_world_cities
from revgeo.reader import open_index

console = Console()
err_console = Console(stderr=True)

index_option = click.option(
    "--index", "index_dir", envvar="REVGEO_INDEX_DIR", required=True,
    type=click.Path(file_okay=False), help="Index directory (env: REVGEO_INDEX_DIR).",
)


def _query_options(func):
    func = click.option("--limit", default=10, show_default=True, help="Max results.")(func)
    func = click.option("--radius", default=50.0, show_default=True, help="Search radius in km.")(func)
    func = click.option("--lon", required=True, type=float, help="Longitude in degrees.")(func)
    func = click.option("--lat", required=True, type=float, help="Latitude in degrees.")(func)
    return index_option(func)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool):
    """revgeo — offline reverse geocoding against a world-cities index."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


@cli.command()
@click.option("--data", "data_path", required=True, type=click.Path(exists=True, dir_okay=False),
              help="World cities .csv or .zip.")
@index_option
@click.option("--encoding", default="utf-8", show_default=True, help="Text encoding of the CSV.")
def build(data_path: str, index_dir: str, encoding: str):
    """Build an index from the world cities dataset."""
    try:
        places = load_world_cities(data_path, encoding=encoding)
        elapsed_ms = build_index(places, index_dir, IndexConfig.from_env())
    except RevGeoError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Indexed {len(places)} places into {index_dir} in {elapsed_ms} ms[/]")


@cli.command()
@_query_options
def cities(lat: float, lon: float, radius: float, limit: int, index_dir: str):
    """Show the nearest cities to a coordinate."""
    try:
        with open_index(index_dir, IndexConfig.from_env()) as handle:
            hits = handle.nearest_places_with_distance(lat, lon, radius, limit)
    except RevGeoError as exc:
        raise click.ClickException(str(exc)) from exc

    table = Table(title=f"Nearest cities to ({lat}, {lon}) within {radius} km")
    table.add_column("Distance (km)", justify="right")
    table.add_column("City", style="bold")
    table.add_column("Region")
    table.add_column("Country")
    table.add_column("Population", justify="right")

    for place, dist in hits:
        table.add_row(
            f"{dist:.2f}",
            place.display_name or place.city,
            place.region,
            place.country,
            f"{place.population:,}" if place.has_population else "-",
        )

    console.print(table)


@cli.command()
@_query_options
def countries(lat: float, lon: float, radius: float, limit: int, index_dir: str):
    """Show the countries of the nearest cities to a coordinate."""
    try:
        with open_index(index_dir, IndexConfig.from_env()) as handle:
            names = handle.nearest_countries(lat, lon, radius, limit)
    except RevGeoError as exc:
        raise click.ClickException(str(exc)) from exc

    if not names:
        console.print("[yellow]No places found within radius[/]")
    for name in names:
        console.print(name)


@cli.command()
@index_option
def info(index_dir: str):
    """Show index metadata."""
    try:
        with open_index(index_dir) as handle:
            meta = dict(handle.meta)
    except RevGeoError as exc:
        raise click.ClickException(str(exc)) from exc

    table = Table(title=f"Index {index_dir}")
    table.add_column("Key", style="bold")
    table.add_column("Value")
    for key in sorted(meta):
        table.add_row(key, meta[key])
    console.print(table)
