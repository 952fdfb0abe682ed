"""CLI for casblob."""

import logging
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .addresser import ContentAddresser, build_addresser
from .aggregate import compute_statistics, copy_all, listing_statistics
from .config import StoreSettings, load_settings
from .errors import CasBlobError
from .sources import FileSource
from .storage.factory import make_blob_store
from .uri import UriIngestor


app = typer.Typer(help="""\
Content-addressed blob store. Upload files under keys derived from their
content, fetch remote content by URI, and inspect or copy whole stores.""")

console = Console()

_state: Dict[str, Optional[Path]] = {"config": None}


def humanize_size(size: float) -> str:
    """Convert bytes to human-readable format."""
    for unit in ["B", "KB", "MB", "GB"]:
        if size < 1024.:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TB"


def _fail(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")
    raise typer.Exit(1)


def _settings() -> StoreSettings:
    try:
        return load_settings(_state["config"])
    except CasBlobError as e:
        _fail(str(e))


def _addresser(settings: Optional[StoreSettings] = None) -> ContentAddresser:
    settings = settings or _settings()
    try:
        store = make_blob_store(settings)
        return build_addresser(settings, store)
    except CasBlobError as e:
        _fail(str(e))


def _parse_properties(pairs: List[str]) -> Dict[str, str]:
    """Parse repeated name=value options."""
    properties = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            _fail(f"Property must look like name=value: {pair!r}")
        properties[name] = value
    return properties


@app.callback()
def main(
    config: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Settings file (default: $CASBLOB_CONFIG or ./casblob.yaml)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Configure logging and the settings file for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _state["config"] = config


@app.command()
def put(
    path: Path = typer.Argument(..., help="File to upload"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Store under this key instead of a content-derived one"),
    prop: List[str] = typer.Option([], "--prop", "-p", help="Property name=value (repeatable)"),
):
    """Upload a file and print the key it is stored under.

    Examples:
        # Content-addressed upload
        casblob put model.bin

        # Explicit key and content type
        casblob put notes.txt --key docs/notes -p Content-Type=text/plain
    """
    if not path.is_file():
        _fail(f"No such file: {path}")
    properties = _parse_properties(prop)
    addresser = _addresser()

    try:
        if key:
            with path.open("rb") as stream:
                addresser.put(key, stream, properties)
            stored = key
        else:
            stored = addresser.upload(FileSource(path), properties)
    except CasBlobError as e:
        _fail(f"Upload failed: {e}")

    console.print(f"[green]✓[/green] {stored}")


@app.command()
def fetch(
    uri: str = typer.Argument(..., help="http(s) URI to ingest"),
    prop: List[str] = typer.Option([], "--prop", "-p", help="Property name=value (repeatable)"),
):
    """Download remote content and store it under its content-derived key."""
    properties = _parse_properties(prop)
    ingestor = UriIngestor(_addresser())
    try:
        stored = ingestor.upload(uri, properties)
    except CasBlobError as e:
        _fail(f"Fetch failed: {e}")
    console.print(f"[green]✓[/green] {stored}")


@app.command()
def get(
    key: str = typer.Argument(..., help="Key to download"),
    dest: Path = typer.Argument(..., help="Destination file"),
):
    """Download a blob to a local file."""
    addresser = _addresser()
    part = dest.with_name(dest.name + ".part")
    try:
        with part.open("wb") as sink:
            meta = addresser.download(key, sink)
    except CasBlobError as e:
        part.unlink(missing_ok=True)
        _fail(f"Download failed: {e}")

    if meta is None:
        part.unlink(missing_ok=True)
        _fail(f"No blob at {key}")
    part.replace(dest)
    console.print(f"[green]✓[/green] {key} -> {dest} ({humanize_size(meta.content_length)})")


@app.command()
def stat(key: str = typer.Argument(..., help="Key to describe")):
    """Show size and properties of a blob."""
    addresser = _addresser()
    try:
        meta = addresser.describe(key)
    except CasBlobError as e:
        _fail(f"Describe failed: {e}")
    if meta is None:
        _fail(f"No blob at {key}")

    table = Table(title=key)
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("size", f"{meta.content_length} ({humanize_size(meta.content_length)})")
    for name, value in sorted(meta.properties.items()):
        table.add_row(name, value)
    console.print(table)


@app.command()
def rm(key: str = typer.Argument(..., help="Key to delete")):
    """Delete a blob. Deleting a missing key succeeds."""
    addresser = _addresser()
    try:
        addresser.delete(key)
    except CasBlobError as e:
        _fail(f"Delete failed: {e}")
    console.print(f"[green]✓[/green] Deleted {key}")


@app.command(name="ls")
def list_keys(
    sizes: bool = typer.Option(False, "--sizes", "-s", help="Show sizes from the listing"),
):
    """List every key in the store."""
    store = _addresser().store
    try:
        if sizes and hasattr(store, "enumerate_entries"):
            for entry in store.enumerate_entries().values():
                console.print(f"{entry.key}\t[dim]{humanize_size(entry.size)}[/dim]")
        else:
            for key in store.enumerate_keys().values():
                console.print(key)
    except CasBlobError as e:
        _fail(f"Listing failed: {e}")


@app.command()
def stats(
    listing: bool = typer.Option(False, "--listing", help="Use listing sizes instead of one describe per key"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Parallel describe calls"),
):
    """Count and size every blob in the store."""
    settings = _settings()
    store = _addresser(settings).store
    try:
        if listing:
            summary = listing_statistics(store)
        else:
            summary = compute_statistics(store, max_workers=workers or settings.max_workers)
    except CasBlobError as e:
        _fail(f"Statistics failed: {e}")

    table = Table(title="Store statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("blobs", str(summary.count))
    table.add_row("total", humanize_size(summary.total_size))
    if summary.is_empty:
        table.add_row("average", "[dim]n/a[/dim]")
    else:
        table.add_row("smallest", humanize_size(summary.min_size))
        table.add_row("largest", humanize_size(summary.max_size))
        table.add_row("average", humanize_size(summary.average))
    console.print(table)


@app.command()
def copy(
    to_config: Path = typer.Option(..., "--to-config", help="Settings file of the destination store"),
    prefix: str = typer.Option("", "--prefix", help="Prepend this to every destination key"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Parallel copies"),
):
    """Copy every blob of the configured store into another store."""
    settings = _settings()
    source = _addresser(settings).store
    try:
        dest_settings = load_settings(to_config)
        dest = make_blob_store(dest_settings)
    except CasBlobError as e:
        _fail(str(e))

    mapper = (lambda key: f"{prefix}{key}") if prefix else None
    try:
        copied = copy_all(source, dest, mapper, max_workers=workers or settings.max_workers)
    except CasBlobError as e:
        _fail(f"Copy failed: {e}")
    console.print(f"[green]✓[/green] Copied {copied} blob(s)")


if __name__ == "__main__":
    app()
