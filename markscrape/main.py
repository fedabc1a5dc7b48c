import asyncio
import json
import logging
import signal
from pathlib import Path
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.json import JSON
from rich.logging import RichHandler
from rich.table import Table
from tqdm.asyncio import tqdm

from .browser import BrowserCapture
from .config import get_settings
from .core import ScrapeEngine
from .errors import MarkscrapeError
from .export import FORMATS, export_as, export_filename
from .loader import ContentLoader
from .models import BatchOptions, DiscoveryOptions, ListScope, LoadOptions, ScrapeResult, Selector, SelectorGroup
from .remote import RemoteExtractor
from .store import JsonFileStore, SelectorGroupStore, templates

app = typer.Typer(help="Point-and-click selector scraping for single pages and URL batches")
groups_app = typer.Typer(help="Manage saved selector groups")
app.add_typer(groups_app, name="groups")
console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level (default from MARKSCRAPE_LOG_LEVEL)"),
):
    level = (log_level or get_settings().log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def _group_store(store_path: Optional[Path]) -> SelectorGroupStore:
    return SelectorGroupStore(JsonFileStore(store_path))


def _load_selectors(group: Optional[str], selectors_file: Optional[Path], store_path: Optional[Path]) -> List[Selector]:
    """Selectors from a saved group, a template, or a JSON file."""
    if selectors_file:
        with open(selectors_file) as f:
            return [Selector.model_validate(item) for item in json.load(f)]
    if group:
        found = asyncio.run(_group_store(store_path).get_group(group))
        if found is None:
            found = next((t for t in templates() if group in (t.id, t.name)), None)
        if found is None:
            console.print(f"[red]Error: no selector group named '{group}'[/red]")
            raise typer.Exit(1)
        return found.selectors
    console.print("[red]Error: provide --group or --selectors[/red]")
    raise typer.Exit(1)


def _emit(results: List[ScrapeResult], selectors: List[Selector], format: str, output: Optional[Path], table: str):
    if format not in FORMATS:
        console.print(f"[red]Error: format must be one of {', '.join(FORMATS)}[/red]")
        raise typer.Exit(1)
    content = export_as(results, format, selectors=selectors, table_name=table)
    if output and output.is_dir():
        output = output / export_filename(format)
    if output:
        output.write_text(content, encoding="utf-8")
        console.print(f"[green]Saved to {output}[/green]")
    elif format in ("json", "vector-ready"):
        console.print(JSON(content))
    else:
        console.print(content, markup=False, highlight=False)


@app.command()
def load(
    url: str = typer.Argument(..., help="URL to load"),
    no_js: bool = typer.Option(False, "--no-js", help="Ask the proxy not to run JavaScript and strip scripts"),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Timeout in milliseconds"),
):
    """Load a page through the proxy chain and report what came back."""
    options = LoadOptions(javascript_enabled=not no_js, timeout_ms=timeout or get_settings().timeout_ms)
    try:
        document = asyncio.run(ContentLoader().load(url, options))
    except MarkscrapeError as e:
        console.print(f"[red]{e}[/red]")
        console.print("[yellow]Run the command again to retry.[/yellow]")
        raise typer.Exit(1)

    title = document.tree.css_first("title")
    console.print(f"[green]Loaded {url}[/green] via {document.source}")
    console.print(f"  Title: {title.text(strip=True) if title else 'N/A'}")
    console.print(f"  Size: {len(document.markup)} chars")


@app.command()
def extract(
    url: str = typer.Argument(..., help="URL to extract from"),
    group: Optional[str] = typer.Option(None, "--group", "-g", help="Saved selector group or template name"),
    selectors_file: Optional[Path] = typer.Option(None, "--selectors", "-s", help="JSON file with a selector list"),
    list_scope: ListScope = typer.Option(ListScope.CONTAINER, "--list-scope", help="Where list fields are queried on list pages"),
    format: str = typer.Option("json", "--format", "-f", help=f"One of {', '.join(FORMATS)}"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file or directory"),
    table: str = typer.Option("scraped_data", "--table", help="Table name for sql-insert"),
    store_path: Optional[Path] = typer.Option(None, "--store", help="Selector group file"),
):
    """Extract records from one page."""
    selectors = _load_selectors(group, selectors_file, store_path)
    engine = ScrapeEngine()

    async def _run() -> ScrapeResult:
        try:
            document = await engine.load_url(url)
        except MarkscrapeError as e:
            return ScrapeResult(url=url, error=str(e))
        return ScrapeResult(url=url, records=engine.extract(document, selectors, list_scope=list_scope))

    result = asyncio.run(_run())
    if result.error:
        console.print(f"[red]{result.error}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Extracted {len(result.records)} records[/green]")
    _emit([result], selectors, format, output, table)


@app.command()
def batch(
    urls: List[str] = typer.Argument(None, help="URLs to process"),
    urls_file: Optional[Path] = typer.Option(None, "--urls-file", "-u", help="File with one URL per line"),
    group: Optional[str] = typer.Option(None, "--group", "-g"),
    selectors_file: Optional[Path] = typer.Option(None, "--selectors", "-s"),
    delay: Optional[int] = typer.Option(None, "--delay", "-d", help="Milliseconds between requests"),
    max_pages: int = typer.Option(1, "--max-pages", "-p", help="Pages to follow per URL"),
    pagination_selector: Optional[str] = typer.Option(None, "--pagination", help="Selector of the next-page link"),
    remote: bool = typer.Option(False, "--remote", help="Let the backend extract instead of loading locally"),
    no_js: bool = typer.Option(False, "--no-js"),
    format: str = typer.Option("json", "--format", "-f"),
    output: Optional[Path] = typer.Option(None, "--output", "-o"),
    table: str = typer.Option("scraped_data", "--table"),
    store_path: Optional[Path] = typer.Option(None, "--store"),
):
    """Run the selectors over a list of URLs, one at a time."""
    queue = list(urls or [])
    if urls_file:
        queue.extend(line.strip() for line in urls_file.read_text().splitlines() if line.strip())
    if not queue:
        console.print("[red]Error: no URLs given[/red]")
        raise typer.Exit(1)

    selectors = _load_selectors(group, selectors_file, store_path)
    settings = get_settings()
    options = BatchOptions(
        inter_request_delay_ms=settings.delay_ms if delay is None else delay,
        max_pages=max_pages,
        follow_pagination=bool(pagination_selector) and max_pages > 1,
        pagination_selector=pagination_selector,
        javascript_enabled=not no_js,
        timeout_ms=settings.timeout_ms,
    )
    engine = ScrapeEngine(remote=RemoteExtractor() if remote else None)

    async def _run() -> List[ScrapeResult]:
        try:
            asyncio.get_running_loop().add_signal_handler(signal.SIGINT, engine.stop_batch)
        except NotImplementedError:
            pass
        with tqdm(total=len(queue), desc="Scraping", unit="url") as bar:
            def on_update(job, result):
                bar.total = len(job.urls)
                bar.update(1)
                if result.error:
                    bar.write(f"failed: {result.url}")
            return await engine.run_batch(queue, selectors, options, on_update=on_update)

    results = asyncio.run(_run())
    failed = sum(1 for r in results if r.error)
    records = sum(len(r.records) for r in results)
    console.print(
        f"\n[green]{engine.batch.job.status.value}: {len(results)} URLs, {records} records[/green]"
        + (f" [red]({failed} failed)[/red]" if failed else "")
    )
    _emit(results, selectors, format, output, table)


@app.command()
def discover(
    url: str = typer.Argument(..., help="Page to start crawling from"),
    depth: int = typer.Option(1, "--depth", help="Link hops to follow from the start page"),
    pattern: Optional[str] = typer.Option(None, "--pattern", help="Regex discovered URLs must match"),
    max_urls: int = typer.Option(100, "--max-urls", help="Stop after this many URLs"),
    all_domains: bool = typer.Option(False, "--all-domains", help="Also follow links to other hosts"),
    js: bool = typer.Option(False, "--js", help="Ask the proxy to run JavaScript"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write URLs one per line (input for batch --urls-file)"),
):
    """Collect URLs reachable from a page to use as a batch queue."""
    try:
        options = DiscoveryOptions(
            max_depth=depth,
            url_pattern=pattern,
            max_urls=max_urls,
            same_domain=not all_domains,
            javascript_enabled=js,
        )
    except ValidationError as e:
        console.print(f"[red]Error: {e.errors()[0]['msg']}[/red]")
        raise typer.Exit(1)

    urls = asyncio.run(ScrapeEngine().discover_urls(url, options))
    if output:
        output.write_text("\n".join(urls) + "\n", encoding="utf-8")
        console.print(f"[green]Saved {len(urls)} URLs to {output}[/green]")
    else:
        for found in urls:
            console.print(found, markup=False, highlight=False)
        console.print(f"[green]Discovered {len(urls)} URLs[/green]")


@app.command()
def suggest(
    url: str = typer.Argument(..., help="Page to analyse"),
    group: Optional[str] = typer.Option(None, "--group", "-g", help="Save the suggestions into this group"),
    store_path: Optional[Path] = typer.Option(None, "--store"),
):
    """Suggest selectors for common product and article markup found on a page."""
    engine = ScrapeEngine()

    async def _run() -> List[Selector]:
        await engine.load_url(url)
        return engine.suggest_selectors()

    try:
        suggestions = asyncio.run(_run())
    except MarkscrapeError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not suggestions:
        console.print("[yellow]No known patterns found[/yellow]")
        raise typer.Exit(1)
    table = Table("Field", "Type", "Selector")
    for s in suggestions:
        table.add_row(s.field_name, s.extraction_type.value, s.css_selector)
    console.print(table)

    if group:
        saved = asyncio.run(_group_store(store_path).save_group(SelectorGroup(name=group, selectors=suggestions)))
        console.print(f"[green]Saved {len(saved.selectors)} selectors to '{saved.name}'[/green]")


@app.command()
def pick(
    url: str = typer.Argument(..., help="Page to pick elements on"),
    group: str = typer.Option(..., "--group", "-g", help="Group to save the picked selectors into"),
    description: Optional[str] = typer.Option(None, "--description"),
    store_path: Optional[Path] = typer.Option(None, "--store"),
):
    """Open the page in a browser, click the elements to scrape, close the window to save."""
    store = _group_store(store_path)
    engine = ScrapeEngine(store=store)

    async def _run() -> Optional[SelectorGroup]:
        try:
            await engine.load_url(url)
        except MarkscrapeError as e:
            console.print(f"[red]{e}[/red]")
            return None

        async with BrowserCapture(engine.capture) as browser:
            await browser.enable()
            console.print("[cyan]Click elements to select them. Close the browser window when done.[/cyan]")
            watcher = asyncio.create_task(_echo_selections(engine.events))
            await browser.wait_closed()
            watcher.cancel()

        if not len(engine.selectors):
            console.print("[yellow]Nothing selected[/yellow]")
            return None
        existing = await store.get_group(group)
        selectors = (existing.selectors if existing else []) + engine.selectors.as_list()
        return await store.save_group(SelectorGroup(name=group, description=description, selectors=selectors))

    saved = asyncio.run(_run())
    if saved is None:
        raise typer.Exit(1)
    console.print(f"[green]Saved {len(saved.selectors)} selectors to '{saved.name}'[/green]")


async def _echo_selections(events: asyncio.Queue) -> None:
    while True:
        event = await events.get()
        s = event.selector
        console.print(f"  + {s.field_name} [dim]{s.css_selector} ({s.extraction_type.value})[/dim]")


@groups_app.command("list")
def groups_list(store_path: Optional[Path] = typer.Option(None, "--store")):
    """List saved groups and built-in templates."""
    saved = asyncio.run(_group_store(store_path).list_groups())
    table = Table("Name", "Id", "Selectors", "Description")
    for g in saved + templates():
        table.add_row(g.name, g.id, str(len(g.selectors)), g.description or "")
    console.print(table)


@groups_app.command("show")
def groups_show(name: str, store_path: Optional[Path] = typer.Option(None, "--store")):
    found = asyncio.run(_group_store(store_path).get_group(name))
    found = found or next((t for t in templates() if name in (t.id, t.name)), None)
    if found is None:
        console.print(f"[red]No group named '{name}'[/red]")
        raise typer.Exit(1)
    console.print(JSON(found.model_dump_json()))


@groups_app.command("delete")
def groups_delete(name: str, store_path: Optional[Path] = typer.Option(None, "--store")):
    if not asyncio.run(_group_store(store_path).delete_group(name)):
        console.print(f"[red]No group named '{name}'[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Deleted '{name}'[/green]")


if __name__ == "__main__":
    app()
