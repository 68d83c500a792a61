import json
import logging
import signal
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Annotated, Iterator

from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from typer import Argument, Context, Exit, Option, Typer, confirm, echo

from .cancellation import CancellationToken
from .config import SearchConfig, load_config
from .embeddings import EmbeddingProvider
from .errors import DesignSearchError, ProviderError
from .index import IndexManager
from .indexing import SyncPipeline, load_catalog
from .search import DEFAULT_THRESHOLD, DEFAULT_TOP_K, KEYWORD_MODE, SearchEngine
from .storage import DuckDBVectorStore

logger = logging.getLogger(__name__)

app = Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Find similar past designs by meaning, with a keyword fallback.",
)

EXCERPT_LENGTH = 80


@dataclass(frozen=True)
class CliState:
    config_path: Path | None
    db_path: str | None


@dataclass
class Runtime:
    config: SearchConfig
    store: DuckDBVectorStore
    index_manager: IndexManager
    providers: list[EmbeddingProvider] = field(default_factory=list)

    def provider(self) -> EmbeddingProvider:
        provider = self.config.provider.create()
        self.providers.append(provider)
        return provider

    def optional_provider(self) -> EmbeddingProvider | None:
        if not self.config.enabled:
            return None
        try:
            return self.provider()
        except ProviderError as exc:
            logger.warning("Embedding provider unavailable (%s); vector search disabled", exc)
            return None


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@contextmanager
def _handle_errors() -> Iterator[None]:
    try:
        yield
    except DesignSearchError as exc:
        Console(stderr=True).print(f"[bold red]Error ({exc.error_code}):[/] {exc}")
        raise Exit(code=exc.exit_code) from exc


@contextmanager
def _runtime(ctx: Context) -> Iterator[Runtime]:
    state: CliState = ctx.obj
    config = load_config(state.config_path, db_path=state.db_path)
    store = DuckDBVectorStore(str(config.db_path), dimension=config.dimensions)
    runtime = Runtime(
        config=config,
        store=store,
        index_manager=IndexManager(store, config.index_cache_path, params=config.hnsw),
    )
    try:
        yield runtime
    finally:
        for provider in runtime.providers:
            provider.close()
        store.close()


def _excerpt(text: str) -> str:
    flat = " ".join(text.split())
    if len(flat) <= EXCERPT_LENGTH:
        return flat
    return flat[:EXCERPT_LENGTH] + "..."


@app.callback()
def main(
    ctx: Context,
    config: Annotated[
        Path | None,
        Option("--config", help="JSON configuration file."),
    ] = None,
    db_path: Annotated[
        str | None,
        Option("--db-path", help="DuckDB file holding the embeddings."),
    ] = None,
    verbose: Annotated[
        bool,
        Option("--verbose", "-v", help="Show debug logging."),
    ] = False,
) -> None:
    _configure_logging(verbose)
    ctx.obj = CliState(config_path=config, db_path=db_path)


@app.command()
def search(
    ctx: Context,
    query: Annotated[str, Argument(help="Free-text description of the design to find.")],
    threshold: Annotated[
        float,
        Option("--threshold", min=0.0, max=1.0, help="Minimum similarity score."),
    ] = DEFAULT_THRESHOLD,
    top: Annotated[
        int,
        Option("--top", "-n", min=1, help="Maximum number of results."),
    ] = DEFAULT_TOP_K,
    json_output: Annotated[
        bool,
        Option("--json", help="Print results as JSON."),
    ] = False,
    local: Annotated[
        bool,
        Option("--local", help="Use keyword search only."),
    ] = False,
) -> None:
    """Search stored designs for QUERY."""
    with _handle_errors(), _runtime(ctx) as runtime:
        engine = SearchEngine(
            runtime.store,
            None if local else runtime.optional_provider(),
            runtime.config,
            index_manager=runtime.index_manager,
        )
        response = engine.search(query, threshold=threshold, top_k=top, local_only=local)

    if json_output:
        echo(json.dumps(response.to_dict(), ensure_ascii=False, indent=2))
        return

    console = Console()
    if response.mode == KEYWORD_MODE and not local:
        console.print("[yellow]Vector search unavailable; using keyword search.[/]")
    if not response.results:
        console.print(f'No matches for "{query}" (mode: {response.mode}).')
        return

    table = Table(title=f'Results for "{query}" ({response.mode})')
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Identifier", style="bold")
    table.add_column("Project / Asset")
    table.add_column("Content")
    if response.mode == KEYWORD_MODE:
        table.add_column("Matched")
    for rank, result in enumerate(response.results, start=1):
        where = " / ".join(p for p in (result.project_name, result.asset_name) if p)
        row = [
            str(rank),
            f"{result.score:.2f}",
            result.owner_label,
            where or "-",
            _excerpt(result.content),
        ]
        if response.mode == KEYWORD_MODE:
            row.append(", ".join(result.matched_fields) or "-")
        table.add_row(*row)
    console.print(table)
    console.print(f"Found {len(response.results)} similar design(s)")


@app.command()
def sync(
    ctx: Context,
    catalog: Annotated[
        Path,
        Argument(help="JSON array, JSONL file, or directory of */part.json files."),
    ],
    no_rebuild: Annotated[
        bool,
        Option("--no-rebuild", help="Skip rebuilding the ANN index."),
    ] = False,
) -> None:
    """Embed catalog items and store them."""
    console = Console()
    token = CancellationToken()

    def _interrupt(signum, frame) -> None:
        token.cancel()

    previous = signal.signal(signal.SIGINT, _interrupt)
    try:
        with _handle_errors(), _runtime(ctx) as runtime:
            items = load_catalog(catalog)
            pipeline = SyncPipeline(
                runtime.store,
                runtime.provider(),
                runtime.index_manager,
            )
            with console.status("Embedding catalog items..."):
                result = pipeline.sync(items, rebuild=not no_rebuild, cancel=token)
    finally:
        signal.signal(signal.SIGINT, previous)

    for failure in result.failures:
        console.print(f"[red]- {failure.id}[/] [{failure.kind}] {failure.message}")
    summary = f"Synced {result.upserted} item(s), {result.failed} failed."
    if result.index_nodes is not None:
        summary += f" Index holds {result.index_nodes} node(s)."
    if result.cancelled:
        console.print(f"[yellow]Cancelled.[/] {summary}")
        raise Exit(code=1)
    console.print(
        Panel(
            summary,
            title="Sync",
            title_align="left",
            border_style="bold green" if not result.failures else "bold yellow",
        )
    )


@app.command()
def remove(
    ctx: Context,
    owner_ids: Annotated[list[str], Argument(help="Owner identifiers to delete.")],
) -> None:
    """Delete stored records for the given owners."""
    with _handle_errors(), _runtime(ctx) as runtime:
        removed = runtime.index_manager.delete(owner_ids)
    Console().print(f"Removed {removed} record(s).")


@app.command()
def rebuild(ctx: Context) -> None:
    """Rebuild the ANN index from the stored vectors."""
    console = Console()
    with _handle_errors(), _runtime(ctx) as runtime:
        with console.status("Building index..."):
            result = runtime.index_manager.rebuild()
    if result.nodes == 0:
        console.print("Nothing to index; the store is empty.")
        return
    console.print(
        f"Indexed {result.nodes} node(s), dimension {result.dimension}, "
        f"in {result.elapsed_seconds:.2f}s -> {result.cache_path}"
    )
    if not result.cache_written:
        console.print("[yellow]The cache file could not be written.[/]")


@app.command()
def status(ctx: Context) -> None:
    """Show store and index diagnostics."""
    with _handle_errors(), _runtime(ctx) as runtime:
        config = runtime.config
        count = runtime.store.count()
        stored_dimension = runtime.store.dimension() if count else None
        engine = SearchEngine(
            runtime.store,
            runtime.optional_provider(),
            config,
            index_manager=runtime.index_manager,
        )
        state = engine.state()
        cache_present = runtime.index_manager.cache_exists()

    table = Table(title="design-search status", show_header=False)
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Database", str(config.db_path))
    table.add_row("Records", str(count))
    table.add_row("Stored dimension", str(stored_dimension or "-"))
    table.add_row("Configured dimension", str(config.dimensions))
    table.add_row("Provider", config.provider_kind)
    table.add_row("Vector search", "enabled" if config.enabled else "disabled")
    table.add_row("Index cache", f"{config.index_cache_path} ({'present' if cache_present else 'absent'})")
    table.add_row("State", state.value)
    console = Console()
    console.print(table)
    if stored_dimension is not None and stored_dimension != config.dimensions:
        console.print(
            "[yellow]Stored vectors do not match the configured dimension; "
            "run `clear --yes` and a full `sync`.[/]"
        )


@app.command()
def clear(
    ctx: Context,
    yes: Annotated[
        bool,
        Option("--yes", "-y", help="Do not ask for confirmation."),
    ] = False,
) -> None:
    """Delete every stored record and the index cache."""
    if not yes:
        confirm("Delete all stored embeddings and the index cache?", abort=True)
    with _handle_errors(), _runtime(ctx) as runtime:
        removed = runtime.index_manager.clear()
    Console().print(f"Cleared {removed} record(s).")
