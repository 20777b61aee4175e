from typing import Annotated, Callable, TypeVar

from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from typer import Argument, Exit, Option, Typer

from .exceptions import LinkVaultError
from .logging_config import setup_logging
from .models import (
    BackfillRequest,
    CostSummaryResponse,
    EmbedDocumentRequest,
    EnrichDocumentRequest,
    HybridSearchRequest,
    LexicalSearchRequest,
    SemanticSearchRequest,
)
from .service import LinkVaultService

app = Typer(help="Search saved bookmarks and manage embeddings, enrichment and spend.")
console = Console()

T = TypeVar("T")

DbPathOption = Annotated[
    str | None,
    Option("--db-path", help="DuckDB file. Defaults to LINKVAULT_DB_PATH or ~/.linkvault/bookmarks.duckdb."),
]


def build_service(db_path: str | None) -> LinkVaultService:
    return LinkVaultService.from_env(db_path)


def _call(db_path: str | None, operation: Callable[[LinkVaultService], T]) -> T:
    service = build_service(db_path)
    try:
        return operation(service)
    except LinkVaultError as exc:
        console.print(
            Panel(
                exc.message,
                title=f"Error: {exc.error_code}",
                title_align="left",
                border_style="bold red",
            )
        )
        raise Exit(code=1)
    finally:
        service.close()


def _request(model: type[T], **fields) -> T:
    try:
        return model(**fields)
    except PydanticValidationError as exc:
        message = "; ".join(error["msg"] for error in exc.errors())
        console.print(f"[bold red]Invalid input:[/] {message}")
        raise Exit(code=1)


@app.callback()
def main(
    log_level: Annotated[
        str | None,
        Option("--log-level", help="Logging level (defaults to LINKVAULT_LOG_LEVEL or INFO)."),
    ] = None,
    json_logs: Annotated[
        bool, Option("--json-logs", help="Emit log records as JSON lines.")
    ] = False,
) -> None:
    setup_logging(log_level, json_format=json_logs)


@app.command()
def search(
    query: Annotated[str, Argument(help="Text to search for.")],
    mode: Annotated[
        str, Option("--mode", "-m", help="lexical, semantic or hybrid.")
    ] = "hybrid",
    limit: Annotated[int, Option("--limit", "-n")] = 20,
    category: Annotated[str | None, Option("--category")] = None,
    source_type: Annotated[str | None, Option("--source-type")] = None,
    threshold: Annotated[
        float | None,
        Option("--threshold", help="Similarity threshold for semantic/hybrid modes."),
    ] = None,
    archived: Annotated[
        bool, Option("--archived", help="Lexical mode: search archived bookmarks instead.")
    ] = False,
    db_path: DbPathOption = None,
) -> None:
    """Search saved bookmarks."""
    fields = {
        "query": query,
        "limit": limit,
        "category": category,
        "source_type": source_type,
    }
    if threshold is not None and mode != "lexical":
        fields["similarity_threshold"] = threshold

    table = Table(title=f"{mode.capitalize()} results for {query!r}")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("URL", style="cyan")
    table.add_column("Category")

    if mode == "lexical":
        request = _request(LexicalSearchRequest, archived=archived or None, **fields)
        response = _call(db_path, lambda service: service.lexical_search(request))
        table.add_column("Rank", justify="right")
        for position, item in enumerate(response.results, start=1):
            table.add_row(str(position), item.title, item.url, item.category, f"{item.rank:.2f}")
    elif mode == "semantic":
        request = _request(SemanticSearchRequest, **fields)
        response = _call(db_path, lambda service: service.semantic_search(request))
        table.add_column("Similarity", justify="right")
        for position, item in enumerate(response.results, start=1):
            table.add_row(
                str(position), item.title, item.url, item.category, f"{item.similarity_score:.3f}"
            )
    elif mode == "hybrid":
        request = _request(HybridSearchRequest, **fields)
        response = _call(db_path, lambda service: service.hybrid_search(request))
        table.add_column("Score", justify="right")
        table.add_column("Lexical", justify="right")
        table.add_column("Semantic", justify="right")
        for position, item in enumerate(response.results, start=1):
            table.add_row(
                str(position),
                item.title,
                item.url,
                item.category,
                f"{item.hybrid_score:.5f}",
                "-" if item.bm25_rank is None else str(item.bm25_rank),
                "-" if item.semantic_score is None else f"{item.semantic_score:.3f}",
            )
    else:
        console.print(f"[bold red]Unknown mode:[/] {mode} (expected lexical, semantic or hybrid)")
        raise Exit(code=1)

    console.print(table)
    console.print(
        f"{response.total_results} result(s) in {response.processing_time_ms} ms"
    )


@app.command()
def backfill(
    limit: Annotated[int, Option("--limit", "-n", help="Documents per batch (1-50).")] = 10,
    offset: Annotated[int, Option("--offset")] = 0,
    db_path: DbPathOption = None,
) -> None:
    """Embed documents that do not have a vector yet."""
    request = _request(BackfillRequest, limit=limit, offset=offset)
    response = _call(db_path, lambda service: service.backfill_embeddings(request))

    lines = [
        f"Processed: {response.processed}",
        f"Successful: {response.successful}",
        f"Failed: {response.failed}",
        f"Cost: ${response.total_cost_usd:.6f}",
        f"Remaining: {response.remaining_count}",
    ]
    lines.extend(f"[red]{error}[/]" for error in response.errors)
    console.print(
        Panel(
            "\n".join(lines),
            title="Embedding backfill",
            title_align="left",
            border_style="bold green" if response.failed == 0 else "bold yellow",
        )
    )


@app.command()
def embed(
    document_id: Annotated[str, Argument(help="Id of the document to embed.")],
    db_path: DbPathOption = None,
) -> None:
    """Generate the embedding for a single document."""
    request = _request(EmbedDocumentRequest, document_id=document_id)
    response = _call(db_path, lambda service: service.embed_document(request))
    console.print(
        f"Embedded [bold]{response.document_id}[/]: {response.dimensions} dimensions, "
        f"{response.tokens} tokens, ${response.cost_usd:.8f}"
    )


@app.command()
def enrich(
    document_id: Annotated[str, Argument(help="Id of the document to enrich.")],
    db_path: DbPathOption = None,
) -> None:
    """Generate summary, category and tags for a document."""
    request = _request(EnrichDocumentRequest, document_id=document_id)
    response = _call(db_path, lambda service: service.enrich_document(request))
    console.print(
        Panel(
            f"{response.summary}\n\n"
            f"Category: {response.category}\n"
            f"Tags: {', '.join(response.tags) or '-'}\n"
            f"Cost: ${response.cost_usd:.6f}",
            title=response.document_id,
            title_align="left",
            border_style="bold green",
        )
    )


def _render_costs(summary: CostSummaryResponse) -> None:
    table = Table(title="Spend")
    table.add_column("Window")
    table.add_column("Spent", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Requests", justify="right")
    table.add_row(
        summary.daily.date,
        f"${summary.daily.total_cost_usd:.6f}",
        f"${summary.daily.limit_usd:.2f}",
        f"{summary.daily.percentage_used:.1f}%",
        str(summary.daily.request_count),
    )
    table.add_row(
        summary.monthly.month,
        f"${summary.monthly.total_cost_usd:.6f}",
        f"${summary.monthly.limit_usd:.2f}",
        f"{summary.monthly.percentage_used:.1f}%",
        str(summary.monthly.request_count),
    )
    console.print(table)

    if summary.breakdown_by_model:
        breakdown = Table(title="This month by model")
        breakdown.add_column("Model")
        breakdown.add_column("Requests", justify="right")
        breakdown.add_column("Tokens", justify="right")
        breakdown.add_column("Cost", justify="right")
        for row in summary.breakdown_by_model:
            breakdown.add_row(
                row.model,
                str(row.request_count),
                str(row.total_tokens),
                f"${row.total_cost_usd:.6f}",
            )
        console.print(breakdown)

    status = "[green]yes[/]" if summary.limits.can_process else "[red]no[/]"
    console.print(f"Can process: {status}")


@app.command()
def costs(db_path: DbPathOption = None) -> None:
    """Show spend against the daily and monthly caps."""
    summary = _call(db_path, lambda service: service.cost_summary())
    _render_costs(summary)


@app.command()
def serve(
    host: Annotated[str, Option("--host")] = "127.0.0.1",
    port: Annotated[int, Option("--port")] = 8000,
) -> None:
    """Run the HTTP API."""
    from .server import run_server

    run_server(host=host, port=port)
