"""
FastAPI server for linkvault.

Exposes lexical, semantic and hybrid search, embedding generation, LLM
enrichment and the cost summary as JSON endpoints. Every error response has
the shape ``{"error": ..., "code": ..., "details"?: ...}``.
"""

import asyncio
from functools import lru_cache
from typing import Any, Callable

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .exceptions import LinkVaultError, MissingQueryError, ValidationError
from .logging_config import get_logger
from .models import (
    BackfillRequest,
    EmbedDocumentRequest,
    EnrichDocumentRequest,
    HybridSearchRequest,
    LexicalSearchRequest,
    SemanticSearchRequest,
)
from .service import LinkVaultService

logger = get_logger("server")

app = FastAPI(
    title="LinkVault",
    description="Hybrid search and cost-capped AI processing for saved bookmarks",
)


@lru_cache
def get_service() -> LinkVaultService:
    """Process-wide service built from the environment."""
    return LinkVaultService.from_env()


def _error_response(exc: LinkVaultError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def _run(operation: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking service call off the event loop and map its errors."""
    try:
        result = await asyncio.to_thread(operation, *args)
    except LinkVaultError as exc:
        if exc.status_code >= 500:
            logger.error("%s failed: %s", operation.__name__, exc)
        return _error_response(exc)
    except Exception as exc:
        logger.exception("Unhandled error in %s", operation.__name__)
        return JSONResponse(
            {"error": str(exc) or "Internal server error", "code": "INTERNAL_ERROR"},
            status_code=500,
        )
    return result.model_dump(mode="json")


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    missing_query = any(
        error.get("loc") and error["loc"][-1] == "query" for error in errors
    )
    if missing_query:
        return _error_response(MissingQueryError("Query is required"))
    first = errors[0] if errors else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    details = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg")}
        for error in errors
    ]
    return _error_response(
        ValidationError(
            f"{field}: {message}" if field else message,
            context={"errors": details},
        )
    )


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.post("/api/search/lexical")
async def lexical_search(
    request: LexicalSearchRequest,
    service: LinkVaultService = Depends(get_service),
):
    """Case-insensitive substring search, newest first."""
    return await _run(service.lexical_search, request)


@app.post("/api/search/semantic")
async def semantic_search(
    request: SemanticSearchRequest,
    service: LinkVaultService = Depends(get_service),
):
    """Embedding similarity search. The query embedding is metered."""
    return await _run(service.semantic_search, request)


@app.post("/api/search/hybrid")
async def hybrid_search(
    request: HybridSearchRequest,
    service: LinkVaultService = Depends(get_service),
):
    """
    Lexical and semantic search run in parallel and merged with RRF.

    When one branch fails the other branch's results are returned; only
    when both fail does the endpoint answer 503.
    """
    return await _run(service.hybrid_search, request)


@app.post("/api/embeddings/batch")
async def backfill_embeddings(
    request: BackfillRequest,
    service: LinkVaultService = Depends(get_service),
):
    """Embed up to ``limit`` documents that have no vector yet."""
    return await _run(service.backfill_embeddings, request)


@app.post("/api/embeddings/generate")
async def embed_document(
    request: EmbedDocumentRequest,
    service: LinkVaultService = Depends(get_service),
):
    return await _run(service.embed_document, request)


@app.post("/api/llm/process")
async def enrich_document(
    request: EnrichDocumentRequest,
    service: LinkVaultService = Depends(get_service),
):
    """Generate summary, category and tags for one bookmark."""
    return await _run(service.enrich_document, request)


@app.get("/api/costs")
async def cost_summary(service: LinkVaultService = Depends(get_service)):
    """Spend for the current UTC day and month, per-model breakdown and caps."""
    return await _run(service.cost_summary)


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the FastAPI server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
