from __future__ import annotations

"""FastAPI application entrypoint for the financial assistant RAG service."""

import hashlib
import logging
import uuid

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.app.dependencies import get_ingestor, get_pipeline
from src.app.metrics import metrics_middleware, metrics_response
from src.app.schemas import (
    ErrorResponse,
    ProcessDocumentResponse,
    QueryRequest,
    QueryResponse,
    RefreshResponse,
    StatsResponse,
)
from src.app.settings import settings
from src.loaders.html import HTMLLoaderError
from src.loaders.pdf import PDFLoaderError
from src.loaders.xlsx import XlsxLoaderError
from src.rag.errors import GenerationFailed, InitializationError, InvalidQuery, RAGError, SearchFailed
from src.rag.ingest import UnsupportedFileType
from src.rag.types import DocumentType

logger = logging.getLogger(__name__)

app = FastAPI(title="Financial Assistant RAG", version="0.1.0")


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


def _safe_error_message(exc: BaseException) -> str:
    """Return a safe error type name for logs."""
    return type(exc).__name__


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message).model_dump(),
    )


async def _read_upload_bytes(upload: UploadFile, max_bytes: int | None) -> bytes:
    """Stream upload bytes with a hard size limit."""
    if not max_bytes or max_bytes <= 0:
        return await upload.read()
    buffer = bytearray()
    while True:
        chunk = await upload.read(65536)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise HTTPException(
                status_code=400,
                detail=f"File exceeds maximum size of {max_bytes} bytes",
            )
    return bytes(buffer)


def _parse_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _failure(exc.status_code, message)


@app.exception_handler(RAGError)
async def rag_error_handler(request: Request, exc: RAGError) -> JSONResponse:
    """Report pipeline construction and store errors as a JSON failure."""
    logger.error(
        "request_failed",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "stage": exc.stage,
            "error": _safe_error_message(exc),
            "detail": str(exc),
        },
    )
    return _failure(500, f"Request failed during {exc.stage}")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _failure(400, "Invalid request body")


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness check for uptime monitoring."""
    return {"status": "ok"}


@app.get("/stats", response_model=StatsResponse)
async def stats() -> StatsResponse:
    """Return vector index stats and lexical cache size."""
    retriever = get_pipeline().retriever
    return StatsResponse(
        **retriever.index.stats(),
        cached_documents=len(retriever.documents),
        initialized=retriever.initialized,
    )


@app.post("/api/query", response_model=QueryResponse, responses={400: {"model": ErrorResponse}})
async def query(request: QueryRequest, http_request: Request):
    """Answer a query with hybrid retrieval and generation."""
    request_id = getattr(http_request.state, "request_id", str(uuid.uuid4()))
    if not isinstance(request.query, str) or not request.query.strip():
        return _failure(400, "Query is required")
    query_hash = hashlib.sha256(request.query.encode("utf-8")).hexdigest()
    logger.info(
        "api_query_received",
        extra={
            "request_id": request_id,
            "query_hash": query_hash,
            "query_length": len(request.query),
        },
    )
    pipeline = get_pipeline()
    try:
        result = await pipeline.process_query(request.query)
    except InvalidQuery:
        return _failure(400, "Query is required")
    except (SearchFailed, InitializationError) as exc:
        logger.error(
            "query_retrieval_failed",
            extra={
                "request_id": request_id,
                "error": _safe_error_message(exc),
                "cause": _safe_error_message(exc.__cause__) if exc.__cause__ else None,
                "detail": str(exc),
            },
        )
        return _failure(500, "Failed to process query: document retrieval failed")
    except GenerationFailed as exc:
        logger.error(
            "query_generation_failed",
            extra={
                "request_id": request_id,
                "error": _safe_error_message(exc),
                "detail": str(exc),
            },
        )
        return _failure(502, "Failed to process query: answer generation failed")
    logger.info(
        "api_query_completed",
        extra={
            "request_id": request_id,
            "sources": len(result.sources),
            "confidence": result.confidence,
        },
    )
    return QueryResponse(
        data=result.to_payload(),
        message="Query processed successfully",
    )


@app.post(
    "/api/process-document",
    response_model=ProcessDocumentResponse,
    responses={400: {"model": ErrorResponse}},
)
async def process_document(
    http_request: Request,
    file: UploadFile | None = File(default=None),
    title: str | None = Form(default=None),
    type: str | None = Form(default=None),
    tags: str | None = Form(default=None),
):
    """Extract, chunk, embed and store an uploaded document."""
    request_id = getattr(http_request.state, "request_id", str(uuid.uuid4()))
    if file is None:
        return _failure(400, "No file uploaded")
    filename = file.filename or "upload.txt"
    data = await _read_upload_bytes(file, settings.file_max_bytes)
    if not data:
        return _failure(400, "Uploaded file is empty")
    ingestor = get_ingestor()
    try:
        documents = await ingestor.ingest_file(
            filename,
            data,
            title=title,
            doc_type=DocumentType.parse(type or DocumentType.FAQ.value),
            tags=_parse_tags(tags),
        )
    except UnsupportedFileType as exc:
        return _failure(400, str(exc))
    except (PDFLoaderError, XlsxLoaderError, HTMLLoaderError) as exc:
        logger.error(
            "file_ingest_failed",
            extra={"request_id": request_id, "source_name": filename, "detail": str(exc)},
        )
        return _failure(400, "Failed to read document")
    except RAGError as exc:
        logger.error(
            "file_ingest_failed",
            extra={
                "request_id": request_id,
                "source_name": filename,
                "error": _safe_error_message(exc),
                "detail": str(exc),
            },
        )
        return _failure(500, "Failed to process document")
    return ProcessDocumentResponse(
        data={
            "chunks": len(documents),
            "documents": [document.to_payload() for document in documents],
        },
        message="Document processed successfully",
    )


@app.post("/api/index/refresh", response_model=RefreshResponse)
async def refresh_index(http_request: Request):
    """Reload the lexical cache from the vector index."""
    request_id = getattr(http_request.state, "request_id", str(uuid.uuid4()))
    try:
        count = await get_pipeline().retriever.refresh()
    except InitializationError as exc:
        logger.error(
            "index_refresh_failed",
            extra={"request_id": request_id, "detail": str(exc)},
        )
        return _failure(500, "Failed to refresh document cache")
    return RefreshResponse(documents=count, message="Document cache refreshed")
