"""
Errors and Global Error Handling

This module defines the application exception taxonomy and the FastAPI
exception handlers that translate it into HTTP responses.

Taxonomy
--------
- ConfigurationError: missing credentials / connection info (fail fast)
- EmbeddingError: provider failures; RateLimitError is the retryable subset
- RecordNotFoundError: an id that does not exist in the target store
- ChunkingError: content that cannot be chunked at all (e.g. empty)

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("embeddings.errors")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class EmbeddingsError(RuntimeError):
    """Base class for all application errors."""


class ConfigurationError(EmbeddingsError):
    """Raised when required configuration is missing or invalid."""


class EmbeddingError(EmbeddingsError):
    """Raised when embedding generation fails."""


class RateLimitError(EmbeddingError):
    """Raised when the embedding provider rejects a request with HTTP 429."""


class ChunkingError(EmbeddingsError):
    """Raised when content is empty or could not be chunked."""


class RecordNotFoundError(EmbeddingsError):
    """Raised when an id does not exist in the target store."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"Embedding with id {record_id} not found")
        self.record_id = record_id


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def not_found_exception_handler(
    request: Request,
    exc: RecordNotFoundError,
) -> JSONResponse:
    """
    Translate RecordNotFoundError into a 404 response.

    Not-found is a caller error, distinct from transient failures, so it is
    logged at info level without a traceback.
    """
    logger.info(
        "Record not found during request %s %s: %s",
        request.method,
        request.url.path,
        exc.record_id,
    )

    payload: Dict[str, Any] = {
        "error": "not_found",
        "detail": str(exc),
    }

    return JSONResponse(
        status_code=404,
        content=payload,
    )


async def chunking_exception_handler(
    request: Request,
    exc: ChunkingError,
) -> JSONResponse:
    """
    Translate ChunkingError (e.g. whitespace-only content) into a 400.
    """
    logger.info(
        "Rejected content during request %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )

    payload: Dict[str, Any] = {
        "error": "bad_request",
        "detail": str(exc),
    }

    return JSONResponse(
        status_code=400,
        content=payload,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
