from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
import logging

logger = logging.getLogger("walletwise.errors")


class LedgerError(Exception):
    """Base class for errors raised by the ledger core."""


class InvalidInput(LedgerError):
    """The create request is missing fields or carries malformed values."""

    def __init__(self, errors: list[dict]):
        self.errors = errors
        super().__init__("; ".join(f"{e['field']}: {e['message']}" for e in errors))


class StorageError(LedgerError):
    """The ledger store could not complete an operation."""


class DuplicateIdempotencyKey(LedgerError):
    """An insert lost the race on the idempotency_key unique constraint."""

    def __init__(self, idempotency_key: str):
        self.idempotency_key = idempotency_key
        super().__init__(f"idempotency key already used: {idempotency_key}")


def invalid_input_handler(request: Request, exc: InvalidInput):  # type: ignore
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "invalid_input", "detail": exc.errors},
    )


def request_validation_handler(request: Request, exc: RequestValidationError):  # type: ignore
    detail = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "body", "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "invalid_input", "detail": detail},
    )


def storage_error_handler(request: Request, exc: StorageError):  # type: ignore
    logger.error("storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "storage_failure", "detail": "The expense store is unavailable."},
    )


def server_error_handler(request: Request, exc: Exception):  # type: ignore
    logger.exception("unhandled exception")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal_error", "detail": "An unexpected error occurred."},
    )
