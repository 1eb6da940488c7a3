import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Dict

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)
idempotency_key_ctx: ContextVar[str | None] = ContextVar("idempotency_key", default=None)

logger = logging.getLogger("walletwise.request")


class RequestContextFilter(logging.Filter):
    """Stamps each record with the current request id and idempotency key."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.request_id = request_id_ctx.get() or "-"
        record.idempotency_key = idempotency_key_ctx.get()
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        base: Dict[str, Any] = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "time": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "request_id": getattr(record, "request_id", "-"),
        }
        # only create requests carry a key; list and health lines stay short
        key = getattr(record, "idempotency_key", None)
        if key:
            base["idempotency_key"] = key
        for field in ("method", "path", "status", "duration_ms"):
            if hasattr(record, field):
                base[field] = getattr(record, field)
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


def init_logging(debug: bool = False) -> None:
    root = logging.getLogger()
    root.handlers.clear()
    level = logging.DEBUG if debug else logging.INFO
    root.setLevel(level)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)


async def request_context_middleware(request, call_next):  # type: ignore
    """Binds request id and idempotency key for the request and logs one access line.

    An incoming X-Request-ID is kept so a client's retry chain can be followed
    across hops; it is echoed back on the response.
    """
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    rid_token = request_id_ctx.set(rid)
    key_token = idempotency_key_ctx.set(request.headers.get("idempotency-key"))
    started = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        response.headers["X-Request-ID"] = rid
        return response
    finally:
        logger.info(
            "%s %s -> %d",
            request.method, request.url.path, status_code,
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        idempotency_key_ctx.reset(key_token)
        request_id_ctx.reset(rid_token)
