import time
from typing import Awaitable, Callable

from fastapi import Request
from starlette.responses import Response

from docassist.utils.logging_config import logger


async def request_logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """
    Log every request as `METHOD path status - Nms` and count it in the
    metrics collector on app.state. 5xx responses and unhandled errors
    also count as errors.
    """
    metrics = getattr(request.app.state, "metrics", None)
    if metrics is not None:
        metrics.record_request()

    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        if metrics is not None:
            metrics.record_error()
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        logger.error(f"{request.method} {request.url.path} 500 - {elapsed_ms}ms")
        raise

    if metrics is not None and response.status_code >= 500:
        metrics.record_error()
    elapsed_ms = int((time.perf_counter() - started) * 1000)
    logger.info(f"{request.method} {request.url.path} {response.status_code} - {elapsed_ms}ms")
    return response
