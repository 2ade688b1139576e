import time

from fastapi import Request

from src.shared.utils import get_logger

logger = get_logger(__name__)


async def add_process_time_header(request: Request, call_next):
    """Time each request and expose the duration in ``X-Process-Time``."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    # Cart evaluations are the hot path, keep them visible at INFO
    log = logger.info if request.url.path.startswith("/discount-rules") else logger.debug
    log(
        f"{request.method} {request.url.path} -> {response.status_code} in {elapsed:.4f}s"
    )
    return response
