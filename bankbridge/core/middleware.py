"""HTTP middleware: request logging and bare OPTIONS handling."""

import logging
import time
import uuid

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            logger.error(
                f"{request.method} {request.url.path} failed after {duration:.3f}s "
                f"[{request_id}]: {type(e).__name__}"
            )
            raise

        duration = time.perf_counter() - start_time
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"in {duration:.3f}s [{request_id}]"
        )
        response.headers["X-Request-ID"] = request_id
        return response


class OptionsMiddleware(BaseHTTPMiddleware):
    """
    Answer OPTIONS on any path with 200 and an empty body.

    Mounted outermost: the inner stack (CORS included) still runs so its
    Access-Control-* headers are kept, but its status and body are replaced.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method != "OPTIONS":
            return await call_next(request)

        inner = await call_next(request)
        async for _ in inner.body_iterator:
            pass

        response = Response(status_code=status.HTTP_200_OK)
        response.raw_headers.extend(
            (key, value)
            for key, value in inner.raw_headers
            if key not in (b"content-length", b"content-type")
        )
        return response
