import logging
import time
from http import HTTPStatus
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

logger = logging.getLogger("canteen.requests")

REQUEST_ID_HEADER = "X-Request-ID"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tags every request with a fresh id, kept in request.state and echoed
    back in the X-Request-ID response header."""

    async def dispatch(self, request, call_next):
        request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs the start and completion of every request. Unhandled errors are
    turned into a JSON 500 here so they are logged and tagged like any other
    response."""

    async def dispatch(self, request, call_next):
        remote_addr = request.client.host if request.client else "unknown"
        request_id = getattr(request.state, "request_id", None)
        uri = request.url.path
        if request.url.query:
            uri = f"{uri}?{request.url.query}"

        logger.info(f"started {request.method} {uri} remote_addr={remote_addr} request_id={request_id}")
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(f"unhandled error remote_addr={remote_addr} request_id={request_id}")
            response = JSONResponse(status_code=500, content={"error": "internal server error"})
        elapsed = time.perf_counter() - start

        logger.info(
            f"completed with {response.status_code} {status_text(response.status_code)} "
            f"in {elapsed * 1000:.3f}ms remote_addr={remote_addr} request_id={request_id}"
        )
        return response


def status_text(code: int) -> str:
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return ""
