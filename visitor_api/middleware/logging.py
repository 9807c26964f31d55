from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

ACCESS_LOGGER_NAME = "visitor_api.access"

_STATE_FIELDS = ("user_id", "visitor_id")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON access line per request, tagged with the signed-in user when known."""

    def __init__(self, app, logger: logging.Logger | None = None) -> None:
        super().__init__(app)
        self.logger = logger if logger is not None else logging.getLogger(ACCESS_LOGGER_NAME)

    async def dispatch(self, request: Request, call_next: Callable[[Request], Response]) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            payload = self._payload(request, "http_request_error", 500, start)
            self._log(payload, level=logging.ERROR)
            raise

        response.headers.setdefault("x-request-id", request_id)
        self._log(self._payload(request, "http_request", response.status_code, start))
        return response

    @staticmethod
    def _payload(request: Request, event: str, status: int, start: float) -> dict[str, object]:
        payload: dict[str, object] = {
            "event": event,
            "request_id": request.state.request_id,
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "duration_ms": int((time.perf_counter() - start) * 1000),
        }
        for name in _STATE_FIELDS:
            value = getattr(request.state, name, None)
            if value:
                payload[name] = value
        return payload

    def _log(self, payload: dict[str, object], level: int = logging.INFO) -> None:
        self.logger.log(level, json.dumps(payload, separators=(",", ":")))
