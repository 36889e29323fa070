"""Request metrics collection for the echo server.

Metrics live in an explicitly constructed Prometheus registry that is
handed to the middleware, rather than in the process-wide default registry.
Prometheus counters and histograms lock internally, so one registry can be
shared by every concurrent request.
"""

import logging
import time
from typing import Any, Awaitable, Callable, MutableMapping, Optional, Sequence

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest
from starlette.responses import JSONResponse

from .errors import error_body

logger = logging.getLogger(__name__)

Scope = MutableMapping[str, Any]
Message = MutableMapping[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

LABELS = ("path", "method", "status")
DEFAULT_STATUS = 200
INTERNAL_ERROR_STATUS = 500


class RequestMetrics:
    """Per-request latency histogram and request counter."""

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        buckets: Sequence[float] = Histogram.DEFAULT_BUCKETS,
    ):
        self.registry = registry if registry is not None else CollectorRegistry()
        self.request_duration = Histogram(
            "http_request_duration_seconds",
            "Duration of HTTP requests.",
            LABELS,
            buckets=buckets,
            registry=self.registry,
        )
        self.request_count = Counter(
            "http_request_total",
            "Total number of HTTP requests.",
            LABELS,
            registry=self.registry,
        )

    def observe(self, path: str, method: str, status: int, duration: float) -> None:
        """Record one completed request."""
        labels = {"path": path, "method": method, "status": str(status)}
        self.request_duration.labels(**labels).observe(duration)
        self.request_count.labels(**labels).inc()

    def request_total(self, path: str, method: str, status: int) -> float:
        """Current counter value for a label set, 0.0 if never observed."""
        value = self.registry.get_sample_value(
            "http_request_total", {"path": path, "method": method, "status": str(status)}
        )
        return value or 0.0

    def render(self) -> bytes:
        """Text exposition of every metric in the registry."""
        return generate_latest(self.registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST


class StatusRecorder:
    """Wraps an ASGI ``send`` to remember the response status.

    Only the first ``http.response.start`` sets the status; repeats are still
    forwarded to the transport but do not change what was recorded. When the
    app never starts a response the status stays at ``default_status``.
    """

    def __init__(self, send: Send, default_status: int = DEFAULT_STATUS):
        self._send = send
        self.status_code = default_status
        self.wrote_header = False

    async def __call__(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            if not self.wrote_header:
                self.status_code = message["status"]
                self.wrote_header = True
            else:
                logger.warning(
                    f"Superfluous response start with status {message['status']}, "
                    f"keeping {self.status_code}"
                )
        await self._send(message)


class MetricsMiddleware:
    """ASGI middleware recording one observation per HTTP request.

    Labels are the literal request path, the method and the final status.
    Errors raised by the wrapped app are logged and turned into a
    structured 500 when no response has started yet; they are not re-raised.
    """

    def __init__(self, app: ASGIApp, metrics: RequestMetrics):
        self.app = app
        self.metrics = metrics

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope["path"]
        method = scope["method"]
        recorder = StatusRecorder(send)
        start_time = time.perf_counter()
        try:
            await self.app(scope, receive, recorder)
        except Exception:
            logger.exception(f"Unhandled error serving {method} {path}")
            if not recorder.wrote_header:
                await self._send_internal_error(scope, receive, recorder)
        finally:
            duration = time.perf_counter() - start_time
            self._record(path, method, recorder.status_code, duration)

    async def _send_internal_error(self, scope: Scope, receive: Receive, send: StatusRecorder) -> None:
        response = JSONResponse(
            status_code=INTERNAL_ERROR_STATUS, content=error_body("internal server error")
        )
        try:
            await response(scope, receive, send)
        except Exception as e:
            logger.warning(f"Could not send error response: {e}")
            send.status_code = INTERNAL_ERROR_STATUS

    def _record(self, path: str, method: str, status: int, duration: float) -> None:
        try:
            self.metrics.observe(path, method, status, duration)
        except Exception as e:
            logger.error(f"Failed to record metrics for {method} {path}: {e}")

