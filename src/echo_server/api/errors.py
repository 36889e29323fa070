"""Error types and structured error bodies for the echo server."""

from typing import Dict


class EchoServerError(Exception):
    """Base class for echo server failures."""

    pass


class ServerStartError(EchoServerError):
    """The listener could not be bound or started."""

    def __init__(self, message: str, host: str, port: int):
        super().__init__(message)
        self.host = host
        self.port = port


class ServerStateError(EchoServerError):
    """A lifecycle operation was requested in a state that does not allow it."""

    pass


class ShutdownTimeoutError(EchoServerError):
    """In-flight requests did not drain before the shutdown deadline."""

    def __init__(self, timeout: float, abandoned: int = 0):
        super().__init__(
            f"graceful shutdown exceeded {timeout:g}s deadline, "
            f"abandoned {abandoned} in-flight request(s)"
        )
        self.timeout = timeout
        self.abandoned = abandoned


def error_body(message: str) -> Dict[str, str]:
    """Build the single-field error payload returned to clients."""
    return {"error": message}
