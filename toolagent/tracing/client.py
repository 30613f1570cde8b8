"""
Langfuse client for run tracing (SDK v3, OpenTelemetry based).

Tracing is optional. Without credentials, when the Langfuse constructor
fails, or when ``auth_check()`` rejects the endpoint, the client stays
disabled, remembers why, and every operation on it is a no-op.
"""

import logging
from typing import Any, Optional

from langfuse import Langfuse

logger = logging.getLogger(__name__)

NO_CREDENTIALS = "Langfuse credentials not configured"


class TracingClient:
    """Holds the process-wide Langfuse client, or the reason there is none."""

    def __init__(
        self,
        public_key: str = "",
        secret_key: str = "",
        host: str = "",
        debug: bool = False,
    ):
        self.host = host
        self._client: Optional[Langfuse] = None
        self._error: Optional[str] = None

        if not (public_key and secret_key):
            self._disable(NO_CREDENTIALS, level=logging.DEBUG)
            return
        if host and not host.startswith(("http://", "https://")):
            logger.warning("Langfuse host '%s' has no http:// or https:// scheme", host)

        options: dict[str, Any] = {
            "public_key": public_key,
            "secret_key": secret_key,
            "debug": debug,
        }
        if host:
            options["host"] = host

        try:
            client = Langfuse(**options)
        except Exception as e:
            self._disable(f"Failed to initialize Langfuse client: {e}")
            return

        problem = self._check_auth(client)
        if problem:
            self._disable(problem)
            return

        self._client = client
        logger.info("Langfuse tracing enabled (host: %s)", host or "default")

    @staticmethod
    def _check_auth(client: Langfuse) -> Optional[str]:
        """None when the endpoint accepts the credentials, else the problem."""
        try:
            if client.auth_check():
                return None
        except Exception as e:
            return f"Langfuse auth_check() raised: {e}"
        return "Langfuse auth_check() failed: endpoint unreachable or credentials invalid"

    def _disable(self, reason: str, level: int = logging.WARNING) -> None:
        self._error = reason
        logger.log(level, "Tracing disabled: %s", reason)

    @property
    def enabled(self) -> bool:
        return self._client is not None

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def client(self) -> Optional[Langfuse]:
        return self._client

    def flush(self) -> None:
        """Send buffered observations."""
        if self._client is None:
            return
        try:
            self._client.flush()
        except Exception as e:
            logger.warning("Langfuse flush failed: %s", e)

    def shutdown(self) -> None:
        if self._client is None:
            return
        try:
            self._client.shutdown()
            logger.debug("Langfuse client shut down")
        except Exception as e:
            logger.warning("Langfuse shutdown failed: %s", e)


_tracing_client: Optional[TracingClient] = None


def init_tracing_client(
    public_key: str = "",
    secret_key: str = "",
    host: str = "",
    debug: bool = False,
) -> TracingClient:
    """Create the process-wide tracing client, replacing any previous one."""
    global _tracing_client
    _tracing_client = TracingClient(public_key, secret_key, host, debug)
    return _tracing_client


def get_tracing_client() -> Optional[TracingClient]:
    return _tracing_client


def shutdown_tracing() -> None:
    """Flush and drop the process-wide tracing client."""
    global _tracing_client
    if _tracing_client is not None:
        _tracing_client.shutdown()
        _tracing_client = None
