"""Prometheus instrumentation for the SFTPGo API client.

Each client records into its own registry rather than the global one, so
several clients can coexist in a process and tests stay isolated.
"""

from prometheus_client import CollectorRegistry, Counter, Histogram


class ClientMetrics:
    """Request, retry and token renewal metrics for one client."""

    def __init__(self, registry: CollectorRegistry | None = None):
        """Initialize and register the metrics.

        Args:
            registry: Registry to record into. A private one is created
                when omitted.
        """
        self.registry = registry if registry is not None else CollectorRegistry()
        self.requests = Counter(
            "sftpgo_client_requests",
            "HTTP requests sent to the SFTPGo API",
            ["method", "status"],
            registry=self.registry,
        )
        self.request_duration = Histogram(
            "sftpgo_client_request_duration_seconds",
            "Duration of HTTP requests sent to the SFTPGo API",
            ["method"],
            registry=self.registry,
        )
        self.retries = Counter(
            "sftpgo_client_retries",
            "Requests sent again after a transient server error",
            registry=self.registry,
        )
        self.token_renewals = Counter(
            "sftpgo_client_token_renewals",
            "Authentication exchanges performed to obtain an access token",
            registry=self.registry,
        )

    def observe_request(self, method: str, status: int | str, duration: float) -> None:
        """Record one HTTP exchange. status is "error" for transport failures."""
        self.requests.labels(method=method, status=str(status)).inc()
        self.request_duration.labels(method=method).observe(duration)
