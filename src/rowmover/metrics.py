"""Prometheus metrics for row moves."""

from typing import Optional

import structlog
from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    start_http_server,
)

from utils.logging import get_logger


class MoverMetrics:
    """Prometheus metrics for the row mover."""

    def __init__(
        self,
        logger: Optional[structlog.BoundLogger] = None,
        registry: Optional[CollectorRegistry] = None,
    ) -> None:
        """Initialize metrics.

        Args:
            logger: Optional logger instance
            registry: Optional Prometheus registry (defaults to global REGISTRY)
        """
        self.logger = logger or get_logger("metrics")
        self.registry = registry or REGISTRY

        self.rows_moved_total = Counter(
            "rowmover_rows_moved_total",
            "Total number of rows moved into archive tables",
            ["target", "mode"],  # mode: single, bulk
            registry=self.registry,
        )

        self.statements_total = Counter(
            "rowmover_statements_total",
            "Total number of move statements executed",
            ["target", "mode"],
            registry=self.registry,
        )

        self.errors_total = Counter(
            "rowmover_errors_total",
            "Total number of failed moves",
            ["target", "type"],
            registry=self.registry,
        )

        self.move_duration_seconds = Histogram(
            "rowmover_move_duration_seconds",
            "Duration of a move call (all chunks) in seconds",
            ["target", "mode"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=self.registry,
        )

    def record_statement(self, target: str, mode: str, rows_moved: int) -> None:
        """Record one executed move statement.

        Args:
            target: Registry member name
            mode: 'single' or 'bulk'
            rows_moved: Rows reported by the statement
        """
        self.statements_total.labels(target=target, mode=mode).inc()
        self.rows_moved_total.labels(target=target, mode=mode).inc(rows_moved)

    def record_duration(self, target: str, mode: str, duration_seconds: float) -> None:
        self.move_duration_seconds.labels(target=target, mode=mode).observe(duration_seconds)

    def record_error(self, target: str, error_type: str) -> None:
        """Record a failed move.

        Args:
            target: Registry member name
            error_type: Exception class name of the cause
        """
        self.errors_total.labels(target=target, type=error_type).inc()

    def get_metrics(self) -> bytes:
        """Get Prometheus metrics in text format."""
        return generate_latest(self.registry)

    def start_metrics_server(self, port: int = 8000) -> None:
        """Start HTTP server for Prometheus metrics.

        Args:
            port: Port to listen on (default: 8000)
        """
        try:
            start_http_server(port, registry=self.registry)
            self.logger.info(
                "Prometheus metrics server started",
                port=port,
                endpoint=f"http://localhost:{port}/metrics",
            )
        except OSError as e:
            self.logger.error(
                "Failed to start metrics server",
                port=port,
                error=str(e),
            )
            raise
