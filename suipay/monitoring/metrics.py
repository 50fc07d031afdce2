"""
Prometheus metrics for payment indexing and authentication.

Tracks:
- Events fetched from the Sui node and events skipped by the parser
- Order reconciliation outcomes
- Event source failures and cycle duration
- Credentials issued and authentication failures
"""
import time

from prometheus_client import Counter, Gauge, Histogram

# Indexer metrics
indexer_events_fetched_total = Counter(
    "indexer_events_fetched_total",
    "Total payment events fetched from the Sui node",
)

indexer_events_skipped_total = Counter(
    "indexer_events_skipped_total",
    "Total payment events dropped because they could not be parsed",
)

indexer_fetch_errors_total = Counter(
    "indexer_fetch_errors_total",
    "Total failed event page fetches",
)

indexer_cycle_duration_seconds = Histogram(
    "indexer_cycle_duration_seconds",
    "Duration of one fetch/parse/apply cycle in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

indexer_cursor_updated_timestamp = Gauge(
    "indexer_cursor_updated_timestamp",
    "Timestamp of the last persisted cursor advance",
)

# Reconciliation metrics
orders_reconciled_total = Counter(
    "orders_reconciled_total",
    "Conditional order updates issued by the indexer",
    ["outcome"],  # paid, noop, error
)

# Auth metrics
auth_tokens_issued_total = Counter(
    "auth_tokens_issued_total",
    "Total bearer credentials issued",
    ["method"],  # wallet, zklogin
)

auth_failures_total = Counter(
    "auth_failures_total",
    "Total authentication failures",
    ["code"],
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_events_fetched(count: int) -> None:
        """Record the size of a fetched page."""
        indexer_events_fetched_total.inc(count)

    @staticmethod
    def record_events_skipped(count: int) -> None:
        """Record events the parser declined."""
        if count:
            indexer_events_skipped_total.inc(count)

    @staticmethod
    def record_fetch_error() -> None:
        """Record a failed page fetch."""
        indexer_fetch_errors_total.inc()

    @staticmethod
    def record_cycle_duration(duration_seconds: float) -> None:
        """Record indexer cycle duration."""
        indexer_cycle_duration_seconds.observe(duration_seconds)

    @staticmethod
    def record_cursor_advanced() -> None:
        """Record a persisted cursor advance."""
        indexer_cursor_updated_timestamp.set(time.time())

    @staticmethod
    def record_reconciliation(outcome: str) -> None:
        """Record the outcome of one conditional order update."""
        orders_reconciled_total.labels(outcome=outcome).inc()

    @staticmethod
    def record_token_issued(method: str) -> None:
        """Record an issued credential."""
        auth_tokens_issued_total.labels(method=method).inc()

    @staticmethod
    def record_auth_failure(code: str) -> None:
        """Record an authentication failure by error code."""
        auth_failures_total.labels(code=code).inc()


# Export singleton instance
metrics = MetricsCollector()
