"""Prometheus metrics for replay runs."""

from prometheus_client import Counter, Histogram, start_http_server

outcome_count = Counter(
    "replay_outcomes_total", "Replayed entries by outcome", ["outcome"]
)
request_latency = Histogram(
    "replay_request_latency_seconds", "Round-trip time of replayed requests"
)
schedule_lag = Histogram(
    "replay_schedule_lag_seconds",
    "Delay between an entry's scheduled moment and its dispatch",
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)


def observe_outcome(outcome) -> None:
    outcome_count.labels(outcome=outcome.status.label).inc()
    if outcome.latency is not None:
        request_latency.observe(outcome.latency)


def observe_lag(seconds: float) -> None:
    schedule_lag.observe(max(0.0, seconds))


def serve(port: int) -> None:
    """Expose /metrics on the given port from a background thread."""
    start_http_server(port)
