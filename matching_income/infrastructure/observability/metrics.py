"""Prometheus metrics for income creation, matching volume, approvals and webhook performance"""

from prometheus_client import Counter, Histogram

# Income metrics
income_created_counter = Counter(
    "matching_income_records_created_total",
    "Income records emitted",
    ["income_type"],  # personal_sale | matching_bonus
)

matched_amount_counter = Counter(
    "matching_income_matched_paise_total",
    "Balanced amount consumed by matching passes, in paise",
)

sale_ingest_counter = Counter(
    "matching_income_sales_ingested_total",
    "Sales ingested",
    ["leg_type"],  # left | right | personal
)

transition_counter = Counter(
    "matching_income_transitions_total",
    "Income lifecycle transitions attempted",
    ["to_status", "outcome"],  # outcome: ok | rejected
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Income event webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "webhook_failures_total",
    "Failed webhook deliveries",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_income_created(income_type: str, balanced_paise: int = 0) -> None:
    """Record a newly emitted income and the matched volume behind it"""
    income_created_counter.labels(income_type=income_type).inc()
    if balanced_paise > 0:
        matched_amount_counter.inc(balanced_paise)


def record_transition(to_status: str, ok: bool) -> None:
    transition_counter.labels(to_status=to_status, outcome="ok" if ok else "rejected").inc()
