"""Prometheus metrics for credit workflow, auth and notification delivery"""

from prometheus_client import Counter, Histogram

# Credit workflow metrics
credit_transition_counter = Counter(
    "sacco_credit_transition_total",
    "Credit request transitions attempted",
    ["action", "outcome"],  # approve|reject, success|invalid_state|not_found
)

repayment_counter = Counter(
    "sacco_repayment_total",
    "Repayments recorded",
)

repayment_rejected_counter = Counter(
    "sacco_repayment_rejected_total",
    "Repayments refused by validation",
    ["reason"],  # not_found | invalid_state | invalid_amount | reference_exhausted
)

reference_collision_counter = Counter(
    "sacco_reference_collision_total",
    "Repayment reference candidates that were already taken",
)

# Auth metrics
login_counter = Counter(
    "sacco_login_total",
    "Login attempts",
    ["outcome"],  # success | failure
)

# Notification metrics
notification_delivery_latency_histogram = Histogram(
    "notification_delivery_latency_seconds",
    "Notification push webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_delivered_counter = Counter(
    "notification_delivered_total",
    "Notifications delivered from the outbox",
)

notification_failure_counter = Counter(
    "notification_failures_total",
    "Failed notification enqueue or delivery attempts",
    ["stage"],  # enqueue | claim | deliver | record
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_transition(action: str, outcome: str) -> None:
    credit_transition_counter.labels(action=action, outcome=outcome).inc()


def record_repayment_rejected(reason: str) -> None:
    repayment_rejected_counter.labels(reason=reason).inc()
