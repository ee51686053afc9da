"""Prometheus metrics."""

from prometheus_client import Counter

# Workflow metrics
acceptances_created = Counter(
    "riskaccept_acceptances_created_total",
    "Total risk acceptances proposed",
    ["source"],
)

transitions_applied = Counter(
    "riskaccept_transitions_total",
    "Total committed status transitions",
    ["action"],
)

transitions_rejected = Counter(
    "riskaccept_transitions_rejected_total",
    "Transition attempts rejected before commit",
    ["error"],
)

# Sweep metrics
sweep_expired = Counter(
    "riskaccept_sweep_expired_total",
    "Acceptances expired by the sweeper",
)

sweep_failures = Counter(
    "riskaccept_sweep_failures_total",
    "Rows the sweeper failed to expire for reasons other than a lost race",
)

# Notification metrics
notifications_enqueued = Counter(
    "riskaccept_notifications_total",
    "Notification enqueue attempts",
    ["kind", "status"],
)
