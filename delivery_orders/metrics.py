"""
Prometheus metrics: status update outcomes, rejected transitions, agent location pings.
"""
from prometheus_client import Counter, generate_latest

# One increment per update_status() call, labelled "success" or the ErrorKind value
order_status_updates_total = Counter(
    "order_status_updates_total",
    "Total order status update attempts by outcome",
    ["outcome"],
)
order_transitions_rejected_total = Counter(
    "order_transitions_rejected_total",
    "Total status updates rejected due to invalid lifecycle transition",
    ["current_status", "requested_status"],
)
agent_location_pings_total = Counter(
    "agent_location_pings_total",
    "Total agent location pings handed to the audit queue",
    ["backend"],
)


def get_metrics_content_type():
    return "text/plain; charset=utf-8; version=0.0.4"


def get_metrics_bytes():
    return generate_latest()
