"""
Prometheus metrics: order transitions, notification outcomes, courier bookings.
"""
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest

# Orders created at checkout (by delivery type)
orders_created_total = Counter(
    "giftflare_orders_created_total",
    "Total orders created",
    ["delivery_type"],
)

# Committed status changes; idempotent replays are not counted
order_transitions_total = Counter(
    "giftflare_order_transitions_total",
    "Total committed order status transitions",
    ["from_status", "to_status"],
)

# Transitions that lost the conditional update to a concurrent writer
order_transition_conflicts_total = Counter(
    "giftflare_order_transition_conflicts_total",
    "Total transitions rejected because the order changed concurrently",
    ["target_status"],
)

# One increment per channel per notification; outcome is sent, failed or skipped
notifications_total = Counter(
    "giftflare_notifications_total",
    "Total notification channel outcomes",
    ["channel", "template_id", "outcome"],
)

notification_attempts_failed_total = Counter(
    "giftflare_notification_attempts_failed_total",
    "Total failed notification send attempts, including retried ones",
    ["channel"],
)

courier_bookings_total = Counter(
    "giftflare_courier_bookings_total",
    "Total courier booking attempts by outcome",
    ["outcome"],
)


def get_metrics_content_type():
    return CONTENT_TYPE_LATEST


def get_metrics_bytes():
    return generate_latest()
