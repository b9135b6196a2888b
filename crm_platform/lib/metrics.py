"""
Prometheus-compatible metrics for campaign delivery observability.

Tracks:
- Campaign launches (by channel)
- Messages dispatched, delivered and failed (by channel, failure reason)
- Delivery receipts that were ignored (unknown message, duplicate)

Usage:
    from crm_platform.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_dispatched(channel="email", amount=3)
    metrics.increment_delivered(channel="email")

    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from typing import Dict, Tuple
from threading import Lock


class MetricsCollector:
    """
    Prometheus-style counter collector.

    Counters:
    - campaign_launches_total: Campaigns moved from draft to active (labels: channel)
    - messages_dispatched_total: Communication log rows created (labels: channel)
    - messages_delivered_total: Receipts closing a message as DELIVERED (labels: channel)
    - messages_failed_total: Receipts closing a message as FAILED (labels: channel, reason)
    - delivery_receipts_ignored_total: Receipts with no effect (labels: reason)

    Thread-safe for concurrent increments.
    """

    HELP_TEXTS = {
        "campaign_launches_total": "Total number of campaigns launched",
        "messages_dispatched_total": "Total number of messages handed to the delivery vendor",
        "messages_delivered_total": "Total number of messages successfully delivered",
        "messages_failed_total": "Total number of failed message deliveries",
        "delivery_receipts_ignored_total": "Total number of delivery receipts that changed nothing",
    }

    def __init__(self):
        self._lock = Lock()

        # key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        """Generate unique key for counter with sorted labels."""
        return (metric_name, tuple(sorted(labels.items())))

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: int = 1):
        """Thread-safe increment of counter."""
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    # ===== Campaign Metrics =====

    def increment_launches(self, channel: str, amount: int = 1):
        """Increment campaign launch counter."""
        self._increment("campaign_launches_total", {"channel": channel.lower()}, amount)

    def increment_dispatched(self, channel: str, amount: int = 1):
        """Increment dispatched message counter."""
        self._increment("messages_dispatched_total", {"channel": channel.lower()}, amount)

    # ===== Delivery Metrics =====

    def increment_delivered(self, channel: str, amount: int = 1):
        """Increment successfully delivered messages."""
        self._increment("messages_delivered_total", {"channel": channel.lower()}, amount)

    def increment_failed(self, channel: str, reason: str = "unknown", amount: int = 1):
        """Increment failed message deliveries."""
        labels = {
            "channel": channel.lower(),
            "reason": reason.lower()
        }
        self._increment("messages_failed_total", labels, amount)

    def increment_receipts_ignored(self, reason: str, amount: int = 1):
        """
        Increment ignored receipt counter.

        Args:
            reason: Why the receipt was ignored (malformed, invalid_status, unknown, duplicate)
            amount: Increment amount
        """
        self._increment("delivery_receipts_ignored_total", {"reason": reason.lower()}, amount)

    # ===== Export =====

    def export_prometheus(self) -> str:
        """
        Export all metrics in Prometheus text format.

        Returns:
            Prometheus-compatible text output
        """
        output_lines = []

        metrics_by_name: Dict[str, list] = {}
        with self._lock:
            for (metric_name, labels_tuple), value in self._counters.items():
                metrics_by_name.setdefault(metric_name, []).append((dict(labels_tuple), value))

        for metric_name in sorted(metrics_by_name.keys()):
            help_text = self.HELP_TEXTS.get(metric_name, "Counter metric")
            output_lines.append(f"# HELP {metric_name} {help_text}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                output_lines.append(f"{metric_name}{{{labels_str}}} {value}")

            output_lines.append("")  # Blank line between metrics

        return "\n".join(output_lines)

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> int:
        """
        Get current value of a specific counter.

        Args:
            metric_name: Name of the metric
            labels: Label values identifying the series

        Returns:
            Current counter value
        """
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            return self._counters.get(key, 0)

    def reset_all(self):
        """Reset all counters (for testing)."""
        with self._lock:
            self._counters.clear()


# Global singleton instance
_metrics_collector: MetricsCollector | None = None
_metrics_lock = Lock()


def get_metrics_collector() -> MetricsCollector:
    """
    Get global metrics collector singleton.

    Returns:
        MetricsCollector instance
    """
    global _metrics_collector
    if _metrics_collector is None:
        with _metrics_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


def reset_metrics():
    """Reset global metrics collector (for testing)."""
    with _metrics_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset_all()
