"""
Prometheus-compatible metrics for the booking workflow.

Tracks:
- Bookings created (by payment method)
- Booking status transitions (cancellations, completions, expiries)
- Payment outcomes (captured, failed, refunded, rejected)
- Captured and refunded amounts

Usage:
    from servicehub.lib.metrics import get_metrics_collector

    metrics = get_metrics_collector()
    metrics.increment_bookings(payment_method="razorpay")
    metrics.increment_payments(status="captured")

    # Export for Prometheus
    prometheus_output = metrics.export_prometheus()
"""

from decimal import Decimal
from typing import Dict, Tuple, Union
from threading import Lock


Number = Union[int, float, Decimal]


class MetricsCollector:
    """
    Prometheus-style metrics collector for the booking workflow.

    Counters:
    - bookings_created_total: labels payment_method
    - booking_transitions_total: labels status, actor
    - payments_total: labels status
    - payment_amount_total: labels kind (captured, refunded)

    Thread-safe for concurrent increments.
    """

    def __init__(self):
        self._lock = Lock()

        # Counters: key = (metric_name, labels_tuple), value = count
        self._counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], Number] = {}

    def _get_counter_key(self, metric_name: str, labels: Dict[str, str]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        sorted_labels = tuple(sorted(labels.items()))
        return (metric_name, sorted_labels)

    def _increment(self, metric_name: str, labels: Dict[str, str], amount: Number = 1):
        key = self._get_counter_key(metric_name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + amount

    # ===== Booking Metrics =====

    def increment_bookings(self, payment_method: str, amount: int = 1):
        """Increment bookings created counter."""
        self._increment("bookings_created_total", {"payment_method": payment_method.lower()}, amount)

    def increment_transitions(self, status: str, actor: str = "system", amount: int = 1):
        """
        Increment booking status transitions.

        Args:
            status: Target booking status (cancelled, completed, ...)
            actor: Who drove the change (customer, provider, gateway, system)
            amount: Increment amount
        """
        labels = {"status": status.lower(), "actor": actor.lower()}
        self._increment("booking_transitions_total", labels, amount)

    # ===== Payment Metrics =====

    def increment_payments(self, status: str, amount: int = 1):
        """Increment payment outcome counter (captured, failed, refunded, rejected)."""
        self._increment("payments_total", {"status": status.lower()}, amount)

    def add_amount(self, kind: str, value: Number):
        """Accumulate money moved through the gateway (captured or refunded)."""
        self._increment("payment_amount_total", {"kind": kind.lower()}, value)

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
            output_lines.append(f"# HELP {metric_name} {self._get_help_text(metric_name)}")
            output_lines.append(f"# TYPE {metric_name} counter")

            for labels_dict, value in sorted(metrics_by_name[metric_name], key=lambda x: str(x[0])):
                labels_str = ",".join([f'{k}="{v}"' for k, v in sorted(labels_dict.items())])
                output_lines.append(f"{metric_name}{{{labels_str}}} {value}")

            output_lines.append("")

        return "\n".join(output_lines)

    def _get_help_text(self, metric_name: str) -> str:
        help_texts = {
            "bookings_created_total": "Total number of bookings created",
            "booking_transitions_total": "Total number of booking status transitions",
            "payments_total": "Total number of payment outcomes",
            "payment_amount_total": "Total amount captured or refunded",
        }
        return help_texts.get(metric_name, "Counter metric")

    def get_counter_value(self, metric_name: str, labels: Dict[str, str]) -> Number:
        """Get current value of a specific counter."""
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
    """Get global metrics collector singleton."""
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
