"""Prometheus metrics for the NPM iptables layer.

Metrics are fire-and-forget: nothing in the package reads them back.
Exposition (HTTP scrape endpoint) belongs to the agent hosting this layer.
"""

import time

from prometheus_client import Counter, Gauge, Histogram

from aznpm.core.output import console


NUM_IPTABLES_RULES = Gauge(
    "npm_num_iptables_rules",
    "Number of iptables rules currently installed by NPM",
)

ADD_IPTABLES_RULE_EXEC_TIME = Histogram(
    "npm_add_iptables_rule_exec_time_seconds",
    "Time taken to add one iptables rule",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

ERRORS = Counter(
    "npm_errors",
    "Errors reported by NPM subsystems",
    labelnames=["subsystem"],
)


class Timer:
    """Wall-clock timer feeding a Histogram."""

    def __init__(self) -> None:
        self._start = time.perf_counter()

    def elapsed(self) -> float:
        return time.perf_counter() - self._start

    def stop_and_record(self, histogram: Histogram) -> float:
        """Observe the elapsed seconds into histogram and return them."""
        seconds = self.elapsed()
        histogram.observe(seconds)
        return seconds


def start_new_timer() -> Timer:
    return Timer()


def send_error_log_and_metric(subsystem: str, fmt: str, *args: object) -> str:
    """Log an error line and bump the per-subsystem error counter.

    Args:
        subsystem: Subsystem identifier used as the metric label
        fmt: %-style format string
        *args: Values for fmt

    Returns:
        The formatted message
    """
    message = fmt % args if args else fmt
    console.error(f"[{subsystem}] {message}")
    ERRORS.labels(subsystem=subsystem).inc()
    return message
