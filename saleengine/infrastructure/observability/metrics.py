"""In-process engine metrics.

Every metric the engine records is declared in :data:`_FAMILIES`. A family is
created in the registry on its first observation, so an idle process exports
nothing. Values are exposed as a plain summary (for logs and tests) and in
Prometheus text format for the ``/metrics`` endpoint.
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

LabelKey = tuple[tuple[str, str], ...]

BIDS = "bids_total"
SETTLEMENTS = "settlements_total"
SETTLEMENT_SWEEP_DURATION = "settlement_sweep_duration_seconds"
LINE_TRANSITIONS = "line_transitions_total"
NOTIFICATIONS = "notifications_total"

# name -> (prometheus type, help text)
_FAMILIES: dict[str, tuple[str, str]] = {
    BIDS: ("counter", "Bid attempts by outcome"),
    SETTLEMENTS: ("counter", "Auction items settled by outcome"),
    SETTLEMENT_SWEEP_DURATION: ("summary", "Settlement sweep duration in seconds"),
    LINE_TRANSITIONS: ("counter", "Line entry transitions"),
    NOTIFICATIONS: ("counter", "Notification attempts by kind and outcome"),
}


@dataclass
class Sample:
    """Aggregate of everything recorded for one label set."""

    count: int = 0
    total: float = 0.0
    maximum: float = 0.0

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.maximum = max(self.maximum, value)


@dataclass
class Family:
    name: str
    kind: str
    help_text: str
    samples: dict[LabelKey, Sample] = field(default_factory=dict)


class MetricRegistry:
    """Thread-safe store of metric families keyed by name."""

    def __init__(self) -> None:
        self._families: dict[str, Family] = {}
        self._lock = threading.Lock()

    def record(self, name: str, value: float = 1.0, **labels: str) -> None:
        key: LabelKey = tuple(sorted(labels.items()))
        with self._lock:
            family = self._families.get(name)
            if family is None:
                kind, help_text = _FAMILIES[name]
                family = self._families[name] = Family(name, kind, help_text)
            family.samples.setdefault(key, Sample()).add(value)

    def snapshot(self) -> list[Family]:
        """Copy the families so exporters can format without holding the lock."""
        with self._lock:
            return [
                Family(
                    f.name,
                    f.kind,
                    f.help_text,
                    {key: Sample(s.count, s.total, s.maximum) for key, s in f.samples.items()},
                )
                for f in self._families.values()
            ]

    def reset(self) -> None:
        with self._lock:
            self._families.clear()


_registry = MetricRegistry()


def get_registry() -> MetricRegistry:
    return _registry


def record_bid(outcome: str) -> None:
    """Count a bid attempt (accepted, too_low, superseded, closed, ...)."""
    _registry.record(BIDS, outcome=outcome)


def record_settlement(outcome: str, count: int = 1) -> None:
    """Count settled items (sold, no_bids, failed, reconciled)."""
    if count > 0:
        _registry.record(SETTLEMENTS, float(count), outcome=outcome)


def record_sweep_duration(duration: float) -> None:
    _registry.record(SETTLEMENT_SWEEP_DURATION, duration)


@contextmanager
def sweep_timer() -> Iterator[None]:
    """Record how long the enclosed sweep took, even if it raised."""
    started = time.perf_counter()
    try:
        yield
    finally:
        record_sweep_duration(time.perf_counter() - started)


def record_line_transition(transition: str) -> None:
    _registry.record(LINE_TRANSITIONS, transition=transition)


def record_notification(outcome: str, kind: str) -> None:
    _registry.record(NOTIFICATIONS, outcome=outcome, kind=kind)


def _render_labels(key: LabelKey, quoted: bool) -> str:
    if quoted:
        return ",".join(f'{k}="{v}"' for k, v in key)
    return ",".join(f"{k}={v}" for k, v in key)


def get_metrics_summary() -> dict[str, object]:
    """Summarise counters as totals and summaries as count/sum/avg/max.

    Label sets are rendered as ``"k=v,k=v"``; the empty set is ``"default"``.
    """
    counters: dict[str, dict[str, float]] = {}
    histograms: dict[str, dict[str, dict[str, float]]] = {}
    for family in _registry.snapshot():
        if family.kind == "counter":
            counters[family.name] = {
                _render_labels(key, quoted=False) or "default": sample.total
                for key, sample in family.samples.items()
            }
        else:
            histograms[family.name] = {
                _render_labels(key, quoted=False) or "default": {
                    "count": sample.count,
                    "sum": sample.total,
                    "avg": sample.total / sample.count,
                    "max": sample.maximum,
                }
                for key, sample in family.samples.items()
            }
    return {"counters": counters, "histograms": histograms}


def format_prometheus() -> str:
    lines: list[str] = []
    for family in _registry.snapshot():
        lines.append(f"# HELP {family.name} {family.help_text}")
        lines.append(f"# TYPE {family.name} {family.kind}")
        for key, sample in family.samples.items():
            labels = f"{{{_render_labels(key, quoted=True)}}}" if key else ""
            if family.kind == "counter":
                lines.append(f"{family.name}{labels} {sample.total}")
            else:
                lines.append(f"{family.name}_count{labels} {sample.count}")
                lines.append(f"{family.name}_sum{labels} {sample.total}")
    return "\n".join(lines)
