from __future__ import annotations

import json
import threading
from typing import Dict, List, Optional, Tuple

LabelKey = Tuple[Tuple[str, str], ...]


def _labels_key(labels: Optional[Dict[str, str]]) -> LabelKey:
    if not labels:
        return tuple()
    return tuple(sorted(labels.items()))


class CounterMetric:
    def __init__(self, name: str, description: str = "") -> None:
        self.name = name
        self.description = description
        self._samples: Dict[LabelKey, float] = {}
        self._lock = threading.Lock()

    def inc(self, amount: float = 1.0, labels: Optional[Dict[str, str]] = None) -> None:
        key = _labels_key(labels)
        with self._lock:
            self._samples[key] = self._samples.get(key, 0.0) + float(amount)

    def value(self, labels: Optional[Dict[str, str]] = None) -> float:
        with self._lock:
            return self._samples.get(_labels_key(labels), 0.0)

    def samples(self) -> Dict[LabelKey, float]:
        with self._lock:
            return dict(self._samples)


class GaugeMetric(CounterMetric):
    def set(self, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        key = _labels_key(labels)
        with self._lock:
            self._samples[key] = float(value)

    def dec(self, amount: float = 1.0, labels: Optional[Dict[str, str]] = None) -> None:
        self.inc(-amount, labels=labels)


class MetricsRegistry:
    """Counters and gauges keyed by name and label set."""

    def __init__(self) -> None:
        self._counters: Dict[str, CounterMetric] = {}
        self._gauges: Dict[str, GaugeMetric] = {}
        self._lock = threading.Lock()

    # Metric creation helpers -------------------------------------------------
    def counter(self, name: str, description: str = "") -> CounterMetric:
        with self._lock:
            metric = self._counters.get(name)
            if metric is None:
                metric = CounterMetric(name, description)
                self._counters[name] = metric
            return metric

    def gauge(self, name: str, description: str = "") -> GaugeMetric:
        with self._lock:
            metric = self._gauges.get(name)
            if metric is None:
                metric = GaugeMetric(name, description)
                self._gauges[name] = metric
            return metric

    # Recording helpers ------------------------------------------------------
    def inc(
        self,
        name: str,
        amount: float = 1.0,
        labels: Optional[Dict[str, str]] = None,
        description: str = "",
    ) -> None:
        self.counter(name, description=description).inc(amount, labels=labels)

    def set_gauge(
        self,
        name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None,
        description: str = "",
    ) -> None:
        self.gauge(name, description=description).set(value, labels=labels)

    # Exposition helpers -----------------------------------------------------
    def snapshot(self) -> Dict[str, Dict[str, Dict[str, float]]]:
        counters: Dict[str, Dict[str, float]] = {}
        gauges: Dict[str, Dict[str, float]] = {}
        for name, counter_metric in self._counters.items():
            counters[name] = {
                json.dumps(dict(k), sort_keys=True): v for k, v in counter_metric.samples().items()
            }
        for name, gauge_metric in self._gauges.items():
            gauges[name] = {
                json.dumps(dict(k), sort_keys=True): v for k, v in gauge_metric.samples().items()
            }
        return {"counters": counters, "gauges": gauges}

    def render_prometheus(self) -> str:
        lines: List[str] = []

        def format_labels(labels: LabelKey) -> str:
            if not labels:
                return ""
            parts = [f'{k}="{v}"' for k, v in labels]
            return "{" + ",".join(parts) + "}"

        sections = (("counter", self._counters), ("gauge", self._gauges))
        for kind, metrics in sections:
            for name, metric in metrics.items():
                if metric.description:
                    lines.append(f"# HELP {name} {metric.description}")
                lines.append(f"# TYPE {name} {kind}")
                for labels, value in metric.samples().items():
                    lines.append(f"{name}{format_labels(labels)} {value}")

        return "\n".join(lines) + "\n"


_METRICS = MetricsRegistry()


def get_metrics_registry() -> MetricsRegistry:
    return _METRICS


def set_metrics_registry(registry: MetricsRegistry) -> None:
    global _METRICS
    _METRICS = registry
