from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Tuple

from prometheus_client.core import GaugeMetricFamily

from .labels import LabelPairs

log = logging.getLogger(__name__)

HELP_SUFFIX = " json_exporter exported metric"


@dataclass
class GaugeSeries:
    name: str
    documentation: str
    # label pairs -> (value, cycle in which it was last set)
    samples: Dict[LabelPairs, Tuple[float, int]] = field(default_factory=dict)

    def set(self, labels: LabelPairs, value: float, cycle: int) -> None:
        self.samples[labels] = (value, cycle)

    def prune(self, cycle: int) -> int:
        stale = [labels for labels, (_, seen) in self.samples.items() if seen != cycle]
        for labels in stale:
            del self.samples[labels]
        return len(stale)


class MetricSink:
    """
    Owns every gauge derived from the walked JSON documents.

    Series are created on first observation and removed once a scrape cycle
    finishes without observing them. Per name we count observations in the
    running cycle (`updated`) and keep the count of the previous finished
    cycle (`baseline`):

      updated == 0  -> the JSON key vanished, evict the series
      otherwise     -> drop label combinations not set in this cycle and
                       carry `updated` forward as the new baseline
    """

    def __init__(self, namespace: str = "", reserved: Iterable[str] = ("up",)) -> None:
        self.namespace = namespace
        self.reserved = frozenset(reserved)
        self._series: Dict[str, GaugeSeries] = {}
        self._updated: Dict[str, int] = {}
        self._baseline: Dict[str, int] = {}
        self._cycle = 0

    def __contains__(self, name: str) -> bool:
        return name in self._series

    def __len__(self) -> int:
        return len(self._series)

    def names(self) -> List[str]:
        return list(self._series)

    def series(self, name: str) -> GaugeSeries:
        return self._series[name]

    def full_name(self, name: str) -> str:
        return f"{self.namespace}_{name}" if self.namespace else name

    def observe(self, name: str, value: float, labels: LabelPairs = ()) -> None:
        if name in self.reserved:
            log.debug("%s clashes with an exporter metric, skipping it", name)
            return
        series = self._series.get(name)
        if series is None:
            series = GaugeSeries(self.full_name(name), name + HELP_SUFFIX)
            self._series[name] = series
            self._updated[name] = 0
            self._baseline[name] = 0
        series.set(labels, value, self._cycle)
        self._updated[name] += 1

    def begin_cycle(self) -> None:
        self._cycle += 1
        for name in self._updated:
            self._updated[name] = 0

    def end_cycle(self) -> List[str]:
        """Finish the running cycle and return the names that were evicted."""
        evicted: List[str] = []
        for name in list(self._series):
            updated = self._updated[name]
            if updated == 0:
                del self._series[name]
                del self._updated[name]
                del self._baseline[name]
                evicted.append(name)
                continue
            if updated < self._baseline[name]:
                log.debug("%s shrank from %d to %d observations", name, self._baseline[name], updated)
            self._series[name].prune(self._cycle)
            self._baseline[name] = updated
        if evicted:
            log.info("Evicted %d metrics no longer present in the JSON: %s", len(evicted), ", ".join(evicted))
        return evicted

    def collect(self) -> Iterator[GaugeMetricFamily]:
        for series in self._series.values():
            family = GaugeMetricFamily(series.name, series.documentation)
            for labels, (value, _) in series.samples.items():
                family.add_sample(series.name, dict(labels), value)
            yield family
