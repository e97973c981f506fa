"""The metric interface and a few generic metric implementations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Iterable

from promkit.model import Desc, LabelPair, MetricData

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class Opts:
    """Options shared by most metric kinds.

    The fully-qualified name joins namespace, subsystem and name with "_".
    """

    name: str = ""
    namespace: str = ""
    subsystem: str = ""
    help: str = ""
    const_labels: dict[str, str] = field(default_factory=dict)


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    """Join the non-empty name parts with "_"; an empty name yields ""."""
    if not name:
        return ""
    return "_".join(part for part in (namespace, subsystem, name) if part)


def sort_label_pairs(pairs: Iterable[LabelPair]) -> list[LabelPair]:
    """Return the label pairs sorted by name."""
    return sorted(pairs, key=lambda pair: pair.name)


class Metric(ABC):
    """A single sample value together with its descriptor."""

    desc: Desc

    @abstractmethod
    def write(self) -> MetricData:
        """Return the current state of the metric; raise if it cannot be written."""


class InvalidMetric(Metric):
    """A metric whose write always raises the given error."""

    def __init__(self, desc: Desc, err: Exception) -> None:
        self.desc = desc
        self.err = err

    def write(self) -> MetricData:
        raise self.err


def _to_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return (moment - _EPOCH) // timedelta(milliseconds=1)


class TimestampedMetric(Metric):
    """Wraps a metric and stamps its written data with an explicit time.

    The time is rounded down to full milliseconds.
    """

    def __init__(self, metric: Metric, timestamp: datetime) -> None:
        self.metric = metric
        self.timestamp = timestamp

    @property
    def desc(self) -> Desc:  # type: ignore[override]
        return self.metric.desc

    def write(self) -> MetricData:
        data = self.metric.write()
        return replace(data, timestamp_ms=_to_millis(self.timestamp))


def new_metric_with_timestamp(timestamp: datetime, metric: Metric) -> Metric:
    """Wrap ``metric`` so that it is written with ``timestamp``."""
    return TimestampedMetric(metric, timestamp)