"""Gauges: values that can go up and down."""

from __future__ import annotations

import threading
import time
from typing import Callable, Iterable, Iterator, Optional

from promkit.labels import make_inconsistent_cardinality_error, make_label_pairs
from promkit.metric import Metric, Opts, build_fq_name
from promkit.model import Desc, LabelPair, MetricData
from promkit.vector import MetricVec


def _desc_from_opts(opts: Opts, label_names: Iterable[str] = ()) -> Desc:
    return Desc(
        build_fq_name(opts.namespace, opts.subsystem, opts.name),
        opts.help,
        tuple(label_names),
        opts.const_labels,
    )


class Gauge(Metric):
    """A single numerical value that can arbitrarily go up and down."""

    def __init__(self, opts: Opts) -> None:
        desc = _desc_from_opts(opts)
        self._setup(desc, desc.const_label_pairs)

    def _setup(self, desc: Desc, label_pairs: tuple[LabelPair, ...]) -> None:
        self.desc = desc
        self._label_pairs = label_pairs
        self._value = 0.0
        self._lock = threading.Lock()

    @classmethod
    def _for_labels(cls, desc: Desc, label_pairs: tuple[LabelPair, ...]) -> "Gauge":
        gauge = cls.__new__(cls)
        gauge._setup(desc, label_pairs)
        return gauge

    def set(self, value: float) -> None:
        """Set the gauge to ``value``."""
        with self._lock:
            self._value = float(value)

    def set_to_current_time(self) -> None:
        """Set the gauge to the current Unix time in seconds."""
        self.set(time.time_ns() / 1e9)

    def inc(self) -> None:
        """Increase the gauge by 1."""
        self.add(1.0)

    def dec(self) -> None:
        """Decrease the gauge by 1."""
        self.add(-1.0)

    def add(self, value: float) -> None:
        """Add ``value``, which may be negative."""
        with self._lock:
            self._value += value

    def sub(self, value: float) -> None:
        """Subtract ``value``, which may be negative."""
        self.add(value * -1)

    def write(self) -> MetricData:
        with self._lock:
            value = self._value
        return MetricData(labels=self._label_pairs, gauge=value)

    def describe(self) -> Iterator[Desc]:
        yield self.desc

    def collect(self) -> Iterator[Metric]:
        yield self


class GaugeVec(MetricVec):
    """Gauges sharing one descriptor, partitioned by label values."""

    def __init__(self, opts: Opts, label_names: Iterable[str]) -> None:
        desc = _desc_from_opts(opts, label_names)

        def new_gauge(*values: str) -> Gauge:
            if len(values) != len(desc.variable_labels):
                raise make_inconsistent_cardinality_error(
                    desc.fq_name, desc.variable_labels, values
                )
            return Gauge._for_labels(desc, make_label_pairs(desc, values))

        super().__init__(desc, new_gauge)


class GaugeFunc(Metric):
    """A gauge whose value is obtained by calling a function when written.

    The function may be called concurrently and must be safe for that.
    """

    def __init__(self, opts: Opts, function: Callable[[], float]) -> None:
        self.desc = _desc_from_opts(opts)
        self._function = function
        self._label_pairs: Optional[tuple[LabelPair, ...]] = self.desc.const_label_pairs

    def write(self) -> MetricData:
        return MetricData(labels=self._label_pairs or (), gauge=float(self._function()))

    def describe(self) -> Iterator[Desc]:
        yield self.desc

    def collect(self) -> Iterator[Metric]:
        yield self