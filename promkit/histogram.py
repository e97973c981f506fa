"""Histograms: observations counted in configurable buckets."""

from __future__ import annotations

import bisect
import math
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, Mapping, Optional, Sequence

from promkit.labels import (
    check_label_name,
    make_inconsistent_cardinality_error,
    make_label_pairs,
    validate_label_values,
)
from promkit.metric import Metric, build_fq_name, sort_label_pairs
from promkit.model import Bucket, Desc, Exemplar, HistogramData, LabelPair, MetricData
from promkit.vector import MetricVec

BUCKET_LABEL = "le"

DEF_BUCKETS: tuple[float, ...] = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10)

EXEMPLAR_MAX_RUNES = 64

_BUCKET_LABEL_NOT_ALLOWED = f'"{BUCKET_LABEL}" is not allowed as label name in histograms'


def linear_buckets(start: float, width: float, count: int) -> list[float]:
    """Return ``count`` bucket bounds, the first at ``start``, each ``width`` apart."""
    if count < 1:
        raise ValueError("linear_buckets needs a positive count")
    buckets = []
    for _ in range(count):
        buckets.append(start)
        start += width
    return buckets


def exponential_buckets(start: float, factor: float, count: int) -> list[float]:
    """Return ``count`` bucket bounds, the first at ``start``, each ``factor`` times the last."""
    if count < 1:
        raise ValueError("exponential_buckets needs a positive count")
    if start <= 0:
        raise ValueError("exponential_buckets needs a positive start value")
    if factor <= 1:
        raise ValueError("exponential_buckets needs a factor greater than 1")
    buckets = []
    for _ in range(count):
        buckets.append(start)
        start *= factor
    return buckets


def exponential_buckets_range(minimum: float, maximum: float, count: int) -> list[float]:
    """Return ``count`` exponentially spaced bucket bounds from ``minimum`` to ``maximum``."""
    if count < 1:
        raise ValueError("exponential_buckets_range needs a positive count")
    if minimum <= 0:
        raise ValueError("exponential_buckets_range needs a minimum greater than 0")
    if count == 1:
        return [float(minimum)]
    growth = math.pow(maximum / minimum, 1.0 / (count - 1))
    return [minimum * math.pow(growth, i) for i in range(count)]


@dataclass
class HistogramOpts:
    """Options for creating a histogram.

    ``buckets`` are the strictly increasing upper bounds; an implicit +Inf
    bucket is always added. Empty buckets mean :data:`DEF_BUCKETS`.
    """

    name: str = ""
    namespace: str = ""
    subsystem: str = ""
    help: str = ""
    const_labels: dict[str, str] = field(default_factory=dict)
    buckets: Optional[Sequence[float]] = None


def _desc_from_opts(opts: HistogramOpts, label_names: Iterable[str] = ()) -> Desc:
    return Desc(
        build_fq_name(opts.namespace, opts.subsystem, opts.name),
        opts.help,
        tuple(label_names),
        opts.const_labels,
    )


def _new_exemplar(value: float, moment: datetime, labels: Mapping[str, str]) -> Exemplar:
    runes = 0
    pairs = []
    for name, label_value in labels.items():
        if not check_label_name(name):
            raise ValueError(f'exemplar label name "{name}" is invalid')
        try:
            label_value.encode("utf-8")
        except UnicodeEncodeError:
            raise ValueError(f"exemplar label value {label_value!r} is not valid UTF-8") from None
        runes += len(name) + len(label_value)
        pairs.append(LabelPair(name, label_value))
    if runes > EXEMPLAR_MAX_RUNES:
        raise ValueError(
            f"exemplar labels have {runes} runes, exceeding the limit of {EXEMPLAR_MAX_RUNES}"
        )
    return Exemplar(labels=tuple(sort_label_pairs(pairs)), value=value, timestamp=moment)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Histogram(Metric):
    """Counts observations in buckets and keeps their sum and count.

    Exemplars are tracked separately for each bucket, +Inf included.
    """

    def __init__(self, opts: HistogramOpts) -> None:
        self._setup(_desc_from_opts(opts), opts, ())

    @classmethod
    def _create(cls, desc: Desc, opts: HistogramOpts, label_values: Sequence[str]) -> "Histogram":
        histogram = cls.__new__(cls)
        histogram._setup(desc, opts, label_values)
        return histogram

    def _setup(self, desc: Desc, opts: HistogramOpts, label_values: Sequence[str]) -> None:
        label_values = tuple(label_values)
        if len(desc.variable_labels) != len(label_values):
            raise make_inconsistent_cardinality_error(
                desc.fq_name, desc.variable_labels, label_values
            )
        if BUCKET_LABEL in desc.variable_labels:
            raise ValueError(_BUCKET_LABEL_NOT_ALLOWED)
        if any(pair.name == BUCKET_LABEL for pair in desc.const_label_pairs):
            raise ValueError(_BUCKET_LABEL_NOT_ALLOWED)

        bounds = [float(b) for b in (opts.buckets or DEF_BUCKETS)]
        for lower, upper in zip(bounds, bounds[1:]):
            if lower >= upper:
                raise ValueError(
                    f"histogram buckets must be in increasing order: {lower:f} >= {upper:f}"
                )
        if bounds and math.isinf(bounds[-1]) and bounds[-1] > 0:
            bounds.pop()  # The +Inf bucket is implicit.

        self.desc = desc
        self.upper_bounds: tuple[float, ...] = tuple(bounds)
        self._label_pairs = make_label_pairs(desc, label_values)
        self._lock = threading.Lock()
        self._count = 0
        self._sum = 0.0
        self._bucket_counts = [0] * len(bounds)
        self._exemplars: list[Optional[Exemplar]] = [None] * (len(bounds) + 1)
        self.now: Callable[[], datetime] = _now

    @property
    def exemplars(self) -> tuple[Optional[Exemplar], ...]:
        """The current exemplar of each bucket, the +Inf bucket last."""
        with self._lock:
            return tuple(self._exemplars)

    def _find_bucket(self, value: float) -> int:
        return bisect.bisect_left(self.upper_bounds, value)

    def _observe(self, value: float, bucket: int) -> None:
        with self._lock:
            if bucket < len(self._bucket_counts):
                self._bucket_counts[bucket] += 1
            self._sum += value
            self._count += 1

    def observe(self, value: float) -> None:
        """Add a single observation."""
        self._observe(value, self._find_bucket(value))

    def observe_with_exemplar(self, value: float, labels: Optional[Mapping[str, str]]) -> None:
        """Observe ``value`` and replace the bucket's exemplar unless ``labels`` is None."""
        bucket = self._find_bucket(value)
        self._observe(value, bucket)
        if labels is None:
            return
        exemplar = _new_exemplar(value, self.now(), labels)
        with self._lock:
            self._exemplars[bucket] = exemplar

    def write(self) -> MetricData:
        with self._lock:
            count = self._count
            total = self._sum
            counts = list(self._bucket_counts)
            exemplars = list(self._exemplars)
        buckets = []
        cumulative = 0
        for bound, bucket_count, exemplar in zip(self.upper_bounds, counts, exemplars):
            cumulative += bucket_count
            buckets.append(Bucket(cumulative, bound, exemplar))
        if exemplars[-1] is not None:
            buckets.append(Bucket(count, math.inf, exemplars[-1]))
        return MetricData(
            labels=self._label_pairs,
            histogram=HistogramData(sample_count=count, sample_sum=total, buckets=tuple(buckets)),
        )

    def describe(self) -> Iterator[Desc]:
        yield self.desc

    def collect(self) -> Iterator[Metric]:
        yield self


class HistogramVec(MetricVec):
    """Histograms sharing one descriptor, partitioned by label values."""

    def __init__(self, opts: HistogramOpts, label_names: Iterable[str]) -> None:
        desc = _desc_from_opts(opts, label_names)

        def new_histogram(*values: str) -> Histogram:
            return Histogram._create(desc, opts, values)

        super().__init__(desc, new_histogram)


class ConstHistogram(Metric):
    """A histogram with fixed count, sum and cumulative bucket counts."""

    def __init__(
        self,
        desc: Desc,
        count: int,
        total: float,
        buckets: Mapping[float, int],
        label_pairs: tuple[LabelPair, ...],
    ) -> None:
        self.desc = desc
        self.count = count
        self.total = total
        self.buckets = dict(buckets)
        self._label_pairs = label_pairs

    def write(self) -> MetricData:
        buckets = tuple(
            Bucket(cumulative, bound) for bound, cumulative in sorted(self.buckets.items())
        )
        return MetricData(
            labels=self._label_pairs,
            histogram=HistogramData(
                sample_count=self.count, sample_sum=self.total, buckets=buckets
            ),
        )


def new_const_histogram(
    desc: Desc, count: int, total: float, buckets: Mapping[float, int], *args: str
) -> ConstHistogram:
    """Create a constant histogram; ``buckets`` maps upper bounds to cumulative counts."""
    if desc.err is not None:
        raise desc.err
    validate_label_values(args, len(desc.variable_labels))
    return ConstHistogram(desc, count, total, buckets, make_label_pairs(desc, args))