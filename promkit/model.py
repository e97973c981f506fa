"""Data objects describing metrics as they are written out for exposition."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional


class ValueType(enum.Enum):
    """The kind of value a metric or metric family carries."""

    COUNTER = "counter"
    GAUGE = "gauge"
    SUMMARY = "summary"
    UNTYPED = "untyped"
    HISTOGRAM = "histogram"


@dataclass(frozen=True)
class LabelPair:
    """A single label name with its value."""

    name: str
    value: str


@dataclass(frozen=True)
class Exemplar:
    """An observed value annotated with labels and the time it was seen."""

    labels: tuple[LabelPair, ...] = ()
    value: float = 0.0
    timestamp: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "labels", tuple(self.labels))


@dataclass(frozen=True)
class Bucket:
    """One cumulative histogram bucket."""

    cumulative_count: int
    upper_bound: float
    exemplar: Optional[Exemplar] = None


@dataclass(frozen=True)
class HistogramData:
    """The written state of a histogram."""

    sample_count: int = 0
    sample_sum: float = 0.0
    buckets: tuple[Bucket, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "buckets", tuple(self.buckets))


@dataclass(frozen=True)
class Quantile:
    """A single quantile of a summary."""

    quantile: float
    value: float


@dataclass(frozen=True)
class SummaryData:
    """The written state of a summary."""

    sample_count: int = 0
    sample_sum: float = 0.0
    quantiles: tuple[Quantile, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "quantiles", tuple(self.quantiles))


@dataclass(frozen=True)
class MetricData:
    """One written sample (or sample group) with its labels."""

    labels: tuple[LabelPair, ...] = ()
    gauge: Optional[float] = None
    counter: Optional[float] = None
    untyped: Optional[float] = None
    summary: Optional[SummaryData] = None
    histogram: Optional[HistogramData] = None
    timestamp_ms: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "labels", tuple(self.labels))


@dataclass
class MetricFamily:
    """All metrics sharing one name, help text and type."""

    name: str
    help: str
    type: ValueType
    metrics: list[MetricData] = field(default_factory=list)


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


@dataclass(frozen=True, eq=False)
class Desc:
    """Descriptor shared by all metrics of one kind.

    Constant labels are copied at construction time and exposed sorted by
    name as ``const_label_pairs``.
    """

    fq_name: str
    help: str
    variable_labels: tuple[str, ...] = ()
    const_labels: Optional[Mapping[str, str]] = None
    err: Optional[Exception] = None
    const_label_pairs: tuple[LabelPair, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        labels = dict(self.const_labels or {})
        object.__setattr__(self, "variable_labels", tuple(self.variable_labels or ()))
        object.__setattr__(self, "const_labels", labels)
        object.__setattr__(
            self,
            "const_label_pairs",
            tuple(LabelPair(name, value) for name, value in sorted(labels.items())),
        )

    def __str__(self) -> str:
        const = ",".join(f"{p.name}={_quote(p.value)}" for p in self.const_label_pairs)
        variable = " ".join(self.variable_labels)
        return (
            f"Desc{{fqName: {_quote(self.fq_name)}, help: {_quote(self.help)}, "
            f"constLabels: {{{const}}}, variableLabels: [{variable}]}}"
        )