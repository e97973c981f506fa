"""A collector bundling metrics that share one descriptor but differ in label values."""

from __future__ import annotations

import copy
import json
import threading
from typing import Callable, Iterator, Mapping

from promkit.labels import validate_label_values, validate_values_in_labels
from promkit.metric import Metric
from promkit.model import Desc


def _quote(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


class MetricVec:
    """Metrics partitioned by the variable labels of a shared descriptor.

    ``new_metric`` is called with the full list of label values whenever a
    label combination is accessed for the first time. Curried vectors made
    with :meth:`curry_with` share their metrics with the vector they came
    from.
    """

    def __init__(self, desc: Desc, new_metric: Callable[..., Metric]) -> None:
        self.desc = desc
        self._new_metric = new_metric
        self._metrics: dict[tuple[str, ...], Metric] = {}
        self._lock = threading.Lock()
        # (index into variable labels, value) pairs, ordered by index.
        self._curry: tuple[tuple[int, str], ...] = ()

    def _expected_values(self) -> int:
        return len(self.desc.variable_labels) - len(self._curry)

    def _get_or_create(self, values: tuple[str, ...]) -> Metric:
        with self._lock:
            metric = self._metrics.get(values)
            if metric is None:
                metric = self._new_metric(*values)
                self._metrics[values] = metric
            return metric

    def get_metric_with_label_values(self, *args: str) -> Metric:
        """Return the metric for the given label values, creating it if needed.

        The values follow the order of the variable labels, with curried
        labels left out.
        """
        validate_label_values(args, self._expected_values())
        curried = dict(self._curry)
        given = iter(args)
        values = tuple(
            curried[index] if index in curried else next(given)
            for index in range(len(self.desc.variable_labels))
        )
        return self._get_or_create(values)

    def get_metric_with(self, labels: Mapping[str, str]) -> Metric:
        """Return the metric for the given label map, creating it if needed."""
        validate_values_in_labels(labels, self._expected_values())
        curried = dict(self._curry)
        values = []
        for index, name in enumerate(self.desc.variable_labels):
            if index in curried:
                if name in labels:
                    raise ValueError(f"label name {_quote(name)} is already curried")
                values.append(curried[index])
            elif name in labels:
                values.append(labels[name])
            else:
                raise ValueError(f"label name {_quote(name)} missing in label map")
        return self._get_or_create(tuple(values))

    def with_label_values(self, *args: str) -> Metric:
        """Shortcut for :meth:`get_metric_with_label_values`."""
        return self.get_metric_with_label_values(*args)

    def with_labels(self, labels: Mapping[str, str]) -> Metric:
        """Shortcut for :meth:`get_metric_with`."""
        return self.get_metric_with(labels)

    def curry_with(self, labels: Mapping[str, str]) -> "MetricVec":
        """Return a vector of the same kind with ``labels`` pre-set.

        Labels already curried may not be curried again, and every given
        label must be one of the variable labels.
        """
        old_curry = dict(self._curry)
        new_curry: list[tuple[int, str]] = []
        for index, name in enumerate(self.desc.variable_labels):
            if index in old_curry:
                if name in labels:
                    raise ValueError(f"label name {_quote(name)} is already curried")
                new_curry.append((index, old_curry[index]))
            elif name in labels:
                new_curry.append((index, labels[name]))
        unknown = len(old_curry) + len(labels) - len(new_curry)
        if unknown > 0:
            raise ValueError(f"{unknown} unknown label(s) found during currying")
        curried = copy.copy(self)
        curried._curry = tuple(new_curry)
        return curried

    def reset(self) -> None:
        """Delete all metrics, including those reached through curried vectors."""
        with self._lock:
            self._metrics.clear()

    def describe(self) -> Iterator[Desc]:
        """Yield the shared descriptor."""
        yield self.desc

    def collect(self) -> Iterator[Metric]:
        """Yield every metric currently held."""
        with self._lock:
            metrics = list(self._metrics.values())
        yield from metrics