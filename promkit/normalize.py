"""Normalisation of gathered metric families."""

from __future__ import annotations

from dataclasses import replace
from functools import cmp_to_key
from typing import Mapping

from promkit.model import MetricData, MetricFamily


def _less(a: MetricData, b: MetricData) -> bool:
    if len(a.labels) != len(b.labels):
        # Inconsistent metrics; comparing label counts keeps sorting reproducible.
        return len(a.labels) < len(b.labels)
    for left, right in zip(a.labels, b.labels):
        if left.value != right.value:
            return left.value < right.value
    # Equal label sets: order by timestamp, missing timestamps last.
    if a.timestamp_ms is None:
        return False
    if b.timestamp_ms is None:
        return True
    return a.timestamp_ms < b.timestamp_ms


def _compare(a: MetricData, b: MetricData) -> int:
    if _less(a, b):
        return -1
    if _less(b, a):
        return 1
    return 0


def normalize_metric_families(families_by_name: Mapping[str, MetricFamily]) -> list[MetricFamily]:
    """Drop empty families, sort the rest by name and sort each one's metrics."""
    return [
        replace(family, metrics=sorted(family.metrics, key=cmp_to_key(_compare)))
        for name, family in sorted(families_by_name.items())
        if family.metrics
    ]