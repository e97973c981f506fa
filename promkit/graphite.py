"""Pushing gathered metrics to a Graphite server over its plaintext protocol."""

from __future__ import annotations

import enum
import logging
import math
import socket
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Iterable, Iterator, Optional, Protocol, Sequence, TextIO

from promkit.model import MetricData, MetricFamily, ValueType

DEFAULT_INTERVAL = 15.0
MILLISECONDS_PER_SECOND = 1000

METRIC_NAME_LABEL = "__name__"
QUANTILE_LABEL = "quantile"
BUCKET_LABEL = "le"

_VALID_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_:-"
)

Sample = tuple[dict[str, str], float, int]


class HandlerErrorHandling(enum.Enum):
    """How a push reacts to errors while gathering metrics."""

    CONTINUE_ON_ERROR = 0
    """Ignore errors and push as many metrics as possible."""
    ABORT_ON_ERROR = 1
    """Abort the push on the first error."""


class Gatherer(Protocol):
    """Anything that can gather metric families."""

    def gather(self) -> Sequence[MetricFamily]:
        ...


@dataclass
class Config:
    """Settings for a :class:`Bridge`.

    ``url`` is a "host:port" address and is required, as is ``gatherer``.
    ``interval`` and ``timeout`` are in seconds; zero means 15 seconds.
    """

    url: str = ""
    gatherer: Optional[Gatherer] = None
    use_tags: bool = False
    prefix: str = ""
    interval: float = 0.0
    timeout: float = 0.0
    logger: Optional[logging.Logger] = None
    error_handling: HandlerErrorHandling = HandlerErrorHandling.CONTINUE_ON_ERROR


def _split_address(url: str) -> tuple[str, int]:
    host, sep, port = url.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {url!r}")
    host = host.strip("[]")
    try:
        return host, int(port)
    except ValueError:
        raise ValueError(f"invalid port in address {url!r}") from None


class Bridge:
    """Pushes gathered metrics to a Graphite server."""

    def __init__(self, config: Config) -> None:
        if not config.url:
            raise ValueError("missing URL")
        if config.gatherer is None:
            raise ValueError("missing gatherer")
        self.url = config.url
        self.gatherer = config.gatherer
        self.use_tags = config.use_tags
        self.prefix = config.prefix
        self.interval = config.interval if config.interval != 0 else DEFAULT_INTERVAL
        self.timeout = config.timeout if config.timeout != 0 else DEFAULT_INTERVAL
        self.logger = config.logger
        self.error_handling = config.error_handling

    def run(self, stop_event: threading.Event) -> None:
        """Push at the configured interval until ``stop_event`` is set.

        Push errors are logged, if a logger is configured, and otherwise ignored.
        """
        if self.interval <= 0:
            raise ValueError("non-positive interval for pushing to Graphite")
        while not stop_event.wait(self.interval):
            try:
                self.push()
            except Exception as err:  # keep the loop alive on any push failure
                if self.logger is not None:
                    self.logger.error("error pushing to Graphite: %s", err)

    def push(self) -> None:
        """Gather metrics and send them to the Graphite server."""
        error: Optional[Exception] = None
        try:
            families = list(self.gatherer.gather())
        except Exception as err:  # the gatherer is user supplied
            families = []
            error = err
        if error is not None or not families:
            if self.error_handling is HandlerErrorHandling.ABORT_ON_ERROR:
                if error is not None:
                    raise error
                return
            if self.error_handling is HandlerErrorHandling.CONTINUE_ON_ERROR:
                if self.logger is not None:
                    self.logger.warning("continue on error: %s", error)
            else:
                raise ValueError("unrecognized error handling value")

        host, port = _split_address(self.url)
        now = time.time_ns() // 1_000_000
        with socket.create_connection((host, port), timeout=self.timeout) as conn:
            with conn.makefile("w", encoding="utf-8", newline="\n") as stream:
                write_metrics(stream, families, self.use_tags, self.prefix, now)


def _format_float(value: float) -> str:
    """Format like a shortest-representation %g: exponent form below 1e-4 or from 1e6."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value == 0:
        return "-0" if math.copysign(1.0, value) < 0 else "0"
    sign, digit_tuple, exponent = Decimal(repr(float(value))).as_tuple()
    digits = list(digit_tuple)
    while len(digits) > 1 and digits[-1] == 0:
        digits.pop()
        exponent += 1
    text = "".join(str(d) for d in digits)
    exp = len(digits) + exponent - 1
    lead = "-" if sign else ""
    if exp < -4 or exp >= 6:
        mantissa = text[0] + ("." + text[1:] if len(text) > 1 else "")
        return f"{lead}{mantissa}e{'+' if exp >= 0 else '-'}{abs(exp):02d}"
    if exp >= 0:
        whole = text[: exp + 1].ljust(exp + 1, "0")
        fraction = text[exp + 1 :]
        return lead + whole + ("." + fraction if fraction else "")
    return f"{lead}0.{'0' * (-exp - 1)}{text}"


_SCALAR_VALUES: dict[ValueType, Callable[[MetricData], Optional[float]]] = {
    ValueType.COUNTER: lambda metric: metric.counter,
    ValueType.GAUGE: lambda metric: metric.gauge,
    ValueType.UNTYPED: lambda metric: metric.untyped,
}


def _extract_samples(families: Iterable[MetricFamily], now: int) -> Iterator[Sample]:
    for family in families:
        name = family.name
        for metric in family.metrics:
            timestamp = now if metric.timestamp_ms is None else metric.timestamp_ms
            base = {pair.name: pair.value for pair in metric.labels}
            if family.type in _SCALAR_VALUES:
                value = _SCALAR_VALUES[family.type](metric)
                if value is None:
                    continue
                yield {**base, METRIC_NAME_LABEL: name}, float(value), timestamp
            elif family.type is ValueType.SUMMARY:
                summary = metric.summary
                if summary is None:
                    continue
                for quantile in summary.quantiles:
                    labels = {
                        **base,
                        QUANTILE_LABEL: _format_float(quantile.quantile),
                        METRIC_NAME_LABEL: name,
                    }
                    yield labels, float(quantile.value), timestamp
                yield {**base, METRIC_NAME_LABEL: name + "_sum"}, float(summary.sample_sum), timestamp
                yield {**base, METRIC_NAME_LABEL: name + "_count"}, float(
                    summary.sample_count
                ), timestamp
            elif family.type is ValueType.HISTOGRAM:
                histogram = metric.histogram
                if histogram is None:
                    continue
                inf_seen = False
                for bucket in histogram.buckets:
                    labels = {
                        **base,
                        BUCKET_LABEL: _format_float(bucket.upper_bound),
                        METRIC_NAME_LABEL: name + "_bucket",
                    }
                    if math.isinf(bucket.upper_bound) and bucket.upper_bound > 0:
                        inf_seen = True
                    yield labels, float(bucket.cumulative_count), timestamp
                yield {**base, METRIC_NAME_LABEL: name + "_sum"}, float(
                    histogram.sample_sum
                ), timestamp
                yield {**base, METRIC_NAME_LABEL: name + "_count"}, float(
                    histogram.sample_count
                ), timestamp
                if not inf_seen:
                    labels = {
                        **base,
                        BUCKET_LABEL: "+Inf",
                        METRIC_NAME_LABEL: name + "_bucket",
                    }
                    yield labels, float(histogram.sample_count), timestamp
            else:
                raise ValueError(f"unknown metric family type {family.type!r}")


def _replace_invalid(char: str) -> str:
    if char == " ":
        return "."
    return char if char in _VALID_CHARS else "_"


def sanitize(text: str) -> str:
    """Make ``text`` a valid Graphite path component.

    Spaces become dots, other invalid characters become underscores, and
    runs of underscores collapse into one.
    """
    out = []
    previous_underscore = False
    for char in text:
        char = _replace_invalid(char)
        if char == "_":
            if previous_underscore:
                continue
            previous_underscore = True
        else:
            previous_underscore = False
        out.append(char)
    return "".join(out)


def _metric_path(labels: dict[str, str], use_tags: bool) -> str:
    name = labels.get(METRIC_NAME_LABEL)
    others = {key: value for key, value in labels.items() if key != METRIC_NAME_LABEL}
    if not others:
        return sanitize(name) if name is not None else ""
    path = sanitize(name or "")
    if use_tags:
        return path + "".join(f";{key}={value}" for key, value in sorted(others.items()))
    parts = sorted(f"{key} {value}" for key, value in others.items())
    return path + "".join("." + sanitize(part) for part in parts)


def _seconds(timestamp_ms: int) -> int:
    quotient = abs(timestamp_ms) // MILLISECONDS_PER_SECOND
    return quotient if timestamp_ms >= 0 else -quotient


def write_metrics(
    stream: TextIO,
    families: Iterable[MetricFamily],
    use_tags: bool,
    prefix: str,
    now: int,
) -> None:
    """Write ``families`` to ``stream`` in the Graphite plaintext format.

    ``now`` is the time in milliseconds used for samples without their own
    timestamp; timestamps are written in whole seconds.
    """
    flush = getattr(stream, "flush", None)
    for labels, value, timestamp in _extract_samples(families, now):
        stream.write(
            f"{prefix}.{_metric_path(labels, use_tags)} "
            f"{_format_float(value)} {_seconds(timestamp)}\n"
        )
        if flush is not None:
            flush()