"""A collector for basic metrics of an operating-system process."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

import psutil

from promkit.metric import InvalidMetric, Metric
from promkit.model import Desc, MetricData, ValueType

PidFn = Callable[[], int]

_COLLECTION_ERRORS = (psutil.Error, OSError, ValueError)


@dataclass
class ProcessCollectorOpts:
    """Options for a :class:`ProcessCollector`.

    ``pid_fn`` returns the PID to collect for and is called on every
    collection; by default the PID of the current process at construction
    time is used. A non-empty ``namespace`` prefixes every metric name
    followed by "_". With ``report_errors`` set, collection errors are
    reported as invalid metrics; otherwise they are ignored and the
    collected metrics are incomplete.
    """

    pid_fn: Optional[PidFn] = None
    namespace: str = ""
    report_errors: bool = False


class _ConstMetric(Metric):
    """A metric with one fixed value of a fixed type."""

    def __init__(self, desc: Desc, value_type: ValueType, value: float) -> None:
        self.desc = desc
        self.value_type = value_type
        self.value = float(value)

    def write(self) -> MetricData:
        labels = self.desc.const_label_pairs
        if self.value_type is ValueType.COUNTER:
            return MetricData(labels=labels, counter=self.value)
        if self.value_type is ValueType.GAUGE:
            return MetricData(labels=labels, gauge=self.value)
        return MetricData(labels=labels, untyped=self.value)


def _open_fds(proc: psutil.Process) -> int:
    if hasattr(proc, "num_fds"):
        return proc.num_fds()
    return proc.num_handles()


def _limits(proc: psutil.Process) -> tuple[int, int]:
    """Return the soft limits for open files and address space."""
    if not hasattr(proc, "rlimit"):
        raise OSError("process resource limits are not available on this platform")
    open_files = proc.rlimit(psutil.RLIMIT_NOFILE)[0]
    address_space = proc.rlimit(psutil.RLIMIT_AS)[0]
    return open_files, address_space


class ProcessCollector:
    """Collects CPU time, memory, file descriptor and start-time metrics of a process."""

    def __init__(self, opts: Optional[ProcessCollectorOpts] = None) -> None:
        opts = opts or ProcessCollectorOpts()
        ns = f"{opts.namespace}_" if opts.namespace else ""
        self.report_errors = opts.report_errors
        self.cpu_total = Desc(
            ns + "process_cpu_seconds_total",
            "Total user and system CPU time spent in seconds.",
        )
        self.open_fds = Desc(ns + "process_open_fds", "Number of open file descriptors.")
        self.max_fds = Desc(
            ns + "process_max_fds", "Maximum number of open file descriptors."
        )
        self.vsize = Desc(ns + "process_virtual_memory_bytes", "Virtual memory size in bytes.")
        self.max_vsize = Desc(
            ns + "process_virtual_memory_max_bytes",
            "Maximum amount of virtual memory available in bytes.",
        )
        self.rss = Desc(ns + "process_resident_memory_bytes", "Resident memory size in bytes.")
        self.start_time = Desc(
            ns + "process_start_time_seconds",
            "Start time of the process since unix epoch in seconds.",
        )
        if opts.pid_fn is None:
            pid = os.getpid()
            self._pid_fn: PidFn = lambda: pid
        else:
            self._pid_fn = opts.pid_fn

    def describe(self) -> Iterator[Desc]:
        """Yield the descriptors of all metrics this collector may produce."""
        yield self.cpu_total
        yield self.open_fds
        yield self.max_fds
        yield self.vsize
        yield self.max_vsize
        yield self.rss
        yield self.start_time

    def _report_error(self, desc: Optional[Desc], err: Exception) -> Iterator[Metric]:
        if not self.report_errors:
            return
        if desc is None:
            desc = Desc("", "", err=err)
        yield InvalidMetric(desc, err)

    def collect(self) -> Iterator[Metric]:
        """Yield the current metrics of the process."""
        try:
            pid = self._pid_fn()
        except Exception as err:  # the PID callback is user supplied
            yield from self._report_error(None, err)
            return

        try:
            proc = psutil.Process(pid)
        except _COLLECTION_ERRORS as err:
            yield from self._report_error(None, err)
            return

        try:
            with proc.oneshot():
                times = proc.cpu_times()
                memory = proc.memory_info()
        except _COLLECTION_ERRORS as err:
            yield from self._report_error(None, err)
        else:
            yield _ConstMetric(self.cpu_total, ValueType.COUNTER, times.user + times.system)
            yield _ConstMetric(self.vsize, ValueType.GAUGE, memory.vms)
            yield _ConstMetric(self.rss, ValueType.GAUGE, memory.rss)
            try:
                started = proc.create_time()
            except _COLLECTION_ERRORS as err:
                yield from self._report_error(self.start_time, err)
            else:
                yield _ConstMetric(self.start_time, ValueType.GAUGE, started)

        try:
            fds = _open_fds(proc)
        except _COLLECTION_ERRORS as err:
            yield from self._report_error(self.open_fds, err)
        else:
            yield _ConstMetric(self.open_fds, ValueType.GAUGE, fds)

        try:
            open_files, address_space = _limits(proc)
        except _COLLECTION_ERRORS as err:
            yield from self._report_error(None, err)
        else:
            yield _ConstMetric(self.max_fds, ValueType.GAUGE, open_files)
            yield _ConstMetric(self.max_vsize, ValueType.GAUGE, address_space)


def new_pid_file_fn(path: str | os.PathLike[str]) -> PidFn:
    """Return a function that reads a PID from the file at ``path``.

    The function raises OSError if the file cannot be read and ValueError
    if its content is not an integer.
    """

    def read_pid() -> int:
        try:
            with open(path, encoding="utf-8") as handle:
                content = handle.read()
        except OSError as err:
            raise OSError(f'can\'t read pid file "{os.fspath(path)}": {err}') from err
        try:
            return int(content.strip())
        except ValueError as err:
            raise ValueError(f'can\'t parse pid file "{os.fspath(path)}": {err}') from err

    return read_pid