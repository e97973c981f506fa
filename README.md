# promkit

Instrument Python code with Prometheus-style metrics, collect basic process
metrics, and push metric families to a Graphite server.

## What it provides

- `promkit.gauge`: `Gauge`, the labelled `GaugeVec`, and `GaugeFunc`, whose
  value comes from a callable each time it is written.
- `promkit.histogram`: `Histogram` and `HistogramVec` with configurable
  buckets and per-bucket exemplars, the fixed-value `ConstHistogram` (made
  with `new_const_histogram`), and the bucket helpers `linear_buckets`,
  `exponential_buckets` and `exponential_buckets_range`.
- `promkit.vector`: `MetricVec`, the base of labelled metrics, with
  `with_label_values`, `with_labels`, `curry_with`, `reset`, `describe` and
  `collect`.
- `promkit.process`: `ProcessCollector` reports CPU time, open file
  descriptors and their limit, virtual and resident memory, the address
  space limit and the start time of a process. `new_pid_file_fn` reads the
  PID from a file.
- `promkit.graphite`: `Bridge` pushes gathered metric families to a
  Graphite server over TCP, in the dotted plaintext format or with Graphite
  tags. `write_metrics` writes the same lines to any text stream, and
  `sanitize` makes a string a valid Graphite path component.
- `promkit.model`: the data classes metrics are written as (`MetricData`,
  `HistogramData`, `Bucket`, `Exemplar`, `MetricFamily`, ...) and the
  descriptor `Desc`.
- `promkit.metric`: `Opts`, the abstract `Metric`, `InvalidMetric`,
  `new_metric_with_timestamp` and `build_fq_name`.
- `promkit.labels`: label name and value validation.
- `promkit.normalize`: `normalize_metric_families` drops empty families and
  sorts families by name and their metrics by label values.
- `promkit.observer`: the `Observer` and `ExemplarObserver` protocols and
  the `ObserverFunc` adapter.

## Installing

```
pip install promkit
```

## Examples

Gauges:

```python
from promkit.gauge import Gauge, GaugeVec
from promkit.metric import Opts

temperature = Gauge(Opts(name="room_temperature_celsius", help="Room temperature."))
temperature.set(21.5)
temperature.inc()

queued = GaugeVec(Opts(name="jobs_queued", help="Queued jobs."), ["queue"])
queued.with_label_values("email").add(3)
queued.with_labels({"queue": "reports"}).dec()
```

A wrong number of label values raises `InconsistentCardinalityError`.

Histograms:

```python
from promkit.histogram import Histogram, HistogramOpts, exponential_buckets

latency = Histogram(HistogramOpts(
    name="request_duration_seconds",
    help="Request latency.",
    buckets=exponential_buckets(0.01, 2, 8),
))
latency.observe(0.042)
latency.observe_with_exemplar(1.3, {"trace_id": "abc123"})
data = latency.write()  # MetricData holding cumulative bucket counts
```

Bucket bounds must be strictly increasing, or `ValueError` is raised. A
trailing `+Inf` bound is dropped because that bucket is always present.
Without buckets, `DEF_BUCKETS` is used. The label name `le` is not allowed
on histograms.

Pushing to Graphite. The bridge takes any object with a `gather()` method
that returns `MetricFamily` objects:

```python
import threading
from promkit.graphite import Bridge, Config, HandlerErrorHandling
from promkit.model import MetricFamily, ValueType
from promkit.normalize import normalize_metric_families


class Gatherer:
    def gather(self):
        families = {
            "room_temperature_celsius": MetricFamily(
                name="room_temperature_celsius",
                help="Room temperature.",
                type=ValueType.GAUGE,
                metrics=[temperature.write()],
            ),
        }
        return normalize_metric_families(families)


bridge = Bridge(Config(
    url="localhost:2003",
    gatherer=Gatherer(),
    prefix="myapp",
    interval=15.0,
    error_handling=HandlerErrorHandling.ABORT_ON_ERROR,
))
bridge.push()                    # one push

stop = threading.Event()
bridge.run(stop)                 # pushes every interval until stop is set
```

`interval` and `timeout` are in seconds; zero means 15 seconds. Errors in
`run` are logged to `Config.logger` if one is set.

Process metrics:

```python
from promkit.process import ProcessCollector, ProcessCollectorOpts, new_pid_file_fn

collector = ProcessCollector(ProcessCollectorOpts(
    pid_fn=new_pid_file_fn("/run/myapp.pid"),
    namespace="myapp",
    report_errors=True,
))
for metric in collector.collect():
    try:
        print(metric.desc.fq_name, metric.write())
    except Exception as err:     # reported collection errors raise on write
        print("error:", err)
```

With `report_errors` left off, collection errors are ignored and fewer
metrics are yielded.

## What it does not do

There is no registry: metrics are not registered or gathered
automatically, so a `gather()` method that builds `MetricFamily` objects
has to be supplied, as above. There are no counters or summaries, no HTTP
endpoint serving metrics, and no text exposition format other than the
Graphite lines.

## Running the tests

```
pip install -e ".[test]"
pytest
```