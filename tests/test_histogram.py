import math
import random
import threading
from datetime import datetime, timezone

import pytest

from promkit.histogram import (
    DEF_BUCKETS,
    Histogram,
    HistogramOpts,
    HistogramVec,
    exponential_buckets,
    exponential_buckets_range,
    linear_buckets,
    new_const_histogram,
)
from promkit.labels import InconsistentCardinalityError
from promkit.model import Desc, Exemplar, LabelPair

TEST_BUCKETS = [-2, -1, -0.5, 0, 0.5, 1, 2, math.inf]


def cumulative_counts(values):
    counts = [0] * len(TEST_BUCKETS)
    for v in values:
        for i in reversed(range(len(TEST_BUCKETS))):
            if v > TEST_BUCKETS[i]:
                break
            counts[i] += 1
    return counts


@pytest.mark.parametrize(
    "buckets",
    [[1, 2, 2, 3], [1, 2, 4, 3, 5], [1, 2, math.inf, 3]],
    ids=["not strictly monotonic", "not monotonic at all", "+Inf in the middle"],
)
def test_non_monotonic_buckets(buckets):
    with pytest.raises(ValueError, match="increasing order"):
        Histogram(HistogramOpts(name="test_histogram", help="helpless", buckets=buckets))


def test_buckets():
    assert linear_buckets(-15, 5, 6) == [-15, -10, -5, 0, 5, 10]
    assert exponential_buckets(100, 1.2, 3) == [100, 120, 144]
    want = [
        1.0, 1.6681005372000588, 2.782559402207125,
        4.641588833612779, 7.742636826811273, 12.915496650148842,
        21.544346900318846, 35.93813663804629, 59.94842503189414,
        100.00000000000007,
    ]
    assert exponential_buckets_range(1, 100, 10) == pytest.approx(want, rel=1e-12)


@pytest.mark.parametrize(
    "call",
    [
        lambda: linear_buckets(0, 1, 0),
        lambda: exponential_buckets(1, 2, 0),
        lambda: exponential_buckets(0, 2, 3),
        lambda: exponential_buckets(1, 1, 3),
        lambda: exponential_buckets_range(1, 10, 0),
        lambda: exponential_buckets_range(0, 10, 3),
    ],
)
def test_bucket_helpers_reject_bad_arguments(call):
    with pytest.raises(ValueError):
        call()


def test_default_buckets_used():
    h = Histogram(HistogramOpts(name="h"))
    assert h.upper_bounds == tuple(float(b) for b in DEF_BUCKETS)
    assert len(h.write().histogram.buckets) == 11


def test_concurrency():
    rng = random.Random(42)
    h = Histogram(HistogramOpts(name="test_histogram", help="helpless", buckets=TEST_BUCKETS))
    chunks = [[rng.normalvariate(0, 1) for _ in range(2000)] for _ in range(4)]

    def work(values, use_exemplar):
        for v in values:
            if use_exemplar:
                h.observe_with_exemplar(v, {"foo": "bar"})
            else:
                h.observe(v)

    threads = [
        threading.Thread(target=work, args=(chunk, i % 2 == 1)) for i, chunk in enumerate(chunks)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    all_values = sorted(v for chunk in chunks for v in chunk)
    data = h.write().histogram
    assert data.sample_count == len(all_values)
    assert data.sample_sum == pytest.approx(sum(all_values), rel=1e-3, abs=1e-6)
    want = cumulative_counts(all_values)
    for i, bound in enumerate(TEST_BUCKETS[:-1]):
        assert data.buckets[i].upper_bound == bound
        assert data.buckets[i].cumulative_count == want[i]
    # An exemplar landed in the +Inf bucket only if some value exceeded 2.
    has_inf = any(v > 2 for v in all_values)
    assert len(data.buckets) == (8 if has_inf else 7)


def test_vec_concurrency():
    rng = random.Random(42)
    vec = HistogramVec(
        HistogramOpts(name="test_histogram", help="helpless", buckets=TEST_BUCKETS), ["label"]
    )
    per_label = {"A": [], "B": [], "C": []}
    work_items = []
    for _ in range(3):
        items = []
        for _ in range(1500):
            label = rng.choice("ABC")
            value = rng.normalvariate(0, 1)
            per_label[label].append(value)
            items.append((label, value))
        work_items.append(items)

    def work(items):
        for label, value in items:
            vec.with_label_values(label).observe(value)

    threads = [threading.Thread(target=work, args=(items,)) for items in work_items]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for label, values in per_label.items():
        data = vec.with_label_values(label).write().histogram
        assert len(data.buckets) == len(TEST_BUCKETS) - 1
        assert data.sample_count == len(values)
        assert data.sample_sum == pytest.approx(sum(values), rel=1e-3, abs=1e-6)
        want = cumulative_counts(values)
        for i, bound in enumerate(TEST_BUCKETS[:-1]):
            assert data.buckets[i].upper_bound == bound
            assert data.buckets[i].cumulative_count == want[i]


def test_atomic_observe():
    h = Histogram(HistogramOpts(buckets=[0.5, 10, 20]))
    stop = threading.Event()

    def observe():
        while not stop.is_set():
            h.observe(1)

    threads = [threading.Thread(target=observe) for _ in range(3)]
    for t in threads:
        t.start()
    try:
        for _ in range(100):
            data = h.write().histogram
            assert data.sample_count == int(data.sample_sum)
            assert data.sample_count == data.buckets[1].cumulative_count
            assert data.sample_count == data.buckets[2].cumulative_count
    finally:
        stop.set()
        for t in threads:
            t.join()


def test_exemplars():
    now = datetime(2021, 6, 1, 12, 0, tzinfo=timezone.utc)
    h = Histogram(HistogramOpts(name="test", help="test help", buckets=[1, 2, 3, 4]))
    h.now = lambda: now

    h.observe_with_exemplar(1.5, {"id": "1"})
    h.observe_with_exemplar(1.6, {"id": "2"})
    h.observe_with_exemplar(4, {"id": "3"})
    h.observe_with_exemplar(4.5, {"id": "4"})

    assert h.exemplars == (
        None,
        Exemplar((LabelPair("id", "2"),), 1.6, now),
        None,
        Exemplar((LabelPair("id", "3"),), 4, now),
        Exemplar((LabelPair("id", "4"),), 4.5, now),
    )
    data = h.write().histogram
    assert len(data.buckets) == 5
    assert data.buckets[-1].upper_bound == math.inf
    assert data.buckets[-1].cumulative_count == 4
    assert data.buckets[-1].exemplar.value == 4.5


def test_exemplar_none_labels_keeps_current():
    h = Histogram(HistogramOpts(name="h", buckets=[1]))
    h.observe_with_exemplar(0.5, {"id": "a"})
    h.observe_with_exemplar(0.7, None)
    assert h.exemplars[0].value == 0.5
    assert h.write().histogram.sample_count == 2


def test_exemplar_labels_sorted_and_empty_allowed():
    h = Histogram(HistogramOpts(name="h", buckets=[1]))
    h.observe_with_exemplar(0.5, {"b": "2", "a": "1"})
    assert [p.name for p in h.exemplars[0].labels] == ["a", "b"]
    h.observe_with_exemplar(0.6, {})
    assert h.exemplars[0].labels == ()


def test_exemplar_too_long_or_invalid():
    h = Histogram(HistogramOpts(name="h", buckets=[1]))
    with pytest.raises(ValueError, match="runes"):
        h.observe_with_exemplar(0.5, {"id": "x" * 100})
    with pytest.raises(ValueError, match="invalid"):
        h.observe_with_exemplar(0.5, {"0bad": "x"})


def test_trailing_inf_removed():
    h = Histogram(HistogramOpts(name="h", buckets=TEST_BUCKETS))
    assert h.upper_bounds == (-2, -1, -0.5, 0, 0.5, 1, 2)


def test_bucket_label_not_allowed():
    with pytest.raises(ValueError, match="not allowed"):
        Histogram(HistogramOpts(name="h", const_labels={"le": "1"}))
    vec = HistogramVec(HistogramOpts(name="h"), ["le"])
    with pytest.raises(ValueError, match="not allowed"):
        vec.with_label_values("1")


def test_vec_labels_and_cardinality():
    vec = HistogramVec(HistogramOpts(name="h", const_labels={"c": "v"}, buckets=[1]), ["a"])
    vec.with_labels({"a": "x"}).observe(0.5)
    data = vec.with_label_values("x").write()
    assert data.labels == (LabelPair("a", "x"), LabelPair("c", "v"))
    assert data.histogram.sample_count == 1
    with pytest.raises(InconsistentCardinalityError):
        vec.with_label_values("x", "y")


def test_describe_and_collect():
    h = Histogram(HistogramOpts(name="h", namespace="ns"))
    assert [d.fq_name for d in h.describe()] == ["ns_h"]
    assert list(h.collect()) == [h]


def test_const_histogram():
    desc = Desc("ch", "help", ("l",))
    m = new_const_histogram(desc, 4, 71.5, {50: 2, 25: 1, 100: 3}, "v")
    data = m.write()
    assert data.labels == (LabelPair("l", "v"),)
    assert data.histogram.sample_count == 4
    assert data.histogram.sample_sum == 71.5
    assert [(b.upper_bound, b.cumulative_count) for b in data.histogram.buckets] == [
        (25, 1),
        (50, 2),
        (100, 3),
    ]


def test_const_histogram_errors():
    desc = Desc("ch", "help", ("l",))
    with pytest.raises(InconsistentCardinalityError):
        new_const_histogram(desc, 1, 1.0, {}, "a", "b")
    bad = Desc("ch", "help", err=RuntimeError("broken"))
    with pytest.raises(RuntimeError, match="broken"):
        new_const_histogram(bad, 1, 1.0, {})