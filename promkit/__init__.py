"""Prometheus-style gauges and histograms, process metrics and a Graphite bridge."""

__version__ = "0.1.0"