"""
backend/matchpick/monitoring/analysis_metrics.py

Purpose:
    Prometheus metrics for the recommendation cache, the in-flight dedup
    protocol, oracle calls and the background sweep.

Dependencies:
    - prometheus_client
"""

from __future__ import annotations

from contextlib import contextmanager
from time import perf_counter

from prometheus_client import Counter, Histogram

METRIC_CACHE_LOOKUPS = Counter(
    "analysis_cache_lookups_total",
    "Analysis cache lookups by outcome (hit, miss, refresh).",
    ["outcome"],
)
METRIC_INFLIGHT_WAITS = Counter(
    "analysis_inflight_waits_total",
    "Requests that found the match already in flight, by outcome (recovered, withheld).",
    ["outcome"],
)
METRIC_ORACLE_CALLS = Counter(
    "analysis_oracle_calls_total",
    "Oracle completions by outcome (ok, error).",
    ["outcome"],
)
METRIC_ORACLE_LATENCY = Histogram(
    "analysis_oracle_latency_seconds",
    "Wall time of oracle completions.",
    buckets=(0.5, 1, 2.5, 5, 10, 20, 40, 80, 160),
)
METRIC_ORACLE_PARSE_FALLBACK = Counter(
    "analysis_oracle_parse_fallback_total",
    "Oracle responses that could not be parsed as JSON and were stored as raw text.",
)
METRIC_PRIMARY_PICK = Counter(
    "analysis_primary_pick_total",
    "Freshly evaluated analyses by primary pick market (or withheld).",
    ["market"],
)
METRIC_UPSTREAM_RETRIES = Counter(
    "analysis_upstream_retries_total",
    "Retried upstream HTTP attempts by client and reason (status, network).",
    ["client", "reason"],
)
METRIC_SWEEP_RUNS = Counter(
    "analysis_scheduler_runs_total",
    "Scheduler job runs by job name.",
    ["job"],
)
METRIC_SWEEP_FAILURES = Counter(
    "analysis_scheduler_match_failures_total",
    "Per-match failures caught by scheduler jobs.",
    ["job"],
)


@contextmanager
def observe_latency(metric):
    start = perf_counter()
    try:
        yield
    finally:
        metric.observe(perf_counter() - start)
