"""Application metrics using the Prometheus client library.

All metrics are defined here so there is a single inventory of what the
service measures.  Other modules import the metric they own and
increment/observe it at the point of action.

  COUNTER    only goes up; rate() over it gives throughput
  GAUGE      goes up and down; a snapshot of current state
  HISTOGRAM  bucketed observations; histogram_quantile() gives p95/p99

Prometheus scrapes GET /metrics (see app/api/metrics_endpoint.py).
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Snapshot engine metrics
# ---------------------------------------------------------------------------

SNAPSHOT_RUNS = Counter(
    "mastery_snapshot_runs_total",
    "Snapshot batch invocations by scope kind and outcome",
    ["scope_kind", "outcome"],  # completed|deadline_exceeded|rejected|failed
)

SNAPSHOTS_CREATED = Counter(
    "mastery_snapshots_created_total",
    "Snapshots persisted by batch runs",
    ["scope_kind"],
)

PAIR_FAILURES = Counter(
    "mastery_pair_failures_total",
    "Learner/competency pairs skipped because of a failure",
    ["stage"],  # evidence|persist
)

UNCLASSIFIED_PAIRS = Counter(
    "mastery_unclassified_pairs_total",
    "Pairs skipped because the classifier produced no level",
)

RUN_DURATION = Histogram(
    "mastery_snapshot_run_duration_seconds",
    "Wall-clock duration of one snapshot batch run",
    # Batches are O(learners x competencies); a section-sized run is
    # seconds, a program-sized one can be minutes.
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0],
)

REVIEW_ACTIONS = Counter(
    "mastery_review_actions_total",
    "Applied proposal workflow actions",
    ["action"],  # submit|approve|request_changes|override
)

REPORT_CACHE = Counter(
    "mastery_report_cache_total",
    "Progress report cache lookups by result",
    ["result"],  # hit|miss
)
