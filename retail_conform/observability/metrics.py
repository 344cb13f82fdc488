"""
Prometheus metrics collection for retail-conform

Counts what the conformance engine does to each batch: records conformed,
quality flags raised, duplicates superseded, dimension and fact rows
written, and fact candidates quarantined.
"""
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# CONFORMANCE METRICS
# =======================

records_conformed_total = Counter(
    name="conform_records_total",
    documentation="Total number of raw records conformed into clean records",
    labelnames=["dataset", "status"],  # status: current, superseded, unkeyed
    registry=REGISTRY,
)

quality_flags_total = Counter(
    name="conform_quality_flags_total",
    documentation="Total number of quality flags raised on clean records",
    labelnames=["dataset", "flag"],
    registry=REGISTRY,
)

duplicates_superseded_total = Counter(
    name="conform_duplicates_superseded_total",
    documentation="Total number of records superseded by a later duplicate",
    labelnames=["dataset"],
    registry=REGISTRY,
)

# =======================
# DIMENSIONAL METRICS
# =======================

dimension_rows = Gauge(
    name="conform_dimension_rows",
    documentation="Rows in each dimension after the last build",
    labelnames=["dimension"],
    registry=REGISTRY,
)

facts_written_total = Counter(
    name="conform_facts_written_total",
    documentation="Total number of fact rows written",
    labelnames=["fact_table"],
    registry=REGISTRY,
)

facts_quarantined_total = Counter(
    name="conform_facts_quarantined_total",
    documentation="Total number of fact candidates quarantined",
    labelnames=["fact_table", "reason"],  # reason: quality flag
    registry=REGISTRY,
)

# =======================
# STAGE METRICS
# =======================

stage_duration_seconds = Histogram(
    name="conform_stage_duration_seconds",
    documentation="Time spent in each pipeline stage in seconds",
    labelnames=["stage"],  # stage: conform, dimensions, facts, load
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0],
    registry=REGISTRY,
)

table_rebuilds_total = Counter(
    name="conform_table_rebuilds_total",
    documentation="Total number of table truncate-and-rebuild operations",
    labelnames=["table", "status"],  # status: success, failure
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST


class track_duration:
    """
    Context manager for tracking operation duration

    Usage:
        with track_duration(stage_duration_seconds, stage="conform"):
            ...
    """

    def __init__(self, histogram: Histogram, **labels):
        self.histogram = histogram
        self.labels = labels
        self.timer = None

    def __enter__(self):
        self.timer = self.histogram.labels(**self.labels).time()
        self.timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.timer.__exit__(exc_type, exc_val, exc_tb)
        return False


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    """
    Increment a counter metric

    Args:
        counter: Prometheus Counter metric
        value: Amount to increment (default: 1.0)
        **labels: Label values for the metric
    """
    counter.labels(**labels).inc(value)


def set_gauge(gauge: Gauge, value: float, **labels) -> None:
    """
    Set a gauge metric value

    Args:
        gauge: Prometheus Gauge metric
        value: Value to set
        **labels: Label values for the metric
    """
    gauge.labels(**labels).set(value)


# =======================
# CONFORMANCE HELPERS
# =======================

def record_conformance(
    dataset: str,
    current: int,
    superseded: int,
    unkeyed: int,
    flag_counts: dict[str, int],
) -> None:
    """
    Record the outcome of conforming one dataset batch.

    Args:
        dataset: Dataset name
        current: Records marked current
        superseded: Records superseded by a duplicate
        unkeyed: Records without a resolvable natural key
        flag_counts: Number of records carrying each flag
    """
    increment_counter(records_conformed_total, current, dataset=dataset, status="current")
    increment_counter(records_conformed_total, superseded, dataset=dataset, status="superseded")
    increment_counter(records_conformed_total, unkeyed, dataset=dataset, status="unkeyed")
    if superseded > 0:
        increment_counter(duplicates_superseded_total, superseded, dataset=dataset)
    for flag, count in flag_counts.items():
        increment_counter(quality_flags_total, count, dataset=dataset, flag=flag)


def record_fact_assembly(fact_table: str, written: int, quarantine_reasons: dict[str, int]) -> None:
    """
    Record the outcome of assembling one fact table.

    Args:
        fact_table: Fact table name
        written: Fact rows emitted
        quarantine_reasons: Quarantined candidates per flag
    """
    increment_counter(facts_written_total, written, fact_table=fact_table)
    for reason, count in quarantine_reasons.items():
        increment_counter(facts_quarantined_total, count, fact_table=fact_table, reason=reason)
