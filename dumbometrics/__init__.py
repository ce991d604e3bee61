"""
Dumbometrics - persistent counters and gauges exposed in Prometheus text format
"""

from .errors import (
    InvalidDelta,
    InvalidName,
    InvalidValue,
    KindConflict,
    LabelArityMismatch,
    LabelShapeConflict,
    MalformedSnapshot,
    MetricsError,
    NotFound,
    PersistenceFailure,
)
from .exposition import CONTENT_TYPE, render
from .model import MetricFamily, MetricIdentity, MetricKind, Sample, Snapshot
from .registry import MetricsRegistry
from .storage import (
    AbstractSnapshotStore,
    FileSnapshotStore,
    MemorySnapshotStore,
    SnapshotStore,
    create_store,
)

__version__ = "1.0.0"

__all__ = [
    # Registry
    "MetricsRegistry",
    "render",
    "CONTENT_TYPE",
    # Data model
    "MetricKind",
    "MetricIdentity",
    "MetricFamily",
    "Sample",
    "Snapshot",
    # Persistence
    "SnapshotStore",
    "AbstractSnapshotStore",
    "MemorySnapshotStore",
    "FileSnapshotStore",
    "create_store",
    # Errors
    "MetricsError",
    "KindConflict",
    "LabelShapeConflict",
    "NotFound",
    "InvalidName",
    "InvalidValue",
    "InvalidDelta",
    "LabelArityMismatch",
    "MalformedSnapshot",
    "PersistenceFailure",
]
