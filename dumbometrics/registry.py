"""
Metrics registry - counters and gauges backed by a persistence adapter.

The registry keeps no authoritative state of its own. Reads reload the
snapshot from the store, and mutations run as a read-modify-write through
the store, so any number of registries sharing one store observe the same
families. A mutation only becomes visible in this registry after the store
has accepted the write.
"""

import logging
import math
import threading
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from .errors import (
    InvalidDelta,
    InvalidValue,
    KindConflict,
    LabelArityMismatch,
    LabelShapeConflict,
    NotFound,
    PersistenceFailure,
)
from .exposition import render
from .model import (
    MetricFamily,
    MetricKind,
    Snapshot,
    normalize_namespace,
    validate_label_names,
    validate_metric_name,
)
from .storage import SnapshotStore, create_store

if TYPE_CHECKING:
    from config.settings import ApplicationSettings

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "dumbometrics"


def _to_number(value, error: type[InvalidValue]) -> float:
    if isinstance(value, bool):
        raise error(f"Expected a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise error(f"Expected a number, got {value!r}") from e
    if not math.isfinite(number):
        raise error(f"Value must be finite, got {value!r}")
    return number


def _label_values(family: MetricFamily, label_values) -> tuple[str, ...]:
    if label_values is None:
        label_values = ()
    elif isinstance(label_values, str):
        label_values = (label_values,)
    values = tuple(str(value) for value in label_values)
    if len(values) != len(family.label_names):
        raise LabelArityMismatch(
            f"{family.full_name} expects {len(family.label_names)} label values "
            f"{family.label_names!r}, got {len(values)}"
        )
    return values


class MetricsRegistry:
    """Registry of counter and gauge families for one namespace."""

    def __init__(self, store: SnapshotStore, namespace: str = DEFAULT_NAMESPACE):
        self._store = store
        self._namespace = normalize_namespace(namespace)
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: "ApplicationSettings") -> "MetricsRegistry":
        return cls(create_store(settings), namespace=settings.registry.namespace)

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def store(self) -> SnapshotStore:
        return self._store

    def __repr__(self) -> str:
        return f"MetricsRegistry(namespace={self._namespace!r}, store={self._store!r})"

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def load(self) -> Snapshot:
        """Load the stored snapshot, empty when nothing was stored yet."""
        stored = self._store.load()
        return stored if stored is not None else Snapshot()

    def snapshot(self) -> Snapshot:
        """Current state as an immutable snapshot, freshly loaded from the store."""
        return self.load()

    def render(self) -> str:
        """Render current state in the Prometheus text format."""
        return render(self.snapshot())

    def flush(self) -> None:
        """
        Replace the whole state with an empty snapshot.

        The store receives the empty snapshot in a single write; readers see
        either the old state or nothing.

        Raises:
            PersistenceFailure: If the empty snapshot could not be stored
        """
        with self._lock:
            try:
                self._store.save(Snapshot())
            except PersistenceFailure:
                logger.error("Flush failed", extra={"namespace": self._namespace})
                raise
        logger.info("Metrics flushed", extra={"namespace": self._namespace})

    def _mutate(self, func: Callable[[Snapshot], Snapshot], operation: str) -> Snapshot:
        def apply(current: Snapshot | None) -> Snapshot:
            return func(current if current is not None else Snapshot())

        with self._lock:
            try:
                return self._store.update(apply)
            except PersistenceFailure:
                logger.error(
                    "Mutation not persisted",
                    extra={"namespace": self._namespace, "operation": operation},
                )
                raise

    # -------------------------------------------------------------------------
    # Registration and lookup
    # -------------------------------------------------------------------------

    @staticmethod
    def _check_shape(
        existing: MetricFamily, kind: MetricKind, label_names: tuple[str, ...]
    ) -> None:
        if existing.kind != kind:
            raise KindConflict(
                f"{existing.full_name} is registered as a {existing.kind.value}, "
                f"not a {kind.value}"
            )
        if existing.label_names != label_names:
            raise LabelShapeConflict(
                f"{existing.full_name} is registered with labels "
                f"{existing.label_names!r}, not {label_names!r}"
            )

    def _register(
        self,
        kind: MetricKind,
        name: str,
        description: str,
        label_names: Iterable[str],
    ) -> MetricFamily:
        name = validate_metric_name(name)
        label_names = validate_label_names(label_names)
        created = False

        def apply(snapshot: Snapshot) -> Snapshot:
            nonlocal created
            existing = snapshot.get_family(self._namespace, name)
            if existing is not None:
                self._check_shape(existing, kind, label_names)
                return snapshot
            created = True
            return snapshot.with_family(
                MetricFamily(
                    namespace=self._namespace,
                    name=name,
                    kind=kind,
                    description=description or "",
                    label_names=label_names,
                )
            )

        snapshot = self._mutate(apply, f"register_{kind.value}")
        if created:
            logger.info(
                "Registered metric family",
                extra={
                    "namespace": self._namespace,
                    "metric": name,
                    "kind": kind.value,
                    "labels": list(label_names),
                },
            )
        return snapshot.get_family(self._namespace, name)

    def _get(self, kind: MetricKind, name: str) -> MetricFamily:
        family = self.snapshot().get_family(self._namespace, name)
        if family is None:
            raise NotFound(f"No {kind.value} registered as {name!r}")
        if family.kind != kind:
            raise KindConflict(
                f"{family.full_name} is registered as a {family.kind.value}, "
                f"not a {kind.value}"
            )
        return family

    def register_counter(
        self, name: str, description: str = "", label_names: Iterable[str] = ()
    ) -> MetricFamily:
        """
        Register a counter, or return it when registered identically

        Raises:
            KindConflict: If name is registered as a gauge
            LabelShapeConflict: If name is registered with other label names
            InvalidName: If name or a label name is malformed
        """
        return self._register(MetricKind.COUNTER, name, description, label_names)

    def register_gauge(
        self, name: str, description: str = "", label_names: Iterable[str] = ()
    ) -> MetricFamily:
        """
        Register a gauge, or return it when registered identically

        Raises:
            KindConflict: If name is registered as a counter
            LabelShapeConflict: If name is registered with other label names
            InvalidName: If name or a label name is malformed
        """
        return self._register(MetricKind.GAUGE, name, description, label_names)

    def get_or_register_counter(
        self, name: str, description: str = "", label_names: Iterable[str] = ()
    ) -> MetricFamily:
        return self._register(MetricKind.COUNTER, name, description, label_names)

    def get_or_register_gauge(
        self, name: str, description: str = "", label_names: Iterable[str] = ()
    ) -> MetricFamily:
        return self._register(MetricKind.GAUGE, name, description, label_names)

    def get_counter(self, name: str) -> MetricFamily:
        """Raises NotFound if absent, KindConflict if name is a gauge."""
        return self._get(MetricKind.COUNTER, name)

    def get_gauge(self, name: str) -> MetricFamily:
        """Raises NotFound if absent, KindConflict if name is a counter."""
        return self._get(MetricKind.GAUGE, name)

    # -------------------------------------------------------------------------
    # Samples
    # -------------------------------------------------------------------------

    def _resolve(self, snapshot: Snapshot, family: MetricFamily) -> MetricFamily:
        stored = snapshot.get_family(family.namespace, family.name)
        if stored is None:
            raise NotFound(f"{family.full_name} is not registered")
        self._check_shape(stored, family.kind, family.label_names)
        return stored

    def increment(self, family: MetricFamily, label_values=(), delta: float = 1) -> float:
        """
        Add delta to the sample for label_values, creating it at 0 on first touch

        Args:
            family: Counter or gauge returned by a register/get call
            label_values: One value per declared label name, in order
            delta: Non-negative amount to add

        Returns:
            The new sample value

        Raises:
            InvalidDelta: If delta is negative or not finite
            LabelArityMismatch: If the number of label values is wrong
            NotFound: If the family was flushed meanwhile
        """
        delta = _to_number(delta, InvalidDelta)
        if delta < 0:
            raise InvalidDelta(f"Increment delta must be >= 0, got {delta!r}")
        values = _label_values(family, label_values)

        def apply(snapshot: Snapshot) -> Snapshot:
            stored = self._resolve(snapshot, family)
            current = stored.get_sample(values) or 0.0
            updated = current + delta
            if not math.isfinite(updated):
                raise InvalidDelta(f"Incrementing {stored.full_name} overflows")
            return snapshot.with_family(stored.with_sample(values, updated))

        snapshot = self._mutate(apply, "increment")
        logger.debug(
            "Incremented sample",
            extra={"metric": family.full_name, "labels": list(values), "delta": delta},
        )
        return snapshot.get_family(family.namespace, family.name).get_sample(values)

    def set(self, family: MetricFamily, label_values=(), value: float = 0) -> float:
        """
        Overwrite the gauge sample for label_values

        Raises:
            KindConflict: If family is a counter
            InvalidValue: If value is not finite
            LabelArityMismatch: If the number of label values is wrong
            NotFound: If the family was flushed meanwhile
        """
        if family.kind != MetricKind.GAUGE:
            raise KindConflict(f"{family.full_name} is a counter and cannot be set")
        value = _to_number(value, InvalidValue)
        values = _label_values(family, label_values)

        def apply(snapshot: Snapshot) -> Snapshot:
            stored = self._resolve(snapshot, family)
            return snapshot.with_family(stored.with_sample(values, value))

        self._mutate(apply, "set")
        logger.debug(
            "Set gauge sample",
            extra={"metric": family.full_name, "labels": list(values), "value": value},
        )
        return value
