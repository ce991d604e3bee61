"""
Sample store data model.

Families and samples are frozen pydantic models: a Snapshot is immutable,
compares by value and serializes to a JSON blob for the persistence adapters.
Tuples keep declaration and first-touch order everywhere.
"""

import math
import re
from enum import Enum
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import InvalidName, MalformedSnapshot

METRIC_NAME_RE = re.compile(r"^[a-zA-Z_:][a-zA-Z0-9_:]*$")
LABEL_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")
RESERVED_LABEL_PREFIX = "__"


class MetricKind(str, Enum):
    """Supported metric types"""

    COUNTER = "counter"
    GAUGE = "gauge"


class MetricIdentity(NamedTuple):
    namespace: str
    name: str
    kind: MetricKind


def normalize_namespace(namespace: str | None) -> str:
    """Lower-case a namespace prefix and check it can prefix a metric name."""
    namespace = (namespace or "").strip().lower()
    if namespace and not METRIC_NAME_RE.match(namespace):
        raise InvalidName(f"Invalid metrics namespace: {namespace!r}")
    return namespace


def validate_metric_name(name: str) -> str:
    if not isinstance(name, str) or not METRIC_NAME_RE.match(name):
        raise InvalidName(f"Invalid metric name: {name!r}")
    return name


def validate_label_names(label_names) -> tuple[str, ...]:
    """
    Check label names against the exposition naming rules

    Args:
        label_names: Iterable of label names in declaration order

    Returns:
        The label names as a tuple

    Raises:
        InvalidName: On malformed, reserved or repeated names
    """
    names = tuple(label_names or ())
    seen = set()
    for label in names:
        if not isinstance(label, str) or not LABEL_NAME_RE.match(label):
            raise InvalidName(f"Invalid label name: {label!r}")
        if label.startswith(RESERVED_LABEL_PREFIX):
            raise InvalidName(f"Label name {label!r} is reserved for internal use")
        if label in seen:
            raise InvalidName(f"Duplicate label name: {label!r}")
        seen.add(label)
    return names


class Sample(BaseModel):
    """Current value of one label-value tuple"""

    model_config = ConfigDict(frozen=True)

    label_values: tuple[str, ...] = Field(default=(), description="Label values")
    value: float = Field(default=0.0, description="Current numeric value")


class MetricFamily(BaseModel):
    """Registered metric with its label definition and samples"""

    model_config = ConfigDict(frozen=True)

    namespace: str = Field(default="", description="Namespace prefix")
    name: str = Field(description="Metric name without namespace")
    kind: MetricKind = Field(description="Counter or gauge")
    description: str = Field(default="", description="HELP text")
    label_names: tuple[str, ...] = Field(default=(), description="Declared labels")
    samples: tuple[Sample, ...] = Field(default=(), description="Samples by first touch")

    @model_validator(mode="after")
    def validate_samples(self):
        """Enforce arity, finiteness and counter sign on every sample"""
        for sample in self.samples:
            if len(sample.label_values) != len(self.label_names):
                raise ValueError(
                    f"Sample {sample.label_values!r} does not match labels "
                    f"{self.label_names!r} of {self.name}"
                )
            if not math.isfinite(sample.value):
                raise ValueError(f"Non-finite sample value in {self.name}")
            if self.kind == MetricKind.COUNTER and sample.value < 0:
                raise ValueError(f"Negative counter sample in {self.name}")
        return self

    @property
    def identity(self) -> MetricIdentity:
        return MetricIdentity(self.namespace, self.name, self.kind)

    @property
    def full_name(self) -> str:
        """Exposed name: namespace and name joined by an underscore"""
        if not self.namespace:
            return self.name
        return f"{self.namespace}_{self.name}"

    def get_sample(self, label_values) -> float | None:
        label_values = tuple(label_values)
        for sample in self.samples:
            if sample.label_values == label_values:
                return sample.value
        return None

    def with_sample(self, label_values, value: float) -> "MetricFamily":
        """Return a copy with the sample for label_values set to value."""
        label_values = tuple(label_values)
        samples = list(self.samples)
        replacement = Sample(label_values=label_values, value=value)
        for index, sample in enumerate(samples):
            if sample.label_values == label_values:
                samples[index] = replacement
                break
        else:
            samples.append(replacement)
        return self.model_copy(update={"samples": tuple(samples)})


class Snapshot(BaseModel):
    """Full registry state, in registration order"""

    model_config = ConfigDict(frozen=True)

    families: tuple[MetricFamily, ...] = Field(default=())

    def get_family(self, namespace: str, name: str) -> MetricFamily | None:
        for family in self.families:
            if family.namespace == namespace and family.name == name:
                return family
        return None

    def with_family(self, family: MetricFamily) -> "Snapshot":
        """Return a copy where family replaces its namespace/name slot or is appended."""
        families = list(self.families)
        for index, existing in enumerate(families):
            if existing.namespace == family.namespace and existing.name == family.name:
                families[index] = family
                break
        else:
            families.append(family)
        return self.model_copy(update={"families": tuple(families)})

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, blob: bytes) -> "Snapshot":
        """
        Decode a blob produced by to_bytes

        Raises:
            MalformedSnapshot: If the blob is not a valid snapshot
        """
        try:
            return cls.model_validate_json(blob)
        except ValidationError as e:
            raise MalformedSnapshot(f"Stored snapshot is invalid: {e}") from e
