"""
Prometheus text exposition rendering.

Families are rendered in registration order, samples in first-touch order:

    # HELP <namespace>_<name> <description>
    # TYPE <namespace>_<name> counter|gauge
    <namespace>_<name>{label="value",...} <value>
"""

import math
from collections.abc import Sequence

from .errors import MalformedSnapshot
from .model import MetricFamily, Snapshot

CONTENT_TYPE = "text/plain; version=0.0.4"


def escape_help(text: str) -> str:
    return text.replace("\\", "\\\\").replace("\n", "\\n")


def escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def format_value(value: float) -> str:
    """
    Canonical decimal form of a sample value

    Integral values drop the decimal point (5.0 -> "5"), everything else uses
    the shortest representation that round-trips.
    """
    value = float(value)
    if not math.isfinite(value):
        raise MalformedSnapshot(f"Cannot render non-finite value {value!r}")
    if value.is_integer():
        return str(int(value))
    return repr(value)


def format_labels(names: Sequence[str], values: Sequence[str]) -> str:
    if not names:
        return ""
    pairs = [f'{name}="{escape_label_value(value)}"' for name, value in zip(names, values)]
    return "{" + ",".join(pairs) + "}"


def render_family(family: MetricFamily) -> list[str]:
    """Render one family into its HELP, TYPE and sample lines."""
    full_name = family.full_name
    help_line = f"# HELP {full_name}"
    if family.description:
        help_line += f" {escape_help(family.description)}"
    lines = [help_line, f"# TYPE {full_name} {family.kind.value}"]
    for sample in family.samples:
        if len(sample.label_values) != len(family.label_names):
            raise MalformedSnapshot(
                f"Sample {sample.label_values!r} of {full_name} does not match "
                f"labels {family.label_names!r}"
            )
        labels = format_labels(family.label_names, sample.label_values)
        lines.append(f"{full_name}{labels} {format_value(sample.value)}")
    return lines


def render(snapshot: Snapshot) -> str:
    """Render a snapshot using the Prometheus text format."""
    lines: list[str] = []
    for family in snapshot.families:
        lines.extend(render_family(family))
    if not lines:
        return ""
    return "\n".join(lines) + "\n"
