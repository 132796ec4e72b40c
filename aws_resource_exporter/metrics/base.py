from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

NAMESPACE = "aws_resources_exporter"


def build_fq_name(namespace: str, subsystem: str, name: str) -> str:
    return "_".join(part for part in (namespace, subsystem, name) if part)


class MetricKind(str, Enum):
    GAUGE = "gauge"
    COUNTER = "counter"


@dataclass(frozen=True)
class MetricDescriptor:
    """Identity of a metric family: name, help text and label schema."""

    name: str
    documentation: str
    label_names: Tuple[str, ...] = ()
    const_labels: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "label_names", tuple(self.label_names))
        object.__setattr__(self, "const_labels", dict(self.const_labels))

    def __hash__(self) -> int:
        return hash(str(self))

    def __str__(self) -> str:
        const = ",".join(f"{k}={v!r}" for k, v in sorted(self.const_labels.items()))
        variable = ",".join(self.label_names)
        return (
            f'Desc{{fqName: "{self.name}", help: "{self.documentation}", '
            f"constLabels: {{{const}}}, variableLabels: [{variable}]}}"
        )


@dataclass(frozen=True)
class MetricSample:
    """A single value for a descriptor at a fixed set of label values."""

    descriptor: MetricDescriptor
    value: float
    label_values: Tuple[str, ...] = ()
    kind: MetricKind = MetricKind.GAUGE
    timestamp: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        object.__setattr__(self, "label_values", tuple(str(v) for v in self.label_values))
        object.__setattr__(self, "value", float(self.value))
        if len(self.label_values) != len(self.descriptor.label_names):
            raise ValueError(
                f"{self.descriptor.name}: expected {len(self.descriptor.label_names)} "
                f"label values, got {len(self.label_values)}"
            )

    @property
    def labels(self) -> Dict[str, str]:
        """Variable and constant labels merged, as rendered on scrape."""
        merged = dict(zip(self.descriptor.label_names, self.label_values))
        merged.update(self.descriptor.const_labels)
        return merged

    def fingerprint(self) -> str:
        label_string = str(self.descriptor)
        for name, value in zip(self.descriptor.label_names, self.label_values):
            label_string = f"{label_string},{name},{value}"
        return hashlib.sha256(label_string.encode("utf-8")).hexdigest()


def gauge(descriptor: MetricDescriptor, value: float, *label_values: str) -> MetricSample:
    return MetricSample(descriptor, value, label_values, MetricKind.GAUGE)


def counter(descriptor: MetricDescriptor, value: float, *label_values: str) -> MetricSample:
    return MetricSample(descriptor, value, label_values, MetricKind.COUNTER)


class ScrapeSource(Protocol):
    """Anything the scrape endpoint can describe and snapshot."""

    name: str

    def describe(self) -> Iterable[MetricDescriptor]:
        ...

    def snapshot(self) -> List[MetricSample]:
        ...


def with_key_value(labels: Optional[Mapping[str, str]], key: str, value: str) -> Dict[str, str]:
    """Return a copy of ``labels`` with one extra pair."""
    merged = dict(labels or {})
    merged[key] = value
    return merged
