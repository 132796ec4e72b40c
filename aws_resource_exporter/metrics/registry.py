from collections import OrderedDict
from typing import Iterable, Iterator, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.metrics_core import Metric

from .base import MetricDescriptor, MetricKind, ScrapeSource


def _family(descriptor: MetricDescriptor, kind: MetricKind) -> Metric:
    name = descriptor.name
    if kind is MetricKind.COUNTER:
        # The text format appends _total to counter families; others keep their name as gauges.
        if not name.endswith("_total"):
            return Metric(name, descriptor.documentation, MetricKind.GAUGE.value)
        name = name[: -len("_total")]
    return Metric(name, descriptor.documentation, kind.value)


class ScrapeAdapter:
    """Exposes a scrape source as a prometheus_client collector.

    ``collect`` only reads the source's snapshot, so a scrape never waits on AWS.
    """

    def __init__(self, source: ScrapeSource) -> None:
        self.source = source

    def describe(self) -> Iterator[Metric]:
        for descriptor in self.source.describe():
            yield _family(descriptor, MetricKind.GAUGE)

    def collect(self) -> Iterator[Metric]:
        families: "OrderedDict[Tuple[MetricDescriptor, MetricKind], Metric]" = OrderedDict()
        for sample in self.source.snapshot():
            key = (sample.descriptor, sample.kind)
            family = families.get(key)
            if family is None:
                family = families[key] = _family(sample.descriptor, sample.kind)
            family.add_sample(sample.descriptor.name, sample.labels, sample.value)
        yield from families.values()


class MetricRegistry:
    """Registry that manages scrape sources and renders the exposition."""

    def __init__(self) -> None:
        self._sources: "OrderedDict[str, ScrapeSource]" = OrderedDict()
        self._prometheus = CollectorRegistry(auto_describe=True)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def register(self, source: ScrapeSource) -> None:
        if source.name in self._sources:
            raise ValueError(f"Source '{source.name}' is already registered.")
        self._prometheus.register(ScrapeAdapter(source))
        self._sources[source.name] = source

    def all(self) -> Iterable[ScrapeSource]:
        return self._sources.values()

    def get(self, name: str) -> ScrapeSource:
        if name not in self._sources:
            raise KeyError(f"Source '{name}' is not registered.")
        return self._sources[name]

    def render(self) -> bytes:
        return generate_latest(self._prometheus)
