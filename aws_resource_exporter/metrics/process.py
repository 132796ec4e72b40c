from __future__ import annotations

import threading
from typing import List

from .base import NAMESPACE, MetricDescriptor, MetricKind, MetricSample, build_fq_name


class ExporterMetrics:
    """Process-wide counters of AWS API requests issued and errors observed."""

    name = "exporter"

    def __init__(self, namespace: str = NAMESPACE) -> None:
        self.requests_descriptor = MetricDescriptor(
            build_fq_name(namespace, "aws", "requests_total"),
            "The total number of AWS API requests.",
        )
        self.errors_descriptor = MetricDescriptor(
            build_fq_name(namespace, "aws", "errors_total"),
            "The total number of errors encountered by the exporter.",
        )
        self._requests = 0
        self._errors = 0
        self._lock = threading.Lock()

    @property
    def requests(self) -> int:
        with self._lock:
            return self._requests

    @property
    def errors(self) -> int:
        with self._lock:
            return self._errors

    def increment_requests(self) -> None:
        with self._lock:
            self._requests += 1

    def increment_errors(self) -> None:
        with self._lock:
            self._errors += 1

    def describe(self) -> List[MetricDescriptor]:
        return [self.requests_descriptor, self.errors_descriptor]

    def snapshot(self) -> List[MetricSample]:
        with self._lock:
            requests, errors = self._requests, self._errors
        return [
            MetricSample(self.requests_descriptor, requests, kind=MetricKind.COUNTER),
            MetricSample(self.errors_descriptor, errors, kind=MetricKind.COUNTER),
        ]


exporter_metrics = ExporterMetrics()
