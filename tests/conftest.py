from __future__ import annotations

from typing import Dict, Tuple
from unittest.mock import MagicMock

import pytest

from aws_resource_exporter.clients.aws import AwsClient
from aws_resource_exporter.metrics.process import ExporterMetrics

ACCOUNT_ID = "123456789012"


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def metrics() -> ExporterMetrics:
    return ExporterMetrics()


def make_client(region: str = "us-east-1") -> MagicMock:
    """An AwsClient double whose coroutine methods are AsyncMocks."""
    client = MagicMock(spec=AwsClient)
    client.region = region
    return client


def sample_values(collector, name: str) -> Dict[Tuple[str, ...], float]:
    """Cached values of one metric keyed by variable label values."""
    return {
        sample.label_values: sample.value
        for sample in collector.snapshot()
        if sample.descriptor.name == f"aws_resources_exporter_{name}"
    }
