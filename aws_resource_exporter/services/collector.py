from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from ..clients.aws import AwsClient
from ..config import BaseServiceConfig
from ..metrics.base import NAMESPACE, MetricDescriptor, MetricSample, build_fq_name, gauge, with_key_value
from ..metrics.cache import MetricCache
from ..metrics.process import ExporterMetrics, exporter_metrics

logger = logging.getLogger(__name__)

SERVICE_CODE_KEY = "service_code"
QUOTA_CODE_KEY = "quota_code"


class BaseCollector(ABC):
    """Background task that periodically polls AWS into a metric cache.

    Scrapes only ever read the cache through :meth:`snapshot`.
    """

    name: str = "collector"
    service_code: Optional[str] = None
    # Global services query a single client; its region only initialises the SDK.
    global_service: bool = False

    def __init__(
        self,
        clients: Sequence[AwsClient],
        config: BaseServiceConfig,
        account_id: str,
        metrics: Optional[ExporterMetrics] = None,
        cache: Optional[MetricCache] = None,
    ) -> None:
        self.clients: List[AwsClient] = list(clients)
        self.account_id = account_id
        self.interval_seconds = max(config.interval.total_seconds(), 1.0)
        self.timeout_seconds = config.timeout.total_seconds()
        self.metrics = metrics or exporter_metrics
        self.cache = cache or MetricCache(config.cache_ttl.total_seconds())
        self._task: Optional[asyncio.Task[None]] = None
        self._stop_event = asyncio.Event()
        logger.info("Initializing %s exporter", self.name)

    def descriptor(
        self,
        name: str,
        documentation: str,
        label_names: Sequence[str] = (),
        quota_code: Optional[str] = None,
        subsystem: str = "",
    ) -> MetricDescriptor:
        const_labels: Dict[str, str] = {"aws_account_id": self.account_id}
        if self.service_code is not None:
            const_labels = with_key_value(const_labels, SERVICE_CODE_KEY, self.service_code)
        if quota_code is not None:
            const_labels = with_key_value(const_labels, QUOTA_CODE_KEY, quota_code)
        return MetricDescriptor(
            build_fq_name(NAMESPACE, subsystem, name),
            documentation,
            tuple(label_names),
            const_labels,
        )

    @abstractmethod
    def describe(self) -> List[MetricDescriptor]:
        """Return every descriptor this collector can emit."""

    def snapshot(self) -> List[MetricSample]:
        return self.cache.snapshot()

    def add(self, sample: MetricSample) -> None:
        self.cache.add_metric(sample)

    async def add_quota(
        self,
        client: AwsClient,
        descriptor: MetricDescriptor,
        quota_code: str,
        *label_values: str,
    ) -> Optional[float]:
        """Cache one quota gauge; facade failures are logged and skipped."""
        try:
            value = await client.get_service_quota(self.service_code or "", quota_code)
        except Exception as exc:
            logger.error(
                "Call to ServiceQuota failed region=%s quota-code=%s err=%s",
                client.region,
                quota_code,
                exc,
            )
            return None
        self.add(gauge(descriptor, value, *label_values))
        return value

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._stop_event.clear()
            self._task = asyncio.create_task(self._run(), name=f"{self.name}-collector")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            await self._collect_once()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def collect_once(self) -> None:
        await self._collect_once()

    async def _collect_once(self) -> None:
        started = time.monotonic()
        try:
            await asyncio.wait_for(self.collect_pass(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            logger.error("%s collection timed out after %.1fs", self.name, self.timeout_seconds)
            self.metrics.increment_errors()
        except Exception:
            logger.exception("%s collection failed", self.name)
            self.metrics.increment_errors()
        else:
            logger.info("%s metrics updated in %.2fs", self.name, time.monotonic() - started)

    async def collect_pass(self) -> None:
        """Collect every region in parallel."""
        clients = self.clients[:1] if self.global_service else self.clients
        await asyncio.gather(*(self._collect_region_safely(client) for client in clients))

    async def _collect_region_safely(self, client: AwsClient) -> None:
        try:
            await self.collect_region(client)
        except Exception:
            logger.exception("%s collection failed region=%s", self.name, client.region)
            self.metrics.increment_errors()

    @abstractmethod
    async def collect_region(self, client: AwsClient) -> None:
        """Refresh the cache with the metrics of one region."""
