from __future__ import annotations

import logging
from typing import List

from ..clients.aws import AwsClient
from ..metrics.base import MetricDescriptor, gauge
from .collector import BaseCollector

logger = logging.getLogger(__name__)


class ElastiCacheCollector(BaseCollector):
    name = "elasticache"

    def __init__(self, clients, config, account_id: str, **kwargs) -> None:
        super().__init__(clients, config, account_id, **kwargs)
        self.redis_version = self.descriptor(
            "elasticache_redisversion",
            "The ElastiCache engine type and version.",
            ["aws_region", "replication_group_id", "engine", "engine_version"],
        )

    def describe(self) -> List[MetricDescriptor]:
        return [self.redis_version]

    async def collect_region(self, client: AwsClient) -> None:
        try:
            clusters = await client.describe_cache_clusters()
        except Exception as exc:
            logger.error("Call to DescribeCacheClusters failed region=%s err=%s", client.region, exc)
            return
        for cluster in clusters:
            self.add(
                gauge(
                    self.redis_version,
                    1,
                    client.region,
                    cluster.replication_group_id,
                    cluster.engine,
                    cluster.engine_version,
                )
            )
