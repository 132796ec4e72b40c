from __future__ import annotations

import asyncio
import logging
import time
from typing import List

from ..clients.aws import AwsClient
from ..metrics.base import MetricDescriptor, gauge
from ..models import HostedZone
from .collector import BaseCollector

logger = logging.getLogger(__name__)

ROUTE53_MAX_CONCURRENCY = 5
SERVICE_CODE_ROUTE53 = "route53"
QUOTA_HOSTED_ZONES = "L-4EA4796A"
QUOTA_RECORDS_PER_HOSTED_ZONE = "L-E209CC9F"


class Route53Collector(BaseCollector):
    """Hosted zone quotas of the account.

    Route53 is a global service, so the metrics carry no region label and
    only the first configured client is used.
    """

    name = "route53"
    service_code = SERVICE_CODE_ROUTE53
    global_service = True

    def __init__(self, clients, config, account_id: str, max_concurrency: int = ROUTE53_MAX_CONCURRENCY, **kwargs) -> None:
        super().__init__(clients, config, account_id, **kwargs)
        self.max_concurrency = max_concurrency
        zone_labels = ["hostedzoneid", "hostedzonename"]
        self.records_per_hosted_zone_quota = self.descriptor(
            "route53_recordsperhostedzone_quota",
            "Quota for maximum number of records in a Route53 hosted zone",
            zone_labels,
            QUOTA_RECORDS_PER_HOSTED_ZONE,
        )
        self.records_per_hosted_zone_usage = self.descriptor(
            "route53_recordsperhostedzone_total",
            "Number of Resource records",
            zone_labels,
            QUOTA_RECORDS_PER_HOSTED_ZONE,
        )
        self.hosted_zones_per_account_quota = self.descriptor(
            "route53_hostedzonesperaccount_quota",
            "Quota for maximum number of Route53 hosted zones in an account",
            quota_code=QUOTA_HOSTED_ZONES,
        )
        self.hosted_zones_per_account_usage = self.descriptor(
            "route53_hostedzonesperaccount_total",
            "Number of hosted zones in the account",
            quota_code=QUOTA_HOSTED_ZONES,
        )
        self.last_updated = self.descriptor(
            "route53_last_updated_timestamp_seconds",
            "Last time, the route53 metrics were successfully updated",
        )

    def describe(self) -> List[MetricDescriptor]:
        return [
            self.records_per_hosted_zone_quota,
            self.records_per_hosted_zone_usage,
            self.hosted_zones_per_account_quota,
            self.hosted_zones_per_account_usage,
            self.last_updated,
        ]

    async def collect_region(self, client: AwsClient) -> None:
        logger.info("Updating Route53 metrics")
        healthy = True

        try:
            zones = await client.list_hosted_zones()
        except Exception as exc:
            logger.error("Could not retrieve the list of hosted zones err=%s", exc)
            zones = []
            healthy = False
        else:
            self.add(gauge(self.hosted_zones_per_account_usage, len(zones)))

        if await self.add_quota(client, self.hosted_zones_per_account_quota, QUOTA_HOSTED_ZONES) is None:
            healthy = False

        failures = await self.collect_records_per_hosted_zone(client, zones)
        if healthy and failures == 0:
            self.add(gauge(self.last_updated, time.time()))
        logger.info("Route53 metrics updated zones=%d failures=%d", len(zones), failures)

    async def collect_records_per_hosted_zone(self, client: AwsClient, zones: List[HostedZone]) -> int:
        """Fetch every zone limit with bounded concurrency; return the failure count."""
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def fetch(index: int, zone: HostedZone) -> bool:
            async with semaphore:
                try:
                    limit = await client.get_hosted_zone_limit(zone.id)
                except Exception as exc:
                    logger.error(
                        "Could not get limits for hosted zone hostedZoneId=%s hostedZoneName=%s err=%s",
                        zone.id,
                        zone.name,
                        exc,
                    )
                    return False
            logger.debug("Currently at hosted zone: %d / %d", index, len(zones))
            self.add(gauge(self.records_per_hosted_zone_quota, limit.limit, zone.id, zone.name))
            self.add(gauge(self.records_per_hosted_zone_usage, limit.current, zone.id, zone.name))
            return True

        results = await asyncio.gather(*(fetch(index, zone) for index, zone in enumerate(zones)))
        return results.count(False)
