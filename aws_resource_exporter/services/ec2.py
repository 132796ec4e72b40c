from __future__ import annotations

import logging
from typing import List

from ..clients.aws import AwsClient
from ..metrics.base import MetricDescriptor, gauge
from .collector import BaseCollector

logger = logging.getLogger(__name__)

QUOTA_TRANSIT_GATEWAYS_PER_ACCOUNT = "L-A2478D36"
SERVICE_CODE_EC2 = "ec2"


class EC2Collector(BaseCollector):
    name = "ec2"
    service_code = SERVICE_CODE_EC2

    def __init__(self, clients, config, account_id: str, **kwargs) -> None:
        super().__init__(clients, config, account_id, **kwargs)
        self.transit_gateways_quota = self.descriptor(
            "ec2_transitgatewaysperregion_quota",
            "Quota for maximum number of Transitgateways in this account",
            ["aws_region"],
            QUOTA_TRANSIT_GATEWAYS_PER_ACCOUNT,
        )
        self.transit_gateways_usage = self.descriptor(
            "ec2_transitgatewaysperregion_usage",
            "Number of Transitgateways in the AWS Account",
            ["aws_region"],
            QUOTA_TRANSIT_GATEWAYS_PER_ACCOUNT,
        )

    def describe(self) -> List[MetricDescriptor]:
        return [self.transit_gateways_quota, self.transit_gateways_usage]

    async def collect_region(self, client: AwsClient) -> None:
        await self.add_quota(
            client, self.transit_gateways_quota, QUOTA_TRANSIT_GATEWAYS_PER_ACCOUNT, client.region
        )
        try:
            gateways = await client.describe_transit_gateways()
        except Exception as exc:
            logger.error("Could not retrieve Transit Gateways region=%s err=%s", client.region, exc)
            return
        self.add(gauge(self.transit_gateways_usage, len(gateways), client.region))
