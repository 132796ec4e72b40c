from __future__ import annotations

import logging
from typing import List

from ..clients.aws import AwsClient
from ..metrics.base import MetricDescriptor, gauge
from .collector import BaseCollector

logger = logging.getLogger(__name__)

SERVICE_CODE_IAM = "iam"
QUOTA_ROLES = "L-FE177D64"
SUMMARY_ROLES = "Roles"
SUMMARY_ROLES_QUOTA = "RolesQuota"


def roles_usage_percent(used: int, quota: int) -> float:
    if quota <= 0:
        return 0.0
    return used / quota * 100


class IAMCollector(BaseCollector):
    """IAM role usage, read from the account summary of a global client."""

    name = "iam"
    service_code = SERVICE_CODE_IAM
    global_service = True

    def __init__(self, clients, config, account_id: str, **kwargs) -> None:
        super().__init__(clients, config, account_id, **kwargs)
        self.roles_used = self.descriptor(
            "roles_used", "Number of IAM roles used in the account.", subsystem="iam"
        )
        self.roles_quota = self.descriptor(
            "roles_quota", "IAM role quota for the account.", quota_code=QUOTA_ROLES, subsystem="iam"
        )
        self.roles_usage_percent = self.descriptor(
            "roles_usage_percent",
            "Percentage of IAM roles used relative to the quota.",
            quota_code=QUOTA_ROLES,
            subsystem="iam",
        )

    def describe(self) -> List[MetricDescriptor]:
        return [self.roles_used, self.roles_quota, self.roles_usage_percent]

    async def collect_region(self, client: AwsClient) -> None:
        try:
            summary = await client.get_account_summary()
        except Exception as exc:
            logger.error("Call to GetAccountSummary failed err=%s", exc)
            return

        used = summary.get(SUMMARY_ROLES, 0)
        quota = summary.get(SUMMARY_ROLES_QUOTA, 0)
        percent = roles_usage_percent(used, quota)
        self.add(gauge(self.roles_used, used))
        self.add(gauge(self.roles_quota, quota))
        self.add(gauge(self.roles_usage_percent, percent))
        logger.info("IAM metrics collected used=%d quota=%d usage_percent=%.2f", used, quota, percent)
