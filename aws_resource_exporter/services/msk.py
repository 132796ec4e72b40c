from __future__ import annotations

import logging
from typing import Dict, List

from ..clients.aws import AwsClient
from ..config import MSKConfig
from ..exceptions import EOLStatusError
from ..metrics.base import MetricDescriptor, gauge
from ..utils import get_eol_status
from .collector import BaseCollector

logger = logging.getLogger(__name__)

UNKNOWN_EOL_DATE = "no-eol-date"
UNKNOWN_EOL_STATUS = "unknown"


class MSKCollector(BaseCollector):
    """EOL status of the Kafka version of every MSK cluster.

    Unlike RDS, versions missing from the EOL table are still reported,
    with an ``unknown`` status.
    """

    name = "msk"

    def __init__(self, clients, config: MSKConfig, account_id: str, **kwargs) -> None:
        super().__init__(clients, config, account_id, **kwargs)
        self.thresholds = list(config.thresholds)
        self.eol_dates: Dict[str, str] = {info.version: info.eol for info in config.eol_info}
        self.eol_info = self.descriptor(
            "msk_eol_info",
            "The MSK eol date and status for the version.",
            ["aws_region", "cluster_name", "msk_version", "eol_date", "eol_status"],
        )

    def describe(self) -> List[MetricDescriptor]:
        return [self.eol_info]

    async def collect_region(self, client: AwsClient) -> None:
        try:
            clusters = await client.list_streaming_clusters()
        except Exception as exc:
            logger.error("Call to ListClusters failed region=%s err=%s", client.region, exc)
            return

        for cluster in clusters:
            version = cluster.current_version
            eol_date = self.eol_dates.get(version)
            if eol_date is None:
                logger.info("EOL information not found for MSK version=%s, setting status to unknown", version)
                self.add(
                    gauge(
                        self.eol_info, 1, client.region, cluster.name, version, UNKNOWN_EOL_DATE, UNKNOWN_EOL_STATUS
                    )
                )
                continue
            try:
                status = get_eol_status(eol_date, self.thresholds)
            except EOLStatusError as exc:
                logger.error("Error determining MSK EOL status version=%s err=%s", version, exc)
                self.metrics.increment_errors()
                continue
            self.add(gauge(self.eol_info, 1, client.region, cluster.name, version, eol_date, status))
