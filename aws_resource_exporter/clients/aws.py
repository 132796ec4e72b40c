"""Narrow async facade over the boto3 clients used by the collectors.

Every SDK request issued through the facade is counted once on the process
request counter. A call that finally fails is counted once on the error
counter before it is re-raised, so callers must not count it again.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from ..exceptions import QuotaValueMissingError
from ..metrics.process import ExporterMetrics, exporter_metrics
from ..models import (
    CacheCluster,
    CidrBlockAssociation,
    DBInstance,
    HostedZone,
    HostedZoneLimit,
    HostedZonesPage,
    LogFile,
    ResourcePendingMaintenance,
    RouteTable,
    StreamingCluster,
    Subnet,
    TransitGateway,
    Vpc,
    VpcEndpoint,
)

logger = logging.getLogger(__name__)

MAX_RETRIES = 10
THROTTLING_ERROR_CODES = frozenset({"Throttling", "ThrottlingException", "TooManyRequestsException"})
HOSTED_ZONE_LIMIT_MAX_RRSETS = "MAX_RRSETS_BY_ZONE"

_SDK_CONFIG = Config(user_agent_extra="aws-resource-exporter")


def is_throttling_error(exc: BaseException) -> bool:
    if not isinstance(exc, ClientError):
        return False
    return exc.response.get("Error", {}).get("Code") in THROTTLING_ERROR_CODES


def _vpc_filter(vpc_id: Optional[str]) -> Dict[str, Any]:
    if vpc_id is None:
        return {}
    return {"Filters": [{"Name": "vpc-id", "Values": [vpc_id]}]}


class AwsClient:
    """AWS capabilities of one region, as needed by the collectors."""

    def __init__(
        self,
        region: str,
        session: Optional[boto3.session.Session] = None,
        metrics: Optional[ExporterMetrics] = None,
        max_retries: int = MAX_RETRIES,
        backoff_base: float = 1.0,
    ) -> None:
        self.region = region
        self.metrics = metrics or exporter_metrics
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._session = session or boto3.session.Session(region_name=region)
        self._clients: Dict[str, Any] = {}

    def _client(self, service: str) -> Any:
        client = self._clients.get(service)
        if client is None:
            client = self._session.client(service, region_name=self.region, config=_SDK_CONFIG)
            self._clients[service] = client
        return client

    async def _call(self, service: str, operation: str, count_errors: bool = True, **params: Any) -> Dict[str, Any]:
        method = getattr(self._client(service), operation)
        self.metrics.increment_requests()
        try:
            return await asyncio.to_thread(method, **params)
        except Exception:
            if count_errors:
                self.metrics.increment_errors()
            raise

    async def _call_with_backoff(self, service: str, operation: str, **params: Any) -> Dict[str, Any]:
        """Retry throttled calls, doubling the delay after every attempt."""
        for attempt in range(self.max_retries):
            try:
                return await self._call(service, operation, count_errors=False, **params)
            except Exception as exc:
                if not is_throttling_error(exc) or attempt == self.max_retries - 1:
                    self.metrics.increment_errors()
                    raise
                delay = self.backoff_base * 2**attempt
                logger.debug(
                    "Retrying throttled api call endpoint=%s tries=%d delay=%.1fs",
                    operation,
                    attempt + 1,
                    delay,
                )
                await asyncio.sleep(delay)
        raise RuntimeError("max_retries must be at least 1")

    async def _paginate(self, service: str, operation: str, result_key: str, **params: Any) -> List[Dict[str, Any]]:
        """Drain a boto3 paginator, fetching and counting one page at a time."""
        paginator = self._client(service).get_paginator(operation)
        pages = iter(paginator.paginate(**params))
        items: List[Dict[str, Any]] = []
        while True:
            try:
                page = await asyncio.to_thread(next, pages, None)
            except Exception:
                self.metrics.increment_requests()
                self.metrics.increment_errors()
                raise
            if page is None:
                return items
            self.metrics.increment_requests()
            items.extend(page.get(result_key) or [])

    # EC2 / VPC

    async def describe_vpcs(self, vpc_ids: Optional[List[str]] = None) -> List[Vpc]:
        params: Dict[str, Any] = {"VpcIds": vpc_ids} if vpc_ids else {}
        raw = await self._paginate("ec2", "describe_vpcs", "Vpcs", **params)
        return [Vpc.model_validate(item) for item in raw]

    async def describe_vpc_cidr_associations(self, vpc_id: str) -> List[CidrBlockAssociation]:
        vpcs = await self.describe_vpcs([vpc_id])
        if len(vpcs) != 1:
            logger.error(
                "Unexpected numbers of VPCs (!= 1) returned region=%s vpcId=%s count=%d",
                self.region,
                vpc_id,
                len(vpcs),
            )
        if not vpcs:
            return []
        return list(vpcs[0].cidr_block_associations)

    async def describe_subnets(self, vpc_id: Optional[str] = None) -> List[Subnet]:
        raw = await self._paginate("ec2", "describe_subnets", "Subnets", **_vpc_filter(vpc_id))
        return [Subnet.model_validate(item) for item in raw]

    async def describe_route_tables(self, vpc_id: Optional[str] = None) -> List[RouteTable]:
        raw = await self._paginate("ec2", "describe_route_tables", "RouteTables", **_vpc_filter(vpc_id))
        return [RouteTable.model_validate(item) for item in raw]

    async def describe_vpc_endpoints(self, vpc_id: Optional[str] = None) -> List[VpcEndpoint]:
        raw = await self._paginate("ec2", "describe_vpc_endpoints", "VpcEndpoints", **_vpc_filter(vpc_id))
        return [VpcEndpoint.model_validate(item) for item in raw]

    async def describe_transit_gateways(self) -> List[TransitGateway]:
        raw = await self._paginate(
            "ec2", "describe_transit_gateways", "TransitGateways", DryRun=False, PaginationConfig={"PageSize": 1000}
        )
        return [TransitGateway.model_validate(item) for item in raw]

    # RDS

    async def describe_db_instances(self) -> List[DBInstance]:
        raw = await self._paginate("rds", "describe_db_instances", "DBInstances")
        return [DBInstance.model_validate(item) for item in raw]

    async def describe_db_log_files(self, instance_id: str) -> List[LogFile]:
        raw = await self._paginate("rds", "describe_db_log_files", "DescribeDBLogFiles", DBInstanceIdentifier=instance_id)
        return [LogFile.model_validate(item) for item in raw]

    async def describe_pending_maintenance_actions(self) -> List[ResourcePendingMaintenance]:
        raw = await self._paginate("rds", "describe_pending_maintenance_actions", "PendingMaintenanceActions")
        return [ResourcePendingMaintenance.model_validate(item) for item in raw]

    # ElastiCache / MSK

    async def describe_cache_clusters(self) -> List[CacheCluster]:
        raw = await self._paginate("elasticache", "describe_cache_clusters", "CacheClusters")
        return [CacheCluster.model_validate(item) for item in raw]

    async def list_streaming_clusters(self) -> List[StreamingCluster]:
        raw = await self._paginate("kafka", "list_clusters", "ClusterInfoList")
        return [
            StreamingCluster(
                name=item.get("ClusterName", ""),
                current_version=(item.get("CurrentBrokerSoftwareInfo") or {}).get("KafkaVersion", ""),
            )
            for item in raw
        ]

    # Route53

    async def list_hosted_zones_page(self, marker: Optional[str] = None) -> HostedZonesPage:
        params: Dict[str, Any] = {"Marker": marker} if marker else {}
        page = await self._call_with_backoff("route53", "list_hosted_zones", **params)
        return HostedZonesPage(
            zones=[HostedZone.model_validate(zone) for zone in page.get("HostedZones") or []],
            next_marker=page.get("NextMarker"),
            is_truncated=bool(page.get("IsTruncated")),
        )

    async def list_hosted_zones(self) -> List[HostedZone]:
        page = await self.list_hosted_zones_page()
        zones = list(page.zones)
        while page.is_truncated and page.next_marker:
            page = await self.list_hosted_zones_page(page.next_marker)
            zones.extend(page.zones)
        return zones

    async def get_hosted_zone_limit(
        self, zone_id: str, limit_type: str = HOSTED_ZONE_LIMIT_MAX_RRSETS
    ) -> HostedZoneLimit:
        output = await self._call_with_backoff(
            "route53", "get_hosted_zone_limit", HostedZoneId=zone_id, Type=limit_type
        )
        try:
            return HostedZoneLimit(current=output["Count"], limit=output["Limit"]["Value"])
        except (KeyError, TypeError):
            self.metrics.increment_errors()
            raise

    # Service Quotas / IAM / STS

    async def get_service_quota(self, service_code: str, quota_code: str) -> float:
        output = await self._call(
            "service-quotas", "get_service_quota", ServiceCode=service_code, QuotaCode=quota_code
        )
        value = (output.get("Quota") or {}).get("Value")
        if value is None:
            # Value is optional in the ServiceQuota shape.
            self.metrics.increment_errors()
            raise QuotaValueMissingError(service_code, quota_code)
        return float(value)

    async def get_account_summary(self) -> Dict[str, int]:
        output = await self._call("iam", "get_account_summary")
        return {key: int(value) for key, value in (output.get("SummaryMap") or {}).items()}

    async def get_caller_identity(self) -> str:
        output = await self._call("sts", "get_caller_identity")
        return output["Account"]
