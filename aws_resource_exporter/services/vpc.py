from __future__ import annotations

import logging
from typing import List, Sequence

from ..clients.aws import AwsClient
from ..exceptions import InvalidCIDRError
from ..metrics.base import MetricDescriptor, gauge
from ..models import RouteTable, Subnet, Vpc
from ..utils import total_ips_from_cidr
from .collector import BaseCollector

logger = logging.getLogger(__name__)

QUOTA_VPCS_PER_REGION = "L-F678F1CE"
QUOTA_SUBNETS_PER_VPC = "L-407747CB"
QUOTA_ROUTES_PER_ROUTE_TABLE = "L-93826ACB"
QUOTA_INTERFACE_VPC_ENDPOINTS_PER_VPC = "L-29B6F2EB"
QUOTA_ROUTE_TABLES_PER_VPC = "L-589F43AA"
QUOTA_IPV4_BLOCKS_PER_VPC = "L-83CA0A9D"
SERVICE_CODE_VPC = "vpc"

# Network, VPC router, DNS, future use and broadcast.
AWS_RESERVED_IPS_PER_SUBNET = 5


def subnet_capacity(cidr_block: str, available_ip_address_count: int) -> tuple:
    """Return ``(usable, used)`` IPv4 addresses of a subnet."""
    usable = total_ips_from_cidr(cidr_block) - AWS_RESERVED_IPS_PER_SUBNET
    return usable, usable - available_ip_address_count


class VPCCollector(BaseCollector):
    name = "vpc"
    service_code = SERVICE_CODE_VPC

    def __init__(self, clients: Sequence[AwsClient], config, account_id: str, **kwargs) -> None:
        super().__init__(clients, config, account_id, **kwargs)
        region = ["aws_region"]
        per_vpc = ["aws_region", "vpcid"]
        self.vpcs_per_region_quota = self.descriptor(
            "vpc_vpcsperregion_quota", "The quota of VPCs per region", region, QUOTA_VPCS_PER_REGION
        )
        self.vpcs_per_region_usage = self.descriptor(
            "vpc_vpcsperregion_usage", "The usage of VPCs per region", region, QUOTA_VPCS_PER_REGION
        )
        self.subnets_per_vpc_quota = self.descriptor(
            "vpc_subnetspervpc_quota", "The quota of subnets per VPC", region, QUOTA_SUBNETS_PER_VPC
        )
        self.subnets_per_vpc_usage = self.descriptor(
            "vpc_subnetspervpc_usage", "The usage of subnets per VPC", per_vpc, QUOTA_SUBNETS_PER_VPC
        )
        self.routes_per_route_table_quota = self.descriptor(
            "vpc_routesperroutetable_quota",
            "The quota of routes per routetable",
            region,
            QUOTA_ROUTES_PER_ROUTE_TABLE,
        )
        self.routes_per_route_table_usage = self.descriptor(
            "vpc_routesperroutetable_usage",
            "The usage of routes per routetable",
            ["aws_region", "vpcid", "routetableid"],
            QUOTA_ROUTES_PER_ROUTE_TABLE,
        )
        self.interface_endpoints_per_vpc_quota = self.descriptor(
            "vpc_interfacevpcendpointspervpc_quota",
            "The quota of interface vpc endpoints per vpc",
            region,
            QUOTA_INTERFACE_VPC_ENDPOINTS_PER_VPC,
        )
        self.interface_endpoints_per_vpc_usage = self.descriptor(
            "vpc_interfacevpcendpointspervpc_usage",
            "The usage of interface vpc endpoints per vpc",
            per_vpc,
            QUOTA_INTERFACE_VPC_ENDPOINTS_PER_VPC,
        )
        self.route_tables_per_vpc_quota = self.descriptor(
            "vpc_routetablespervpc_quota",
            "The quota of route tables per vpc",
            region,
            QUOTA_ROUTE_TABLES_PER_VPC,
        )
        self.route_tables_per_vpc_usage = self.descriptor(
            "vpc_routetablespervpc_usage",
            "The usage of route tables per vpc",
            per_vpc,
            QUOTA_ROUTE_TABLES_PER_VPC,
        )
        self.ipv4_blocks_per_vpc_quota = self.descriptor(
            "vpc_ipv4blockspervpc_quota",
            "The quota of ipv4 blocks per vpc",
            region,
            QUOTA_IPV4_BLOCKS_PER_VPC,
        )
        self.ipv4_blocks_per_vpc_usage = self.descriptor(
            "vpc_ipv4blockspervpc_usage",
            "The usage of ipv4 blocks per vpc",
            per_vpc,
            QUOTA_IPV4_BLOCKS_PER_VPC,
        )
        self.ipv4_addresses_per_subnet_quota = self.descriptor(
            "vpc_ipv4addressespersubnet_quota",
            "The quota of IPv4 addresses per subnet (based on CIDR)",
            ["aws_region", "vpcid", "subnetid"],
        )
        self.ipv4_addresses_per_subnet_usage = self.descriptor(
            "vpc_ipv4addressespersubnet_usage",
            "The usage of IPv4 addresses per subnet",
            ["aws_region", "vpcid", "subnetid"],
        )

    def describe(self) -> List[MetricDescriptor]:
        return [
            self.vpcs_per_region_quota,
            self.vpcs_per_region_usage,
            self.subnets_per_vpc_quota,
            self.subnets_per_vpc_usage,
            self.routes_per_route_table_quota,
            self.routes_per_route_table_usage,
            self.interface_endpoints_per_vpc_quota,
            self.interface_endpoints_per_vpc_usage,
            self.route_tables_per_vpc_quota,
            self.route_tables_per_vpc_usage,
            self.ipv4_blocks_per_vpc_quota,
            self.ipv4_blocks_per_vpc_usage,
            self.ipv4_addresses_per_subnet_quota,
            self.ipv4_addresses_per_subnet_usage,
        ]

    async def collect_region(self, client: AwsClient) -> None:
        region = client.region
        await self.add_quota(client, self.vpcs_per_region_quota, QUOTA_VPCS_PER_REGION, region)
        await self.add_quota(client, self.subnets_per_vpc_quota, QUOTA_SUBNETS_PER_VPC, region)
        await self.add_quota(
            client, self.routes_per_route_table_quota, QUOTA_ROUTES_PER_ROUTE_TABLE, region
        )
        await self.add_quota(
            client,
            self.interface_endpoints_per_vpc_quota,
            QUOTA_INTERFACE_VPC_ENDPOINTS_PER_VPC,
            region,
        )
        await self.add_quota(client, self.route_tables_per_vpc_quota, QUOTA_ROUTE_TABLES_PER_VPC, region)
        await self.add_quota(client, self.ipv4_blocks_per_vpc_quota, QUOTA_IPV4_BLOCKS_PER_VPC, region)

        try:
            vpcs = await client.describe_vpcs()
        except Exception as exc:
            logger.error("Call to DescribeVpcs failed region=%s err=%s", region, exc)
        else:
            self.add(gauge(self.vpcs_per_region_usage, len(vpcs), region))
            for vpc in vpcs:
                await self.collect_vpc(client, vpc)

        try:
            route_tables = await client.describe_route_tables()
        except Exception as exc:
            logger.error("Call to DescribeRouteTables failed region=%s err=%s", region, exc)
        else:
            for route_table in route_tables:
                self.collect_routes_per_route_table(region, route_table)

    async def collect_vpc(self, client: AwsClient, vpc: Vpc) -> None:
        region = client.region
        try:
            subnets = await client.describe_subnets(vpc.vpc_id)
        except Exception as exc:
            logger.error("Call to DescribeSubnets failed region=%s vpcId=%s err=%s", region, vpc.vpc_id, exc)
        else:
            self.add(gauge(self.subnets_per_vpc_usage, len(subnets), region, vpc.vpc_id))
            for subnet in subnets:
                self.collect_subnet_addresses(region, vpc.vpc_id, subnet)

        try:
            endpoints = await client.describe_vpc_endpoints(vpc.vpc_id)
        except Exception as exc:
            logger.error(
                "Call to DescribeVpcEndpoints failed region=%s vpcId=%s err=%s", region, vpc.vpc_id, exc
            )
        else:
            self.add(gauge(self.interface_endpoints_per_vpc_usage, len(endpoints), region, vpc.vpc_id))

        try:
            route_tables = await client.describe_route_tables(vpc.vpc_id)
        except Exception as exc:
            logger.error(
                "Call to DescribeRouteTables failed region=%s vpcId=%s err=%s", region, vpc.vpc_id, exc
            )
        else:
            self.add(gauge(self.route_tables_per_vpc_usage, len(route_tables), region, vpc.vpc_id))

        try:
            associations = await client.describe_vpc_cidr_associations(vpc.vpc_id)
        except Exception as exc:
            logger.error("Call to DescribeVpcs failed region=%s vpcId=%s err=%s", region, vpc.vpc_id, exc)
        else:
            self.add(gauge(self.ipv4_blocks_per_vpc_usage, len(associations), region, vpc.vpc_id))

    def collect_routes_per_route_table(self, region: str, route_table: RouteTable) -> None:
        self.add(
            gauge(
                self.routes_per_route_table_usage,
                len(route_table.routes),
                region,
                route_table.vpc_id,
                route_table.route_table_id,
            )
        )

    def collect_subnet_addresses(self, region: str, vpc_id: str, subnet: Subnet) -> bool:
        """Cache usable and used IPv4 addresses of one subnet.

        Subnets with missing fields, unsupported CIDR blocks or a negative
        usage are skipped and counted as one error each.
        """
        if subnet.subnet_id is None:
            logger.error("Subnet has no SubnetId region=%s vpcId=%s", region, vpc_id)
            self.metrics.increment_errors()
            return False
        if subnet.cidr_block is None or subnet.available_ip_address_count is None:
            logger.error(
                "Subnet is missing CidrBlock or AvailableIpAddressCount region=%s subnetId=%s",
                region,
                subnet.subnet_id,
            )
            self.metrics.increment_errors()
            return False

        try:
            usable, used = subnet_capacity(subnet.cidr_block, subnet.available_ip_address_count)
        except InvalidCIDRError as exc:
            logger.error(
                "Could not calculate total IPs from CIDR region=%s subnetId=%s cidr=%s err=%s",
                region,
                subnet.subnet_id,
                subnet.cidr_block,
                exc,
            )
            self.metrics.increment_errors()
            return False

        if used < 0:
            logger.error(
                "Calculated negative used IPs region=%s subnetId=%s usableIPs=%d availableIPs=%d",
                region,
                subnet.subnet_id,
                usable,
                subnet.available_ip_address_count,
            )
            self.metrics.increment_errors()
            return False

        self.add(gauge(self.ipv4_addresses_per_subnet_quota, usable, region, vpc_id, subnet.subnet_id))
        self.add(gauge(self.ipv4_addresses_per_subnet_usage, used, region, vpc_id, subnet.subnet_id))
        return True
