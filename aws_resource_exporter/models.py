from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class AwsRecord(BaseModel):
    """Base for records parsed from SDK responses (PascalCase keys)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class DBParameterGroup(AwsRecord):
    name: str = Field(alias="DBParameterGroupName")


class DBInstance(AwsRecord):
    identifier: str = Field(alias="DBInstanceIdentifier")
    instance_class: str = Field("", alias="DBInstanceClass")
    engine: str = Field("", alias="Engine")
    engine_version: str = Field("", alias="EngineVersion")
    status: str = Field("", alias="DBInstanceStatus")
    allocated_storage: int = Field(0, alias="AllocatedStorage")
    publicly_accessible: bool = Field(False, alias="PubliclyAccessible")
    storage_encrypted: bool = Field(False, alias="StorageEncrypted")
    latest_restorable_time: Optional[datetime] = Field(None, alias="LatestRestorableTime")
    parameter_groups: List[DBParameterGroup] = Field(default_factory=list, alias="DBParameterGroups")

    @property
    def parameter_group_name(self) -> str:
        return self.parameter_groups[0].name if self.parameter_groups else ""


class LogFile(AwsRecord):
    name: str = Field("", alias="LogFileName")
    size: int = Field(0, alias="Size")


class PendingMaintenanceAction(AwsRecord):
    action: str = Field("", alias="Action")
    auto_applied_after_date: Optional[datetime] = Field(None, alias="AutoAppliedAfterDate")
    current_apply_date: Optional[datetime] = Field(None, alias="CurrentApplyDate")
    description: str = Field("", alias="Description")


class ResourcePendingMaintenance(AwsRecord):
    resource_identifier: str = Field(alias="ResourceIdentifier")
    actions: List[PendingMaintenanceAction] = Field(
        default_factory=list, alias="PendingMaintenanceActionDetails"
    )

    @property
    def instance_identifier(self) -> str:
        # arn:aws:rds:<region>:<account>:db:<identifier>
        return self.resource_identifier.split(":")[6]


class CidrBlockAssociation(AwsRecord):
    association_id: str = Field("", alias="AssociationId")
    cidr_block: str = Field("", alias="CidrBlock")


class Vpc(AwsRecord):
    vpc_id: str = Field(alias="VpcId")
    cidr_block: str = Field("", alias="CidrBlock")
    cidr_block_associations: List[CidrBlockAssociation] = Field(
        default_factory=list, alias="CidrBlockAssociationSet"
    )


class Subnet(AwsRecord):
    subnet_id: Optional[str] = Field(None, alias="SubnetId")
    vpc_id: Optional[str] = Field(None, alias="VpcId")
    cidr_block: Optional[str] = Field(None, alias="CidrBlock")
    available_ip_address_count: Optional[int] = Field(None, alias="AvailableIpAddressCount")


class RouteTable(AwsRecord):
    route_table_id: str = Field(alias="RouteTableId")
    vpc_id: str = Field("", alias="VpcId")
    routes: List[Dict[str, Any]] = Field(default_factory=list, alias="Routes")


class VpcEndpoint(AwsRecord):
    vpc_endpoint_id: str = Field(alias="VpcEndpointId")
    vpc_id: str = Field("", alias="VpcId")
    vpc_endpoint_type: str = Field("", alias="VpcEndpointType")


class TransitGateway(AwsRecord):
    transit_gateway_id: str = Field(alias="TransitGatewayId")
    state: str = Field("", alias="State")


class HostedZone(AwsRecord):
    id: str = Field(alias="Id")
    name: str = Field("", alias="Name")


class HostedZonesPage(BaseModel):
    zones: List[HostedZone] = Field(default_factory=list)
    next_marker: Optional[str] = None
    is_truncated: bool = False


class HostedZoneLimit(BaseModel):
    current: int
    limit: int


class CacheCluster(AwsRecord):
    cache_cluster_id: str = Field("", alias="CacheClusterId")
    replication_group_id: str = Field("", alias="ReplicationGroupId")
    engine: str = Field("", alias="Engine")
    engine_version: str = Field("", alias="EngineVersion")


class StreamingCluster(BaseModel):
    name: str
    current_version: str = ""
