import asyncio
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from aws_resource_exporter.clients.aws import AwsClient
from aws_resource_exporter.config import EC2Config, ElastiCacheConfig, IAMConfig, MSKConfig, Route53Config
from aws_resource_exporter.models import CacheCluster, HostedZone, HostedZoneLimit, StreamingCluster, TransitGateway
from aws_resource_exporter.services.ec2 import EC2Collector
from aws_resource_exporter.services.elasticache import ElastiCacheCollector
from aws_resource_exporter.services.iam import IAMCollector, roles_usage_percent
from aws_resource_exporter.services.msk import MSKCollector
from aws_resource_exporter.services.route53 import Route53Collector

from conftest import ACCOUNT_ID, make_client, sample_values

ZONES = [HostedZone(id="/hostedzone/Z1", name="a.example."), HostedZone(id="/hostedzone/Z2", name="b.example.")]


class TestRoute53Collector:
    @pytest.fixture
    def client(self):
        client = make_client("us-east-1")
        client.list_hosted_zones.return_value = ZONES
        client.get_service_quota.return_value = 500.0
        client.get_hosted_zone_limit.return_value = HostedZoneLimit(current=10, limit=10000)
        return client

    @pytest.fixture
    def collector(self, client, metrics):
        return Route53Collector([client], Route53Config(enabled=True), ACCOUNT_ID, metrics=metrics)

    async def test_collects_zone_metrics(self, collector, client):
        await collector.collect_once()

        assert sample_values(collector, "route53_hostedzonesperaccount_quota") == {(): 500.0}
        assert sample_values(collector, "route53_hostedzonesperaccount_total") == {(): 2.0}
        assert sample_values(collector, "route53_recordsperhostedzone_quota") == {
            ("/hostedzone/Z1", "a.example."): 10000.0,
            ("/hostedzone/Z2", "b.example."): 10000.0,
        }
        assert sample_values(collector, "route53_recordsperhostedzone_total")[("/hostedzone/Z1", "a.example.")] == 10.0
        assert len(sample_values(collector, "route53_last_updated_timestamp_seconds")) == 1
        client.get_service_quota.assert_awaited_once_with("route53", "L-4EA4796A")

    async def test_zone_failure_keeps_partial_results(self, collector, client):
        client.get_hosted_zone_limit.side_effect = [HostedZoneLimit(current=3, limit=10000), RuntimeError("boom")]

        await collector.collect_once()

        assert len(sample_values(collector, "route53_recordsperhostedzone_total")) == 1
        assert sample_values(collector, "route53_last_updated_timestamp_seconds") == {}

    async def test_only_first_client_is_used(self, client, metrics):
        other = make_client("eu-west-1")
        collector = Route53Collector([client, other], Route53Config(enabled=True), ACCOUNT_ID, metrics=metrics)

        await collector.collect_once()

        other.list_hosted_zones.assert_not_awaited()

    async def test_concurrency_is_bounded(self, client, metrics):
        active = peak = 0

        async def limit(zone_id):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return HostedZoneLimit(current=1, limit=10000)

        client.list_hosted_zones.return_value = [
            HostedZone(id=f"/hostedzone/Z{i}", name=f"z{i}.example.") for i in range(12)
        ]
        client.get_hosted_zone_limit.side_effect = limit
        collector = Route53Collector([client], Route53Config(enabled=True), ACCOUNT_ID, metrics=metrics)

        await collector.collect_once()

        assert peak == 5
        assert len(sample_values(collector, "route53_recordsperhostedzone_quota")) == 12

    async def test_throttled_zone_limit_with_real_facade(self, metrics):
        throttled = ClientError({"Error": {"Code": "Throttling", "Message": "Rate exceeded"}}, "GetHostedZoneLimit")
        route53, quotas = MagicMock(), MagicMock()
        route53.list_hosted_zones.return_value = {
            "HostedZones": [{"Id": "/hostedzone/Z1", "Name": "a.example."}],
            "IsTruncated": False,
        }
        route53.get_hosted_zone_limit.side_effect = [throttled] * 3 + [
            {"Limit": {"Type": "MAX_RRSETS_BY_ZONE", "Value": 10000}, "Count": 7}
        ]
        quotas.get_service_quota.return_value = {"Quota": {"Value": 500.0}}
        session = MagicMock()
        session.client.side_effect = lambda service, **kwargs: {"route53": route53, "service-quotas": quotas}[service]
        client = AwsClient("us-east-1", session=session, metrics=metrics, backoff_base=0)
        collector = Route53Collector([client], Route53Config(enabled=True), ACCOUNT_ID, metrics=metrics)

        await collector.collect_once()

        assert sample_values(collector, "route53_recordsperhostedzone_quota") == {("/hostedzone/Z1", "a.example."): 10000.0}
        assert sample_values(collector, "route53_recordsperhostedzone_total") == {("/hostedzone/Z1", "a.example."): 7.0}
        assert route53.get_hosted_zone_limit.call_count == 4
        # list zones + quota + four zone limit attempts
        assert metrics.requests == 6
        assert metrics.errors == 0


class TestEC2Collector:
    async def test_transit_gateways(self, metrics):
        client = make_client("eu-west-1")
        client.get_service_quota.return_value = 5.0
        client.describe_transit_gateways.return_value = [
            TransitGateway(transit_gateway_id="tgw-1"),
            TransitGateway(transit_gateway_id="tgw-2"),
        ]
        collector = EC2Collector([client], EC2Config(enabled=True, regions=["eu-west-1"]), ACCOUNT_ID, metrics=metrics)

        await collector.collect_once()

        assert sample_values(collector, "ec2_transitgatewaysperregion_quota") == {("eu-west-1",): 5.0}
        assert sample_values(collector, "ec2_transitgatewaysperregion_usage") == {("eu-west-1",): 2.0}
        client.get_service_quota.assert_awaited_once_with("ec2", "L-A2478D36")
        assert collector.transit_gateways_usage.const_labels["quota_code"] == "L-A2478D36"


class TestElastiCacheCollector:
    async def test_cluster_versions(self, metrics):
        client = make_client("us-east-1")
        client.describe_cache_clusters.return_value = [
            CacheCluster(cache_cluster_id="c-1", replication_group_id="sessions", engine="redis", engine_version="7.0.7"),
            CacheCluster(cache_cluster_id="c-2", engine="memcached", engine_version="1.6.17"),
        ]
        config = ElastiCacheConfig(enabled=True, regions=["us-east-1"])
        collector = ElastiCacheCollector([client], config, ACCOUNT_ID, metrics=metrics)

        await collector.collect_once()

        assert sample_values(collector, "elasticache_redisversion") == {
            ("us-east-1", "sessions", "redis", "7.0.7"): 1.0,
            ("us-east-1", "", "memcached", "1.6.17"): 1.0,
        }


class TestMSKCollector:
    async def test_known_and_unknown_versions(self, metrics):
        client = make_client("us-east-1")
        client.list_streaming_clusters.return_value = [
            StreamingCluster(name="events", current_version="2.8.1"),
            StreamingCluster(name="audit", current_version="3.9.0"),
        ]
        config = MSKConfig(enabled=True, regions=["us-east-1"], eol_info=[{"version": "2.8.1", "eol": "2020-01-01"}])
        collector = MSKCollector([client], config, ACCOUNT_ID, metrics=metrics)

        await collector.collect_once()

        assert sample_values(collector, "msk_eol_info") == {
            ("us-east-1", "events", "2.8.1", "2020-01-01", "red"): 1.0,
            ("us-east-1", "audit", "3.9.0", "no-eol-date", "unknown"): 1.0,
        }

    async def test_listing_failure(self, metrics):
        client = make_client("us-east-1")
        client.list_streaming_clusters.side_effect = RuntimeError("denied")
        collector = MSKCollector([client], MSKConfig(enabled=True, regions=["us-east-1"]), ACCOUNT_ID, metrics=metrics)

        await collector.collect_once()

        assert collector.snapshot() == []


class TestIAMCollector:
    async def test_roles(self, metrics):
        client = make_client("us-east-1")
        client.get_account_summary.return_value = {"Roles": 50, "RolesQuota": 1000, "Users": 3}
        collector = IAMCollector([client], IAMConfig(enabled=True), ACCOUNT_ID, metrics=metrics)

        await collector.collect_once()

        assert sample_values(collector, "iam_roles_used") == {(): 50.0}
        assert sample_values(collector, "iam_roles_quota") == {(): 1000.0}
        assert sample_values(collector, "iam_roles_usage_percent") == {(): 5.0}
        assert collector.roles_used.const_labels["aws_account_id"] == ACCOUNT_ID

    async def test_missing_keys_are_zero(self, metrics):
        client = make_client("us-east-1")
        client.get_account_summary.return_value = {}
        collector = IAMCollector([client], IAMConfig(enabled=True), ACCOUNT_ID, metrics=metrics)

        await collector.collect_once()

        assert sample_values(collector, "iam_roles_used") == {(): 0.0}
        assert sample_values(collector, "iam_roles_usage_percent") == {(): 0.0}
        assert metrics.errors == 0

    def test_usage_percent(self):
        assert roles_usage_percent(250, 1000) == 25.0
        assert roles_usage_percent(10, 0) == 0.0
