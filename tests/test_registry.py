import pytest

from aws_resource_exporter.config import EC2Config
from aws_resource_exporter.metrics.base import counter, gauge
from aws_resource_exporter.metrics.registry import MetricRegistry
from aws_resource_exporter.services.ec2 import EC2Collector

from conftest import ACCOUNT_ID, make_client


@pytest.fixture
def collector(metrics):
    config = EC2Config(enabled=True, regions=["us-east-1"])
    return EC2Collector([make_client()], config, ACCOUNT_ID, metrics=metrics)


def lines_for(text, name):
    return [line for line in text.splitlines() if line.startswith(name)]


def test_render_includes_process_counters(metrics, collector):
    metrics.increment_requests()
    metrics.increment_requests()
    metrics.increment_errors()
    registry = MetricRegistry()
    registry.register(metrics)
    registry.register(collector)

    text = registry.render().decode()

    assert "# TYPE aws_resources_exporter_aws_requests_total counter" in text
    assert "aws_resources_exporter_aws_requests_total 2.0" in text
    assert "aws_resources_exporter_aws_errors_total 1.0" in text


def test_render_gauges_with_labels(metrics, collector):
    collector.add(gauge(collector.transit_gateways_quota, 5, "us-east-1"))
    collector.add(gauge(collector.transit_gateways_quota, 10, "eu-west-1"))
    registry = MetricRegistry()
    registry.register(collector)

    text = registry.render().decode()
    (east,) = [line for line in lines_for(text, "aws_resources_exporter_ec2_transitgatewaysperregion_quota") if "us-east-1" in line]

    assert "# TYPE aws_resources_exporter_ec2_transitgatewaysperregion_quota gauge" in text
    assert 'aws_account_id="123456789012"' in east
    assert 'quota_code="L-A2478D36"' in east
    assert 'service_code="ec2"' in east
    assert east.endswith(" 5.0")
    assert len(lines_for(text, "aws_resources_exporter_ec2_transitgatewaysperregion_quota{")) == 2


def test_counter_without_total_suffix_keeps_its_name(collector):
    collector.add(counter(collector.transit_gateways_usage, 1704067200, "us-east-1"))
    registry = MetricRegistry()
    registry.register(collector)

    text = registry.render().decode()

    assert len(lines_for(text, "aws_resources_exporter_ec2_transitgatewaysperregion_usage{")) == 1


def test_empty_cache_renders_nothing_for_source(collector):
    registry = MetricRegistry()
    registry.register(collector)

    assert "transitgateways" not in registry.render().decode()


def test_duplicate_registration(metrics, collector):
    registry = MetricRegistry()
    registry.register(collector)
    with pytest.raises(ValueError):
        registry.register(collector)


def test_lookup(metrics, collector):
    registry = MetricRegistry()
    registry.register(metrics)
    registry.register(collector)

    assert registry.get("ec2") is collector
    assert [source.name for source in registry.all()] == ["exporter", "ec2"]
    with pytest.raises(KeyError):
        registry.get("rds")
    assert registry.content_type.startswith("text/plain")
