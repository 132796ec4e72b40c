from unittest.mock import MagicMock

import click
import pytest
from click.testing import CliRunner

from aws_resource_exporter import cli
from aws_resource_exporter.config import ExporterConfig
from aws_resource_exporter.exceptions import ConfigurationError
from aws_resource_exporter.services.iam import IAMCollector
from aws_resource_exporter.services.vpc import VPCCollector

from conftest import ACCOUNT_ID


@pytest.mark.parametrize(
    "address,expected",
    [(":9115", ("0.0.0.0", 9115)), ("127.0.0.1:8080", ("127.0.0.1", 8080)), ("[::]:9115", ("::", 9115))],
)
def test_parse_listen_address(address, expected):
    assert cli.parse_listen_address(address) == expected


@pytest.mark.parametrize("address", ["9115", "localhost:", "host:port"])
def test_parse_invalid_listen_address(address):
    with pytest.raises(click.BadParameter):
        cli.parse_listen_address(address)


def test_build_collectors_only_enabled(metrics):
    config = ExporterConfig.model_validate(
        {
            "vpc": {"enabled": True, "regions": ["us-east-1", "eu-west-1"]},
            "iam": {"enabled": True, "region": "us-east-1"},
            "rds": {"enabled": False, "regions": ["us-east-1"]},
        }
    )

    collectors = cli.build_collectors(config, ACCOUNT_ID, metrics, session=MagicMock())

    assert [type(collector) for collector in collectors] == [VPCCollector, IAMCollector]
    assert [client.region for client in collectors[0].clients] == ["us-east-1", "eu-west-1"]
    assert collectors[0].metrics is metrics


def test_configuration_error_exits_1(monkeypatch):
    def broken():
        raise ConfigurationError("Could not load configuration file: missing.yaml")

    monkeypatch.setattr(cli, "load_exporter_config", broken)

    result = CliRunner().invoke(cli.main, [])

    assert result.exit_code == 1


def test_account_id_failure_exits_1(monkeypatch):
    monkeypatch.setattr(cli, "load_exporter_config", lambda: ExporterConfig())

    def no_credentials(region, metrics):
        raise RuntimeError("Unable to locate credentials")

    monkeypatch.setattr(cli, "discover_account_id", no_credentials)

    result = CliRunner().invoke(cli.main, ["--log-level", "debug"])

    assert result.exit_code == 1


def test_serves_registered_collectors(monkeypatch):
    monkeypatch.setattr(cli, "load_exporter_config", lambda: ExporterConfig.model_validate({"iam": {"enabled": True}}))
    monkeypatch.setattr(cli, "discover_account_id", lambda region, metrics: ACCOUNT_ID)
    servers = []

    class FakeServer:
        started = True

        def __init__(self, config):
            self.config = config
            servers.append(self)

        def run(self):
            pass

    monkeypatch.setattr(cli.uvicorn, "Server", FakeServer)

    result = CliRunner().invoke(cli.main, ["--web.listen-address", "127.0.0.1:9200"])

    assert result.exit_code == 0, result.output
    (server,) = servers
    assert (server.config.host, server.config.port) == ("127.0.0.1", 9200)


def test_version():
    result = CliRunner().invoke(cli.main, ["--version"])
    assert result.exit_code == 0
    assert cli.__version__ in result.output
