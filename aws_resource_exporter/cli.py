"""Command-line entry point of the AWS resources exporter."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Dict, List, Optional, Tuple, Type

import click
import uvicorn

from .clients.aws import AwsClient
from .config import BaseServiceConfig, ExporterConfig, load_exporter_config, settings
from .exceptions import ConfigurationError
from .main import DEFAULT_TELEMETRY_PATH, create_app
from .metrics.process import ExporterMetrics, exporter_metrics
from .metrics.registry import MetricRegistry
from .services.collector import BaseCollector
from .services.ec2 import EC2Collector
from .services.elasticache import ElastiCacheCollector
from .services.iam import IAMCollector
from .services.msk import MSKCollector
from .services.rds import RDSCollector
from .services.route53 import Route53Collector
from .services.vpc import VPCCollector

__version__ = "0.1.0"

logger = logging.getLogger(__name__)

DEFAULT_LISTEN_ADDRESS = ":9115"

COLLECTORS: Dict[str, Type[BaseCollector]] = {
    "rds": RDSCollector,
    "vpc": VPCCollector,
    "route53": Route53Collector,
    "ec2": EC2Collector,
    "elasticache": ElastiCacheCollector,
    "msk": MSKCollector,
    "iam": IAMCollector,
}


def parse_listen_address(address: str) -> Tuple[str, int]:
    """Split ``host:port``; an empty host listens on every interface."""
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise click.BadParameter(f"invalid listen address {address!r}, expected [host]:port")
    host = host.strip("[]") or "0.0.0.0"
    return host, int(port)


def build_collectors(
    config: ExporterConfig,
    account_id: str,
    metrics: ExporterMetrics,
    session=None,
) -> List[BaseCollector]:
    collectors: List[BaseCollector] = []
    for name, collector_cls in COLLECTORS.items():
        service_config: BaseServiceConfig = getattr(config, name)
        if not service_config.enabled:
            continue
        regions = service_config.region_list
        if not regions:
            logger.warning("%s is enabled but has no regions configured", name)
        clients = [AwsClient(region, session=session, metrics=metrics) for region in regions]
        collectors.append(collector_cls(clients, service_config, account_id, metrics=metrics))
    return collectors


def discover_account_id(region: str, metrics: ExporterMetrics) -> str:
    return asyncio.run(AwsClient(region, metrics=metrics).get_caller_identity())


@click.command()
@click.version_option(version=__version__, prog_name="aws-resource-exporter")
@click.option(
    "--web.listen-address",
    "listen_address",
    default=DEFAULT_LISTEN_ADDRESS,
    show_default=True,
    help="Address to listen on for web interface and telemetry.",
)
@click.option(
    "--web.telemetry-path",
    "telemetry_path",
    default=DEFAULT_TELEMETRY_PATH,
    show_default=True,
    help="Path under which to expose metrics.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level; defaults to LOG_LEVEL or INFO.",
)
def main(listen_address: str, telemetry_path: str, log_level: Optional[str]) -> None:
    """Export AWS quotas, usage and resource inventory as Prometheus metrics."""
    level = (log_level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Starting aws-resource-exporter version=%s", __version__)
    host, port = parse_listen_address(listen_address)

    try:
        config = load_exporter_config()
    except ConfigurationError as exc:
        logger.error("Could not load configuration err=%s", exc)
        sys.exit(1)

    try:
        account_id = discover_account_id(settings.aws_region, exporter_metrics)
    except Exception as exc:
        logger.error("Could not retrieve the AWS account id err=%s", exc)
        sys.exit(1)

    collectors = build_collectors(config, account_id, exporter_metrics)
    registry = MetricRegistry()
    registry.register(exporter_metrics)
    for collector in collectors:
        registry.register(collector)

    app = create_app(registry, collectors, telemetry_path)
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level=level.lower()))
    logger.info("Listening on address=%s:%d", host, port)
    server.run()
    if not server.started:
        logger.error("HTTP listener failed to start address=%s:%d", host, port)
        sys.exit(1)


if __name__ == "__main__":
    main()
