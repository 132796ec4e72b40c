from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set, Tuple

import yaml

from ..clients.aws import AwsClient
from ..config import EOLInfo, RDSConfig, settings
from ..exceptions import EOLStatusError
from ..metrics.base import MetricDescriptor, counter, gauge
from ..metrics.cache import ResultMemo, default_memo
from ..models import DBInstance
from ..utils import get_eol_status
from .collector import BaseCollector

logger = logging.getLogger(__name__)

GIB = 1024 * 1024 * 1024
DEFAULT_PARAMETER_GROUP = "default"
MAX_CONNECTIONS_FILE = Path(__file__).resolve().parent.parent / "resources" / "max_connections.yaml"

MaxConnectionsTable = Mapping[str, Mapping[str, int]]


@lru_cache(maxsize=None)
def load_max_connections() -> Dict[str, Dict[str, int]]:
    """Load the bundled instance class -> parameter group -> max_connections table."""
    text = MAX_CONNECTIONS_FILE.read_text(encoding="utf-8")
    raw = yaml.safe_load(text) or {}
    return {str(cls): {str(group): int(value) for group, value in groups.items()} for cls, groups in raw.items()}


def lookup_max_connections(table: MaxConnectionsTable, instance_class: str, parameter_group: str) -> Optional[int]:
    groups = table.get(instance_class)
    if groups is None:
        return None
    if parameter_group in groups:
        return groups[parameter_group]
    return groups.get(DEFAULT_PARAMETER_GROUP)


@dataclass
class LogFilesSummary:
    logs: int = 0
    total_log_size: int = 0


class RDSCollector(BaseCollector):
    name = "rds"

    def __init__(
        self,
        clients,
        config: RDSConfig,
        account_id: str,
        workers: Optional[int] = None,
        logs_metrics_ttl: Optional[int] = None,
        memo: Optional[ResultMemo] = None,
        max_connections: Optional[MaxConnectionsTable] = None,
        **kwargs,
    ) -> None:
        super().__init__(clients, config, account_id, **kwargs)
        self.workers = workers or settings.logs_metrics_workers
        self.logs_metrics_ttl = logs_metrics_ttl or settings.logs_metrics_ttl
        self.memo = memo or default_memo
        self.max_connections = max_connections if max_connections is not None else load_max_connections()
        self.thresholds = list(config.thresholds)
        self.eol_infos: Dict[Tuple[str, str], EOLInfo] = {
            (info.engine, info.version): info for info in config.eol_info
        }
        logger.info("Using %d log metrics workers with a %ds TTL", self.workers, self.logs_metrics_ttl)

        instance = ["aws_region", "dbinstance_identifier"]
        self.allocated_storage = self.descriptor(
            "rds_allocatedstorage", "The amount of allocated storage in bytes.", instance
        )
        self.instance_class = self.descriptor(
            "rds_dbinstanceclass", "The DB instance class (type).", instance + ["instance_class"]
        )
        self.instance_status = self.descriptor(
            "rds_dbinstancestatus", "The instance status.", instance + ["instance_status"]
        )
        self.engine_version = self.descriptor(
            "rds_engineversion", "The DB engine type and version.", instance + ["engine", "engine_version"]
        )
        self.latest_restorable_time = self.descriptor(
            "rds_latestrestorabletime", "Latest restorable time (UTC date timestamp).", instance
        )
        self.max_connections_value = self.descriptor(
            "rds_maxconnections", "The DB's max_connections value", instance
        )
        self.max_connections_mapping_error = self.descriptor(
            "rds_maxconnections_error",
            "Indicates no mapping found for instance/parameter group.",
            instance + ["instance_class"],
        )
        self.pending_maintenance_actions = self.descriptor(
            "rds_pendingmaintenanceactions",
            "Pending maintenance actions for a RDS instance. 0 indicates no available maintenance "
            "and a separate metric with a value of 1 will be published for every separate action.",
            instance + ["action", "auto_apply_after", "current_apply_date", "description"],
        )
        self.publicly_accessible = self.descriptor(
            "rds_publiclyaccessible", "Indicates if the DB is publicly accessible", instance
        )
        self.storage_encrypted = self.descriptor(
            "rds_storageencrypted", "Indicates if the DB storage is encrypted", instance
        )
        self.logs_storage_size = self.descriptor(
            "rds_logsstorage_size_bytes", "The amount of storage consumed by log files (in bytes)", instance
        )
        self.logs_amount = self.descriptor("rds_logs_amount", "The amount of existent log files", instance)
        self.eol_info = self.descriptor(
            "rds_eol_info",
            "The EOL date and status for the DB engine type and version.",
            instance + ["engine", "engine_version", "eol_date", "eol_status"],
        )

    def describe(self) -> List[MetricDescriptor]:
        return [
            self.allocated_storage,
            self.instance_class,
            self.instance_status,
            self.engine_version,
            self.latest_restorable_time,
            self.max_connections_value,
            self.max_connections_mapping_error,
            self.pending_maintenance_actions,
            self.publicly_accessible,
            self.storage_encrypted,
            self.logs_storage_size,
            self.logs_amount,
            self.eol_info,
        ]

    async def collect_region(self, client: AwsClient) -> None:
        try:
            instances = await client.describe_db_instances()
        except Exception as exc:
            logger.error("Call to DescribeDBInstances failed region=%s err=%s", client.region, exc)
            return

        self.add_instance_metrics(client.region, instances)
        await asyncio.gather(
            self.add_all_log_metrics(client, instances),
            self.add_pending_maintenance_metrics(client, instances),
        )

    def add_instance_metrics(self, region: str, instances: List[DBInstance]) -> None:
        for instance in instances:
            identifier = instance.identifier
            self.add_max_connections(region, instance)
            self.add_eol_info(region, instance)

            self.add(gauge(self.publicly_accessible, 1.0 if instance.publicly_accessible else 0.0, region, identifier))
            self.add(gauge(self.storage_encrypted, 1.0 if instance.storage_encrypted else 0.0, region, identifier))
            restore_time = 0.0
            if instance.latest_restorable_time is not None:
                restore_time = float(int(instance.latest_restorable_time.timestamp()))
            self.add(counter(self.latest_restorable_time, restore_time, region, identifier))
            self.add(gauge(self.allocated_storage, int(instance.allocated_storage) * GIB, region, identifier))
            self.add(gauge(self.instance_status, 1, region, identifier, instance.status))
            self.add(
                gauge(self.engine_version, 1, region, identifier, instance.engine, instance.engine_version)
            )
            self.add(gauge(self.instance_class, 1, region, identifier, instance.instance_class))

    def add_max_connections(self, region: str, instance: DBInstance) -> None:
        value = lookup_max_connections(
            self.max_connections, instance.instance_class, instance.parameter_group_name
        )
        if value is None:
            logger.error(
                "No DB max_connections mapping exists for instance type=%s group=%s",
                instance.instance_class,
                instance.parameter_group_name,
            )
            self.add(
                gauge(self.max_connections_mapping_error, 1, region, instance.identifier, instance.instance_class)
            )
            return
        logger.debug(
            "Found mapping for instance type=%s group=%s value=%d",
            instance.instance_class,
            instance.parameter_group_name,
            value,
        )
        self.add(gauge(self.max_connections_mapping_error, 0, region, instance.identifier, instance.instance_class))
        self.add(gauge(self.max_connections_value, value, region, instance.identifier))

    def add_eol_info(self, region: str, instance: DBInstance) -> None:
        info = self.eol_infos.get((instance.engine, instance.engine_version))
        if info is None:
            logger.info(
                "RDS EOL not found for engine version engine=%s version=%s",
                instance.engine,
                instance.engine_version,
            )
            return
        try:
            status = get_eol_status(info.eol, self.thresholds)
        except EOLStatusError as exc:
            logger.error(
                "Could not get days to RDS EOL for engine version engine=%s version=%s err=%s",
                instance.engine,
                instance.engine_version,
                exc,
            )
            self.metrics.increment_errors()
            return
        self.add(
            gauge(
                self.eol_info,
                1,
                region,
                instance.identifier,
                instance.engine,
                instance.engine_version,
                info.eol,
                status,
            )
        )

    async def add_all_log_metrics(self, client: AwsClient, instances: List[DBInstance]) -> None:
        semaphore = asyncio.Semaphore(self.workers)

        async def worker(identifier: str) -> None:
            async with semaphore:
                await self.add_log_metrics(client, identifier)

        await asyncio.gather(*(worker(instance.identifier) for instance in instances))

    async def add_log_metrics(self, client: AwsClient, identifier: str) -> Optional[LogFilesSummary]:
        # Instance identifiers are only unique within a region.
        key = f"{client.region}-{identifier}-logfiles"
        try:
            summary = self.memo.get(key)
        except KeyError:
            try:
                log_files = await client.describe_db_log_files(identifier)
            except Exception as exc:
                logger.error(
                    "Call to DescribeDBLogFiles failed region=%s instance=%s err=%s",
                    client.region,
                    identifier,
                    exc,
                )
                return None
            summary = LogFilesSummary(
                logs=len(log_files), total_log_size=sum(log_file.size for log_file in log_files)
            )
            self.memo.store(key, summary, self.logs_metrics_ttl)
        self.add(gauge(self.logs_amount, summary.logs, client.region, identifier))
        self.add(gauge(self.logs_storage_size, summary.total_log_size, client.region, identifier))
        return summary

    async def add_pending_maintenance_metrics(self, client: AwsClient, instances: List[DBInstance]) -> None:
        try:
            pending = await client.describe_pending_maintenance_actions()
        except Exception as exc:
            logger.error("Call to DescribePendingMaintenanceActions failed region=%s err=%s", client.region, exc)
            return

        with_pending: Set[str] = set()
        for resource in pending:
            identifier = resource.instance_identifier
            for action in resource.actions:
                with_pending.add(identifier)
                self.add(
                    gauge(
                        self.pending_maintenance_actions,
                        1,
                        client.region,
                        identifier,
                        action.action,
                        _format_date(action.auto_applied_after_date),
                        _format_date(action.current_apply_date),
                        action.description,
                    )
                )

        # Instances without actions get an explicit 0 so "none" differs from "unknown".
        for instance in instances:
            if instance.identifier not in with_pending:
                self.add(
                    gauge(self.pending_maintenance_actions, 0, client.region, instance.identifier, "", "", "", "")
                )


def _format_date(value) -> str:
    return value.isoformat() if value is not None else ""
