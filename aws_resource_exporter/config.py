from __future__ import annotations

import logging
from datetime import date, timedelta
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings

from .exceptions import ConfigurationError
from .utils import parse_duration

logger = logging.getLogger(__name__)

CONFIG_FILE_PATH = "./aws-resource-exporter-config.yaml"
DEFAULT_INTERVAL = timedelta(seconds=15)
DEFAULT_TIMEOUT = timedelta(seconds=10)
DEFAULT_CACHE_TTL = timedelta(seconds=35)
DEFAULT_LOGS_METRICS_WORKERS = 10
DEFAULT_LOGS_METRICS_TTL = 300


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader that keeps float scalars as written, so `version: 14.10` stays "14.10"."""


ConfigLoader.add_constructor("tag:yaml.org,2002:float", yaml.SafeLoader.construct_scalar)


class Settings(BaseSettings):
    aws_resource_exporter_config_file: str = Field(
        CONFIG_FILE_PATH, description="Path of the YAML exporter configuration."
    )
    logs_metrics_workers: int = Field(
        DEFAULT_LOGS_METRICS_WORKERS,
        description="Concurrent DescribeDBLogFiles workers per RDS region.",
    )
    logs_metrics_ttl: int = Field(
        DEFAULT_LOGS_METRICS_TTL,
        description="Seconds RDS log file results are memoised before refreshing.",
    )
    aws_region: str = Field(
        "us-east-1", description="Region of the session used to discover the account id."
    )
    log_level: str = Field("INFO", description="Root logging level.")

    @field_validator("logs_metrics_workers", "logs_metrics_ttl", mode="before")
    def fallback_on_invalid_int(cls, value: Any, info: ValidationInfo) -> Any:
        defaults = {
            "logs_metrics_workers": DEFAULT_LOGS_METRICS_WORKERS,
            "logs_metrics_ttl": DEFAULT_LOGS_METRICS_TTL,
        }
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            logger.warning(
                "Ignoring invalid %s=%r, using default %d",
                info.field_name.upper(),
                value,
                defaults[info.field_name],
            )
            return defaults[info.field_name]
        if parsed < 1 and info.field_name == "logs_metrics_workers":
            return DEFAULT_LOGS_METRICS_WORKERS
        return parsed

    class Config:
        case_sensitive = False


class Threshold(BaseModel):
    name: str
    days: int


DEFAULT_THRESHOLDS = [
    Threshold(name="red", days=90),
    Threshold(name="yellow", days=180),
    Threshold(name="green", days=365),
]


class EOLInfo(BaseModel):
    engine: str = ""
    version: str
    eol: str

    @field_validator("version", "eol", mode="before")
    def stringify(cls, value: Any) -> Any:
        # Unquoted YAML dates and integer versions arrive as date and int objects.
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, (int, float)):
            return str(value)
        return value


class BaseServiceConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = False
    interval: timedelta = DEFAULT_INTERVAL
    timeout: timedelta = DEFAULT_TIMEOUT
    cache_ttl: timedelta = DEFAULT_CACHE_TTL

    @field_validator("interval", "timeout", "cache_ttl", mode="before")
    def parse_go_duration(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].default
        return parse_duration(value)

    @property
    def region_list(self) -> List[str]:
        return []


class MultiRegionConfig(BaseServiceConfig):
    regions: List[str] = Field(default_factory=list)

    @field_validator("regions", mode="before")
    def split_regions(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [region.strip() for region in value.split(",") if region.strip()]
        return value

    @property
    def region_list(self) -> List[str]:
        return list(self.regions)


class GlobalServiceConfig(BaseServiceConfig):
    """Services whose API is global; the region only initialises the SDK."""

    region: str = "us-east-1"

    @property
    def region_list(self) -> List[str]:
        return [self.region]


class EOLServiceConfig(MultiRegionConfig):
    eol_info: List[EOLInfo] = Field(default_factory=list)
    thresholds: List[Threshold] = Field(default_factory=lambda: list(DEFAULT_THRESHOLDS))

    @field_validator("thresholds", mode="before")
    def default_thresholds(cls, value: Any) -> Any:
        if not value:
            return list(DEFAULT_THRESHOLDS)
        return value


class RDSConfig(EOLServiceConfig):
    pass


class MSKConfig(EOLServiceConfig):
    pass


class VPCConfig(MultiRegionConfig):
    pass


class EC2Config(MultiRegionConfig):
    pass


class ElastiCacheConfig(MultiRegionConfig):
    pass


class Route53Config(GlobalServiceConfig):
    pass


class IAMConfig(GlobalServiceConfig):
    pass


class ExporterConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    rds: RDSConfig = Field(default_factory=RDSConfig)
    vpc: VPCConfig = Field(default_factory=VPCConfig)
    ec2: EC2Config = Field(default_factory=EC2Config)
    route53: Route53Config = Field(default_factory=Route53Config)
    elasticache: ElastiCacheConfig = Field(default_factory=ElastiCacheConfig)
    msk: MSKConfig = Field(default_factory=MSKConfig)
    iam: IAMConfig = Field(default_factory=IAMConfig)

    @field_validator("*", mode="before")
    def empty_section(cls, value: Any) -> Any:
        return {} if value is None else value


def load_exporter_config(path: Optional[str] = None) -> ExporterConfig:
    config_path = Path(path or settings.aws_resource_exporter_config_file)
    try:
        raw = yaml.load(config_path.read_text(encoding="utf-8"), Loader=ConfigLoader)
    except OSError as exc:
        raise ConfigurationError(f"Could not load configuration file: {config_path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Could not parse configuration file {config_path}: {exc}") from exc

    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
    try:
        return ExporterConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {exc}") from exc


settings = Settings()
