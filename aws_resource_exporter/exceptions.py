"""Exception types raised by the exporter."""


class ExporterError(Exception):
    """Base class for exporter errors."""


class ConfigurationError(ExporterError):
    """The exporter configuration could not be loaded or is invalid."""


class QuotaValueMissingError(ExporterError):
    """A service quota response carried no value."""

    def __init__(self, service_code: str, quota_code: str) -> None:
        super().__init__(
            f"quota value missing for servicecode {service_code} and quotacode {quota_code}"
        )
        self.service_code = service_code
        self.quota_code = quota_code


class InvalidCIDRError(ExporterError, ValueError):
    """A subnet CIDR block is malformed, not IPv4, or outside /16 to /28."""


class EOLStatusError(ExporterError, ValueError):
    """An end-of-life status could not be determined."""


class ExpiredEntryError(KeyError):
    """A memoised entry exists but its TTL has elapsed."""
