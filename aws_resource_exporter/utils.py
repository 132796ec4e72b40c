from __future__ import annotations

import ipaddress
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Protocol, Union

from .exceptions import EOLStatusError, InvalidCIDRError


class ThresholdLike(Protocol):
    name: str
    days: int


MIN_SUBNET_PREFIX = 16
MAX_SUBNET_PREFIX = 28

_DURATION_RE = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Union[str, int, float, timedelta]) -> timedelta:
    """Parse ``15s``, ``1m30s``, ``500ms`` style durations, or plain seconds."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    text = value.strip()
    try:
        return timedelta(seconds=float(text))
    except ValueError:
        pass
    position = 0
    seconds = 0.0
    for match in _DURATION_RE.finditer(text):
        if match.start() != position:
            break
        seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position == 0 or position != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return timedelta(seconds=seconds)


def total_ips_from_cidr(cidr_block: str) -> int:
    """Number of addresses in an IPv4 CIDR block accepted by AWS for subnets."""
    try:
        network = ipaddress.ip_network(cidr_block, strict=False)
    except ValueError as exc:
        raise InvalidCIDRError(f"invalid CIDR format {cidr_block!r}: {exc}") from exc
    if network.version != 4:
        raise InvalidCIDRError(f"{cidr_block} is not an IPv4 CIDR block")
    if not MIN_SUBNET_PREFIX <= network.prefixlen <= MAX_SUBNET_PREFIX:
        raise InvalidCIDRError(
            f"invalid subnet prefix length /{network.prefixlen} for AWS "
            f"(must be /{MIN_SUBNET_PREFIX} to /{MAX_SUBNET_PREFIX})"
        )
    return 1 << (32 - network.prefixlen)


def get_eol_status(
    eol: str,
    thresholds: Iterable[ThresholdLike],
    now: Optional[datetime] = None,
) -> str:
    """Classify an end-of-life date by the first threshold whose days cover it.

    Falls back to the last (largest) threshold when the date is further away
    than every threshold.
    """
    try:
        eol_date = datetime.strptime(eol, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except (TypeError, ValueError) as exc:
        raise EOLStatusError(f"invalid date format {eol!r}") from exc

    ordered: List[ThresholdLike] = sorted(thresholds, key=lambda t: t.days)
    if not ordered:
        raise EOLStatusError("empty thresholds")

    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    hours = int((eol_date - current).total_seconds() // 3600)
    days_to_eol = hours // 24

    for threshold in ordered:
        if days_to_eol <= threshold.days:
            return threshold.name
    return ordered[-1].name
