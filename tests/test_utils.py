from datetime import datetime, timedelta, timezone

import pytest

from aws_resource_exporter.config import DEFAULT_THRESHOLDS, Threshold
from aws_resource_exporter.exceptions import EOLStatusError, InvalidCIDRError
from aws_resource_exporter.services.vpc import subnet_capacity
from aws_resource_exporter.utils import get_eol_status, parse_duration, total_ips_from_cidr

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestCidr:
    @pytest.mark.parametrize(
        "cidr,expected",
        [("10.0.0.0/16", 65536), ("10.0.0.0/24", 256), ("10.0.0.0/28", 16), ("10.0.1.17/24", 256)],
    )
    def test_total_ips(self, cidr, expected):
        assert total_ips_from_cidr(cidr) == expected

    def test_subnet_capacity(self):
        assert subnet_capacity("10.0.0.0/24", 200) == (251, 51)
        assert subnet_capacity("10.0.0.0/28", 11) == (11, 0)

    @pytest.mark.parametrize("cidr", ["10.0.0.0/15", "10.0.0.0/29", "2001:db8::/32", "not-a-cidr", "10.0.0.0/33"])
    def test_rejected_blocks(self, cidr):
        with pytest.raises(InvalidCIDRError):
            total_ips_from_cidr(cidr)


class TestEOLStatus:
    @pytest.mark.parametrize(
        "eol,expected",
        [
            ("2024-02-01", "red"),
            ("2024-05-01", "yellow"),
            ("2024-10-01", "green"),
            ("2026-01-01", "green"),
            ("2023-06-01", "red"),
        ],
    )
    def test_classification(self, eol, expected):
        assert get_eol_status(eol, DEFAULT_THRESHOLDS, now=NOW) == expected

    def test_thresholds_are_sorted(self):
        thresholds = [Threshold(name="late", days=365), Threshold(name="soon", days=30)]
        assert get_eol_status("2024-01-15", thresholds, now=NOW) == "soon"

    def test_boundary_is_inclusive(self):
        eol = (NOW + timedelta(days=90)).strftime("%Y-%m-%d")
        assert get_eol_status(eol, DEFAULT_THRESHOLDS, now=NOW) == "red"

    def test_invalid_date(self):
        with pytest.raises(EOLStatusError, match="invalid date format"):
            get_eol_status("01/02/2024", DEFAULT_THRESHOLDS, now=NOW)

    def test_empty_thresholds(self):
        with pytest.raises(EOLStatusError, match="empty thresholds"):
            get_eol_status("2024-02-01", [], now=NOW)


class TestParseDuration:
    @pytest.mark.parametrize(
        "value,seconds",
        [("15s", 15), ("1m30s", 90), ("500ms", 0.5), ("1h", 3600), ("2h45m", 9900), (10, 10), ("35", 35)],
    )
    def test_valid(self, value, seconds):
        assert parse_duration(value) == timedelta(seconds=seconds)

    @pytest.mark.parametrize("value", ["", "abc", "15sx", "s15"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_duration(value)
