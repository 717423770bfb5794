"""
单元测试：地址校验与时间格式
"""

from datetime import datetime, timezone

import pytest

from health_monitor.exceptions import InvalidTarget
from health_monitor.utils import format_ts, format_ts_ceil, format_uptime, parse_ts, validate_address


class TestValidateAddress:

    @pytest.mark.parametrize("address, expected", [
        ("172.16.5.196", "172.16.5.196"),
        (" 10.0.0.1 ", "10.0.0.1"),
        ("::1", "::1"),
        ("DHCP-CH-HQ2.corp.local", "dhcp-ch-hq2.corp.local"),
        ("dhcp1.", "dhcp1"),
    ])
    def test_valid(self, address, expected):
        assert validate_address(address) == expected

    @pytest.mark.parametrize("address", [
        "256.1.1.1",
        "10.0.0",
        "-h",
        "host name",
        "a" * 64 + ".com",
        "10.0.0.1 && ls",
        "bad_underscore",
    ])
    def test_invalid(self, address):
        with pytest.raises(InvalidTarget):
            validate_address(address)


class TestTimestamps:

    def test_round_trip(self):
        ts = datetime(2026, 1, 20, 10, 0, 5, tzinfo=timezone.utc)
        assert format_ts(ts) == "2026-01-20T10:00:05Z"
        assert parse_ts("2026-01-20T10:00:05Z") == ts

    def test_lexical_order_is_time_order(self):
        earlier = format_ts(datetime(2026, 1, 9, 23, 59, 59, tzinfo=timezone.utc))
        later = format_ts(datetime(2026, 1, 10, 0, 0, 0, tzinfo=timezone.utc))
        assert earlier < later

    def test_ceil_rounds_fraction_up(self):
        ts = datetime(2026, 1, 20, 23, 59, 59, 700000, tzinfo=timezone.utc)
        assert format_ts(ts) == "2026-01-20T23:59:59Z"
        assert format_ts_ceil(ts) == "2026-01-21T00:00:00Z"

    def test_ceil_keeps_whole_second(self):
        ts = datetime(2026, 1, 20, 10, 0, 5, tzinfo=timezone.utc)
        assert format_ts_ceil(ts) == "2026-01-20T10:00:05Z"


def test_format_uptime():
    assert format_uptime(90061) == "1 days 1 hours 1 minutes"
