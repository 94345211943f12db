"""Tests for device list parsing."""

import pytest

from arc_onboarding.preflight.device_list import (
    DeviceListError,
    load_device_list,
    normalize_devices,
    parse_device_list,
    resolve_devices,
)

DEVICE_LIST = [
    "# Production web tier",
    "  web01  ",
    "",
    "web02",
    "   ",
    "# sql servers",
    "sql01.contoso.local",
]
EXPECTED = ["web01", "web02", "sql01.contoso.local"]


class TestParseDeviceList:
    @pytest.mark.parametrize("newline", ["\n", "\r\n", "\r"])
    def test_line_endings_give_same_devices(self, newline):
        assert parse_device_list(newline.join(DEVICE_LIST)) == EXPECTED

    def test_file_round_trip_with_crlf(self, tmp_path):
        path = tmp_path / "servers.txt"
        path.write_bytes("\r\n".join(DEVICE_LIST).encode("utf-8"))

        assert load_device_list(path) == EXPECTED

    def test_utf8_bom_is_ignored(self, tmp_path):
        path = tmp_path / "servers.txt"
        path.write_bytes(b"\xef\xbb\xbfweb01\nweb02\n")

        assert load_device_list(path) == ["web01", "web02"]


class TestNormalizeDevices:
    def test_duplicates_keep_first_spelling(self):
        assert normalize_devices(["WEB01", "web01", " Web01 "]) == ["WEB01"]

    def test_comments_and_blanks_dropped(self):
        assert normalize_devices(["#web01", "", "  ", "web02"]) == ["web02"]


class TestLoadDeviceList:
    def test_missing_file(self, tmp_path):
        with pytest.raises(DeviceListError, match="Cannot read"):
            load_device_list(tmp_path / "missing.txt")

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "servers.txt"
        path.write_bytes(b"srv01\n\xff\xfesrv02\n")

        with pytest.raises(DeviceListError, match="Cannot read device list"):
            load_device_list(path)

    def test_only_comments(self, tmp_path):
        path = tmp_path / "servers.txt"
        path.write_text("# nothing here\n\n")

        with pytest.raises(DeviceListError, match="no devices"):
            load_device_list(path)


class TestResolveDevices:
    def test_combines_inline_and_file(self, tmp_path):
        path = tmp_path / "servers.txt"
        path.write_text("web02\nweb03\n")

        assert resolve_devices(["web01", "web02"], path) == ["web01", "web02", "web03"]

    def test_empty_raises(self):
        with pytest.raises(DeviceListError, match="No devices"):
            resolve_devices([], None)

    def test_error_is_value_error(self):
        with pytest.raises(ValueError):
            resolve_devices(["  "])
