import json
import re
import socket
import struct
from datetime import timedelta
from unittest import mock

import pytest

from embedclaw.tools.base import ToolFailedError
from embedclaw.tools.get_time import (
    fetch_time_via_ntp,
    format_epoch,
    get_time_execute,
    make_get_time_tool,
    parse_posix_timezone,
)

EPOCH = 1760000000
NTP_DELTA = 2208988800


class FakeSocket:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.sent = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def settimeout(self, value):
        self.timeout = value

    def sendto(self, data, address):
        if self.error is not None:
            raise self.error
        self.sent.append((data, address))

    def recvfrom(self, size):
        return self.reply, ("127.0.0.1", 123)


def ntp_reply(seconds):
    header = bytes([0x24]) + bytes(39)
    return header + struct.pack("!II", seconds, 0)


def patched_socket(fake):
    return mock.patch.object(socket, "socket", lambda *args, **kwargs: fake)


def test_format_rejects_unset_epoch():
    assert format_epoch(0) is None


def test_format_accepts_valid_epoch():
    text = format_epoch(EPOCH)
    assert text
    assert "2025" in text
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} UTC \(\w+\)", text)


def test_parse_timezone_inverts_posix_sign():
    tz = parse_posix_timezone("UTC-8")
    assert tz.utcoffset(None) == timedelta(hours=8)
    assert tz.tzname(None) == "UTC"


def test_parse_timezone_without_offset_is_utc():
    assert parse_posix_timezone("UTC").utcoffset(None) == timedelta(0)


def test_parse_timezone_quoted_name_with_minutes():
    tz = parse_posix_timezone("<+0530>-5:30")
    assert tz.utcoffset(None) == timedelta(hours=5, minutes=30)


@pytest.mark.parametrize("spec", ["", "8", "UTC-99", "EST5EDT,M3.2.0,M11.1.0"])
def test_parse_timezone_rejects_unsupported(spec):
    with pytest.raises(ValueError):
        parse_posix_timezone(spec)


def test_timezone_shifts_formatted_hour():
    east = format_epoch(EPOCH, "UTC-8")
    utc = format_epoch(EPOCH, "UTC0")
    assert east[:10] == utc[:10]
    assert int(east[11:13]) - int(utc[11:13]) == 8


def test_fetch_time_reads_transmit_timestamp():
    fake = FakeSocket(reply=ntp_reply(EPOCH + NTP_DELTA))
    with patched_socket(fake):
        assert fetch_time_via_ntp("ntp.example.com", 1.0) == EPOCH
    data, address = fake.sent[0]
    assert address == ("ntp.example.com", 123)
    assert len(data) == 48
    assert data[0] == 0x1B


def test_fetch_time_rejects_short_reply():
    with patched_socket(FakeSocket(reply=b"\x24" * 10)):
        with pytest.raises(ToolFailedError):
            fetch_time_via_ntp("ntp.example.com", 1.0)


def test_fetch_time_wraps_socket_errors():
    with patched_socket(FakeSocket(error=OSError("unreachable"))):
        with pytest.raises(ToolFailedError, match="NTP sync failed"):
            fetch_time_via_ntp("ntp.example.com", 1.0)


def test_execute_uses_ntp_time():
    with patched_socket(FakeSocket(reply=ntp_reply(EPOCH + NTP_DELTA))):
        assert get_time_execute("{}", "ntp.example.com", "UTC-8") == format_epoch(EPOCH, "UTC-8")


def test_execute_falls_back_to_system_time():
    with patched_socket(FakeSocket(error=OSError("down"))):
        with mock.patch("time.time", return_value=float(EPOCH)):
            text = get_time_execute("{}", "ntp.example.com", "UTC-8")
    assert "2025" in text


def test_execute_fails_when_no_clock_is_set():
    with patched_socket(FakeSocket(error=OSError("down"))):
        with mock.patch("time.time", return_value=0.0):
            with pytest.raises(ToolFailedError, match="failed to fetch time"):
                get_time_execute("{}", "ntp.example.com", "UTC-8")


def test_tool_definition():
    tool = make_get_time_tool("ntp.example.com", "UTC-8")
    assert tool.name == "get_current_time"
    schema = json.loads(tool.input_schema_json)
    assert schema == {"type": "object", "properties": {}, "required": []}
    with patched_socket(FakeSocket(reply=ntp_reply(EPOCH + NTP_DELTA))):
        assert "2025" in tool.run("{}")