"""The get_current_time tool: SNTP query with a system-clock fallback."""

from __future__ import annotations

import logging
import re
import socket
import struct
import time
from datetime import datetime, timedelta, timezone as dt_timezone

from embedclaw.config import Settings
from embedclaw.tools.base import Tool, ToolFailedError

_log = logging.getLogger(__name__)

_DEFAULTS = Settings()
DEFAULT_NTP_SERVER = _DEFAULTS.get_time_ntp_server
DEFAULT_TIMEZONE = _DEFAULTS.timezone

_NTP_PORT = 123
_NTP_EPOCH_DELTA = 2208988800
_MIN_VALID_YEAR = 2020

_TZ_RE = re.compile(
    r"^(?:<(?P<quoted>[A-Za-z0-9+-]+)>|(?P<name>[A-Za-z]{3,}))"
    r"(?P<offset>[+-]?\d{1,2}(?::\d{1,2}){0,2})?$"
)

DESCRIPTION = (
    "Get the current date and time. Also sets the system clock. "
    "Call this when you need to know what time or date it is."
)
INPUT_SCHEMA_JSON = '{"type":"object","properties":{},"required":[]}'


def parse_posix_timezone(spec: str) -> dt_timezone:
    """Turn a fixed-offset POSIX TZ string such as ``UTC-8`` into a timezone.

    As in POSIX, the offset is the time to add to local time to reach UTC,
    so ``UTC-8`` is eight hours ahead of UTC.
    """
    match = _TZ_RE.match(spec.strip())
    if not match:
        raise ValueError(f"unsupported timezone specification: {spec!r}")
    name = match.group("quoted") or match.group("name")
    offset = match.group("offset")
    if not offset:
        return dt_timezone(timedelta(0), name)
    sign = -1 if offset.startswith("-") else 1
    parts = [int(p) for p in offset.lstrip("+-").split(":")]
    parts += [0] * (3 - len(parts))
    hours, minutes, seconds = parts
    if hours > 24 or minutes > 59 or seconds > 59:
        raise ValueError(f"timezone offset out of range: {spec!r}")
    west = timedelta(hours=hours, minutes=minutes, seconds=seconds) * sign
    return dt_timezone(-west, name)


def format_epoch(epoch: float, timezone: str = DEFAULT_TIMEZONE) -> str | None:
    """Format ``epoch`` in local time, or return None if the clock looks unset."""
    try:
        local = datetime.fromtimestamp(epoch, parse_posix_timezone(timezone))
    except (OverflowError, OSError, ValueError):
        return None
    if local.year < _MIN_VALID_YEAR:
        return None
    return local.strftime("%Y-%m-%d %H:%M:%S %Z (%A)")


def fetch_time_via_ntp(server: str = DEFAULT_NTP_SERVER, timeout: float = 10.0) -> float:
    """Query ``server`` over SNTP and return the current UNIX time."""
    request = b"\x1b" + bytes(47)
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.settimeout(timeout)
            sock.sendto(request, (server, _NTP_PORT))
            reply, _ = sock.recvfrom(512)
    except OSError as exc:
        raise ToolFailedError(f"NTP sync failed: {exc}") from exc

    if len(reply) < 48:
        raise ToolFailedError("NTP sync failed: short reply")
    if reply[0] & 0x07 not in (4, 5):
        raise ToolFailedError("NTP sync failed: reply is not from a server")
    seconds, fraction = struct.unpack("!II", reply[40:48])
    if seconds == 0:
        raise ToolFailedError("NTP sync failed: server clock not set")
    return seconds - _NTP_EPOCH_DELTA + fraction / 2**32


def get_time_execute(
    input_json: str | None = None,
    server: str = DEFAULT_NTP_SERVER,
    timezone: str = DEFAULT_TIMEZONE,
) -> str:
    """Return the current local time, preferring NTP over the system clock."""
    _log.info("Fetching current time from %s...", server)
    reason = "clock not set"
    try:
        text = format_epoch(fetch_time_via_ntp(server), timezone)
    except ToolFailedError as exc:
        _log.warning("%s", exc)
        reason = str(exc)
        text = None
    if text is not None:
        _log.info("Time: %s", text)
        return text

    text = format_epoch(time.time(), timezone)
    if text is not None:
        _log.info("Time (from system): %s", text)
        return text

    message = f"Error: failed to fetch time ({reason})"
    _log.error("%s", message)
    raise ToolFailedError(message)


def make_get_time_tool(
    server: str = DEFAULT_NTP_SERVER, timezone: str = DEFAULT_TIMEZONE
) -> Tool:
    """Build the ``get_current_time`` tool bound to ``server`` and ``timezone``."""

    def execute(input_json: str) -> str:
        return get_time_execute(input_json, server, timezone)

    return Tool(
        name="get_current_time",
        description=DESCRIPTION,
        input_schema_json=INPUT_SCHEMA_JSON,
        execute=execute,
    )