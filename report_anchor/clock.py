"""Trusted time sources.

``created_at`` must come from a clock the reporter does not control. The
local clock is the default; ``NTPTimeSource`` cross-checks against NTP so a
host whose clock was moved cannot backdate or postdate anchors unnoticed.
"""

from __future__ import annotations

import abc
import logging
import threading
import time
from typing import List, Optional

import ntplib

from .errors import ClockUnavailable


logger = logging.getLogger("report_anchor.clock")

DEFAULT_NTP_SERVERS = ["pool.ntp.org", "time.google.com"]


class TrustedTimeSource(abc.ABC):
    """Source of signed 64-bit unix timestamps (seconds)."""

    @abc.abstractmethod
    def now(self) -> int:
        raise NotImplementedError


class LocalTimeSource(TrustedTimeSource):
    """Local system time (not secure against clock skew)."""

    def now(self) -> int:
        return int(time.time())


class FixedTimeSource(TrustedTimeSource):
    """Manually advanced clock for tests and replays."""

    def __init__(self, start: int = 0):
        self._lock = threading.Lock()
        self._now = int(start)

    def now(self) -> int:
        with self._lock:
            return self._now

    def set(self, value: int) -> None:
        with self._lock:
            self._now = int(value)

    def advance(self, seconds: int = 1) -> int:
        with self._lock:
            self._now += int(seconds)
            return self._now


class NTPTimeSource(TrustedTimeSource):
    """
    NTP-verified time source.

    Queries NTP servers in order. When none answers, ``strict`` raises
    ``ClockUnavailable``; otherwise local time is used with a warning.
    """

    def __init__(
        self,
        ntp_servers: Optional[List[str]] = None,
        *,
        timeout_s: float = 2.0,
        max_drift_seconds: float = 5.0,
        strict: bool = False,
        client: Optional[ntplib.NTPClient] = None,
    ):
        self.ntp_servers = list(ntp_servers or DEFAULT_NTP_SERVERS)
        self.timeout_s = float(timeout_s)
        self.max_drift_seconds = float(max_drift_seconds)
        self.strict = bool(strict)
        self.client = client or ntplib.NTPClient()

    def now(self) -> int:
        errors = []
        for server in self.ntp_servers:
            try:
                response = self.client.request(server, version=3, timeout=self.timeout_s)
            except (ntplib.NTPException, OSError) as e:
                errors.append(f"{server}: {e}")
                continue
            ntp_time = float(response.tx_time)
            drift = abs(ntp_time - time.time())
            if drift > self.max_drift_seconds:
                logger.warning("Clock drift detected: %.1fs against %s", drift, server)
            return int(ntp_time)

        if self.strict:
            raise ClockUnavailable(details={"servers": self.ntp_servers, "errors": errors})
        logger.warning("All NTP servers unreachable, using local time")
        return int(time.time())
