"""Environment-driven configuration.

Environment variables:
- REPORT_ANCHOR_DB_PATH: SQLite path (default: report_anchor.db)
- REPORT_ANCHOR_PROGRAM_ID: 32-byte hex registry identity used in derivation
- REPORT_ANCHOR_EVENTS_PATH: JSONL file for creation events
- REPORT_ANCHOR_EVENTS_URL: HTTP endpoint for creation events (wins over the file)
- REPORT_ANCHOR_EVENTS_REQUIRED: if '1', fail anchors whose event is not delivered
- REPORT_ANCHOR_CLOCK: 'local' (default) or 'ntp'
- REPORT_ANCHOR_NTP_SERVERS: comma-separated NTP servers
- REPORT_ANCHOR_NTP_STRICT: if '1', fail instead of falling back to local time
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from .clock import DEFAULT_NTP_SERVERS, LocalTimeSource, NTPTimeSource, TrustedTimeSource
from .crypto import coerce_identity
from .derive import DEFAULT_PROGRAM_ID
from .events import EventSink, FileEventSink, HttpEventSink, NullEventSink
from .registry import AnchorRegistry
from .store import SQLiteRecordStore


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class RegistryConfig:
    db_path: str = "report_anchor.db"
    program_id: bytes = DEFAULT_PROGRAM_ID
    events_path: Optional[str] = None
    events_url: Optional[str] = None
    events_required: bool = False
    clock: str = "local"
    ntp_servers: List[str] = field(default_factory=lambda: list(DEFAULT_NTP_SERVERS))
    ntp_strict: bool = False

    @classmethod
    def from_env(cls) -> "RegistryConfig":
        program_id_hex = (os.getenv("REPORT_ANCHOR_PROGRAM_ID", "") or "").strip()
        program_id = coerce_identity(program_id_hex, "program_id") if program_id_hex else DEFAULT_PROGRAM_ID

        clock = (os.getenv("REPORT_ANCHOR_CLOCK", "local") or "local").strip().lower()
        if clock not in ("local", "ntp"):
            raise ValueError(f"REPORT_ANCHOR_CLOCK must be 'local' or 'ntp', got {clock!r}")

        servers_raw = (os.getenv("REPORT_ANCHOR_NTP_SERVERS", "") or "").strip()
        servers = [s.strip() for s in servers_raw.split(",") if s.strip()] or list(DEFAULT_NTP_SERVERS)

        return cls(
            db_path=(os.getenv("REPORT_ANCHOR_DB_PATH", "") or "").strip() or cls.db_path,
            program_id=program_id,
            events_path=(os.getenv("REPORT_ANCHOR_EVENTS_PATH", "") or "").strip() or None,
            events_url=(os.getenv("REPORT_ANCHOR_EVENTS_URL", "") or "").strip() or None,
            events_required=_env_flag("REPORT_ANCHOR_EVENTS_REQUIRED"),
            clock=clock,
            ntp_servers=servers,
            ntp_strict=_env_flag("REPORT_ANCHOR_NTP_STRICT"),
        )

    def build_clock(self) -> TrustedTimeSource:
        if self.clock == "ntp":
            return NTPTimeSource(self.ntp_servers, strict=self.ntp_strict)
        return LocalTimeSource()

    def build_event_sink(self) -> EventSink:
        if self.events_url:
            return HttpEventSink(self.events_url, required=self.events_required)
        if self.events_path:
            return FileEventSink(self.events_path, required=self.events_required)
        return NullEventSink()


def build_registry(config: Optional[RegistryConfig] = None) -> AnchorRegistry:
    config = config or RegistryConfig.from_env()
    return AnchorRegistry(
        SQLiteRecordStore(config.db_path),
        program_id=config.program_id,
        clock=config.build_clock(),
        events=config.build_event_sink(),
    )
