import pytest

from report_anchor.clock import LocalTimeSource, NTPTimeSource
from report_anchor.config import RegistryConfig, build_registry
from report_anchor.derive import DEFAULT_PROGRAM_ID
from report_anchor.errors import InvalidIdentity
from report_anchor.events import FileEventSink, HttpEventSink, NullEventSink
from report_anchor.store import SQLiteRecordStore


ENV_VARS = [
    "REPORT_ANCHOR_DB_PATH",
    "REPORT_ANCHOR_PROGRAM_ID",
    "REPORT_ANCHOR_EVENTS_PATH",
    "REPORT_ANCHOR_EVENTS_URL",
    "REPORT_ANCHOR_EVENTS_REQUIRED",
    "REPORT_ANCHOR_CLOCK",
    "REPORT_ANCHOR_NTP_SERVERS",
    "REPORT_ANCHOR_NTP_STRICT",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    config = RegistryConfig.from_env()
    assert config.db_path == "report_anchor.db"
    assert config.program_id == DEFAULT_PROGRAM_ID
    assert config.events_required is False
    assert isinstance(config.build_clock(), LocalTimeSource)
    assert isinstance(config.build_event_sink(), NullEventSink)


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("REPORT_ANCHOR_DB_PATH", str(tmp_path / "x.db"))
    monkeypatch.setenv("REPORT_ANCHOR_PROGRAM_ID", "0x" + "ab" * 32)
    monkeypatch.setenv("REPORT_ANCHOR_CLOCK", "NTP")
    monkeypatch.setenv("REPORT_ANCHOR_NTP_SERVERS", "a.example, b.example,")
    monkeypatch.setenv("REPORT_ANCHOR_NTP_STRICT", "yes")

    config = RegistryConfig.from_env()
    assert config.db_path == str(tmp_path / "x.db")
    assert config.program_id == b"\xab" * 32
    clock = config.build_clock()
    assert isinstance(clock, NTPTimeSource)
    assert clock.ntp_servers == ["a.example", "b.example"]
    assert clock.strict is True


def test_invalid_values(monkeypatch):
    monkeypatch.setenv("REPORT_ANCHOR_CLOCK", "sundial")
    with pytest.raises(ValueError):
        RegistryConfig.from_env()

    monkeypatch.setenv("REPORT_ANCHOR_CLOCK", "local")
    monkeypatch.setenv("REPORT_ANCHOR_PROGRAM_ID", "abcd")
    with pytest.raises(InvalidIdentity):
        RegistryConfig.from_env()


def test_event_sink_selection(monkeypatch, tmp_path):
    monkeypatch.setenv("REPORT_ANCHOR_EVENTS_PATH", str(tmp_path / "events.jsonl"))
    sink = RegistryConfig.from_env().build_event_sink()
    assert isinstance(sink, FileEventSink)
    assert sink.required is False

    monkeypatch.setenv("REPORT_ANCHOR_EVENTS_REQUIRED", "1")
    assert RegistryConfig.from_env().build_event_sink().required is True
    monkeypatch.delenv("REPORT_ANCHOR_EVENTS_REQUIRED")

    monkeypatch.setenv("REPORT_ANCHOR_EVENTS_URL", "http://127.0.0.1:9/events")
    monkeypatch.setenv("REPORT_ANCHOR_EVENTS_REQUIRED", "1")
    sink = RegistryConfig.from_env().build_event_sink()
    assert isinstance(sink, HttpEventSink)
    assert sink.required is True


def test_build_registry_uses_sqlite(tmp_path):
    config = RegistryConfig(db_path=str(tmp_path / "r.db"), program_id=b"\x01" * 32)
    registry = build_registry(config)
    assert isinstance(registry.store, SQLiteRecordStore)
    assert registry.program_id == b"\x01" * 32
