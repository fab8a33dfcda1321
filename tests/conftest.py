import hashlib

import pytest

from report_anchor.auth import AuthenticatedReporter
from report_anchor.clock import FixedTimeSource
from report_anchor.crypto import IdentityKeyPair
from report_anchor.registry import AnchorRegistry
from report_anchor.store import InMemoryRecordStore


T0 = 1_767_225_600  # 2026-01-01T00:00:00Z


@pytest.fixture
def reporter_key() -> IdentityKeyPair:
    return IdentityKeyPair.from_seed(b"\x01" * 32)


@pytest.fixture
def other_reporter_key() -> IdentityKeyPair:
    return IdentityKeyPair.from_seed(b"\x02" * 32)


@pytest.fixture
def reporter(reporter_key) -> AuthenticatedReporter:
    return AuthenticatedReporter.from_keypair(reporter_key)


@pytest.fixture
def wallet() -> bytes:
    return IdentityKeyPair.from_seed(b"\x03" * 32).public_key_bytes


@pytest.fixture
def report_hash() -> bytes:
    return hashlib.sha256(b'{"wallet":"W","score":42}').digest()


@pytest.fixture
def clock() -> FixedTimeSource:
    return FixedTimeSource(T0)


@pytest.fixture
def registry(clock) -> AnchorRegistry:
    return AnchorRegistry(InMemoryRecordStore(), clock=clock)
