import hashlib
import struct

import pytest

from report_anchor.errors import CorruptRecord, InvalidHash, InvalidIdentity
from report_anchor.record import (
    INT64_MAX,
    INT64_MIN,
    RECORD_DISCRIMINATOR,
    RECORD_SIZE,
    AnchoredReport,
)


REPORTER = b"\xaa" * 32
WALLET = b"\xbb" * 32
DIGEST = b"\xcc" * 32


def _record(created_at=1_700_000_000):
    return AnchoredReport(reporter=REPORTER, analyzed_wallet=WALLET, report_hash=DIGEST, created_at=created_at)


def test_layout_offsets():
    data = _record().to_bytes()
    assert len(data) == RECORD_SIZE == 112
    assert data[0:8] == RECORD_DISCRIMINATOR
    assert data[8:40] == REPORTER
    assert data[40:72] == WALLET
    assert data[72:104] == DIGEST
    assert data[104:112] == (1_700_000_000).to_bytes(8, "little", signed=True)


def test_discriminator_is_kind_hash_prefix():
    assert RECORD_DISCRIMINATOR == hashlib.sha256(b"account:AnchoredReport").digest()[:8]


@pytest.mark.parametrize("created_at", [0, -1, INT64_MIN, INT64_MAX])
def test_created_at_is_signed_int64(created_at):
    data = _record(created_at).to_bytes()
    assert struct.unpack("<q", data[104:112])[0] == created_at
    assert AnchoredReport.from_bytes(data).created_at == created_at


def test_from_bytes_restores_all_fields():
    rec = _record()
    assert AnchoredReport.from_bytes(rec.to_bytes()) == rec


def test_from_bytes_rejects_wrong_size():
    data = _record().to_bytes()
    with pytest.raises(CorruptRecord):
        AnchoredReport.from_bytes(data[:-1])
    with pytest.raises(CorruptRecord):
        AnchoredReport.from_bytes(data + b"\x00")


def test_from_bytes_rejects_wrong_tag():
    data = bytearray(_record().to_bytes())
    data[0] ^= 0xFF
    with pytest.raises(CorruptRecord) as ei:
        AnchoredReport.from_bytes(bytes(data))
    assert ei.value.details["expected"] == RECORD_DISCRIMINATOR.hex()


def test_field_validation():
    with pytest.raises(ValueError):
        _record(INT64_MAX + 1)
    with pytest.raises(TypeError):
        _record(True)
    with pytest.raises(TypeError):
        _record(1.5)
    with pytest.raises(InvalidIdentity):
        AnchoredReport(reporter=b"\x00" * 31, analyzed_wallet=WALLET, report_hash=DIGEST, created_at=0)
    with pytest.raises(InvalidHash):
        AnchoredReport(reporter=REPORTER, analyzed_wallet=WALLET, report_hash=b"", created_at=0)


def test_dict_form_is_hex():
    d = _record().to_dict()
    assert d == {
        "reporter": "aa" * 32,
        "analyzed_wallet": "bb" * 32,
        "report_hash": "cc" * 32,
        "created_at": 1_700_000_000,
    }
    assert AnchoredReport.from_dict(d) == _record()
