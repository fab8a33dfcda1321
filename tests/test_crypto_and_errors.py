import os

import pytest

from report_anchor.crypto import (
    IdentityKeyPair,
    coerce_digest,
    coerce_identity,
    generate_key_file,
    load_key_file,
    safe_hash_encode,
    verify_signature,
)
from report_anchor.errors import (
    AnchorError,
    DuplicateReport,
    EventSinkError,
    InvalidHash,
    InvalidIdentity,
    StoreUnavailable,
    anchor_error,
)


def test_coerce_accepts_bytes_and_hex():
    raw = bytes(range(32))
    assert coerce_identity(raw) == raw
    assert coerce_identity(bytearray(raw)) == raw
    assert coerce_identity(raw.hex()) == raw
    assert coerce_identity(" 0X" + raw.hex().upper() + " ") == raw
    assert coerce_digest(memoryview(raw)) == raw


def test_coerce_rejects_bad_shapes():
    with pytest.raises(InvalidIdentity) as ei:
        coerce_identity(b"\x00" * 16, "reporter")
    assert ei.value.details == {"field": "reporter", "length": 16}
    with pytest.raises(InvalidIdentity):
        coerce_identity(12345)
    with pytest.raises(InvalidHash):
        coerce_digest("g" * 64)


def test_safe_hash_encode_prevents_delimiter_collisions():
    assert safe_hash_encode(["ab", "c"]) != safe_hash_encode(["a", "bc"])
    assert safe_hash_encode(["x"]) == (1).to_bytes(8, "big") + b"x"


def test_keypair_sign_verify():
    key = IdentityKeyPair.from_seed(b"\x07" * 32)
    sig = key.sign(b"msg")
    assert key.verify(b"msg", sig)
    assert not key.verify(b"other", sig)
    assert verify_signature(b"\x00" * 5, b"msg", sig) is False

    verify_only = IdentityKeyPair.from_public_key(key.public_key_hex)
    assert not verify_only.can_sign()
    with pytest.raises(ValueError):
        verify_only.sign(b"msg")


def test_key_file_round_trip(tmp_path):
    path = tmp_path / "keys" / "reporter.key"
    key = generate_key_file(str(path))
    loaded = load_key_file(str(path))
    assert loaded is not None
    assert loaded.public_key_bytes == key.public_key_bytes


def test_key_file_missing_or_invalid(tmp_path):
    assert load_key_file(str(tmp_path / "none.key")) is None

    bad = tmp_path / "bad.key"
    bad.write_text("zz" * 32)
    os.chmod(bad, 0o600)
    with pytest.warns(UserWarning):
        assert load_key_file(str(bad)) is None


@pytest.mark.skipif(os.name != "posix", reason="permission bits are POSIX-only")
def test_key_file_loose_permissions_rejected(tmp_path):
    path = tmp_path / "reporter.key"
    generate_key_file(str(path))
    os.chmod(path, 0o644)
    with pytest.warns(UserWarning, match="insecure permissions"):
        assert load_key_file(str(path)) is None
    assert load_key_file(str(path), require_strict_permissions=False) is not None


def test_error_envelope():
    err = DuplicateReport(details={"address": "aa"})
    assert isinstance(err, AnchorError)
    assert str(err) == "RA_E_DUPLICATE_REPORT: Report hash already anchored by this reporter"
    assert err.as_dict() == {
        "code": "RA_E_DUPLICATE_REPORT",
        "message": "Report hash already anchored by this reporter",
        "retryable": False,
        "http_status": 409,
        "details": {"address": "aa"},
    }


def test_anchor_error_factory():
    err = anchor_error("RA_E_EVENT_SINK", "down", url="http://x")
    assert isinstance(err, EventSinkError)
    assert err.retryable is True
    assert err.details == {"url": "http://x"}

    busy = anchor_error("RA_E_STORE_UNAVAILABLE", "locked", op="claim")
    assert isinstance(busy, StoreUnavailable)
    assert (busy.retryable, busy.http_status) == (True, 503)

    unknown = anchor_error("RA_E_SOMETHING", "?")
    assert type(unknown) is AnchorError
    assert unknown.http_status == 400
