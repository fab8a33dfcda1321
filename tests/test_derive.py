import hashlib

import pytest

from report_anchor.crypto import IdentityKeyPair, is_on_curve
from report_anchor.derive import (
    DEFAULT_PROGRAM_ID,
    MAX_SEED_LEN,
    MAX_SEEDS,
    PDA_MARKER,
    REPORT_NAMESPACE,
    AddressDeriver,
    derive,
)
from report_anchor.errors import AddressSpaceExhausted, InvalidHash, InvalidIdentity, InvalidSeeds


R1 = IdentityKeyPair.from_seed(b"\x11" * 32).public_key_bytes
R2 = IdentityKeyPair.from_seed(b"\x22" * 32).public_key_bytes
H1 = hashlib.sha256(b"report one").digest()
H2 = hashlib.sha256(b"report two").digest()


def test_derive_is_deterministic():
    a = derive(REPORT_NAMESPACE, R1, H1)
    b = derive(REPORT_NAMESPACE, R1, H1)
    assert a == b
    assert len(a.address) == 32
    assert 0 <= a.bump <= 255


def test_derive_accepts_hex_and_bytes_equally():
    assert derive(REPORT_NAMESPACE, R1.hex(), H1.hex()) == derive(REPORT_NAMESPACE, R1, H1)
    assert derive(REPORT_NAMESPACE, "0x" + R1.hex().upper(), H1) == derive(REPORT_NAMESPACE, R1, H1)


def test_distinct_reporters_or_hashes_get_distinct_addresses():
    base = derive(REPORT_NAMESPACE, R1, H1).address
    assert derive(REPORT_NAMESPACE, R2, H1).address != base
    assert derive(REPORT_NAMESPACE, R1, H2).address != base
    assert derive(REPORT_NAMESPACE, R2, H2).address != base


def test_namespace_tag_separates_identical_inputs():
    assert derive(b"report", R1, H1).address != derive(b"receipt", R1, H1).address
    assert derive(b"report", R1, H1).address != derive(b"reports", R1, H1).address


def test_program_id_separates_registries():
    other = hashlib.sha256(b"another-registry").digest()
    assert derive(REPORT_NAMESPACE, R1, H1, other).address != derive(REPORT_NAMESPACE, R1, H1).address


def test_candidate_hash_layout():
    deriver = AddressDeriver(is_reserved=lambda _a: False)
    derived = deriver.derive(REPORT_NAMESPACE, R1, H1)
    expected = hashlib.sha256(
        REPORT_NAMESPACE + R1 + H1 + b"\x00" + DEFAULT_PROGRAM_ID + PDA_MARKER
    ).digest()
    assert derived.bump == 0
    assert derived.address == expected


def test_bump_search_counts_up_from_zero():
    plain = AddressDeriver()
    seeds = [REPORT_NAMESPACE, R1, H1]
    reserved = {plain.create_address(seeds + [bytes([b])]) for b in range(3)}

    deriver = AddressDeriver(is_reserved=lambda a: a in reserved)
    derived = deriver.derive(REPORT_NAMESPACE, R1, H1)
    assert derived.bump == 3
    assert derived.address == plain.create_address(seeds + [b"\x03"])


def test_default_rule_skips_on_curve_candidates():
    deriver = AddressDeriver()
    seeds = [REPORT_NAMESPACE, R1, H1]
    derived = deriver.find_address(seeds)
    assert not is_on_curve(derived.address)
    for b in range(derived.bump):
        assert is_on_curve(deriver.create_address(seeds + [bytes([b])]))


def test_exhausted_bump_space_is_reported():
    deriver = AddressDeriver(is_reserved=lambda _a: True)
    with pytest.raises(AddressSpaceExhausted) as ei:
        deriver.derive(REPORT_NAMESPACE, R1, H1)
    assert ei.value.code == "RA_E_ADDRESS_SPACE_EXHAUSTED"


def test_seed_limits_enforced():
    deriver = AddressDeriver()
    with pytest.raises(InvalidSeeds):
        deriver.find_address([b"x" * (MAX_SEED_LEN + 1)])
    # bump seed counts towards the limit
    with pytest.raises(InvalidSeeds):
        deriver.find_address([b"s"] * MAX_SEEDS)
    assert deriver.find_address([b"s"] * (MAX_SEEDS - 1)).bump >= 0


def test_malformed_inputs_rejected():
    with pytest.raises(InvalidIdentity):
        derive(REPORT_NAMESPACE, R1[:31], H1)
    with pytest.raises(InvalidHash):
        derive(REPORT_NAMESPACE, R1, H1 + b"\x00")
    with pytest.raises(InvalidHash):
        derive(REPORT_NAMESPACE, R1, "zz" * 32)
    with pytest.raises(InvalidIdentity):
        AddressDeriver(program_id=b"short")


def test_is_on_curve_known_points():
    # Ed25519 base point and a real public key decode to curve points.
    base_point = bytes.fromhex("5866666666666666666666666666666666666666666666666666666666666666")
    assert is_on_curve(base_point)
    assert is_on_curve(R1)
    assert is_on_curve(bytes(32))
    assert not is_on_curve(b"\x00" * 31)


def test_roughly_half_of_hashes_are_off_curve():
    flags = [is_on_curve(hashlib.sha256(bytes([i])).digest()) for i in range(64)]
    assert any(flags)
    assert not all(flags)
