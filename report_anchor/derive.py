"""Deterministic address derivation.

A record's storage location is a pure function of its seeds, so anyone can
recompute it without an index. The addressing rule is the host's
program-derived-address scheme:

    candidate = sha256(seed_0 || ... || seed_n || bump || program_id || "ProgramDerivedAddress")

The first seed is always the namespace tag, so identical identity/hash bytes
under different tags never land on the same address. A candidate that is a
valid Ed25519 point is *reserved* (some private key could control it) and the
next bump is tried, counting up from 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence, Union

from .crypto import BytesLike, coerce_digest, coerce_identity, is_on_curve, sha256
from .errors import AddressSpaceExhausted, InvalidSeeds


PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEED_LEN = 32
MAX_SEEDS = 16  # including the bump seed

REPORT_NAMESPACE = b"report"

# Registry identity used when none is configured.
DEFAULT_PROGRAM_ID = sha256(b"privacy-report-anchor")


@dataclass(frozen=True)
class DerivedAddress:
    address: bytes
    bump: int

    @property
    def hex(self) -> str:
        return self.address.hex()

    def to_dict(self) -> dict:
        return {"address": self.hex, "bump": self.bump}


class AddressDeriver:
    """Derives record addresses for one registry (``program_id``).

    ``is_reserved`` decides whether a candidate is unusable under the host's
    addressing rules; it defaults to Ed25519 curve membership.
    """

    def __init__(
        self,
        program_id: Union[str, BytesLike] = DEFAULT_PROGRAM_ID,
        *,
        is_reserved: Callable[[bytes], bool] = is_on_curve,
    ):
        self.program_id = coerce_identity(program_id, "program_id")
        self.is_reserved = is_reserved

    def create_address(self, seeds: Sequence[bytes]) -> bytes:
        """Hash one candidate address from the full seed list (bump included)."""
        if len(seeds) > MAX_SEEDS:
            raise InvalidSeeds(
                message=f"At most {MAX_SEEDS} seeds allowed, got {len(seeds)}",
                details={"seed_count": len(seeds)},
            )
        buf = bytearray()
        for i, seed in enumerate(seeds):
            if len(seed) > MAX_SEED_LEN:
                raise InvalidSeeds(
                    message=f"Seed {i} exceeds {MAX_SEED_LEN} bytes",
                    details={"seed_index": i, "length": len(seed)},
                )
            buf += seed
        buf += self.program_id
        buf += PDA_MARKER
        return sha256(bytes(buf))

    def find_address(self, seeds: Sequence[bytes]) -> DerivedAddress:
        """Return the first non-reserved address, searching bump 0..255."""
        base = [bytes(s) for s in seeds]
        for bump in range(256):
            candidate = self.create_address(base + [bytes([bump])])
            if not self.is_reserved(candidate):
                return DerivedAddress(address=candidate, bump=bump)
        raise AddressSpaceExhausted(details={"seed_count": len(base), "program_id": self.program_id.hex()})

    def derive(
        self,
        namespace_tag: bytes,
        reporter_identity: Union[str, BytesLike],
        report_hash: Union[str, BytesLike],
    ) -> DerivedAddress:
        reporter = coerce_identity(reporter_identity, "reporter")
        digest = coerce_digest(report_hash)
        return self.find_address([bytes(namespace_tag), reporter, digest])


def derive(
    namespace_tag: bytes,
    reporter_identity: Union[str, BytesLike],
    report_hash: Union[str, BytesLike],
    program_id: Union[str, BytesLike] = DEFAULT_PROGRAM_ID,
) -> DerivedAddress:
    """Convenience wrapper around ``AddressDeriver(program_id).derive``."""
    return AddressDeriver(program_id).derive(namespace_tag, reporter_identity, report_hash)
