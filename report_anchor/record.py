"""AnchoredReport entity and its fixed wire layout.

Layout (112 bytes, no padding, no version field):

    [0:8)      record-kind tag, sha256(b"account:AnchoredReport")[:8]
    [8:40)     reporter
    [40:72)    analyzed_wallet
    [72:104)   report_hash
    [104:112)  created_at, signed 64-bit little-endian

Adding a field means a new record-kind tag; records are never migrated in place.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import Any, Dict

from .crypto import coerce_digest, coerce_identity
from .errors import CorruptRecord


RECORD_KIND = "AnchoredReport"
RECORD_DISCRIMINATOR = hashlib.sha256(f"account:{RECORD_KIND}".encode("utf-8")).digest()[:8]

_LAYOUT = struct.Struct("<8s32s32s32sq")
RECORD_SIZE = _LAYOUT.size

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1


@dataclass(frozen=True)
class AnchoredReport:
    reporter: bytes
    analyzed_wallet: bytes
    report_hash: bytes
    created_at: int

    def __post_init__(self):
        object.__setattr__(self, "reporter", coerce_identity(self.reporter, "reporter"))
        object.__setattr__(self, "analyzed_wallet", coerce_identity(self.analyzed_wallet, "analyzed_wallet"))
        object.__setattr__(self, "report_hash", coerce_digest(self.report_hash))
        if isinstance(self.created_at, bool) or not isinstance(self.created_at, int):
            raise TypeError("created_at must be an int unix timestamp")
        if not INT64_MIN <= self.created_at <= INT64_MAX:
            raise ValueError(f"created_at out of int64 range: {self.created_at}")

    def to_bytes(self) -> bytes:
        return _LAYOUT.pack(
            RECORD_DISCRIMINATOR,
            self.reporter,
            self.analyzed_wallet,
            self.report_hash,
            self.created_at,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "AnchoredReport":
        if len(data) != RECORD_SIZE:
            raise CorruptRecord(
                message=f"Record must be {RECORD_SIZE} bytes, got {len(data)}",
                details={"length": len(data)},
            )
        tag, reporter, wallet, digest, created_at = _LAYOUT.unpack(bytes(data))
        if tag != RECORD_DISCRIMINATOR:
            raise CorruptRecord(
                message="Record-kind tag mismatch",
                details={"expected": RECORD_DISCRIMINATOR.hex(), "got": tag.hex()},
            )
        return cls(reporter=reporter, analyzed_wallet=wallet, report_hash=digest, created_at=created_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reporter": self.reporter.hex(),
            "analyzed_wallet": self.analyzed_wallet.hex(),
            "report_hash": self.report_hash.hex(),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnchoredReport":
        return cls(
            reporter=data["reporter"],
            analyzed_wallet=data["analyzed_wallet"],
            report_hash=data["report_hash"],
            created_at=int(data["created_at"]),
        )
