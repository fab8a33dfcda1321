"""
Report Anchor Cryptography Module

Identities in this system are raw 32-byte Ed25519 public keys:
- a reporter proves control of its identity by signing anchor requests,
- an analyzed wallet is just 32 opaque bytes (never authenticated),
- derived record addresses must NOT be valid Ed25519 points, so that no
  private key can ever control them (see ``is_on_curve``).

Text encodings are lowercase hex throughout.
"""

from __future__ import annotations

import hashlib
import json
import os
import stat
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from .errors import InvalidHash, InvalidIdentity


IDENTITY_LEN = 32
DIGEST_LEN = 32

BytesLike = Union[bytes, bytearray, memoryview]


def sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def safe_hash_encode(components: List[str]) -> bytes:
    """
    Length-prefixed encoding for hash/signature inputs.
    Prevents delimiter collision attacks.
    """
    result = b""
    for component in components:
        encoded = component.encode("utf-8")
        length_bytes = len(encoded).to_bytes(8, byteorder="big")
        result += length_bytes + encoded
    return result


def canonical_json_dumps(obj: Any) -> str:
    """Canonical JSON for idempotency keys and event hashing.

    - sort_keys: deterministic key order
    - separators: no whitespace ambiguity
    - ensure_ascii=False: preserve unicode deterministically (UTF-8)
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


# ---------------------------
# Ed25519 curve membership
# ---------------------------

# Edwards25519: -x^2 + y^2 = 1 + d*x^2*y^2 over GF(2^255 - 19)
_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P
_Y_MASK = (1 << 255) - 1


def is_on_curve(data: BytesLike) -> bool:
    """Return True when ``data`` decompresses to a point on Edwards25519.

    Decoding follows compressed-Edwards-Y: the little-endian integer with the
    sign bit masked off is ``y`` (reduced mod p), and a point exists iff
    ``x^2 = (y^2 - 1) / (d*y^2 + 1)`` is a square in the field. The sign bit
    only selects between ``x`` and ``-x`` and never makes decoding fail.
    """
    raw = bytes(data)
    if len(raw) != 32:
        return False
    y = (int.from_bytes(raw, "little") & _Y_MASK) % _P
    yy = (y * y) % _P
    u = (yy - 1) % _P
    v = (_D * yy + 1) % _P
    # v is never zero: -1/d is not a square mod p
    x2 = (u * pow(v, _P - 2, _P)) % _P
    if x2 == 0:
        return True
    # Euler's criterion
    return pow(x2, (_P - 1) // 2, _P) == 1


# ---------------------------
# Input coercion
# ---------------------------

def _coerce_32(value: Union[str, BytesLike], *, field_name: str, error: type) -> bytes:
    if isinstance(value, str):
        s = value.strip().lower()
        if s.startswith("0x"):
            s = s[2:]
        try:
            raw = bytes.fromhex(s)
        except ValueError:
            raise error(message=f"{field_name} is not valid hex", details={"field": field_name})
    elif isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
    else:
        raise error(message=f"{field_name} must be bytes or hex", details={"field": field_name})
    if len(raw) != 32:
        raise error(
            message=f"{field_name} must be 32 bytes, got {len(raw)}",
            details={"field": field_name, "length": len(raw)},
        )
    return raw


def coerce_identity(value: Union[str, BytesLike], field_name: str = "identity") -> bytes:
    """Parse a 32-byte identity from raw bytes or hex."""
    return _coerce_32(value, field_name=field_name, error=InvalidIdentity)


def coerce_digest(value: Union[str, BytesLike], field_name: str = "report_hash") -> bytes:
    """Parse a 32-byte digest from raw bytes or hex.

    Only the shape is checked; the content is never validated against anything.
    """
    return _coerce_32(value, field_name=field_name, error=InvalidHash)


# ---------------------------
# Identity key pairs
# ---------------------------

def _raw_private(private_key: Ed25519PrivateKey) -> bytes:
    return private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def _raw_public(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


@dataclass
class IdentityKeyPair:
    """
    Ed25519 key pair whose public key is a reporter identity.

    SECURITY: the seed should live in a 0600 key file or an external signer;
    servers only need public keys to authenticate anchor requests.
    """
    public_key_bytes: bytes
    private_key_bytes: Optional[bytes] = None

    @classmethod
    def generate(cls) -> "IdentityKeyPair":
        """Generate a new Ed25519 key pair."""
        private_key = Ed25519PrivateKey.generate()
        return cls(
            public_key_bytes=_raw_public(private_key.public_key()),
            private_key_bytes=_raw_private(private_key),
        )

    @classmethod
    def from_seed(cls, seed: bytes) -> "IdentityKeyPair":
        """Create key pair from a 32-byte seed (deterministic)."""
        if len(seed) != 32:
            raise ValueError(f"Seed must be 32 bytes, got {len(seed)}")
        private_key = Ed25519PrivateKey.from_private_bytes(seed)
        return cls(
            public_key_bytes=_raw_public(private_key.public_key()),
            private_key_bytes=_raw_private(private_key),
        )

    @classmethod
    def from_public_key(cls, public_key: Union[str, BytesLike]) -> "IdentityKeyPair":
        """Verification-only key pair."""
        return cls(public_key_bytes=coerce_identity(public_key, "public_key"))

    @property
    def identity(self) -> bytes:
        return self.public_key_bytes

    @property
    def public_key_hex(self) -> str:
        return self.public_key_bytes.hex()

    def can_sign(self) -> bool:
        return self.private_key_bytes is not None

    def sign(self, message: bytes) -> bytes:
        if not self.can_sign():
            raise ValueError(f"Key {self.public_key_hex} has no private key - cannot sign")
        private_key = Ed25519PrivateKey.from_private_bytes(self.private_key_bytes)
        return private_key.sign(message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        return verify_signature(self.public_key_bytes, message, signature)


def verify_signature(public_key: bytes, message: bytes, signature: bytes) -> bool:
    """Verify an Ed25519 signature; any malformed input is a failed check."""
    try:
        Ed25519PublicKey.from_public_bytes(bytes(public_key)).verify(bytes(signature), message)
        return True
    except InvalidSignature:
        return False
    except (ValueError, TypeError):
        return False


# ---------------------------
# Key files
# ---------------------------

def generate_key_file(path: str) -> IdentityKeyPair:
    """Generate a key pair and save its hex seed to ``path`` with 0600 permissions."""
    key = IdentityKeyPair.generate()
    seed_hex = key.private_key_bytes[:32].hex()

    key_path = Path(path)
    key_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(str(key_path), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    try:
        os.write(fd, seed_hex.encode("ascii"))
    finally:
        os.close(fd)
    return key


def load_key_file(path: str, require_strict_permissions: bool = True) -> Optional[IdentityKeyPair]:
    """
    Load a reporter key from a hex seed file.

    Returns None if the file doesn't exist or has loose permissions/invalid
    content (a warning explains which).
    """
    key_path = Path(path)
    if not key_path.exists():
        return None

    if require_strict_permissions and os.name == "posix":
        mode = os.stat(key_path).st_mode
        if mode & (stat.S_IRWXG | stat.S_IRWXO):
            warnings.warn(
                f"Key file {path} has insecure permissions. "
                f"Expected 0600, got {oct(mode & 0o777)}. "
                f"Run: chmod 600 {path}"
            )
            return None

    try:
        key_hex = key_path.read_text(encoding="ascii").strip()
        if len(key_hex) != 64:
            raise ValueError(f"Key must be 64 hex chars (32 bytes), got {len(key_hex)}")
        return IdentityKeyPair.from_seed(bytes.fromhex(key_hex))
    except ValueError as e:
        warnings.warn(f"Failed to load key from {path}: {e}")
        return None
