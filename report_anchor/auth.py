"""Reporter authentication.

``AnchorRegistry.anchor`` only accepts an ``AuthenticatedReporter``, so the
``reporter`` written into a record is always the caller, never a claimed name.
There are two ways to get one:

- ``authenticate_request``: verify a ``SignedAnchorRequest`` whose Ed25519
  signature covers the registry id, reporter, analyzed wallet and hash
  (remote callers, HTTP);
- ``AuthenticatedReporter.from_keypair``: prove possession of a local private
  key (in-process callers, CLI).
"""

from __future__ import annotations

import base64
import binascii
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Union

from .crypto import (
    BytesLike,
    IdentityKeyPair,
    coerce_digest,
    coerce_identity,
    safe_hash_encode,
    verify_signature,
)
from .errors import AuthenticationFailed, BadRequest


ANCHOR_REQUEST_DOMAIN = "REPORT_ANCHOR_V1"
_PROOF_DOMAIN = "REPORT_ANCHOR_KEY_PROOF_V1"

_CONSTRUCT_TOKEN = object()


def anchor_request_message(
    program_id: bytes,
    reporter: bytes,
    analyzed_wallet: bytes,
    report_hash: bytes,
) -> bytes:
    """Bytes a reporter signs to request an anchor."""
    return safe_hash_encode([
        ANCHOR_REQUEST_DOMAIN,
        bytes(program_id).hex(),
        bytes(reporter).hex(),
        bytes(analyzed_wallet).hex(),
        bytes(report_hash).hex(),
    ])


class AuthenticatedReporter:
    """A reporter identity whose key possession has been verified."""

    __slots__ = ("identity",)

    def __init__(self, identity: bytes, _token: object = None):
        if _token is not _CONSTRUCT_TOKEN:
            raise TypeError("use authenticate_request() or AuthenticatedReporter.from_keypair()")
        self.identity = bytes(identity)

    @classmethod
    def from_keypair(cls, keypair: IdentityKeyPair) -> "AuthenticatedReporter":
        if not keypair.can_sign():
            raise AuthenticationFailed(message="Key pair has no private key")
        challenge = safe_hash_encode([_PROOF_DOMAIN, secrets.token_hex(16)])
        if not verify_signature(keypair.public_key_bytes, challenge, keypair.sign(challenge)):
            raise AuthenticationFailed(message="Private key does not match public key")
        return cls(keypair.public_key_bytes, _CONSTRUCT_TOKEN)

    @property
    def hex(self) -> str:
        return self.identity.hex()

    def __eq__(self, other: object) -> bool:
        return isinstance(other, AuthenticatedReporter) and other.identity == self.identity

    def __hash__(self) -> int:
        return hash(self.identity)

    def __repr__(self) -> str:
        return f"AuthenticatedReporter({self.hex})"


@dataclass(frozen=True)
class SignedAnchorRequest:
    reporter: bytes
    analyzed_wallet: bytes
    report_hash: bytes
    signature: bytes

    @classmethod
    def create(
        cls,
        keypair: IdentityKeyPair,
        program_id: Union[str, BytesLike],
        analyzed_wallet: Union[str, BytesLike],
        report_hash: Union[str, BytesLike],
    ) -> "SignedAnchorRequest":
        wallet = coerce_identity(analyzed_wallet, "analyzed_wallet")
        digest = coerce_digest(report_hash)
        msg = anchor_request_message(
            coerce_identity(program_id, "program_id"), keypair.public_key_bytes, wallet, digest
        )
        return cls(
            reporter=keypair.public_key_bytes,
            analyzed_wallet=wallet,
            report_hash=digest,
            signature=keypair.sign(msg),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reporter": self.reporter.hex(),
            "analyzed_wallet": self.analyzed_wallet.hex(),
            "report_hash": self.report_hash.hex(),
            "signature_b64": base64.b64encode(self.signature).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignedAnchorRequest":
        try:
            signature = base64.b64decode(str(data["signature_b64"]), validate=True)
        except KeyError:
            raise BadRequest(message="signature_b64 required")
        except (binascii.Error, ValueError):
            raise BadRequest(message="signature_b64 is not valid base64")
        return cls(
            reporter=coerce_identity(data.get("reporter", ""), "reporter"),
            analyzed_wallet=coerce_identity(data.get("analyzed_wallet", ""), "analyzed_wallet"),
            report_hash=coerce_digest(data.get("report_hash", "")),
            signature=signature,
        )


def authenticate_request(
    request: SignedAnchorRequest,
    program_id: Union[str, BytesLike],
) -> AuthenticatedReporter:
    """Verify the request signature; raises AuthenticationFailed otherwise."""
    msg = anchor_request_message(
        coerce_identity(program_id, "program_id"),
        request.reporter,
        request.analyzed_wallet,
        request.report_hash,
    )
    if not verify_signature(request.reporter, msg, request.signature):
        raise AuthenticationFailed(
            message="Anchor request signature invalid",
            details={"reporter": bytes(request.reporter).hex()},
        )
    return AuthenticatedReporter(request.reporter, _CONSTRUCT_TOKEN)
