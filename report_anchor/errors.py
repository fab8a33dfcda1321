"""Stable error taxonomy for report anchoring.

Every failure surfaced by the registry, the HTTP layer and the CLI is an
``AnchorError`` carrying:
- a stable ``code`` string suitable for programmatic handling,
- a ``retryable`` flag and ``http_status`` for transport layers,
- structured ``details`` for debugging without parsing messages.

Each kind also has its own subclass so library callers can write
``except DuplicateReport:`` instead of comparing codes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Type


# Registry outcomes
RA_E_DUPLICATE_REPORT = "RA_E_DUPLICATE_REPORT"
RA_E_NOT_FOUND = "RA_E_NOT_FOUND"
RA_E_ADDRESS_SPACE_EXHAUSTED = "RA_E_ADDRESS_SPACE_EXHAUSTED"
RA_E_CORRUPT_RECORD = "RA_E_CORRUPT_RECORD"

# Input validation
RA_E_INVALID_HASH = "RA_E_INVALID_HASH"
RA_E_INVALID_IDENTITY = "RA_E_INVALID_IDENTITY"
RA_E_INVALID_SEEDS = "RA_E_INVALID_SEEDS"
RA_E_BAD_REQUEST = "RA_E_BAD_REQUEST"

# Authentication
RA_E_AUTH_FAILED = "RA_E_AUTH_FAILED"

# Collaborators
RA_E_EVENT_SINK = "RA_E_EVENT_SINK"
RA_E_CLOCK = "RA_E_CLOCK"
RA_E_STORE_UNAVAILABLE = "RA_E_STORE_UNAVAILABLE"


@dataclass
class AnchorError(Exception):
    """Base exception with stable error code."""

    code: str
    message: str
    retryable: bool = False
    http_status: int = 400
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": bool(self.retryable),
            "http_status": int(self.http_status),
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass
class DuplicateReport(AnchorError):
    code: str = RA_E_DUPLICATE_REPORT
    message: str = "Report hash already anchored by this reporter"
    http_status: int = 409


@dataclass
class ReportNotFound(AnchorError):
    code: str = RA_E_NOT_FOUND
    message: str = "No report anchored for this reporter and hash"
    http_status: int = 404


@dataclass
class AddressSpaceExhausted(AnchorError):
    code: str = RA_E_ADDRESS_SPACE_EXHAUSTED
    message: str = "No bump seed yields a valid derived address"
    http_status: int = 500


@dataclass
class CorruptRecord(AnchorError):
    code: str = RA_E_CORRUPT_RECORD
    message: str = "Stored bytes do not decode to the requested record"
    http_status: int = 500


@dataclass
class InvalidHash(AnchorError):
    code: str = RA_E_INVALID_HASH
    message: str = "Invalid report hash format"


@dataclass
class InvalidIdentity(AnchorError):
    code: str = RA_E_INVALID_IDENTITY
    message: str = "Invalid identity format"


@dataclass
class InvalidSeeds(AnchorError):
    code: str = RA_E_INVALID_SEEDS
    message: str = "Invalid derivation seeds"


@dataclass
class BadRequest(AnchorError):
    code: str = RA_E_BAD_REQUEST
    message: str = "Malformed request"


@dataclass
class AuthenticationFailed(AnchorError):
    code: str = RA_E_AUTH_FAILED
    message: str = "Reporter authentication failed"
    http_status: int = 401


@dataclass
class EventSinkError(AnchorError):
    code: str = RA_E_EVENT_SINK
    message: str = "Creation event could not be delivered"
    retryable: bool = True
    http_status: int = 503


@dataclass
class ClockUnavailable(AnchorError):
    code: str = RA_E_CLOCK
    message: str = "Trusted clock unavailable"
    retryable: bool = True
    http_status: int = 503


@dataclass
class StoreUnavailable(AnchorError):
    code: str = RA_E_STORE_UNAVAILABLE
    message: str = "Record store busy or unavailable"
    retryable: bool = True
    http_status: int = 503


_BY_CODE: Dict[str, Type[AnchorError]] = {
    cls.code: cls  # type: ignore[misc]
    for cls in (
        DuplicateReport,
        ReportNotFound,
        AddressSpaceExhausted,
        CorruptRecord,
        InvalidHash,
        InvalidIdentity,
        InvalidSeeds,
        BadRequest,
        AuthenticationFailed,
        EventSinkError,
        ClockUnavailable,
        StoreUnavailable,
    )
}


def anchor_error(code: str, message: str, **details: Any) -> AnchorError:
    """Build the subclass registered for ``code`` (or a bare AnchorError)."""
    cls = _BY_CODE.get(code)
    if cls is None:
        return AnchorError(code=code, message=message, details=details)
    return cls(message=message, details=details)
