"""Report Anchor package.

Write-once anchoring of report digests:

- ``AddressDeriver`` maps (namespace, reporter, report_hash) to a
  deterministic address plus bump seed
- ``AnchorRegistry.anchor`` creates the record at that address exactly once
- ``AnchorRegistry.verify`` lets anyone recompute the address and read it back

Convenience imports
------------------
These are available as top-level imports and are loaded lazily:

    from report_anchor import AnchorRegistry, SQLiteRecordStore, create_app
"""

from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path
from typing import Any


def _read_version_from_pyproject() -> str | None:
    """Best-effort version discovery for dev/test environments."""

    try:
        pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
        txt = pyproject.read_text(encoding="utf-8")
    except OSError:
        return None
    m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
    return m.group(1) if m else None


__version__ = _read_version_from_pyproject() or "1.0.0"

__all__ = [
    "__version__",
    "AnchorRegistry",
    "AnchoredReport",
    "AddressDeriver",
    "DerivedAddress",
    "AuthenticatedReporter",
    "SignedAnchorRequest",
    "IdentityKeyPair",
    "InMemoryRecordStore",
    "SQLiteRecordStore",
    "AnchorError",
    "DuplicateReport",
    "AddressSpaceExhausted",
    "InvalidHash",
    "create_app",
]

# Lazy export map: name -> (module, attribute)
_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "AnchorRegistry": ("report_anchor.registry", "AnchorRegistry"),
    "AnchoredReport": ("report_anchor.record", "AnchoredReport"),
    "AddressDeriver": ("report_anchor.derive", "AddressDeriver"),
    "DerivedAddress": ("report_anchor.derive", "DerivedAddress"),
    "AuthenticatedReporter": ("report_anchor.auth", "AuthenticatedReporter"),
    "SignedAnchorRequest": ("report_anchor.auth", "SignedAnchorRequest"),
    "IdentityKeyPair": ("report_anchor.crypto", "IdentityKeyPair"),
    "InMemoryRecordStore": ("report_anchor.store", "InMemoryRecordStore"),
    "SQLiteRecordStore": ("report_anchor.store", "SQLiteRecordStore"),
    "AnchorError": ("report_anchor.errors", "AnchorError"),
    "DuplicateReport": ("report_anchor.errors", "DuplicateReport"),
    "AddressSpaceExhausted": ("report_anchor.errors", "AddressSpaceExhausted"),
    "InvalidHash": ("report_anchor.errors", "InvalidHash"),
    "create_app": ("report_anchor.server", "create_app"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        module = import_module(module_name)
        value = getattr(module, attr)
        # Cache the resolved attribute on the module for faster future access.
        globals()[name] = value
        return value
    raise AttributeError(f"module 'report_anchor' has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_EXPORTS.keys())))
