"""Report hash generation.

The registry never sees report contents, only a 32-byte digest. This module
pins down how that digest is produced from a wallet analysis so a third party
holding the same payload can recompute it:

    report_hash = sha256( stringify(payload) )

where ``stringify`` produces the exact text of JavaScript's ``JSON.stringify``
(the web client hashes with it): payload fields in declaration order, no
whitespace, integral floats without a fraction, exponents as ``1e-7``/``1e+21``,
non-finite numbers as ``null``, integer-like object keys first. ``metrics_json``
is itself the stringified ``{score, metrics, meta}`` with absent keys omitted.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import math
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


SCORING_VERSION = "1.0.0"

_MAX_ARRAY_INDEX = 2**32 - 2


def _js_number(value: float) -> str:
    """ECMAScript Number::toString for a float."""
    if not math.isfinite(value):
        return "null"
    if value == 0:
        return "0"
    sign = "-" if value < 0 else ""
    mantissa, _, exp = repr(abs(value)).partition("e")
    int_part, _, frac_part = mantissa.partition(".")
    all_digits = int_part + frac_part
    point = len(int_part) + int(exp or 0)

    stripped = all_digits.lstrip("0")
    n = point - (len(all_digits) - len(stripped))
    digits = stripped.rstrip("0")
    k = len(digits)

    if k <= n <= 21:
        return sign + digits + "0" * (n - k)
    if 0 < n <= 21:
        return sign + digits[:n] + "." + digits[n:]
    if -6 < n <= 0:
        return sign + "0." + "0" * (-n) + digits
    e = n - 1
    exp_text = ("+" if e >= 0 else "-") + str(abs(e))
    if k == 1:
        return sign + digits + "e" + exp_text
    return sign + digits[0] + "." + digits[1:] + "e" + exp_text


def _is_array_index(key: str) -> bool:
    return key.isascii() and key.isdigit() and str(int(key)) == key and int(key) <= _MAX_ARRAY_INDEX


def _ordered_keys(obj: Dict[str, Any]) -> List[str]:
    # JS objects enumerate integer-like keys first, ascending, then insertion order.
    keys = [str(k) for k in obj]
    indices = sorted((k for k in keys if _is_array_index(k)), key=int)
    return indices + [k for k in keys if not _is_array_index(k)]


def js_stringify(obj: Any) -> str:
    """Serialize like ``JSON.stringify(obj)``."""
    if obj is None:
        return "null"
    if obj is True:
        return "true"
    if obj is False:
        return "false"
    if isinstance(obj, int):
        return str(obj)
    if isinstance(obj, float):
        return _js_number(obj)
    if isinstance(obj, str):
        return json.dumps(obj, ensure_ascii=False)
    if isinstance(obj, dict):
        by_key = {str(k): v for k, v in obj.items()}
        items = [json.dumps(k, ensure_ascii=False) + ":" + js_stringify(by_key[k]) for k in _ordered_keys(obj)]
        return "{" + ",".join(items) + "}"
    if isinstance(obj, (list, tuple)):
        return "[" + ",".join(js_stringify(v) for v in obj) + "]"
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


@dataclass(frozen=True)
class ReportHashPayload:
    wallet_address: str
    metrics_json: str
    scoring_version: str
    analysis_timestamp: int

    def to_json(self) -> str:
        return js_stringify({
            "wallet_address": self.wallet_address,
            "metrics_json": self.metrics_json,
            "scoring_version": self.scoring_version,
            "analysis_timestamp": self.analysis_timestamp,
        })

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReportHashPayload":
        return cls(
            wallet_address=str(data["wallet_address"]),
            metrics_json=str(data["metrics_json"]),
            scoring_version=str(data["scoring_version"]),
            analysis_timestamp=int(data["analysis_timestamp"]),
        )


def create_hash_payload(analysis: Dict[str, Any], now_ms: Optional[int] = None) -> ReportHashPayload:
    """Build the hash payload for an analysis result.

    ``analysis`` carries ``wallet`` and any of ``score``, ``metrics`` and
    ``meta``; a missing one is left out of ``metrics_json`` (an explicit None
    is kept as ``null``). ``now_ms`` defaults to the current time in
    milliseconds.
    """
    if "wallet" not in analysis:
        raise ValueError("analysis must include 'wallet'")
    metrics_json = js_stringify({k: analysis[k] for k in ("score", "metrics", "meta") if k in analysis})
    return ReportHashPayload(
        wallet_address=str(analysis["wallet"]),
        metrics_json=metrics_json,
        scoring_version=SCORING_VERSION,
        analysis_timestamp=int(now_ms if now_ms is not None else time.time() * 1000),
    )


def compute_report_hash(payload: ReportHashPayload) -> Tuple[bytes, str]:
    """Return (digest, hex digest) of the payload."""
    digest = hashlib.sha256(payload.to_json().encode("utf-8")).digest()
    return digest, digest.hex()


def verify_report_hash(payload: ReportHashPayload, expected_hash_hex: str) -> bool:
    _, hash_hex = compute_report_hash(payload)
    return hmac.compare_digest(hash_hex, (expected_hash_hex or "").strip().lower())
