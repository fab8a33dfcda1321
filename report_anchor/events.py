"""Creation-event sinks.

Every successful anchor emits one ``ReportAnchored`` event carrying the
derived address and all four record fields, so external auditors can follow
the registry without polling it. Sinks can be local (JSONL file) or remote
(HTTP append endpoint).

Events are emitted while the address is claimed, before the record is
committed, so a required sink can veto the anchor. If the commit then fails
the event describes a record that does not exist (the registry logs this at
ERROR); consumers confirm an event by reading the address back.

Idempotency:
- Each event has an idempotency key = sha256(canonical_json(event))
- HTTP 409 is treated as idempotent success (already delivered).

Retry semantics (HTTP):
- retryable failures: network errors, HTTP 408/429/5xx
- permanent failures: other non-2xx (except 409)
"""

from __future__ import annotations

import abc
import json
import os
import threading
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from .crypto import canonical_json_dumps, sha256_hex
from .derive import DerivedAddress
from .errors import EventSinkError
from .record import AnchoredReport


EVENT_REPORT_ANCHORED = "ReportAnchored"


def make_anchor_event(record: AnchoredReport, derived: DerivedAddress) -> Dict[str, Any]:
    event: Dict[str, Any] = {"event": EVENT_REPORT_ANCHORED}
    event.update(derived.to_dict())
    event.update(record.to_dict())
    return event


def idempotency_key(event: Dict[str, Any]) -> str:
    return sha256_hex(canonical_json_dumps(event).encode("utf-8"))


@dataclass(frozen=True)
class EventResult:
    ok: bool
    code: str
    retryable: bool
    http_status: Optional[int]
    attempts: int
    idempotency_key: str
    error: Optional[str] = None


class EventSink(abc.ABC):
    """Append-only creation-event sink."""

    @abc.abstractmethod
    def emit(self, event: Dict[str, Any]) -> EventResult:
        raise NotImplementedError


class NullEventSink(EventSink):
    def emit(self, event: Dict[str, Any]) -> EventResult:
        return EventResult(ok=True, code="ok", retryable=False, http_status=None, attempts=1,
                           idempotency_key=idempotency_key(event))


class FileEventSink(EventSink):
    """Append events to a JSONL file, fsync'd per event.

    A failed append raises EventSinkError when ``required``; otherwise the
    failed EventResult is returned for the caller to log.
    """

    def __init__(self, path: str, *, required: bool = False):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.required = bool(required)
        self._lock = threading.Lock()

    def emit(self, event: Dict[str, Any]) -> EventResult:
        line = json.dumps(event, separators=(",", ":"), sort_keys=True, ensure_ascii=False) + "\n"
        key = idempotency_key(event)
        try:
            with self._lock:
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line)
                    f.flush()
                    os.fsync(f.fileno())
        except OSError as e:
            if self.required:
                raise EventSinkError(message="event file append failed",
                                     details={"path": str(self.path), "error": str(e)}) from e
            return EventResult(ok=False, code="io_error", retryable=True, http_status=None, attempts=1,
                               idempotency_key=key, error=str(e))
        return EventResult(ok=True, code="ok", retryable=False, http_status=None, attempts=1,
                           idempotency_key=key)


class HttpEventSink(EventSink):
    """HTTP POST event sink.

    Failure behavior:
      - ``required=True``: a failed delivery raises EventSinkError, which
        aborts the anchor before its record is committed;
      - otherwise the failed EventResult is returned for the caller to log.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout_s: float = 5.0,
        required: bool = False,
        max_attempts: int = 3,
        backoff_s: float = 0.25,
    ):
        self.url = url
        self.timeout_s = float(timeout_s)
        self.required = bool(required)
        self.max_attempts = max(1, int(max_attempts))
        self.backoff_s = float(backoff_s)
        self.last_result: Optional[EventResult] = None

    @staticmethod
    def _is_retryable_status(status: int) -> bool:
        return status in (408, 429) or (500 <= status <= 599)

    def _finish(self, result: EventResult) -> EventResult:
        self.last_result = result
        if not result.ok and self.required:
            raise EventSinkError(
                message="event HTTP push failed",
                retryable=result.retryable,
                details={
                    "url": self.url,
                    "code": result.code,
                    "http_status": result.http_status,
                    "attempts": result.attempts,
                    "idempotency_key": result.idempotency_key,
                    "error": result.error,
                },
            )
        return result

    def emit(self, event: Dict[str, Any]) -> EventResult:
        payload = canonical_json_dumps(event).encode("utf-8")
        idem_key = sha256_hex(payload)
        headers = {
            "Content-Type": "application/json",
            "Idempotency-Key": idem_key,
        }

        last_status: Optional[int] = None
        last_err: Optional[str] = None
        retryable = True
        code = "network_error"
        attempt = 0

        for attempt in range(1, self.max_attempts + 1):
            headers["X-Report-Anchor-Attempt"] = str(attempt)
            req = urllib.request.Request(self.url, data=payload, headers=headers, method="POST")
            try:
                with urllib.request.urlopen(req, timeout=self.timeout_s) as resp:
                    status = int(getattr(resp, "status", 200))
                last_status = status
                if 200 <= status <= 299:
                    return self._finish(EventResult(True, "ok", False, status, attempt, idem_key))
                retryable = self._is_retryable_status(status)
                code = "retryable_http" if retryable else "permanent_http"
                last_err = f"HTTP {status}"
            except urllib.error.HTTPError as e:
                status = int(getattr(e, "code", 0) or 0)
                last_status = status or None
                if status == 409:
                    return self._finish(EventResult(True, "duplicate", False, status, attempt, idem_key))
                retryable = bool(status) and self._is_retryable_status(status)
                code = "retryable_http" if retryable else "permanent_http"
                last_err = str(e)
            except (urllib.error.URLError, OSError) as e:
                retryable = True
                code = "network_error"
                last_err = str(e)

            if attempt < self.max_attempts and retryable:
                time.sleep(self.backoff_s * (2 ** (attempt - 1)))
            else:
                break

        return self._finish(
            EventResult(False, code, retryable, last_status, attempt, idem_key, error=last_err)
        )
