"""Record stores: the opaque key-value boundary of the registry.

A store offers exactly two operations:

- ``create_if_absent(address, size_bytes)``: a context manager that claims
  ``address`` for the duration of the block. Leaving the block normally
  commits the bytes written to the yielded ``Allocation``; leaving it by
  exception releases the claim and nothing becomes visible. An occupied
  address raises ``AlreadyExists``.
- ``read(address)``: committed bytes or None.

A claim covers one address only. A second creator of the same address waits
for the first to commit or release and then decides; creators of other
addresses are never blocked by it. There is no update and no delete.
"""

from __future__ import annotations

import abc
import logging
import secrets
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import ContextManager, Dict, Iterator, Optional, Set

from .errors import StoreUnavailable


logger = logging.getLogger("report_anchor.store")


class AlreadyExists(Exception):
    """Raised by create_if_absent when the address is occupied."""

    def __init__(self, address: bytes):
        super().__init__(f"address already allocated: {address.hex()}")
        self.address = address


@dataclass
class Allocation:
    """A claimed, not yet committed slot of a fixed size."""

    address: bytes
    size_bytes: int
    data: Optional[bytes] = None

    def write(self, data: bytes) -> None:
        if self.data is not None:
            raise RuntimeError("allocation already written")
        if len(data) != self.size_bytes:
            raise ValueError(f"allocation is {self.size_bytes} bytes, got {len(data)}")
        self.data = bytes(data)


class RecordStore(abc.ABC):
    """Write-once key-value store interface."""

    @abc.abstractmethod
    def create_if_absent(self, address: bytes, size_bytes: int) -> ContextManager[Allocation]:
        raise NotImplementedError

    @abc.abstractmethod
    def read(self, address: bytes) -> Optional[bytes]:
        raise NotImplementedError

    def exists(self, address: bytes) -> bool:
        return self.read(address) is not None


class InMemoryRecordStore(RecordStore):
    """Process-local store guarded by a condition variable."""

    def __init__(self, *, claim_wait_seconds: float = 20.0):
        self.claim_wait_seconds = float(claim_wait_seconds)
        self._cond = threading.Condition()
        self._records: Dict[bytes, bytes] = {}
        self._pending: Set[bytes] = set()

    @contextmanager
    def create_if_absent(self, address: bytes, size_bytes: int) -> Iterator[Allocation]:
        address = bytes(address)
        with self._cond:
            released = self._cond.wait_for(
                lambda: address not in self._pending, timeout=self.claim_wait_seconds
            )
            if not released:
                raise StoreUnavailable(
                    message="Address is claimed by another writer",
                    details={"address": address.hex()},
                )
            if address in self._records:
                raise AlreadyExists(address)
            self._pending.add(address)
        try:
            alloc = Allocation(address=address, size_bytes=int(size_bytes))
            yield alloc
            if alloc.data is None:
                raise RuntimeError("allocation closed without data")
            with self._cond:
                self._records[address] = alloc.data
        finally:
            with self._cond:
                self._pending.discard(address)
                self._cond.notify_all()

    def read(self, address: bytes) -> Optional[bytes]:
        with self._cond:
            return self._records.get(bytes(address))

    def __len__(self) -> int:
        with self._cond:
            return len(self._records)


class SQLiteRecordStore(RecordStore):
    """
    Persistent store backed by SQLite.

    Storage properties:
    - WAL mode so readers never block on a concurrent create
    - an address is claimed by a row in ``claims``, inserted and removed in
      short ``BEGIN IMMEDIATE`` transactions; no database lock is held while
      the caller fills the allocation
    - the record row is inserted and the claim deleted in one transaction, so
      a partially written record is never visible
    - a claim older than ``claim_ttl_seconds`` is stale (its writer died) and
      may be taken over; the late writer then fails on commit
    - ``sqlite3.OperationalError`` surfaces as ``StoreUnavailable``

    ``read_only=True`` opens an existing database without creating files or
    schema; a missing database reads as empty.
    """

    def __init__(
        self,
        db_path: str = "report_anchor.db",
        *,
        connect_timeout_seconds: float = 5.0,
        claim_wait_seconds: float = 20.0,
        claim_ttl_seconds: float = 120.0,
        poll_interval_seconds: float = 0.05,
        read_only: bool = False,
    ):
        self.db_path = str(db_path)
        self.connect_timeout_seconds = float(connect_timeout_seconds)
        self.claim_wait_seconds = float(claim_wait_seconds)
        self.claim_ttl_seconds = float(claim_ttl_seconds)
        self.poll_interval_seconds = float(poll_interval_seconds)
        self.read_only = bool(read_only)
        if not self.read_only:
            self._init_db()

    @contextmanager
    def _db(self, op_name: str, isolation_level: Optional[str] = "DEFERRED") -> Iterator[sqlite3.Connection]:
        try:
            if self.read_only:
                uri = Path(self.db_path).resolve().as_uri() + "?mode=ro"
                conn = sqlite3.connect(uri, uri=True, timeout=self.connect_timeout_seconds)
            else:
                conn = sqlite3.connect(
                    self.db_path,
                    timeout=self.connect_timeout_seconds,
                    isolation_level=isolation_level,
                )
            try:
                yield conn
            finally:
                conn.close()
        except sqlite3.OperationalError as e:
            logger.warning("SQLite %s failed: %s", op_name, e)
            raise StoreUnavailable(details={"op": op_name, "error": str(e)}) from e

    def _init_db(self) -> None:
        with self._db("init") as conn:
            with conn:
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("PRAGMA synchronous = FULL")
                conn.execute("PRAGMA busy_timeout = 5000")
                conn.execute("""
                CREATE TABLE IF NOT EXISTS records (
                    address BLOB PRIMARY KEY,
                    size_bytes INTEGER NOT NULL,
                    data BLOB NOT NULL
                )
                """)
                conn.execute("""
                CREATE TABLE IF NOT EXISTS claims (
                    address BLOB PRIMARY KEY,
                    token TEXT NOT NULL,
                    claimed_at REAL NOT NULL
                )
                """)

    def _try_claim(self, address: bytes, token: str) -> bool:
        """One short transaction: True when claimed, False when another claim is live."""
        with self._db("claim", isolation_level=None) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                if conn.execute("SELECT 1 FROM records WHERE address = ?", (address,)).fetchone():
                    raise AlreadyExists(address)
                now = time.time()
                row = conn.execute("SELECT claimed_at FROM claims WHERE address = ?", (address,)).fetchone()
                if row is not None:
                    if now - float(row[0]) < self.claim_ttl_seconds:
                        conn.execute("ROLLBACK")
                        return False
                    logger.warning("Taking over stale claim on address=%s", address.hex())
                    conn.execute("DELETE FROM claims WHERE address = ?", (address,))
                conn.execute(
                    "INSERT INTO claims (address, token, claimed_at) VALUES (?, ?, ?)",
                    (address, token, now),
                )
                conn.execute("COMMIT")
                return True
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    def _commit(self, alloc: Allocation, token: str) -> None:
        with self._db("commit", isolation_level=None) as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                held = conn.execute(
                    "SELECT 1 FROM claims WHERE address = ? AND token = ?", (alloc.address, token)
                ).fetchone()
                if held is None:
                    raise StoreUnavailable(
                        message="Address claim expired before commit",
                        details={"address": alloc.address.hex()},
                    )
                try:
                    conn.execute(
                        "INSERT INTO records (address, size_bytes, data) VALUES (?, ?, ?)",
                        (alloc.address, alloc.size_bytes, alloc.data),
                    )
                except sqlite3.IntegrityError as e:
                    raise AlreadyExists(alloc.address) from e
                conn.execute("DELETE FROM claims WHERE address = ?", (alloc.address,))
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise

    def _release(self, address: bytes, token: str) -> None:
        with self._db("release") as conn:
            with conn:
                conn.execute("DELETE FROM claims WHERE address = ? AND token = ?", (address, token))

    @contextmanager
    def create_if_absent(self, address: bytes, size_bytes: int) -> Iterator[Allocation]:
        if self.read_only:
            raise RuntimeError("store is read-only")
        address = bytes(address)
        token = secrets.token_hex(16)
        deadline = time.monotonic() + self.claim_wait_seconds
        while not self._try_claim(address, token):
            if time.monotonic() >= deadline:
                raise StoreUnavailable(
                    message="Address is claimed by another writer",
                    details={"address": address.hex()},
                )
            time.sleep(self.poll_interval_seconds)

        try:
            alloc = Allocation(address=address, size_bytes=int(size_bytes))
            yield alloc
            if alloc.data is None:
                raise RuntimeError("allocation closed without data")
            self._commit(alloc, token)
        except BaseException:
            try:
                self._release(address, token)
            except StoreUnavailable:
                # the claim expires after claim_ttl_seconds
                logger.warning("Could not release claim on address=%s", address.hex())
            raise

    def _has_schema(self, conn: sqlite3.Connection) -> bool:
        row = conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'records'"
        ).fetchone()
        return row is not None

    def read(self, address: bytes) -> Optional[bytes]:
        if self.read_only and not Path(self.db_path).exists():
            return None
        with self._db("read") as conn:
            if self.read_only and not self._has_schema(conn):
                return None
            row = conn.execute("SELECT data FROM records WHERE address = ?", (bytes(address),)).fetchone()
        if row is None:
            return None
        return bytes(row[0])

    def count(self) -> int:
        if self.read_only and not Path(self.db_path).exists():
            return 0
        with self._db("count") as conn:
            if self.read_only and not self._has_schema(conn):
                return 0
            row = conn.execute("SELECT COUNT(*) FROM records").fetchone()
        return int(row[0])
