"""Anchor Registry.

Places and fetches immutable ``AnchoredReport`` records:

- ``anchor``: derive the (reporter, report_hash) address, create the record
  there exactly once, emit a creation event. A second anchor of the same pair
  raises ``DuplicateReport`` and leaves the first record untouched.
- ``verify``: derive the same address and read it back. Public, read-only;
  ``None`` means nothing was ever anchored for that pair.

The address is a pure function of the pair and records are never updated or
deleted, so a record returned by ``verify`` proves that a past ``anchor`` with
exactly that pair succeeded.
"""

from __future__ import annotations

import logging
from typing import Optional, Union

from .auth import AuthenticatedReporter, SignedAnchorRequest, authenticate_request
from .clock import LocalTimeSource, TrustedTimeSource
from .crypto import BytesLike, coerce_digest, coerce_identity
from .derive import DEFAULT_PROGRAM_ID, REPORT_NAMESPACE, AddressDeriver, DerivedAddress
from .errors import AuthenticationFailed, CorruptRecord, DuplicateReport
from .events import EventSink, NullEventSink, make_anchor_event
from .record import RECORD_SIZE, AnchoredReport
from .report_hash import ReportHashPayload, compute_report_hash
from .store import AlreadyExists, RecordStore


logger = logging.getLogger("report_anchor")


class AnchorRegistry:
    """Write-once registry of report anchors over a ``RecordStore``."""

    def __init__(
        self,
        store: RecordStore,
        *,
        program_id: Union[str, BytesLike] = DEFAULT_PROGRAM_ID,
        clock: Optional[TrustedTimeSource] = None,
        events: Optional[EventSink] = None,
        deriver: Optional[AddressDeriver] = None,
    ):
        self.store = store
        self.deriver = deriver or AddressDeriver(program_id)
        self.clock = clock or LocalTimeSource()
        self.events = events or NullEventSink()

    @property
    def program_id(self) -> bytes:
        return self.deriver.program_id

    def address_for(
        self,
        reporter: Union[str, BytesLike],
        report_hash: Union[str, BytesLike],
    ) -> DerivedAddress:
        return self.deriver.derive(REPORT_NAMESPACE, reporter, report_hash)

    def anchor(
        self,
        reporter: AuthenticatedReporter,
        analyzed_wallet: Union[str, BytesLike],
        report_hash: Union[str, BytesLike],
    ) -> AnchoredReport:
        """Create the record for (reporter, report_hash); raises DuplicateReport if present."""
        if not isinstance(reporter, AuthenticatedReporter):
            raise AuthenticationFailed(message="anchor requires an authenticated reporter")
        wallet = coerce_identity(analyzed_wallet, "analyzed_wallet")
        digest = coerce_digest(report_hash)
        derived = self.address_for(reporter.identity, digest)
        # The clock may be remote; read it before any address is claimed.
        record = AnchoredReport(
            reporter=reporter.identity,
            analyzed_wallet=wallet,
            report_hash=digest,
            created_at=self.clock.now(),
        )

        emitted = False
        try:
            with self.store.create_if_absent(derived.address, RECORD_SIZE) as slot:
                slot.write(record.to_bytes())
                # Emitted before commit: a required sink that fails aborts the anchor.
                self._emit(record, derived)
                emitted = True
        except AlreadyExists as e:
            if emitted:
                logger.error("Creation event sent but commit failed: address=%s error=%s", derived.hex, e)
            logger.warning(
                "Duplicate anchor rejected: address=%s reporter=%s hash=%s",
                derived.hex, reporter.hex, digest.hex(),
            )
            raise DuplicateReport(
                details={
                    "address": derived.hex,
                    "reporter": reporter.hex,
                    "report_hash": digest.hex(),
                }
            ) from e
        except Exception as e:
            if emitted:
                logger.error(
                    "Creation event sent but commit failed: address=%s error=%s",
                    derived.hex, e,
                )
            raise

        logger.info(
            "Report anchored: address=%s bump=%d reporter=%s analyzed_wallet=%s hash=%s created_at=%d",
            derived.hex, derived.bump, reporter.hex, wallet.hex(), digest.hex(), record.created_at,
        )
        return record

    def anchor_signed(self, request: SignedAnchorRequest) -> AnchoredReport:
        """Authenticate a signed request and anchor exactly what it signed."""
        reporter = authenticate_request(request, self.program_id)
        return self.anchor(reporter, request.analyzed_wallet, request.report_hash)

    def verify(
        self,
        reporter: Union[str, BytesLike],
        report_hash: Union[str, BytesLike],
    ) -> Optional[AnchoredReport]:
        """Return the record anchored for (reporter, report_hash), or None."""
        identity = coerce_identity(reporter, "reporter")
        digest = coerce_digest(report_hash)
        derived = self.address_for(identity, digest)

        data = self.store.read(derived.address)
        if data is None:
            logger.debug("No report at address=%s", derived.hex)
            return None

        record = AnchoredReport.from_bytes(data)
        if record.reporter != identity or record.report_hash != digest:
            raise CorruptRecord(
                message="Stored record does not match its derived address",
                details={"address": derived.hex},
            )
        logger.info(
            "Report verified: address=%s reporter=%s analyzed_wallet=%s created_at=%d",
            derived.hex, record.reporter.hex(), record.analyzed_wallet.hex(), record.created_at,
        )
        return record

    def verify_payload(
        self,
        reporter: Union[str, BytesLike],
        payload: ReportHashPayload,
    ) -> Optional[AnchoredReport]:
        """Hash ``payload`` and verify it was anchored by ``reporter``."""
        digest, _ = compute_report_hash(payload)
        return self.verify(reporter, digest)

    def _emit(self, record: AnchoredReport, derived: DerivedAddress) -> None:
        result = self.events.emit(make_anchor_event(record, derived))
        if not result.ok:
            logger.warning(
                "Creation event not delivered: address=%s code=%s error=%s",
                derived.hex, result.code, result.error,
            )
