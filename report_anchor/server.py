"""
Report Anchor HTTP API.

Endpoints:
    POST /v1/reports                              Anchor a signed report hash
    GET  /v1/reports/{reporter}/{report_hash}     Verify (public read)
    GET  /v1/addresses/{reporter}/{report_hash}   Derived address + bump
    GET  /v1/health                               Health check

Errors are returned as HTTPException with a stable envelope in ``detail``:
``{"code", "message", "retryable", "details"?}``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from . import __version__
from .auth import SignedAnchorRequest
from .config import build_registry
from .errors import AnchorError, ReportNotFound
from .registry import AnchorRegistry


logger = logging.getLogger("report_anchor.server")


def _http_exc(err: AnchorError) -> HTTPException:
    detail: Dict[str, Any] = {"code": err.code, "message": err.message, "retryable": bool(err.retryable)}
    if err.details:
        detail["details"] = err.details
    return HTTPException(err.http_status, detail)


class AnchorRequest(BaseModel):
    reporter: str
    analyzed_wallet: str
    report_hash: str
    signature_b64: str


class RecordResponse(BaseModel):
    address: str
    bump: int
    reporter: str
    analyzed_wallet: str
    report_hash: str
    created_at: int


class AddressResponse(BaseModel):
    address: str
    bump: int
    program_id: str


def create_app(registry: Optional[AnchorRegistry] = None) -> FastAPI:
    """Create the FastAPI app; the registry defaults to ``build_registry()`` (env config)."""
    registry = registry or build_registry()

    app = FastAPI(
        title="Report Anchor",
        description="Write-once anchoring of report digests per reporter",
        version=__version__,
    )

    def _record_response(record) -> RecordResponse:
        derived = registry.address_for(record.reporter, record.report_hash)
        return RecordResponse(address=derived.hex, bump=derived.bump, **record.to_dict())

    @app.post("/v1/reports", response_model=RecordResponse, status_code=201)
    def anchor_report(request: AnchorRequest):
        """Anchor a report hash; the signature must come from ``reporter``."""
        try:
            signed = SignedAnchorRequest.from_dict(request.model_dump())
            record = registry.anchor_signed(signed)
        except AnchorError as e:
            raise _http_exc(e)
        return _record_response(record)

    @app.get("/v1/reports/{reporter}/{report_hash}", response_model=RecordResponse)
    def verify_report(reporter: str, report_hash: str):
        """Return the anchored record or 404."""
        try:
            record = registry.verify(reporter, report_hash)
        except AnchorError as e:
            raise _http_exc(e)
        if record is None:
            raise _http_exc(ReportNotFound(details={"reporter": reporter, "report_hash": report_hash}))
        return _record_response(record)

    @app.get("/v1/addresses/{reporter}/{report_hash}", response_model=AddressResponse)
    def derive_address(reporter: str, report_hash: str):
        try:
            derived = registry.address_for(reporter, report_hash)
        except AnchorError as e:
            raise _http_exc(e)
        return AddressResponse(address=derived.hex, bump=derived.bump, program_id=registry.program_id.hex())

    @app.get("/v1/health")
    def health_check():
        return {
            "status": "healthy",
            "program_id": registry.program_id.hex(),
            "version": __version__,
        }

    return app


def main():
    """
    Main entry point for report-anchor-server.

    Usage:
        report-anchor-server                    # Start on default port 8000
        report-anchor-server --port 9000        # Start on custom port
        report-anchor-server --host 127.0.0.1   # Bind to localhost only
    """
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(
        description="Report Anchor HTTP API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
    REPORT_ANCHOR_DB_PATH          Path to SQLite database (default: report_anchor.db)
    REPORT_ANCHOR_PROGRAM_ID       Registry identity (64 hex chars)
    REPORT_ANCHOR_EVENTS_PATH      JSONL file for creation events
    REPORT_ANCHOR_EVENTS_URL       HTTP endpoint for creation events
    REPORT_ANCHOR_EVENTS_REQUIRED  Fail anchors when event delivery fails (1/0)
    REPORT_ANCHOR_CLOCK            local | ntp
        """,
    )
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind (default: 8000)")
    parser.add_argument("--log-level", default="info", help="Log level (default: info)")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
    app = create_app()
    logger.info("Starting Report Anchor API on %s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


if __name__ == "__main__":
    import sys
    sys.exit(main() or 0)
