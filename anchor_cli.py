#!/usr/bin/env python3
"""
Report Anchor - Command Line Interface

Usage:
    report-anchor keygen --out <key>                    Generate a reporter key (hex seed, 0600)
    report-anchor hash <analysis.json>                  Build the hash payload and print its digest
    report-anchor derive <reporter> <report_hash>       Print the derived address and bump
    report-anchor anchor --key <key> --wallet <w> --hash <h>
                                                        Anchor a report hash as the key's reporter
    report-anchor verify <reporter> <report_hash>       Look up an anchored report (exit 1 if absent)
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from report_anchor.auth import AuthenticatedReporter
from report_anchor.config import RegistryConfig
from report_anchor.crypto import coerce_identity, generate_key_file, load_key_file
from report_anchor.derive import REPORT_NAMESPACE, AddressDeriver
from report_anchor.errors import AnchorError
from report_anchor.events import FileEventSink, NullEventSink
from report_anchor.registry import AnchorRegistry
from report_anchor.report_hash import ReportHashPayload, compute_report_hash, create_hash_payload
from report_anchor.store import SQLiteRecordStore


logger = logging.getLogger("report_anchor")


def setup_logging(verbose: bool = False):
    """Configure logging for CLI usage."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S"
    )
    logger.setLevel(level)


def _program_id(args) -> bytes:
    raw = getattr(args, "program_id", None)
    if raw:
        return coerce_identity(raw, "program_id")
    return RegistryConfig.from_env().program_id


def _registry(args, *, read_only: bool = False) -> AnchorRegistry:
    """Registry from env config, with --db/--program-id/--events taking precedence.

    ``read_only`` opens the database without creating it and attaches no event sink.
    """
    config = RegistryConfig.from_env()
    db_path = getattr(args, "db", None) or config.db_path
    if read_only:
        return AnchorRegistry(
            SQLiteRecordStore(db_path, read_only=True),
            program_id=_program_id(args),
            events=NullEventSink(),
        )
    events_path: Optional[str] = getattr(args, "events", None)
    return AnchorRegistry(
        SQLiteRecordStore(db_path),
        program_id=_program_id(args),
        clock=config.build_clock(),
        events=FileEventSink(events_path, required=config.events_required) if events_path else config.build_event_sink(),
    )


def cmd_keygen(args):
    """Generate a reporter key file."""
    out = Path(args.out)
    if out.exists() and not args.force:
        raise SystemExit(f"Refusing to overwrite existing key file: {out} (use --force)")
    key = generate_key_file(str(out))
    print(json.dumps({"reporter": key.public_key_hex, "key_file": str(out)}, indent=2))


def cmd_hash(args):
    """Compute the report hash for an analysis (or an existing payload) JSON file."""
    path = Path(args.input)
    if not path.exists():
        raise SystemExit(f"Input not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise SystemExit(f"Invalid JSON in {path}: {e}")

    if args.payload:
        payload = ReportHashPayload.from_dict(data)
    else:
        payload = create_hash_payload(data, now_ms=args.timestamp_ms)
    _, hash_hex = compute_report_hash(payload)
    print(json.dumps({"report_hash": hash_hex, "payload": json.loads(payload.to_json())}, indent=2))


def cmd_derive(args):
    """Print the derived address for a (reporter, report_hash) pair."""
    deriver = AddressDeriver(_program_id(args))
    derived = deriver.derive(REPORT_NAMESPACE, args.reporter, args.report_hash)
    out = derived.to_dict()
    out["program_id"] = deriver.program_id.hex()
    print(json.dumps(out, indent=2))


def cmd_anchor(args):
    """Anchor a report hash as the reporter holding --key."""
    key = load_key_file(args.key)
    if key is None:
        raise SystemExit(f"Could not load reporter key: {args.key}")
    registry = _registry(args)
    record = registry.anchor(AuthenticatedReporter.from_keypair(key), args.wallet, args.hash)
    out = registry.address_for(record.reporter, record.report_hash).to_dict()
    out.update(record.to_dict())
    print(json.dumps(out, indent=2))


def cmd_verify(args):
    """Verify a report hash was anchored by reporter. Exit 1 when absent."""
    registry = _registry(args, read_only=True)
    record = registry.verify(args.reporter, args.report_hash)
    if record is None:
        print("NOT FOUND: no report anchored for this reporter and hash")
        raise SystemExit(1)
    out = registry.address_for(record.reporter, record.report_hash).to_dict()
    out.update(record.to_dict())
    print(json.dumps(out, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Report Anchor CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--db", default=None, help="Path to SQLite database (default: REPORT_ANCHOR_DB_PATH)")
    parser.add_argument("--program-id", default=None, help="Registry identity, 64 hex chars (default: REPORT_ANCHOR_PROGRAM_ID)")
    parser.add_argument("--events", default=None, help="Append creation events to this JSONL file")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    keygen_parser = subparsers.add_parser("keygen", help="Generate a reporter key")
    keygen_parser.add_argument("--out", required=True, help="Key file path")
    keygen_parser.add_argument("--force", action="store_true", help="Overwrite an existing key file")
    keygen_parser.set_defaults(func=cmd_keygen)

    hash_parser = subparsers.add_parser("hash", help="Compute a report hash")
    hash_parser.add_argument("input", help="Analysis JSON (wallet, score, metrics, meta)")
    hash_parser.add_argument("--payload", action="store_true", help="Input is already a hash payload")
    hash_parser.add_argument("--timestamp-ms", type=int, default=None, help="Fix analysis_timestamp (ms)")
    hash_parser.set_defaults(func=cmd_hash)

    derive_parser = subparsers.add_parser("derive", help="Print the derived address")
    derive_parser.add_argument("reporter", help="Reporter identity (hex)")
    derive_parser.add_argument("report_hash", help="Report hash (hex)")
    derive_parser.set_defaults(func=cmd_derive)

    anchor_parser = subparsers.add_parser("anchor", help="Anchor a report hash")
    anchor_parser.add_argument("--key", required=True, help="Reporter key file")
    anchor_parser.add_argument("--wallet", required=True, help="Analyzed wallet identity (hex)")
    anchor_parser.add_argument("--hash", required=True, help="Report hash (hex)")
    anchor_parser.set_defaults(func=cmd_anchor)

    verify_parser = subparsers.add_parser("verify", help="Verify an anchored report")
    verify_parser.add_argument("reporter", help="Reporter identity (hex)")
    verify_parser.add_argument("report_hash", help="Report hash (hex)")
    verify_parser.set_defaults(func=cmd_verify)

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)
    try:
        args.func(args)
    except (AnchorError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
