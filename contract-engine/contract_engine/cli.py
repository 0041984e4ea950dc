"""
Command line entry points.

    contract-engine verify --provider-base-url http://127.0.0.1:9001 \\
        --contract pacts/ApiClient-ProductService.json \\
        --state-setup-url http://127.0.0.1:9001/provider-states

    contract-engine serve --port 9001
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from .config import get_settings
from .core.exceptions import ContractFormatError
from .logging_setup import setup_logging
from .provider.verifier import Verifier

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_BAD_CONTRACT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="contract-engine", description="Consumer-driven contract verification")
    sub = parser.add_subparsers(dest="command", required=True)

    verify = sub.add_parser("verify", help="Replay a contract file against a running provider")
    verify.add_argument("--provider-base-url", help="Provider base URL (default: PROVIDER_BASE_URL)")
    verify.add_argument("--contract", required=True, type=Path, help="Contract file (.json, .yaml or .yml)")
    verify.add_argument("--state-setup-url", help="Provider state endpoint (default: STATE_SETUP_URL)")
    verify.add_argument("--timeout", type=float, help="Per-request timeout in seconds")
    verify.add_argument("--allow-unexpected-keys", action="store_true",
                        help="Ignore extra keys in literally matched response objects")
    verify.add_argument("--json-report", type=Path, help="Also write the full report as JSON to this path")
    verify.add_argument("--log-level", default="WARNING", help="Log level for diagnostics on stderr")

    serve = sub.add_parser("serve", help="Run the sample product provider")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=9001)

    return parser


def _verify(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    setup_logging(args.log_level, stream=sys.stderr)
    settings = get_settings()
    provider_base_url = args.provider_base_url or settings.PROVIDER_BASE_URL
    if not provider_base_url:
        parser.error("--provider-base-url is required when PROVIDER_BASE_URL is not set")

    verifier = Verifier(
        provider_base_url,
        state_setup_url=args.state_setup_url or settings.STATE_SETUP_URL,
        timeout=args.timeout,
        allow_unexpected_keys=True if args.allow_unexpected_keys else None,
    )
    try:
        report = verifier.verify(args.contract)
    except ContractFormatError as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_BAD_CONTRACT

    for line in report.summary_lines():
        print(line)

    if args.json_report:
        args.json_report.parent.mkdir(parents=True, exist_ok=True)
        args.json_report.write_text(json.dumps(report.to_dict(), indent=2), encoding="utf-8")

    return EXIT_OK if report.success else EXIT_FAILED


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("contract_engine.main:app", host=args.host, port=args.port)
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "verify":
        return _verify(args, parser)
    return _serve(args)


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
