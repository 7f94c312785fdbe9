"""Command line utilities for the gate."""

from __future__ import annotations

import argparse
import importlib
import logging
import sys
from typing import Sequence

from .application import SamlGate
from .asgi import ASGIApp, GateMiddleware
from .exceptions import ConfigurationError
from .server import ServerConfig, run

PROGRAM_NAME = "samlgate"


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level))
    return args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=PROGRAM_NAME, description="SAML edge authentication gate")
    parser.add_argument("--config", default=None, help="Path to a JSON configuration file (default: $SAMLGATE_CONFIG)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Root logging level",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check-config", help="Validate configuration and IdP metadata")
    check.set_defaults(func=_cmd_check_config)

    metadata = sub.add_parser("metadata", help="Print the service provider metadata document")
    metadata.add_argument("--domain", required=True, help="Host the gate is served on")
    metadata.set_defaults(func=_cmd_metadata)

    serve = sub.add_parser("serve", help="Serve an ASGI origin behind the gate with Granian")
    serve.add_argument("--origin", required=True, help="Origin ASGI application as module:attribute")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8080)
    serve.add_argument("--workers", type=int, default=1)
    serve.add_argument("--certificate", default=None, help="TLS certificate path")
    serve.add_argument("--private-key", default=None, help="TLS private key path")
    serve.set_defaults(func=_cmd_serve)

    return parser


def _cmd_check_config(args: argparse.Namespace) -> int:
    gate = _load_gate(args)
    if gate is None:
        return 1
    print(f"configuration ok: audience={gate.config.audience} acs={gate.config.acs_path}")
    return 0


def _cmd_metadata(args: argparse.Namespace) -> int:
    gate = _load_gate(args)
    if gate is None:
        return 1
    sys.stdout.write(gate.engine.build_service_descriptor(args.domain))
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    gate = _load_gate(args)
    if gate is None:
        return 1
    origin = _import_origin(args.origin)
    config = ServerConfig(
        host=args.host,
        port=args.port,
        workers=args.workers,
        certificate_path=args.certificate,
        private_key_path=args.private_key,
    )
    run(GateMiddleware(gate, origin), config)
    return 0


def _load_gate(args: argparse.Namespace) -> SamlGate | None:
    try:
        return SamlGate.load(args.config)
    except ConfigurationError as exc:
        print(f"invalid configuration: {exc}", file=sys.stderr)
        return None


def _import_origin(target: str) -> ASGIApp:
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise SystemExit(f"--origin must look like module:attribute, got {target!r}")
    module = importlib.import_module(module_name)
    try:
        origin = getattr(module, attribute)
    except AttributeError as exc:
        raise SystemExit(f"Module {module_name!r} has no attribute {attribute!r}") from exc
    if not callable(origin):
        raise SystemExit(f"{target!r} is not an ASGI application")
    return origin


__all__ = ["main"]
