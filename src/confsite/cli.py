"""Command line utilities for confsite."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Sequence

from .application import create_app
from .cipher import CredentialCipher
from .config import load_config_from_env
from .exceptions import DecodeError
from .server import ServerConfig, run

PROG = "confsite"


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=PROG, description="Conference site management commands")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Serve the site with Granian")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8080)
    serve.add_argument("--workers", type=int, default=1)
    serve.add_argument("--log-level", default="INFO")
    serve.set_defaults(func=_cmd_serve)

    encrypt = sub.add_parser("encrypt", help="Encrypt a value with the configured secret")
    encrypt.add_argument("value")
    encrypt.set_defaults(func=_cmd_encrypt)

    decrypt = sub.add_parser("decrypt", help="Decrypt a value with the configured secret")
    decrypt.add_argument("value")
    decrypt.set_defaults(func=_cmd_decrypt)

    return parser


def _cmd_serve(args: argparse.Namespace) -> int:
    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s %(message)s")
    config = load_config_from_env()
    app = create_app(config)
    run(app, ServerConfig(host=args.host, port=args.port, workers=args.workers))
    return 0


def _cipher() -> CredentialCipher:
    config = load_config_from_env()
    if not config.secret:
        raise SystemExit("CONFSITE_SECRET is not set")
    return CredentialCipher.from_secret(config.secret)


def _cmd_encrypt(args: argparse.Namespace) -> int:
    print(_cipher().encrypt(args.value))
    return 0


def _cmd_decrypt(args: argparse.Namespace) -> int:
    try:
        print(_cipher().decrypt(args.value))
    except DecodeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - manual entry point
    raise SystemExit(main())
