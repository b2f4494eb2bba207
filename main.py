#!/usr/bin/env python3
"""
OpsMind Auth -- OTP-verified authentication and role-based access control.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080 --reload
  python main.py seed
  python main.py purge-otps

Environment variables (see core/config.py for the full list):
  SECRET_KEY      JWT signing key, >= 32 chars. Required unless DEBUG=true.
  DEBUG           "true" enables dev defaults (generated key, /docs, tracebacks).
  DATABASE_URL    SQLAlchemy URL. Default: SQLite file opsmind_auth.db.
  MAIL_BACKEND    "console" (default) or "smtp" with SMTP_HOST/PORT/USER/PASSWORD.
"""

import argparse
import logging
import sys

from pydantic import ValidationError

from core.config import get_settings


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "asgi:app",
        host=args.host,
        port=args.port or settings.port,
        reload=args.reload,
    )
    return 0


def _cmd_seed(args: argparse.Namespace) -> int:
    from admin.seed import seed_all
    from admin.store import AdminStore
    from auth.store import CredentialStore

    settings = get_settings()
    credentials = CredentialStore(settings.database_url)
    try:
        summary = seed_all(credentials, AdminStore(credentials.engine), settings)
    finally:
        credentials.close()
    print(
        f"  Roles ensured: {summary['roles']}  "
        f"admin created: {'yes' if summary['admin_created'] else 'no (exists)'}  "
        f"buildings created: {summary['buildings_created']}"
    )
    return 0


def _cmd_purge_otps(args: argparse.Namespace) -> int:
    from auth.store import CredentialStore

    settings = get_settings()
    credentials = CredentialStore(settings.database_url)
    try:
        removed = credentials.purge_expired_or_used_otps()
    finally:
        credentials.close()
    print(f"  Purged {removed} expired or used OTP challenge(s).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="opsmind-auth",
        description="OpsMind authentication service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  DEBUG=true python main.py serve --reload
  SECRET_KEY=... python main.py serve --host 0.0.0.0
  python main.py seed
  python main.py purge-otps
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: PORT setting, 3000)")
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development)")
    serve.set_defaults(func=_cmd_serve)

    seed = sub.add_parser("seed", help="Create roles, the default administrator, and default buildings")
    seed.set_defaults(func=_cmd_seed)

    purge = sub.add_parser("purge-otps", help="Delete expired or used OTP challenges")
    purge.set_defaults(func=_cmd_purge_otps)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)-5s %(name)s %(message)s")
    try:
        return args.func(args)
    except ValidationError as exc:
        # Settings refused to load (missing SECRET_KEY, bad OTP_LENGTH, ...).
        print(f"  [!] Configuration error:\n{exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
