#!/usr/bin/env python3
"""One-shot creation of the first SUPER_ADMIN account."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from transit_auth.auth.errors import ValidationError  # noqa: E402
from transit_auth.auth.repository import create_auth_repository  # noqa: E402
from transit_auth.auth.service import AuthService  # noqa: E402
from transit_auth.core.config import AppConfig  # noqa: E402
from transit_auth.core.logging import setup_logging  # noqa: E402


def _parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Create the initial SUPER_ADMIN if it does not exist yet."
    )
    parser.add_argument(
        "--email",
        default=os.getenv("BOOTSTRAP_ADMIN_EMAIL", ""),
        help="Admin email (defaults to BOOTSTRAP_ADMIN_EMAIL).",
    )
    parser.add_argument(
        "--password-env",
        default="BOOTSTRAP_ADMIN_PASSWORD",
        help="Environment variable holding the admin password.",
    )
    return parser.parse_args()


def main() -> int:
    """Run bootstrap."""
    load_dotenv()
    args = _parse_args()
    config = AppConfig.from_env()
    setup_logging(config.logging.level)

    email = str(args.email or "").strip()
    password = os.getenv(args.password_env, "")
    if not email or not password:
        print(
            f"[bootstrap] email and ${args.password_env} are required",
            file=sys.stderr,
        )
        return 2

    repo = create_auth_repository(config.store, ROOT)
    try:
        service = AuthService(repo, config.auth)
        try:
            admin = service.bootstrap_super_admin(email, password)
        except (ValidationError, ValueError) as exc:
            print(f"[bootstrap] rejected: {exc}", file=sys.stderr)
            return 2
    finally:
        repo.close()

    if admin is None:
        print(f"[bootstrap] admin already exists: {email}")
        return 0
    print(f"[bootstrap] created SUPER_ADMIN id={admin.id} backend={repo.backend}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
