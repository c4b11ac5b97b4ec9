#!/usr/bin/env python3
"""Generate a random secret for sealing share tokens.

Usage::

    python scripts/generate_share_secret.py          # prints secret to stdout
    python scripts/generate_share_secret.py -o .env  # appends `SHARE_ENCRYPTION_SECRET=<secret>` to .env

Run once per deployment and store the value as ``SHARE_ENCRYPTION_SECRET``.
Changing it invalidates every outstanding share link at once: tokens sealed
under the old secret no longer open.
"""

from __future__ import annotations

import argparse
import secrets
from pathlib import Path

ENV_VAR = "SHARE_ENCRYPTION_SECRET"


def _generate_secret(nbytes: int = 32) -> str:
    """Return a base-64url-encoded random secret (no padding)."""
    return secrets.token_urlsafe(nbytes)


def main() -> None:  # noqa: D401
    parser = argparse.ArgumentParser(description="Generate the share token encryption secret")
    parser.add_argument("-o", "--output", type=Path, help="Append secret to given file in .env format")
    parser.add_argument("-n", "--bytes", type=int, default=32, help="Random bytes of entropy (default: 32)")
    args = parser.parse_args()

    if args.bytes < 32:
        parser.error("use at least 32 bytes of entropy")

    secret = _generate_secret(args.bytes)

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        with args.output.open("a", encoding="utf-8") as fp:
            fp.write(f"{ENV_VAR}={secret}\n")
        print(f"Secret appended to {args.output}")
    else:
        print(secret)


if __name__ == "__main__":
    main()
