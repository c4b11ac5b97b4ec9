from __future__ import annotations

"""Application-level configuration helpers (env → constants).

Only generic utilities that may be imported *anywhere* in the code-base
should live in this module.  Avoid importing heavy libraries to keep the
import cost near-zero even in cold-start environments (e.g. serverless).
"""

# Standard library
import os

from app.utils.utils import get_env_bool

__all__ = [
    "ALLOWED_ORIGINS",
    "DEFAULT_S3_ENDPOINT",
    "DEFAULT_S3_REGION",
    "DOWNLOAD_URL_TTL_SECONDS",
    "RELAY_ALLOWED_HOSTS",
    "RELAY_PREFIX",
    "RESERVED_PREFIX",
    "SHARE_METADATA_PREFIX",
    "SHARE_PROXY_RATE_LIMIT",
    "S3_PROXY_DOCKER_FALLBACK",
]

# Console-reserved key space inside every bucket. Share metadata lives under
# it as one JSON object per share. Convention only: anyone with list/read on
# the bucket can see it.
RESERVED_PREFIX = ".garage/"
SHARE_METADATA_PREFIX = f"{RESERVED_PREFIX}shares/"

DEFAULT_S3_ENDPOINT = "http://localhost:3900"
DEFAULT_S3_REGION = "garage"

# Validity of the presigned GET behind a relay path, independent of share expiry
DOWNLOAD_URL_TTL_SECONDS = 3600

RELAY_PREFIX = "/s3-proxy"

# Optional allow-list of storage hosts the relay may forward to (host or host:port)
RELAY_ALLOWED_HOSTS: frozenset[str] = frozenset(
    h.strip().lower() for h in os.getenv("S3_RELAY_ALLOWED_HOSTS", "").split(",") if h.strip()
)

SHARE_PROXY_RATE_LIMIT = os.getenv("SHARE_PROXY_RATE_LIMIT", "60/minute")
S3_PROXY_DOCKER_FALLBACK = get_env_bool("S3_PROXY_DOCKER_FALLBACK", default=True)


def _collect_origins() -> list[str]:
    """Collect allowed CORS origins from the environment.

    Falls back to the local Next.js dev-server (localhost:3000) so the
    console keeps working in local development when no explicit env vars
    are set.
    """
    origins: list[str] = []
    for name in ("FRONTEND_ORIGIN", "DOCS_ORIGIN", "EXTRA_ORIGIN"):
        if (val := os.getenv(name)):
            origins.append(val)

    # Local-dev fallback
    if not origins:
        origins.append("http://localhost:3000")
    return origins


ALLOWED_ORIGINS: list[str] = _collect_origins()
