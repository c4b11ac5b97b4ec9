"""Relay paths: keep the storage endpoint off the recipient's browser.

A presigned GET is repackaged as
``/s3-proxy/{base64url(endpoint)}/{mac}/{bucket}/{key}?{signature}`` so the
browser only ever talks to this origin. The endpoint is encoded, not
encrypted, but it is bound to this server by an HMAC keyed from the share
secret: the relay only forwards to endpoints it minted paths for.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from functools import lru_cache
from typing import Callable, Iterable, Tuple
from urllib.parse import urlsplit, urlunsplit

import httpx

from app import SHARE_ENCRYPTION_SECRET
from app.settings import RELAY_ALLOWED_HOSTS, RELAY_PREFIX, S3_PROXY_DOCKER_FALLBACK
from app.utils.envelope import derive_key
from app.utils.logger import logger

# Hop-by-hop headers (RFC 9110) never cross the relay in either direction.
HOP_BY_HOP_HEADERS: frozenset[str] = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# Browser headers that must not reach storage: the signature in the query
# string is the only credential a relayed request carries.
STRIP_REQUEST_HEADERS: frozenset[str] = frozenset({
    "host",
    "authorization",
    "cookie",
    "origin",
    "referer",
    "content-length",
})

STRIP_RESPONSE_HEADERS: frozenset[str] = frozenset({
    "set-cookie",
    "server",
})

_BINDING_INFO = b"relay-endpoint-binding"
_BINDING_MAC_BYTES = 16

_LOOPBACK_HOSTS = ("localhost", "127.0.0.1")
DOCKER_HOST_ALIAS = "host.docker.internal"

HttpClientFactory = Callable[[], httpx.AsyncClient]


def encode_endpoint(endpoint: str) -> str:
    return base64.urlsafe_b64encode(endpoint.encode("utf-8")).decode("ascii").rstrip("=")


def decode_endpoint(encoded: str) -> str:
    """Reverse ``encode_endpoint``; ``ValueError`` unless it yields an http(s) URL."""
    padded = encoded + "=" * (-len(encoded) % 4)
    try:
        endpoint = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError) as exc:
        raise ValueError("invalid endpoint encoding") from exc
    parts = urlsplit(endpoint)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise ValueError("invalid endpoint encoding")
    return endpoint.rstrip("/")


@lru_cache(maxsize=1)
def get_relay_binding_key() -> bytes:
    return derive_key(SHARE_ENCRYPTION_SECRET, info=_BINDING_INFO)


def sign_endpoint(encoded_endpoint: str, key: bytes | None = None) -> str:
    """MAC over the encoded endpoint; only paths minted here carry a valid one."""
    digest = hmac.new(key or get_relay_binding_key(), encoded_endpoint.encode("ascii"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest[:_BINDING_MAC_BYTES]).decode("ascii").rstrip("=")


def verify_endpoint_mac(encoded_endpoint: str, mac: str, key: bytes | None = None) -> bool:
    try:
        expected = sign_endpoint(encoded_endpoint, key)
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(expected.encode("ascii"), mac.encode("utf-8"))


def build_relay_path(endpoint: str, presigned_url: str) -> str:
    parts = urlsplit(presigned_url)
    encoded = encode_endpoint(endpoint)
    path = f"{RELAY_PREFIX}/{encoded}/{sign_endpoint(encoded)}{parts.path}"
    return f"{path}?{parts.query}" if parts.query else path


def build_target_url(endpoint: str, path: str, query: str = "") -> str:
    target = f"{endpoint.rstrip('/')}/{path.lstrip('/')}"
    return f"{target}?{query}" if query else target


def is_allowed_endpoint(endpoint: str, allowed_hosts: frozenset[str] = RELAY_ALLOWED_HOSTS) -> bool:
    """An empty allow-list admits any endpoint."""
    if not allowed_hosts:
        return True
    parts = urlsplit(endpoint)
    host = (parts.hostname or "").lower()
    return host in allowed_hosts or parts.netloc.lower() in allowed_hosts


def forward_request_headers(headers: Iterable[Tuple[str, str]]) -> dict[str, str]:
    forwarded: dict[str, str] = {}
    for key, value in headers:
        lower_key = key.lower()
        if lower_key in STRIP_REQUEST_HEADERS or lower_key in HOP_BY_HOP_HEADERS:
            continue
        forwarded[key] = value
    return forwarded


def forward_response_headers(headers: httpx.Headers) -> dict[str, str]:
    sanitized: dict[str, str] = {}
    for key, value in headers.items():
        lower_key = key.lower()
        if lower_key in STRIP_RESPONSE_HEADERS or lower_key in HOP_BY_HOP_HEADERS:
            continue
        sanitized[key] = value
    return sanitized


def docker_fallback_url(url: str) -> str | None:
    """Swap a loopback host for ``host.docker.internal``; None when not loopback."""
    parts = urlsplit(url)
    if parts.hostname not in _LOOPBACK_HOSTS:
        return None
    netloc = parts.netloc.replace(parts.hostname, DOCKER_HOST_ALIAS, 1)
    return urlunsplit(parts._replace(netloc=netloc))


def create_http_client() -> httpx.AsyncClient:
    # No read timeout: large objects stream for as long as they need.
    return httpx.AsyncClient(timeout=httpx.Timeout(30.0, read=None), follow_redirects=False)


def get_http_client_factory() -> HttpClientFactory:
    """FastAPI dependency returning the relay's HTTP client factory."""
    return create_http_client


async def open_upstream(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    headers: dict[str, str],
    *,
    docker_fallback: bool = S3_PROXY_DOCKER_FALLBACK,
) -> httpx.Response:
    """Send the relayed request in streaming mode.

    When storage runs next to this service in Docker, ``localhost`` inside
    the container is not the storage host; one retry via
    ``host.docker.internal`` covers that setup.
    """
    try:
        return await client.send(client.build_request(method, url, headers=headers), stream=True)
    except httpx.ConnectError:
        retry_url = docker_fallback_url(url) if docker_fallback else None
        if retry_url is None:
            raise
        logger.info(
            "relay.retry",
            extra={"extra": {"reason": "connection_refused", "host": DOCKER_HOST_ALIAS}},
        )
        # The signature covers the original Host header, so keep sending it.
        retry_headers = {**headers, "Host": urlsplit(url).netloc}
        return await client.send(client.build_request(method, retry_url, headers=retry_headers), stream=True)
