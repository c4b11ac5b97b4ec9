"""Credential envelope codec: seals share payloads into compact JWE tokens.

Tokens are ``dir`` + ``A256GCM`` compact JWEs. The algorithm identifiers sit
in the protected header, so a later key or algorithm change can still parse
old tokens; today there is exactly one algorithm and one derived key.
"""

from __future__ import annotations

import base64
import binascii
import json
from functools import lru_cache

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JWEError, JWEParseError

from app import APP_ENV, DEV_SHARE_SECRET, SHARE_ENCRYPTION_SECRET
from app.models import EnvelopePayload
from app.utils.errors import AuthenticationError, DecodeError
from app.utils.logger import logger

KEY_LENGTH = 32  # A256GCM
_KDF_SALT = b"garage-share-envelope/v1"
_KDF_INFO = b"share-token-encryption-key"


def derive_key(secret: str, info: bytes = _KDF_INFO) -> bytes:
    """Derive a 32-byte key from the configured secret (HKDF-SHA256).

    ``info`` separates purposes: the token key and the relay binding key
    never coincide.
    """
    if not secret:
        raise ValueError("share encryption secret must not be empty")
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=_KDF_SALT,
        info=info,
    )
    return hkdf.derive(secret.encode("utf-8"))


def check_secret(secret: str, *, app_env: str = APP_ENV) -> None:
    """Refuse the documented dev secret in production, warn loudly elsewhere."""
    if secret and secret != DEV_SHARE_SECRET:
        return
    if app_env == "production":
        raise RuntimeError(
            "SHARE_ENCRYPTION_SECRET is not configured – refusing to mint or accept share tokens"
        )
    logger.warning(
        "share.secret.insecure",
        extra={"extra": {"detail": "SHARE_ENCRYPTION_SECRET unset; using the development default"}},
    )


def _check_canonical_segments(token: str) -> None:
    """Reject any compact JWE whose segments are not canonical unpadded base64url.

    A lenient decoder maps several spellings onto the same bytes (stray
    characters, non-zero trailing bits), so without this check a token can
    be edited and still decrypt.
    """
    segments = token.split(".")
    if len(segments) != 5:
        raise DecodeError()
    for segment in segments:
        try:
            raw = base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))
        except (binascii.Error, ValueError) as exc:
            raise DecodeError() from exc
        if base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=") != segment:
            raise DecodeError()


class ShareEnvelopeCodec:
    """Seal/open ``EnvelopePayload`` values under a server-held secret."""

    def __init__(self, secret: str) -> None:
        self._key = derive_key(secret)

    def __repr__(self) -> str:
        return "ShareEnvelopeCodec(alg='dir', enc='A256GCM')"

    def seal(self, payload: EnvelopePayload) -> str:
        plaintext = json.dumps(payload.to_claims(), sort_keys=True, separators=(",", ":")).encode("utf-8")
        token = jwe.encrypt(
            plaintext,
            self._key,
            algorithm=ALGORITHMS.DIR,
            encryption=ALGORITHMS.A256GCM,
        )
        return token.decode("ascii") if isinstance(token, bytes) else token

    def open(self, token: str) -> EnvelopePayload:
        """Decrypt and parse a token.

        Raises ``DecodeError`` for malformed input and ``AuthenticationError``
        when the integrity check fails. Neither message says which.
        """
        if not token or not isinstance(token, str):
            raise DecodeError()
        try:
            token.encode("ascii")
        except UnicodeEncodeError as exc:
            raise DecodeError() from exc
        _check_canonical_segments(token)

        try:
            plaintext = jwe.decrypt(token, self._key)
        except JWEParseError as exc:
            raise DecodeError() from exc
        except JWEError as exc:
            raise AuthenticationError() from exc
        except (KeyError, TypeError, ValueError) as exc:
            # header parsed but lacks alg/enc
            raise DecodeError() from exc
        if plaintext is None:
            raise AuthenticationError()

        try:
            claims = json.loads(plaintext)
            if not isinstance(claims, dict):
                raise DecodeError()
            return EnvelopePayload.from_claims(claims)
        except (ValueError, KeyError, TypeError) as exc:
            raise DecodeError() from exc


@lru_cache(maxsize=1)
def get_envelope_codec() -> ShareEnvelopeCodec:
    """FastAPI dependency returning the process-wide codec (built once)."""
    check_secret(SHARE_ENCRYPTION_SECRET)
    return ShareEnvelopeCodec(SHARE_ENCRYPTION_SECRET)
