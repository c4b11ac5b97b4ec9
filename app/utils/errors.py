"""Share subsystem error taxonomy.

Everything under ``ShareAccessDenied`` is collapsed into one generic 401 at
the recipient-facing boundary; the ``reason`` only reaches logs and
operator routes.
"""

from __future__ import annotations


class ShareError(Exception):
    """Base class for share subsystem failures."""


class ShareAccessDenied(ShareError):
    """A bearer token cannot be honoured."""

    default_reason = "invalid_or_expired_token"

    def __init__(self, reason: str | None = None) -> None:
        self.reason = reason or self.default_reason
        super().__init__(self.reason)


class DecodeError(ShareAccessDenied):
    """Token is not a well-formed envelope."""

    default_reason = "malformed_token"


class AuthenticationError(ShareAccessDenied):
    """Token failed its integrity check (tampered or sealed under another key)."""

    default_reason = "token_integrity"


class AuthorizationError(ShareAccessDenied):
    """Request targets something outside the token's bucket lock."""

    default_reason = "out_of_scope"


class NotFoundError(ShareAccessDenied):
    """Share record is absent: revoked or never existed."""

    default_reason = "share_not_found"


class ExpiredError(ShareAccessDenied):
    """Share record exists but its expiry has passed."""

    default_reason = "share_expired"


class StorageError(ShareError):
    """The storage backend call failed for reasons unrelated to the token."""

    def __init__(self, message: str, *, code: str | None = None) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}" if code else message)
