"""Capability gateway: the single trust boundary for share tokens.

Decoding → bucket check → record lookup → expiry check → ``ShareContext``.
Any step may reject, and a rejection is terminal for the request. Callers
facing recipients must not tell them which step failed.
"""

from __future__ import annotations

from typing import Callable, Optional

from app.models import ShareContext
from app.utils.envelope import ShareEnvelopeCodec
from app.utils.errors import AuthorizationError, ExpiredError
from app.utils.share_store import ShareStoreFactory
from app.utils.utils import now_ms


class CapabilityGateway:
    def __init__(
        self,
        codec: ShareEnvelopeCodec,
        store_factory: ShareStoreFactory,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._codec = codec
        self._store_factory = store_factory
        self._clock = clock

    async def authorize(self, token: str, requested_bucket: Optional[str] = None) -> ShareContext:
        """Validate ``token`` against current record state.

        Raises a ``ShareAccessDenied`` subclass on rejection and
        ``StorageError`` when the record lookup itself fails.
        """
        payload = self._codec.open(token)

        if requested_bucket and requested_bucket != payload.bucket:
            raise AuthorizationError("invalid_bucket")

        credentials = payload.credentials
        # Expiry is read from the record on every request, never from the token.
        record = await self._store_factory(credentials).get(payload.bucket, payload.id)
        if record.is_expired(self._clock()):
            raise ExpiredError("share_expired")

        # The effective bucket is always the sealed one, whatever the caller sent.
        return ShareContext(share_id=payload.id, bucket=payload.bucket, credentials=credentials)
