"""Operator-facing share orchestration (create, update, regenerate, list, revoke).

The manager has no state of its own. Every call composes the envelope codec
with a metadata store built from the operator's credentials, so whatever the
storage backend lets those credentials do bounds what the operator can do.
"""

from __future__ import annotations

from typing import Callable, List
from urllib.parse import quote

from app import PUBLIC_BASE_URL
from app.models import (
    SHARE_PERMISSIONS,
    AuditAction,
    AuditStatus,
    EnvelopePayload,
    ShareGrant,
    ShareRecord,
    validate_expires_at,
)
from app.utils.audit import log_audit_event
from app.utils.envelope import ShareEnvelopeCodec
from app.utils.s3_client import S3Credentials
from app.utils.share_store import ShareStoreFactory
from app.utils.utils import generate_uuid, now_ms


def build_share_url(share_id: str, token: str, base_url: str = PUBLIC_BASE_URL) -> str:
    """Recipient link: ``{base}/share/{id}?token=...``."""
    return f"{base_url}/share/{share_id}?token={quote(token, safe='')}"


class ShareManager:
    def __init__(
        self,
        credentials: S3Credentials,
        codec: ShareEnvelopeCodec,
        store_factory: ShareStoreFactory,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._credentials = credentials.resolve()
        self._codec = codec
        self._store = store_factory(self._credentials)
        self._clock = clock

    def _mint(self, share_id: str, bucket: str) -> str:
        payload = EnvelopePayload.for_share(share_id, bucket, self._credentials)
        return self._codec.seal(payload)

    async def create_share(self, bucket: str, memo: str, expires_at: int) -> ShareGrant:
        """Persist a new record, then seal a token bound to it.

        Fails with ``StorageError`` when the credentials cannot write the
        record; no token is issued in that case.
        """
        validate_expires_at(expires_at)
        record = ShareRecord(
            id=generate_uuid(),
            bucket=bucket,
            memo=memo,
            created_at=self._clock(),
            expires_at=expires_at,
            permissions=[p.value for p in SHARE_PERMISSIONS],
        )
        await self._store.put(bucket, record)
        token = self._mint(record.id, bucket)

        log_audit_event(
            AuditAction.share_create,
            bucket=bucket,
            share_id=record.id,
            metadata={"expires_at": expires_at},
        )
        return ShareGrant(id=record.id, token=token)

    async def regenerate_share_token(self, bucket: str, share_id: str) -> str:
        """Mint a fresh token for an existing share.

        Earlier tokens for the same id stay valid; only deleting the record
        revokes them.
        """
        await self._store.get(bucket, share_id)
        token = self._mint(share_id, bucket)

        log_audit_event(
            AuditAction.share_regenerate,
            bucket=bucket,
            share_id=share_id,
        )
        return token

    async def update_share(self, bucket: str, share_id: str, expires_at: int) -> ShareRecord:
        """Rewrite the expiry; applies retroactively to every outstanding token."""
        validate_expires_at(expires_at)
        record = await self._store.update(
            bucket,
            share_id,
            lambda current: current.model_copy(update={"expires_at": expires_at}),
        )

        log_audit_event(
            AuditAction.share_update,
            bucket=bucket,
            share_id=share_id,
            metadata={"expires_at": expires_at},
        )
        return record

    async def list_shares(self, bucket: str) -> List[ShareRecord]:
        records = await self._store.list(bucket)
        return sorted(records, key=lambda r: r.created_at)

    async def revoke_share(self, bucket: str, share_id: str) -> None:
        await self._store.delete(bucket, share_id)

        log_audit_event(
            AuditAction.share_revoke,
            status=AuditStatus.success,
            bucket=bucket,
            share_id=share_id,
        )
