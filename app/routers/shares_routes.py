from __future__ import annotations

"""Operator share management endpoints (per-bucket).

The operator's own storage credentials travel in ``X-S3-*`` headers on every
request; the console does not keep them. Whatever those credentials may do
on the bucket bounds what these endpoints can do.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from app.models import (
    MessageResponse,
    ShareCreateRequest,
    ShareGrantResponse,
    ShareRecord,
    ShareUpdateRequest,
)
from app.utils.envelope import ShareEnvelopeCodec, get_envelope_codec
from app.utils.errors import NotFoundError, StorageError
from app.utils.logger import logger
from app.utils.s3_client import S3ClientFactory, S3Credentials, get_s3_client_factory
from app.utils.share_manager import ShareManager, build_share_url
from app.utils.share_store import s3_share_store_factory

router = APIRouter(prefix="/v1/buckets/{bucket}/shares", tags=["shares"])


def get_operator_credentials(
    access_key_id: Optional[str] = Header(None, alias="X-S3-Access-Key-Id"),
    secret_access_key: Optional[str] = Header(None, alias="X-S3-Secret-Access-Key"),
    region: Optional[str] = Header(None, alias="X-S3-Region"),
    endpoint: Optional[str] = Header(None, alias="X-S3-Endpoint"),
) -> S3Credentials:
    if not access_key_id or not secret_access_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_s3_credentials")
    return S3Credentials(
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
        region=region or None,
        endpoint=endpoint or None,
    )


def get_share_manager(
    credentials: S3Credentials = Depends(get_operator_credentials),
    codec: ShareEnvelopeCodec = Depends(get_envelope_codec),
    client_factory: S3ClientFactory = Depends(get_s3_client_factory),
) -> ShareManager:
    return ShareManager(credentials, codec, s3_share_store_factory(client_factory))


def _raise_http(exc: Exception, bucket: str) -> None:
    """Translate share errors into operator-visible HTTP errors."""
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="share_not_found") from exc
    if isinstance(exc, StorageError):
        logger.warning(
            "share.storage_error",
            extra={"extra": {"bucket": bucket, "code": exc.code, "error": exc.message}},
        )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=exc.message) from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc


@router.post("", response_model=ShareGrantResponse, status_code=status.HTTP_201_CREATED)
async def create_share(
    bucket: str,
    payload: ShareCreateRequest,
    manager: ShareManager = Depends(get_share_manager),
):
    try:
        grant = await manager.create_share(bucket, payload.memo, payload.expires_at)
    except (NotFoundError, StorageError, ValueError) as exc:
        _raise_http(exc, bucket)
    return ShareGrantResponse(id=grant.id, token=grant.token, url=build_share_url(grant.id, grant.token))


@router.get("", response_model=list[ShareRecord])
async def list_shares(bucket: str, manager: ShareManager = Depends(get_share_manager)):
    try:
        return await manager.list_shares(bucket)
    except StorageError as exc:
        _raise_http(exc, bucket)


@router.patch("/{share_id}", response_model=MessageResponse)
async def update_share(
    bucket: str,
    share_id: str,
    payload: ShareUpdateRequest,
    manager: ShareManager = Depends(get_share_manager),
):
    try:
        await manager.update_share(bucket, share_id, payload.expires_at)
    except (NotFoundError, StorageError, ValueError) as exc:
        _raise_http(exc, bucket)
    return MessageResponse(message="share_updated")


@router.post("/{share_id}/token", response_model=ShareGrantResponse, status_code=status.HTTP_201_CREATED)
async def regenerate_share_token(
    bucket: str,
    share_id: str,
    manager: ShareManager = Depends(get_share_manager),
):
    try:
        token = await manager.regenerate_share_token(bucket, share_id)
    except (NotFoundError, StorageError) as exc:
        _raise_http(exc, bucket)
    return ShareGrantResponse(id=share_id, token=token, url=build_share_url(share_id, token))


@router.delete("/{share_id}", response_model=MessageResponse, status_code=status.HTTP_202_ACCEPTED)
async def revoke_share(
    bucket: str,
    share_id: str,
    manager: ShareManager = Depends(get_share_manager),
):
    try:
        await manager.revoke_share(bucket, share_id)
    except StorageError as exc:
        _raise_http(exc, bucket)
    return MessageResponse(message="share_revoked")
