"""Recipient-facing share proxy (unauthenticated; the token is the credential)."""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.models import (
    AuditAction,
    AuditStatus,
    ShareProxyRequest,
)
from app.settings import SHARE_PROXY_RATE_LIMIT
from app.utils.audit import log_audit_event
from app.utils.envelope import ShareEnvelopeCodec, get_envelope_codec
from app.utils.errors import ShareAccessDenied, StorageError
from app.utils.executor import ShareOperationExecutor
from app.utils.gateway import CapabilityGateway
from app.utils.s3_client import S3ClientFactory, get_s3_client_factory
from app.utils.share_store import s3_share_store_factory

# Rate limiter exported by main.py
from app.main import limiter

router = APIRouter(prefix="/share", tags=["share"])

# One answer for every rejection: recipients never learn which check failed.
ACCESS_DENIED_DETAIL = "invalid_or_expired_token"


def get_gateway(
    codec: ShareEnvelopeCodec = Depends(get_envelope_codec),
    client_factory: S3ClientFactory = Depends(get_s3_client_factory),
) -> CapabilityGateway:
    return CapabilityGateway(codec, s3_share_store_factory(client_factory))


def get_executor(client_factory: S3ClientFactory = Depends(get_s3_client_factory)) -> ShareOperationExecutor:
    return ShareOperationExecutor(client_factory)


@router.post(
    "/proxy",
    response_model=None,
    responses={401: {"description": "Token rejected"}},
)
@limiter.limit(SHARE_PROXY_RATE_LIMIT)
async def share_proxy(
    request: Request,
    payload: ShareProxyRequest,
    gateway: CapabilityGateway = Depends(get_gateway),
    executor: ShareOperationExecutor = Depends(get_executor),
):
    operation = payload.operation
    try:
        context = await gateway.authorize(payload.token, operation.bucket)
        result = await executor.execute(context, operation)
    except ShareAccessDenied as exc:
        log_audit_event(
            AuditAction.share_denied,
            status=AuditStatus.denied,
            bucket=operation.bucket,
            metadata={"reason": exc.reason, "operation": operation.action},
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=ACCESS_DENIED_DETAIL) from exc
    except StorageError as exc:
        # Storage faults are also indistinguishable from a bad token for the recipient.
        log_audit_event(
            AuditAction.share_denied,
            status=AuditStatus.failure,
            bucket=operation.bucket,
            metadata={"reason": "storage_error", "code": exc.code, "operation": operation.action},
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=ACCESS_DENIED_DETAIL) from exc

    log_audit_event(
        AuditAction.share_access,
        bucket=context.bucket,
        share_id=context.share_id,
        metadata={"operation": operation.action},
    )
    return result
