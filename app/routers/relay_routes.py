from __future__ import annotations

"""Same-origin relay for presigned downloads.

``/s3-proxy/{encoded_endpoint}/{mac}/{path}`` forwards to the decoded storage
endpoint and streams the body back untouched. Only presigned requests pass:
the signature in the query string is the sole authority the relay forwards.
"""

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.responses import StreamingResponse

from app.models import AuditAction, AuditStatus
from app.settings import RELAY_PREFIX
from app.utils.audit import log_audit_event
from app.utils.logger import logger
from app.utils.relay import (
    HttpClientFactory,
    build_target_url,
    decode_endpoint,
    forward_request_headers,
    forward_response_headers,
    get_http_client_factory,
    is_allowed_endpoint,
    open_upstream,
    verify_endpoint_mac,
)

router = APIRouter(prefix=RELAY_PREFIX, tags=["relay"])

SIGNATURE_PARAM = "x-amz-signature"


def _raw_subpath(request: Request, encoded_endpoint: str, endpoint_mac: str) -> str:
    """Path after the endpoint binding, exactly as the client sent it.

    The signature covers the encoded path, so it is taken from ``raw_path``
    rather than the decoded path parameter.
    """
    raw = request.scope.get("raw_path")
    raw_path = raw.decode("latin-1") if raw else request.url.path
    marker = f"{RELAY_PREFIX}/{encoded_endpoint}/{endpoint_mac}"
    index = raw_path.find(marker)
    return raw_path[index + len(marker):] if index >= 0 else raw_path


@router.api_route("/{encoded_endpoint}/{endpoint_mac}/{path:path}", methods=["GET", "HEAD"], include_in_schema=False)
async def relay(
    encoded_endpoint: str,
    endpoint_mac: str,
    path: str,
    request: Request,
    client_factory: HttpClientFactory = Depends(get_http_client_factory),
):
    try:
        endpoint = decode_endpoint(encoded_endpoint)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_endpoint") from exc

    if not verify_endpoint_mac(encoded_endpoint, endpoint_mac):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="invalid_relay_path")

    if not is_allowed_endpoint(endpoint):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="endpoint_not_allowed")

    query = request.url.query
    if SIGNATURE_PARAM not in {k.lower() for k in request.query_params.keys()}:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="unsigned_request")

    target = build_target_url(endpoint, _raw_subpath(request, encoded_endpoint, endpoint_mac), query)
    headers = forward_request_headers(request.headers.items())

    client = client_factory()
    try:
        upstream = await open_upstream(client, request.method, target, headers)
    except httpx.TimeoutException as exc:
        await client.aclose()
        logger.warning("relay.timeout", extra={"extra": {"endpoint": endpoint}})
        raise HTTPException(status_code=status.HTTP_504_GATEWAY_TIMEOUT, detail="storage_timeout") from exc
    except httpx.HTTPError as exc:
        await client.aclose()
        logger.warning(
            "relay.unreachable",
            extra={"extra": {"endpoint": endpoint, "error": type(exc).__name__}},
        )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="storage_unreachable") from exc

    log_audit_event(
        AuditAction.relay_fetch,
        status=AuditStatus.success if upstream.status_code < 400 else AuditStatus.failure,
        metadata={"method": request.method, "status_code": upstream.status_code},
    )

    async def _stream():
        try:
            async for chunk in upstream.aiter_raw():
                yield chunk
        finally:
            await upstream.aclose()
            await client.aclose()

    return StreamingResponse(
        _stream(),
        status_code=upstream.status_code,
        headers=forward_response_headers(upstream.headers),
    )
