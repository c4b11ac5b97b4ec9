"""Audit logging for share operations.

Audit events go to a dedicated logger rather than a table: the share
subsystem has no database of its own.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from app.models import AuditAction, AuditStatus

audit_logger = logging.getLogger("garage_share.audit")


def log_audit_event(
    action: AuditAction,
    status: AuditStatus = AuditStatus.success,
    bucket: Optional[str] = None,
    share_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> None:
    """
    Emit one structured audit event.

    Args:
        action: Standardized action type (AuditAction enum)
        status: Operation status (success/failure/denied)
        bucket: Bucket the share is confined to
        share_id: Share the event concerns
        metadata: Additional structured data about the operation
    """
    audit_entry = {
        "action": action.value,
        "status": status.value,
        "created_at": datetime.now(timezone.utc).isoformat(),
    }

    # Add optional fields only if provided
    if bucket:
        audit_entry["bucket"] = bucket
    if share_id:
        audit_entry["share_id"] = share_id
    if metadata:
        audit_entry["metadata"] = metadata

    level = logging.INFO if status == AuditStatus.success else logging.WARNING
    audit_logger.log(level, action.value, extra={"extra": audit_entry})
