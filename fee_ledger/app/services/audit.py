"""
Audit logging service for ledger actions.

Entries are added to the caller's session and flushed, not committed: the
caller's ledger transaction commits the action and its audit entry together.
Admins read a fee's trail through GET /fees/{fee_id}/audit.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from fee_ledger.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    FEE_CREATED = "FEE_CREATED"
    FEE_UPDATED = "FEE_UPDATED"
    FEE_STATUS_OVERRIDDEN = "FEE_STATUS_OVERRIDDEN"
    FEE_STATUS_RECONCILED = "FEE_STATUS_RECONCILED"

    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    PAYMENT_UPDATED = "PAYMENT_UPDATED"
    PAYMENT_DELETED = "PAYMENT_DELETED"

    INVOICE_GENERATED = "INVOICE_GENERATED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    target_user_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None
) -> AuditLog:
    """
    Add an audit entry to the current transaction.

    Args:
        db: Database session (transaction owned by caller)
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_username: Username of actor
        target_user_id: Subject whose ledger was touched
        entity_type: "fee", "payment" or "invoice"
        entity_id: ID of the entity acted upon
        metadata: Additional context as JSON
        ip_address: IP address of the request

    Returns:
        Flushed AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        target_user_id=target_user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
        ip_address=ip_address
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
