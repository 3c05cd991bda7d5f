"""
Audit logging service for tracking user and operator actions.

Provides centralized logging for compliance and dispute review.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from campus_parking.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Schedules & matching
    SCHEDULE_UPDATED = "SCHEDULE_UPDATED"
    CARPOOL_CREATED = "CARPOOL_CREATED"
    CARPOOL_JOINED = "CARPOOL_JOINED"

    # Spots
    SPOT_REGISTERED = "SPOT_REGISTERED"

    # Rentals
    RENTAL_CREATED = "RENTAL_CREATED"
    RENTAL_CONFIRMED = "RENTAL_CONFIRMED"
    RENTAL_CANCELLED = "RENTAL_CANCELLED"
    REPORT_FILED = "REPORT_FILED"
    REASSIGNMENT_ACCEPTED = "REASSIGNMENT_ACCEPTED"
    REASSIGNMENT_REJECTED = "REASSIGNMENT_REJECTED"

    # Operators
    DISPUTE_RESOLVED = "DISPUTE_RESOLVED"
    SWEEP_RUN = "SWEEP_RUN"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Log an action to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_username: Username of actor
        target_type: Kind of object acted upon ("rental", "spot", ...)
        target_id: ID of the object acted upon
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        target_type=target_type,
        target_id=target_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    return audit_log


async def log_user_action(
    db: AsyncSession,
    current_user: dict,
    action: str,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log an action performed by the authenticated caller.

    Args:
        current_user: Identity token payload (user_id, sub)
    """
    return await log_event(
        db=db,
        action=action,
        actor_id=current_user.get("user_id"),
        actor_username=current_user.get("sub"),
        target_type=target_type,
        target_id=target_id,
        metadata=metadata
    )


async def get_audit_trail(
    db: AsyncSession,
    target_type: Optional[str] = None,
    target_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if target_type:
        query = query.where(AuditLog.target_type == target_type)

    if target_id:
        query = query.where(AuditLog.target_id == target_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return result.scalars().all()
