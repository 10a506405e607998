"""
Audit trail for admin writes.
Recording is best-effort: a failure is logged and never fails the write
that was already committed.
"""
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from nightlife.models import AuditLog

logger = logging.getLogger(__name__)


async def record_audit(
    db: AsyncSession,
    action: str,
    entity_type: str,
    entity_id: Optional[int],
    entity_name: Optional[str],
    details: str,
) -> bool:
    """
    Append one audit row.

    Args:
        db: Privileged database session
        action: 'created', 'updated' or 'deleted'
        entity_type: 'venue' or 'collection'
        entity_id: Id of the written row
        entity_name: Display name of the written row
        details: Human readable summary

    Returns:
        bool: True if the row was stored
    """
    try:
        db.add(AuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            details=details,
        ))
        await db.commit()
        return True
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Audit log error ({action} {entity_type} {entity_id}): {str(e)}", exc_info=True)
        return False
