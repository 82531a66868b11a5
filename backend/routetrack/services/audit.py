"""Audit trail for administrative edits."""

import uuid
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from routetrack.models.audit_log import AuditLog


async def record_audit(
    db: AsyncSession,
    table_name: str,
    record_id: uuid.UUID | str,
    action: str,
    old_values: dict[str, Any] | None,
    new_values: dict[str, Any] | None,
    changed_by: str,
) -> AuditLog:
    """Add an audit row to the caller's transaction."""
    entry = AuditLog(
        table_name=table_name,
        record_id=str(record_id),
        action=action,
        old_values=jsonable_encoder(old_values) if old_values is not None else None,
        new_values=jsonable_encoder(new_values) if new_values is not None else None,
        changed_by=changed_by,
    )
    db.add(entry)
    return entry


async def audit_trail(db: AsyncSession, table_name: str, record_id: uuid.UUID | str) -> list[AuditLog]:
    result = await db.execute(
        select(AuditLog)
        .where(AuditLog.table_name == table_name, AuditLog.record_id == str(record_id))
        .order_by(AuditLog.created_at, AuditLog.id)
    )
    return list(result.scalars().all())
