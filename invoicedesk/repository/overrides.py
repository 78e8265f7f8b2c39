"""Override store — user corrections keyed by (document, field)."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from invoicedesk.models.base import utcnow
from invoicedesk.models.override import Override
from invoicedesk.reconciliation import validate_field_name

logger = logging.getLogger(__name__)


async def set_override(db: AsyncSession, document_id: uuid.UUID, field_name: str, value: str) -> None:
    """Create or replace the override for one field.

    Upserts on the (document_id, field_name) unique constraint so a second
    write replaces the value instead of adding a row.
    """
    validate_field_name(field_name)
    now = utcnow()
    stmt = sqlite_insert(Override).values(
        id=uuid.uuid4(),
        document_id=document_id,
        field_name=field_name,
        override_value=value,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[Override.document_id, Override.field_name],
        set_={"override_value": stmt.excluded.override_value, "updated_at": now},
    )
    await db.execute(stmt)
    logger.info("Override set: document=%s field=%s", document_id, field_name)


async def get_overrides(db: AsyncSession, document_id: uuid.UUID) -> list[Override]:
    result = await db.execute(
        select(Override)
        .where(Override.document_id == document_id)
        .order_by(Override.field_name)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def clear_override(db: AsyncSession, document_id: uuid.UUID, field_name: str) -> bool:
    """Remove one override. Returns False if none was set."""
    validate_field_name(field_name)
    result = await db.execute(
        delete(Override)
        .where(Override.document_id == document_id, Override.field_name == field_name)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def clear_all_overrides(db: AsyncSession, document_id: uuid.UUID) -> int:
    """Remove every override of a document. Returns how many were removed."""
    result = await db.execute(
        delete(Override)
        .where(Override.document_id == document_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
