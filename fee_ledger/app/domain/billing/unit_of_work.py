"""
Transaction boundaries for ledger operations.

A ledger unit commits on success and rolls back on any error. Units that
touch an existing obligation also hold its lock until after the commit, so
no other worker can observe a payment without its reconciled status.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from fee_ledger.app.core.exceptions import ConflictError
from fee_ledger.app.services.obligation_locking import obligation_lock


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@asynccontextmanager
async def ledger_unit(
    db: AsyncSession,
    conflict_message: str = "Ledger write conflicts with existing data"
) -> AsyncIterator[AsyncSession]:
    """
    Commit-or-rollback scope.

    Storage integrity violations leave as ConflictError rather than the
    driver's own exception type.
    """
    try:
        yield db
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise ConflictError(conflict_message) from e
    except BaseException:
        await db.rollback()
        raise


@asynccontextmanager
async def locked_ledger_unit(
    db: AsyncSession,
    fee_id: int,
    conflict_message: Optional[str] = None
) -> AsyncIterator[AsyncSession]:
    """ledger_unit held under the obligation's lock."""
    async with obligation_lock(fee_id):
        async with ledger_unit(db, conflict_message or f"Conflicting write on fee obligation {fee_id}"):
            yield db
