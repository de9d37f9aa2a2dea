"""
Invoice number allocation.

Numbers look like INV-2026-00042: the issuing year plus a global sequence
that is never reset per year. The sequence comes from one atomic
increment-and-read on the `invoice_sequences` row, never from counting
existing invoices.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from fee_ledger.app.core.config import settings
from fee_ledger.app.models.invoice import InvoiceSequence, INVOICE_SEQUENCE_NAME

# Dialects with INSERT ... ON CONFLICT DO UPDATE ... RETURNING
UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def format_invoice_number(year: int, sequence: int) -> str:
    return f"{settings.invoice_number_prefix}-{year}-{sequence:0{settings.invoice_sequence_width}d}"


async def next_sequence_value(db: AsyncSession, name: str = INVOICE_SEQUENCE_NAME) -> int:
    """
    Increment the named counter and return the new value.

    A single upsert: the first call for a name creates the row with 1,
    later calls add one to it. Runs inside the caller's transaction, so a
    rolled back generation gives its number back. On PostgreSQL the row
    lock taken by the upsert also orders concurrent generations.
    """
    dialect = db.get_bind().dialect.name
    try:
        insert = UPSERT_INSERTS[dialect]
    except KeyError:
        raise NotImplementedError(f"Invoice sequences are not supported on {dialect}")

    statement = insert(InvoiceSequence).values(name=name, value=1)
    statement = statement.on_conflict_do_update(
        index_elements=[InvoiceSequence.name],
        set_={"value": InvoiceSequence.value + 1},
    ).returning(InvoiceSequence.value)

    result = await db.execute(statement)
    return int(result.scalar_one())


async def next_invoice_number(db: AsyncSession, year: int) -> str:
    return format_invoice_number(year, await next_sequence_value(db))
