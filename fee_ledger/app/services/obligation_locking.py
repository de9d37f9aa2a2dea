"""
Per-obligation locking for ledger mutations.

Recording, correcting or deleting a payment, changing an obligation and
generating an invoice all read the ledger aggregate and write back derived
state. Two such units on the same obligation must not interleave, so each
one runs inside `obligation_lock(fee_id)`. Different obligations use
different keys and never wait on each other.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from redis.exceptions import LockError

from fee_ledger.app.core.config import settings
from fee_ledger.app.core.exceptions import ConflictError
from fee_ledger.app.core.redis_client import get_redis

logger = logging.getLogger("fee_ledger.locking")

OBLIGATION_LOCK_PREFIX = "lock:fee_obligation:"


def obligation_lock_key(fee_id: int) -> str:
    return f"{OBLIGATION_LOCK_PREFIX}{fee_id}"


@asynccontextmanager
async def obligation_lock(fee_id: int) -> AsyncIterator[None]:
    """
    Hold the distributed lock for one fee obligation.

    The lock expires after `obligation_lock_timeout_seconds` so a crashed
    worker cannot wedge an obligation. Waiting longer than
    `obligation_lock_wait_seconds` raises ConflictError.

    Raises:
        ConflictError: If the lock could not be acquired in time
    """
    client = await get_redis()
    lock = client.lock(
        obligation_lock_key(fee_id),
        timeout=settings.obligation_lock_timeout_seconds,
        blocking_timeout=settings.obligation_lock_wait_seconds,
    )

    acquired = await lock.acquire()
    if not acquired:
        logger.warning("Timed out waiting for lock on fee obligation %s", fee_id)
        raise ConflictError(
            f"Fee obligation {fee_id} is busy, retry the request",
            details={"fee_id": fee_id}
        )

    try:
        yield
    finally:
        try:
            await lock.release()
        except LockError:
            # Lock expired while held; the transaction already finished.
            logger.warning("Lock on fee obligation %s expired before release", fee_id)
