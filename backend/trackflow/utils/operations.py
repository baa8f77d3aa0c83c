"""Helper for recording mobile operation log entries.

Usage:
    await log_operation(
        db, "assembly_added_to_batch_success",
        user_id=user.id, device_info=body.device_info,
        request_details={"batchId": batch.id, "assemblyId": assembly.id},
        status_code=201,
    )

The row is written inside a SAVEPOINT of the current transaction. A
failure to write it is logged and reported back as False; it never
aborts the operation being recorded.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.models.operation_log import MobileOperationLog

logger = logging.getLogger("trackflow.operations")

# Never persisted, whatever the caller passes in
SENSITIVE_KEYS = {"cardId", "card_id", "password", "temporaryPassword"}


def scrub(details: dict | None) -> dict | None:
    if details is None:
        return None
    return {k: v for k, v in details.items() if k not in SENSITIVE_KEYS}


async def log_operation(
    db: AsyncSession,
    operation_type: str,
    *,
    user_id: str | None = None,
    device_info: dict | None = None,
    request_details: dict | None = None,
    status_code: int | None = None,
) -> bool:
    """Append an operation log row; returns False if it could not be written."""
    logger.info(
        "%s user=%s status=%s", operation_type, user_id, status_code,
    )
    try:
        async with db.begin_nested():
            db.add(MobileOperationLog(
                operation_type=operation_type,
                user_id=user_id,
                device_info=device_info,
                request_details=scrub(request_details),
                status_code=status_code,
            ))
    except Exception:
        logger.warning(
            "Could not persist operation log entry %s", operation_type, exc_info=True,
        )
        return False
    return True
