"""Derived batch weight.

`LogisticsBatch.total_weight` always equals

    Σ weight × quantity   over the batch's current membership rows

and is rewritten by whichever transaction changes the membership.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from trackflow.models.assembly import Assembly
from trackflow.models.logistics_batch import BatchAssembly, LogisticsBatch


async def member_weight_sum(db: AsyncSession, batch_id: str) -> float:
    """Sum member weight × quantity straight from the membership rows."""
    result = await db.execute(
        select(
            func.coalesce(
                func.sum(
                    func.coalesce(Assembly.weight, 0) * func.coalesce(Assembly.quantity, 1)
                ),
                0,
            )
        )
        .select_from(BatchAssembly)
        .join(Assembly, Assembly.id == BatchAssembly.assembly_id)
        .where(BatchAssembly.batch_id == batch_id)
    )
    return float(result.scalar() or 0.0)


async def member_count(db: AsyncSession, batch_id: str) -> int:
    result = await db.execute(
        select(func.count(BatchAssembly.id)).where(BatchAssembly.batch_id == batch_id)
    )
    return result.scalar() or 0


async def recompute_total_weight(db: AsyncSession, batch: LogisticsBatch) -> float:
    """Re-derive and store `batch.total_weight`; returns the new value."""
    total = await member_weight_sum(db, batch.id)
    batch.total_weight = total
    await db.flush()
    return total
