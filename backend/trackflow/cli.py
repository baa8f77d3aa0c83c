"""Management CLI.

Usage:
    python -m trackflow.cli init-db                          # Create all tables
    python -m trackflow.cli create-admin EMAIL NAME [PASS]   # Create an admin user
    python -m trackflow.cli issue-token EMAIL                # Print an access token
    python -m trackflow.cli recompute-weights                # Re-derive every batch total_weight
    python -m trackflow.cli list-batches                     # Show batches with weights
"""

import asyncio
import sys

from sqlalchemy import select

from trackflow.auth.jwt import create_access_token
from trackflow.auth.password import generate_temporary_password, hash_password
from trackflow.database import Base, async_session, engine
from trackflow.models import LogisticsBatch, User, UserRole
from trackflow.services.batch_weight import member_count, recompute_total_weight

USAGE = (
    "Usage: python -m trackflow.cli "
    "[init-db|create-admin EMAIL NAME [PASSWORD]|issue-token EMAIL|recompute-weights|list-batches]"
)


async def init_db():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    print("Tables created.")


async def create_admin(email: str, full_name: str, password: str | None = None):
    async with async_session() as db:
        existing = (
            await db.execute(select(User).where(User.email == email.lower()))
        ).scalar_one_or_none()
        if existing:
            print(f"User {email} already exists.")
            return

        generated = password is None
        password = password or generate_temporary_password()
        db.add(User(
            email=email.lower(),
            full_name=full_name,
            hashed_password=hash_password(password),
            role=UserRole.ADMIN,
            is_active=True,
        ))
        await db.commit()

    print(f"Admin {email} created.")
    if generated:
        print(f"  Temporary password: {password}")


async def issue_token(email: str):
    async with async_session() as db:
        user = (
            await db.execute(select(User).where(User.email == email.lower()))
        ).scalar_one_or_none()
    if not user or not user.is_active:
        print(f"No active user {email}.")
        sys.exit(1)
    print(create_access_token(user.id, user.role.value))


async def recompute_weights():
    drifted = 0
    async with async_session() as db:
        batches = (
            await db.execute(select(LogisticsBatch).order_by(LogisticsBatch.batch_number))
        ).scalars().all()
        for batch in batches:
            previous = batch.total_weight or 0.0
            total = await recompute_total_weight(db, batch)
            if abs(total - previous) > 1e-9:
                drifted += 1
                print(f"  {batch.batch_number}: {previous:.2f} -> {total:.2f}")
        await db.commit()
    print(f"\n{len(batches)} batch(es), {drifted} corrected")


async def list_batches():
    async with async_session() as db:
        batches = (
            await db.execute(select(LogisticsBatch).order_by(LogisticsBatch.created_at.desc()))
        ).scalars().all()
        for batch in batches:
            count = await member_count(db, batch.id)
            print(
                f"  {batch.batch_number:<16} {batch.status:<12} "
                f"{count:>4} assemblies  {batch.total_weight or 0.0:>10.2f} kg"
            )
    print(f"\n{len(batches)} batch(es)")


def main(argv: list[str]) -> None:
    cmd = argv[1] if len(argv) > 1 else ""
    args = argv[2:]
    if cmd == "init-db":
        asyncio.run(init_db())
    elif cmd == "create-admin" and len(args) in (2, 3):
        asyncio.run(create_admin(*args))
    elif cmd == "issue-token" and len(args) == 1:
        asyncio.run(issue_token(args[0]))
    elif cmd == "recompute-weights":
        asyncio.run(recompute_weights())
    elif cmd == "list-batches":
        asyncio.run(list_batches())
    else:
        print(USAGE)
        sys.exit(2)


def cli_entry() -> None:
    main(sys.argv)


if __name__ == "__main__":
    main(sys.argv)
