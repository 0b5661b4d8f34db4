"""Create tables and initialise the request-code counter."""

import argparse
import asyncio

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from sales_helper.config import settings
from sales_helper.models import Base, RequestCounter
from sales_helper.repositories.request import REQUEST_COUNTER


async def seed(last_used: int | None = None):
    """Create the schema; optionally set the last QR number already issued."""
    engine = create_async_engine(settings.database_url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession)

    async with session_factory() as session:
        counter = (
            await session.execute(
                select(RequestCounter).where(RequestCounter.name == REQUEST_COUNTER)
            )
        ).scalar_one_or_none()

        if last_used is not None:
            if counter is None:
                session.add(RequestCounter(name=REQUEST_COUNTER, value=last_used))
            else:
                counter.value = last_used
            print(f"  + Counter set: next request is QR-{last_used + 1:03d}")
        elif counter is None:
            print(f"  + Counter empty: first request will be QR-{settings.request_counter_start:03d}")
        else:
            print(f"  = Counter at {counter.value}")

        await session.commit()

    await engine.dispose()
    print("\nSeed completed!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--last-used",
        type=int,
        default=None,
        help="Highest QR number already issued (e.g. 41 when QR-041 exists)",
    )
    args = parser.parse_args()
    asyncio.run(seed(args.last_used))
