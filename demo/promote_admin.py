#!/usr/bin/env python3
"""Promote a registered member to ADMIN so they can verify projects. Run on the server."""
import argparse
import asyncio

from sqlalchemy import update

from carbon_market.database import AsyncSessionLocal, engine
from carbon_market.models.user import User, UserType


async def promote(email: str) -> int:
    async with AsyncSessionLocal() as s:
        r = await s.execute(
            update(User)
            .where(User.email == email)
            .values(user_type=UserType.ADMIN)
        )
        await s.commit()
    await engine.dispose()
    return r.rowcount


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("email")
    args = parser.parse_args()
    print(f"Rows updated: {asyncio.run(promote(args.email))}")
