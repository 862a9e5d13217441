"""CLI script to create or update the default agent profiles and bot users."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(BACKEND_ROOT))


async def _run() -> int:
    from crewboard.db.session import async_session_maker, init_db
    from crewboard.services.agents.seed import seed_agent_profiles

    await init_db()
    async with async_session_maker() as session:
        outcome = await seed_agent_profiles(session)

    for name in outcome.created:
        sys.stdout.write(f"Created agent: {name}\n")
    for name in outcome.updated:
        sys.stdout.write(f"Updated agent: {name}\n")
    return 0


def main() -> None:
    """Run the async seeding workflow and exit with its return code."""
    raise SystemExit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
