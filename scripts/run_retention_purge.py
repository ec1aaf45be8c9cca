from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import NoReturn

# Ensure the backend root (parent of this file's directory) is on sys.path
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from app.core.logging import logger  # noqa: E402
from app.services.retention_purge_scheduler import RetentionPurgeScheduler  # noqa: E402
from db.session import AsyncSessionLocal, engine  # noqa: E402


async def _run() -> int:
    scheduler = RetentionPurgeScheduler(AsyncSessionLocal)
    try:
        result = await scheduler.run_once()
    finally:
        await engine.dispose()
    if result is None:
        return 1
    for entity_type, count in sorted(result.purged.items()):
        logger.info("  %s: %d", entity_type, count)
    return 0


def main() -> NoReturn:
    """Run the retention purge once, outside the web process (e.g. from cron)."""
    logging.basicConfig(level=logging.INFO)
    raise SystemExit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
