"""Run-once and polling loop shared by the worker entrypoints."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Callable

from app.core.config import get_settings
from app.core.log_config import configure_logging

logger = logging.getLogger(__name__)


async def run_worker(
    name: str,
    run_cycle: Callable[[], Awaitable[dict[str, int]]],
    *,
    mode_env: str,
    poll_seconds: int,
) -> None:
    """Run one cycle when ``mode_env`` is ``once`` (default), otherwise poll forever."""
    configure_logging(get_settings().log_level)
    mode = os.getenv(mode_env, "once").strip().lower()

    if mode == "once":
        stats = await run_cycle()
        logger.info("%s stats: %s", name, stats)
        return

    logger.info("%s polling every %ss", name, poll_seconds)
    while True:
        try:
            stats = await run_cycle()
            logger.info("%s stats: %s", name, stats)
        except Exception:
            logger.exception("%s cycle failed", name)
        await asyncio.sleep(poll_seconds)
