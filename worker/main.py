# worker/main.py
"""
Background worker: runs the media generation scheduler on its own.

Use this when the chat bot process does not host the scheduler itself.
There must be only one scheduler per database.
"""
from __future__ import annotations

import asyncio
import logging
import os
import sys

# Ensure project root is on path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from jobs.runtime import build_media_runtime

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("worker")


async def run_loop() -> None:
    runtime = build_media_runtime()
    logger.info("Worker starting")
    try:
        await runtime.scheduler.run_forever()
    except asyncio.CancelledError:
        logger.info("Worker cancelled")
        raise


def main() -> None:
    try:
        asyncio.run(run_loop())
    except KeyboardInterrupt:
        logger.info("Worker stopped")


if __name__ == "__main__":
    main()
