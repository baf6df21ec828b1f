"""Filesystem contract used by reconciliation."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path


async def path_exists(path: str | Path) -> bool:
    """Return whether ``path`` exists without blocking the event loop."""
    return await asyncio.to_thread(os.path.exists, path)


__all__ = ["path_exists"]
