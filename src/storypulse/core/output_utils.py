# src/storypulse/core/output_utils.py
"""Debug snapshots of raw upstream traffic.

When ``STORYPULSE_DEBUG_DIR`` is set, the dispatcher writes each raw upstream
reply there so misbehaving model output can be inspected after the fact.
Writes are best effort and never break the request path.
"""

from __future__ import annotations

import asyncio
import re
import time
from pathlib import Path

from storypulse.core.logging import get_logger

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def snapshot_filename(base_slug: str, part: str, *, now: float | None = None) -> str:
    """``<slug>_<part>_<epoch ms>.txt`` with unsafe characters replaced by ``_``."""
    stamp = int((time.time() if now is None else now) * 1000)
    slug = _UNSAFE_CHARS.sub("_", base_slug.strip()).strip("_") or "snapshot"
    suffix = _UNSAFE_CHARS.sub("_", part.strip()).strip("_") or "part"
    return f"{slug}_{suffix}_{stamp}.txt"


async def write_debug_snapshot(
    debug_dir: str | Path | None,
    *,
    base_slug: str,
    part: str,
    body: str,
    header: str | None = None,
) -> Path | None:
    """Write ``body`` (with an optional header line) under ``debug_dir``.

    Returns the written path, or ``None`` when snapshots are disabled or the
    write failed.
    """
    if not debug_dir:
        return None
    path = Path(debug_dir) / snapshot_filename(base_slug, part)
    text = f"--- {header.strip()} ---\n\n{body}" if header else (body or "")

    def _save() -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")

    try:
        await asyncio.to_thread(_save)
    except OSError as exc:
        logger.warning("Could not write debug snapshot %s: %s", path, exc)
        return None
    return path


__all__ = ["snapshot_filename", "write_debug_snapshot"]
