"""Dependency probes with all-settled semantics."""

import asyncio
import logging
import time
from typing import Callable

logger = logging.getLogger(__name__)


def _timed(probe: Callable[[], None]) -> Callable[[], int]:
    def run() -> int:
        start = time.monotonic()
        probe()
        return int((time.monotonic() - start) * 1000)

    return run


async def run_probes(probes: dict[str, Callable[[], None]]) -> dict:
    """
    Run blocking probes concurrently in worker threads.

    A probe passes by returning and fails by raising; one failure never cancels
    the others.
    """
    names = list(probes)
    outcomes = await asyncio.gather(
        *(asyncio.to_thread(_timed(probes[name])) for name in names),
        return_exceptions=True,
    )

    checks = {}
    for name, outcome in zip(names, outcomes):
        if isinstance(outcome, BaseException):
            message = getattr(outcome, "message", None) or str(outcome) or type(outcome).__name__
            logger.error(f"Health probe {name} failed: {message}")
            checks[name] = {"ok": False, "error": message}
        else:
            checks[name] = {"ok": True, "ms": outcome}
    return {"ok": all(check["ok"] for check in checks.values()), "checks": checks}
