"""
BookPress — Pipeline logger.

One "bookpress" logger for the whole service. Job- and order-scoped lines
carry a "[id]" prefix so a single compile can be followed through the
render workers, the merge and the provider calls.
"""

import logging
import os
import time
from contextlib import contextmanager
from typing import Generator

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s | %(levelname)-7s | %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger("bookpress")


def _scoped(scope: str | None, text: str) -> str:
    return f"[{scope}] {text}" if scope else text


@contextmanager
def step_timer(step_name: str, scope: str | None = None) -> Generator[None, None, None]:
    """Log the start and duration of a pipeline step.

    A step that raises is logged as failed, and the exception propagates.
    """
    label = _scoped(scope, step_name)
    logger.info("▶ %s — started", label)
    start = time.perf_counter()
    try:
        yield
    except Exception as exc:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.warning("✗ %s — failed after %.0f ms (%s)", label, elapsed_ms, type(exc).__name__)
        raise
    else:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("✔ %s — completed in %.0f ms", label, elapsed_ms)
