"""Utility helpers shared by the sampling runtime."""

from __future__ import annotations

import functools
import hashlib
import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional

import deepdiff

logger = logging.getLogger(__name__)


@contextmanager
def stage_timer(stage: str, logger: logging.Logger, slow_after: float = 5.0):
    """Time a runner stage: DEBUG for every stage, INFO once it exceeds ``slow_after`` seconds."""
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        level = logging.INFO if elapsed > slow_after else logging.DEBUG
        logger.log(level, "stage %s finished after %.4f seconds", stage, elapsed)


def retry(max_attempts: int, describe: Optional[Callable[..., str]] = None):
    """Decorator factory that re-invokes the wrapped callable up to ``max_attempts``.

    The wrapped callable must be safe to call again after a failure. ``describe``
    receives the call arguments and names the unit of work in the attempt logs
    (``"bundle 3"``); it defaults to the callable's qualified name. The last
    failure is re-raised unchanged.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            work = func.__qualname__ if describe is None else describe(*args, **kwargs)
            for attempt in range(1, max_attempts + 1):
                started = time.perf_counter()
                try:
                    result = func(*args, **kwargs)
                except Exception:
                    last = attempt == max_attempts
                    (logger.error if last else logger.warning)(
                        "%s: attempt %d / %d failed after %.4fs ... %s",
                        work,
                        attempt,
                        max_attempts,
                        time.perf_counter() - started,
                        "escalating" if last else "retrying",
                        exc_info=True,
                    )
                    if last:
                        raise
                    continue
                if attempt > 1:
                    logger.debug("%s: attempt %d / %d succeeded", work, attempt, max_attempts)
                return result

        return wrapper

    return decorator


def content_digest(obj) -> str:
    """Stable digest of ``obj`` by content rather than identity.

    Repetitions are part of the content, so ``[1, 1, 2]`` and ``[1, 2, 2]``
    digest differently.
    """
    key = [obj]
    hashes = deepdiff.DeepHash(key, ignore_repetition=False, ignore_iterable_order=False)
    return hashes[key]


def derive_seed(*parts) -> int:
    """Combine ``parts`` into a 64-bit seed that does not depend on ``PYTHONHASHSEED``."""
    text = "/".join(str(part) for part in parts)
    return int(hashlib.sha256(text.encode()).hexdigest()[:16], 16)
