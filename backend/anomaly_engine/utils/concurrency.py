"""Bounded fan-out of independent per-address units."""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, TypeVar

from anomaly_engine.utils.cancellation import CancellationToken, is_cancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def fan_out(
    unit: Callable[[T], List[R]],
    items: Iterable[T],
    max_workers: int = 4,
    cancel_token: Optional[CancellationToken] = None,
) -> List[R]:
    """Run ``unit`` for every item on a thread pool and concatenate results.

    Results keep the order of ``items``. A unit that raises is logged and
    contributes nothing; units not yet started when the token is cancelled
    are skipped.
    """
    items = list(items)
    if not items:
        return []

    def _safe(item: T) -> List[R]:
        if is_cancelled(cancel_token):
            return []
        try:
            return list(unit(item))
        except Exception:
            logger.exception("Detection unit failed for %s", item)
            return []

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
        futures = [executor.submit(_safe, item) for item in items]
        results: list[R] = []
        for future in futures:
            results.extend(future.result())

    if is_cancelled(cancel_token):
        logger.info("Fan-out cancelled; returning %d partial results", len(results))
    return results
