"""Async helpers around the synchronous Azure SDK clients.

The management SDK clients block on network I/O. Each call is pushed to the
default executor and bounded by ``asyncio.wait_for`` so that a hung request
fails the whole operation instead of stalling it.

Pages are fetched one at a time and fully materialised in the worker thread:
callers never see a partially downloaded page.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Iterator
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def call_with_timeout(
    operation: Callable[[], T],
    timeout_seconds: float,
    operation_name: str,
) -> T:
    """Run a blocking SDK call in the executor with a deadline.

    Args:
        operation: Zero-argument callable performing the call.
        timeout_seconds: Maximum time to wait for the call.
        operation_name: Human-readable name for logging.

    Returns:
        Whatever ``operation`` returns.

    Raises:
        TimeoutError: If the call exceeds the deadline.
    """
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(None, operation),
            timeout=timeout_seconds,
        )
    except TimeoutError:
        logger.error(
            f"{operation_name} timed out",
            extra={"timeout_seconds": timeout_seconds},
        )
        raise


def _next_page(pages: Iterator[Any]) -> list[Any] | None:
    # StopIteration cannot cross an executor future, so signal the end with None
    page = next(pages, None)
    if page is None:
        return None
    return list(page)


async def iter_pages(
    paged: Any,
    timeout_seconds: float,
    operation_name: str,
) -> AsyncIterator[list[Any]]:
    """Iterate an SDK ``ItemPaged`` result one complete page at a time.

    Args:
        paged: Result of an SDK ``list*`` call (must support ``by_page()``).
        timeout_seconds: Deadline for each page fetch.
        operation_name: Human-readable name for logging.

    Yields:
        The items of each page, in order.
    """
    # by_page() is lazy; the first request happens on the first next()
    pages = paged.by_page()
    page_number = 0
    while True:
        items = await call_with_timeout(
            lambda: _next_page(pages), timeout_seconds, operation_name
        )
        if items is None:
            return
        page_number += 1
        logger.debug(
            f"{operation_name}: fetched page",
            extra={"page": page_number, "items": len(items)},
        )
        yield items
