"""Read side for stored dependency links."""

from tracelens.common.exceptions import StorageError
from tracelens.dependencies.aggregator import merge_links
from tracelens.schemas.span import MILLIS_PER_DAY, DependencyLink
from tracelens.storage.base import SpanStore


def days_in_window(end_ts: int, lookback: int) -> list[int]:
    """Epoch days overlapping the window ``(end_ts - lookback, end_ts]``.

    Args:
        end_ts: Window end in epoch milliseconds.
        lookback: Window length in milliseconds.

    Returns:
        Days in ascending order.
    """
    if end_ts <= 0:
        raise ValueError("end_ts must be positive")
    if lookback <= 0:
        raise ValueError("lookback must be positive")

    first = max(0, end_ts - lookback) // MILLIS_PER_DAY
    last = end_ts // MILLIS_PER_DAY
    return list(range(first, last + 1))


async def get_dependencies(store: SpanStore, end_ts: int, lookback: int) -> list[DependencyLink]:
    """Links for a time window, merged across days.

    Args:
        store: Store holding the links.
        end_ts: Window end in epoch milliseconds.
        lookback: Window length in milliseconds.

    Returns:
        Links summed per (parent, child), ordered by (parent, child).
    """
    links: list[DependencyLink] = []
    for day in days_in_window(end_ts, lookback):
        try:
            links.extend(await store.read_links(day))
        except StorageError:
            raise
        except Exception as e:
            raise StorageError("Link read failed", details={"day": day}, cause=e) from e
    return merge_links(links)
