"""Batch planning: split a UID list into bounded chunks."""

from collections.abc import Sequence

from imapbulk.bulk.types import Chunk

DEFAULT_CHUNK_SIZE = 10


def plan_chunks(uids: Sequence[int], max_chunk_size: int | None = DEFAULT_CHUNK_SIZE) -> list[Chunk]:
    """Partition ``uids`` into consecutive chunks of at most ``max_chunk_size``.

    A missing or non-positive size falls back to DEFAULT_CHUNK_SIZE.  Order
    and duplicates are preserved, so joining the chunks gives back the input;
    an empty input yields no chunks at all.

        >>> plan_chunks([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    size = max_chunk_size if max_chunk_size and max_chunk_size > 0 else DEFAULT_CHUNK_SIZE
    return [list(uids[i:i + size]) for i in range(0, len(uids), size)]
