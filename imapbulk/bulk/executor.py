"""Bulk operation executor: runs a mutation program chunk by chunk."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence

from imapbulk.bulk.mailbox import ensure_mailbox
from imapbulk.bulk.planner import DEFAULT_CHUNK_SIZE, plan_chunks
from imapbulk.bulk.types import Chunk, OperationKind, OperationReport
from imapbulk.imap.session import ImapError, MailboxSession

logger = logging.getLogger(__name__)

_DELETED = "\\Deleted"


class BulkOperationExecutor:
    """Copies, moves, deletes, marks or unmarks UIDs in bounded chunks.

    Chunks run strictly one after another.  A failed command only abandons
    the rest of *its* chunk's program; the remaining chunks still run and
    the failure shows up in the report's ``failed_chunks``.  Failing to
    open or close a mailbox is fatal and propagates as ImapError.

    Usage::

        executor = BulkOperationExecutor(session)
        report = await executor.move("INBOX", [101, 102, 103], "Archive")
    """

    def __init__(
        self,
        session: MailboxSession,
        log: logging.Logger | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._log = log or logger
        self._clock = clock

    # ── Public API ─────────────────────────────────────────────────────────────

    async def execute(
        self,
        op: OperationKind,
        source: str,
        uids: Sequence[int],
        *,
        destination: str | None = None,
        max_chunk_size: int = DEFAULT_CHUNK_SIZE,
        flag: str | None = None,
    ) -> OperationReport:
        """Run ``op`` over ``uids`` in ``source`` and return its report.

        Raises:
            ValueError: on an empty source, a missing destination for
                copy/move, or a missing flag for mark/unmark.
            ImapError: if the destination cannot be ensured or the source
                cannot be opened or closed.
        """
        op = OperationKind(op)
        if not source:
            raise ValueError("source mailbox must not be empty")
        if op.needs_destination and not destination:
            raise ValueError(f"{op.value} requires a destination mailbox")
        if op.needs_flag and not flag:
            raise ValueError(f"{op.value} requires a flag")

        if op.needs_destination:
            await ensure_mailbox(self._session, destination, self._log)  # type: ignore[arg-type]

        started = self._clock()
        await self._session.select(source, readonly=op.read_only)

        chunks = plan_chunks(uids, max_chunk_size)
        self._log.info(
            "%s: %d UIDs total, %d chunk(s) of size <= %d from %r%s",
            op.value.capitalize(),
            len(uids),
            len(chunks),
            max_chunk_size if max_chunk_size > 0 else DEFAULT_CHUNK_SIZE,
            source,
            f" to {destination!r}" if op.needs_destination else "",
        )

        failed: list[Chunk] = []
        for chunk in chunks:
            self._log.debug("%s chunk %s", op.value.capitalize(), chunk)
            try:
                await self._run_program(op, chunk, destination, flag)
            except ImapError as exc:
                self._log.warning("%s failed for chunk %s: %s", op.value, chunk, exc)
                failed.append(chunk)

        await self._session.close()

        report = OperationReport(
            operation=op.value,
            total=len(uids),
            chunks_attempted=len(chunks),
            elapsed_seconds=self._clock() - started,
            failed_chunks=failed,
        )
        self._log.info("%s", report.summary())
        if failed:
            self._log.warning(
                "%s: %d of %d chunk(s) failed", op.value, len(failed), len(chunks)
            )
        return report

    async def copy(
        self, source: str, uids: Sequence[int], destination: str,
        max_chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> OperationReport:
        return await self.execute(
            OperationKind.COPY, source, uids,
            destination=destination, max_chunk_size=max_chunk_size,
        )

    async def move(
        self, source: str, uids: Sequence[int], destination: str,
        max_chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> OperationReport:
        return await self.execute(
            OperationKind.MOVE, source, uids,
            destination=destination, max_chunk_size=max_chunk_size,
        )

    async def delete(
        self, source: str, uids: Sequence[int], max_chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> OperationReport:
        return await self.execute(
            OperationKind.DELETE, source, uids, max_chunk_size=max_chunk_size,
        )

    async def mark(
        self, source: str, flag: str, uids: Sequence[int],
        max_chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> OperationReport:
        """Add ``flag`` (e.g. ``\\Seen`` or a server keyword) to every UID."""
        return await self.execute(
            OperationKind.MARK, source, uids, flag=flag, max_chunk_size=max_chunk_size,
        )

    async def unmark(
        self, source: str, flag: str, uids: Sequence[int],
        max_chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> OperationReport:
        return await self.execute(
            OperationKind.UNMARK, source, uids, flag=flag, max_chunk_size=max_chunk_size,
        )

    # ── Internal ───────────────────────────────────────────────────────────────

    async def _run_program(
        self, op: OperationKind, chunk: Chunk, destination: str | None, flag: str | None
    ) -> None:
        """Issue one chunk's primitives in order; the first ImapError stops the rest.

        A message is never flagged \\Deleted before it was copied, and never
        expunged before it was flagged.
        """
        session = self._session
        if op is OperationKind.COPY:
            await session.copy(chunk, destination)  # type: ignore[arg-type]
        elif op is OperationKind.MOVE:
            await session.copy(chunk, destination)  # type: ignore[arg-type]
            await session.store(chunk, _DELETED, add=True)
            await session.expunge(chunk)
        elif op is OperationKind.DELETE:
            await session.store(chunk, _DELETED, add=True)
            await session.expunge(chunk)
        elif op is OperationKind.MARK:
            await session.store(chunk, flag, add=True)  # type: ignore[arg-type]
        elif op is OperationKind.UNMARK:
            await session.store(chunk, flag, add=False)  # type: ignore[arg-type]
