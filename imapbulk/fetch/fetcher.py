"""Message fetcher: search a mailbox and retrieve matching messages in chunks."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from imapbulk.bulk.planner import DEFAULT_CHUNK_SIZE, plan_chunks
from imapbulk.bulk.types import Chunk, OperationReport
from imapbulk.fetch.body import build_record, parse_message
from imapbulk.imap.session import ImapError, MailboxSession
from imapbulk.imap.types import MessageRecord

logger = logging.getLogger(__name__)

DEFAULT_MAILBOX = "INBOX"


@dataclass(frozen=True)
class FetchResult:
    """Records that were fetched and decoded, plus the call's report."""

    records: list[MessageRecord] = field(default_factory=list)
    report: OperationReport | None = None


class MessageFetcher:
    """Resolves a search query to UIDs and fetches the messages chunk by chunk.

    Chunks whose FETCH fails, and individual messages that do not parse,
    are logged and left out of the result; only selecting the mailbox or
    running the search is fatal.
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

    async def fetch(
        self,
        query: str,
        mailbox: str | None = None,
        max_chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> FetchResult:
        """Fetch every message in ``mailbox`` (default INBOX) matching ``query``.

        ``query`` is an IMAP search expression such as
        ``SINCE 01-Apr-2014 SEEN``; see RFC 3501 §6.4.4.

        Raises:
            ImapError: if the mailbox cannot be opened or closed, or the
                search fails.  A failed search still closes the mailbox.
        """
        mailbox = mailbox or DEFAULT_MAILBOX
        started = self._clock()
        await self._session.select(mailbox, readonly=True)
        try:
            uids = await self._session.search(query)
        except ImapError:
            await self._close_after_error(mailbox)
            raise

        chunks = plan_chunks(uids, max_chunk_size)
        self._log.info(
            "Fetch: %d UIDs total in %r, %d chunk(s)", len(uids), mailbox, len(chunks)
        )

        records: list[MessageRecord] = []
        failed: list[Chunk] = []
        for chunk in chunks:
            try:
                fetched = await self._session.fetch_raw(chunk)
            except ImapError as exc:
                self._log.warning("Error while fetching chunk %s: %s", chunk, exc)
                failed.append(chunk)
                continue
            for uid, raw in fetched:
                record = self._decode(uid, raw)
                if record is not None:
                    records.append(record)

        await self._session.close()

        report = OperationReport(
            operation="fetch",
            total=len(uids),
            chunks_attempted=len(chunks),
            elapsed_seconds=self._clock() - started,
            failed_chunks=failed,
        )
        self._log.info("%s", report.summary())
        return FetchResult(records=records, report=report)

    async def _close_after_error(self, mailbox: str) -> None:
        try:
            await self._session.close()
        except ImapError as exc:
            self._log.warning("Could not close %r after a failed search: %s", mailbox, exc)

    def _decode(self, uid: int, raw: bytes) -> MessageRecord | None:
        """Parse one raw message; a failure skips only this message."""
        try:
            return build_record(uid, parse_message(raw))
        except Exception as exc:  # noqa: BLE001
            self._log.warning("Skipping UID %d: could not parse message: %s", uid, exc)
            return None
