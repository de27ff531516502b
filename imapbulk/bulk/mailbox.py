"""Mailbox housekeeping: create-if-absent and remove-if-present."""

import logging

from imapbulk.imap.session import ImapError, MailboxSession

logger = logging.getLogger(__name__)


class MailboxError(ImapError):
    """Raised when a required mailbox can neither be opened nor created."""


async def ensure_mailbox(
    session: MailboxSession, name: str, log: logging.Logger | None = None
) -> None:
    """Make sure ``name`` exists, leaving no mailbox selected afterwards.

    The mailbox is opened read-only so the trailing CLOSE can never expunge
    anything.  Safe to call repeatedly.

    Raises:
        ValueError: if ``name`` is empty.
        MailboxError: if CREATE fails, or the mailbox still cannot be
            selected after it was created.
        ImapError: if the final CLOSE fails.
    """
    log = log or logger
    if not name:
        raise ValueError("mailbox name must not be empty")

    try:
        await session.select(name, readonly=True)
    except ImapError as exc:
        log.info("Mailbox %r not selectable (%s); creating it", name, exc)
        try:
            await session.create(name)
        except ImapError as create_exc:
            raise MailboxError(f"Could not create mailbox {name!r}: {create_exc}") from create_exc
        try:
            await session.select(name, readonly=True)
        except ImapError as select_exc:
            raise MailboxError(
                f"Mailbox {name!r} was created but cannot be selected: {select_exc}"
            ) from select_exc
    else:
        log.debug("Mailbox already exists: %s", name)

    await session.close()


async def remove_mailbox(
    session: MailboxSession, name: str, log: logging.Logger | None = None
) -> bool:
    """Delete ``name`` if it exists.  Returns False when there was nothing to delete."""
    log = log or logger
    if not name:
        raise ValueError("mailbox name must not be empty")

    try:
        await session.select(name, readonly=True)
    except ImapError:
        log.info("Mailbox %r does not exist; nothing to delete", name)
        return False

    await session.close()
    await session.delete(name)
    return True
