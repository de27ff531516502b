"""IMAP session: wraps an aioimaplib client behind a typed async API."""

import logging
import re
import ssl
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any, Protocol, runtime_checkable

import aioimaplib

from imapbulk.imap.types import ImapAccount

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 60

# Untagged FETCH line: "12 FETCH (UID 345 RFC822 {2048}"
_FETCH_START = re.compile(rb"^\d+\s+FETCH\s+\(", re.IGNORECASE)
_FETCH_UID = re.compile(rb"\bUID\s+(\d+)", re.IGNORECASE)
_SEARCH_RESULT = re.compile(rb"(?:SEARCH\s*)?([\d\s]*)", re.IGNORECASE)
# RFC 3501 ATOM-CHAR: printable ASCII minus atom-specials.
_ATOM = re.compile(r'[^\x00-\x20\x7f(){%*"\\\]]+')


class ImapError(Exception):
    """Raised when the server answers an IMAP command with anything but OK."""


class ImapAuthError(ImapError):
    """Raised when the server rejects the login."""


# ── Session interface ─────────────────────────────────────────────────────────


@runtime_checkable
class MailboxSession(Protocol):
    """The IMAP primitives the bulk pipeline is built on.

    Every method raises ImapError on failure.  A session is not safe for
    concurrent use; callers await one primitive before issuing the next.
    """

    async def select(self, mailbox: str, readonly: bool = False) -> None: ...

    async def create(self, mailbox: str) -> None: ...

    async def delete(self, mailbox: str) -> None: ...

    async def close(self) -> None: ...

    async def copy(self, uids: Sequence[int], destination: str) -> None: ...

    async def store(
        self, uids: Sequence[int], flag: str, *, add: bool, silent: bool = True
    ) -> None: ...

    async def expunge(self, uids: Sequence[int]) -> None: ...

    async def search(self, query: str) -> list[int]: ...

    async def fetch_raw(self, uids: Sequence[int]) -> list[tuple[int, bytes]]: ...


def quote_mailbox(name: str) -> str:
    """Render a mailbox name as an IMAP astring.

    Plain atoms such as ``INBOX`` or ``Archive/2024`` go out bare; anything
    else becomes an RFC 3501 quoted string.
    """
    if name.isascii() and _ATOM.fullmatch(name):
        return name
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def format_uid_set(uids: Sequence[int]) -> str:
    """Render UIDs as an IMAP sequence set, keeping their order.

    Ascending consecutive runs collapse into ``first:last`` ranges::

        >>> format_uid_set([1, 2, 3, 7, 9, 10])
        '1:3,7,9:10'
    """
    if not uids:
        raise ValueError("cannot format an empty UID set")

    parts: list[str] = []
    start = prev = uids[0]
    for uid in uids[1:]:
        if uid == prev + 1:
            prev = uid
            continue
        parts.append(f"{start}:{prev}" if start != prev else str(start))
        start = prev = uid
    parts.append(f"{start}:{prev}" if start != prev else str(start))
    return ",".join(parts)


# ── aioimaplib adapter ────────────────────────────────────────────────────────


class ImapSession:
    """MailboxSession over an authenticated aioimaplib client.

    Use the `imap_session()` context manager to connect, log in and log out
    correctly.  All UID-addressed commands use the UID variants so that
    identifiers are never mistaken for sequence numbers.
    """

    def __init__(self, client: aioimaplib.IMAP4_SSL) -> None:
        self._client = client

    # ── Public API ─────────────────────────────────────────────────────────────

    async def select(self, mailbox: str, readonly: bool = False) -> None:
        """SELECT (read-write) or EXAMINE (read-only) a mailbox."""
        try:
            await self._call("examine" if readonly else "select", quote_mailbox(mailbox))
        except ImapError:
            # A failed SELECT/EXAMINE leaves no mailbox open (RFC 3501 §6.3.1).
            if self._client.protocol.state == aioimaplib.SELECTED:
                self._set_state(aioimaplib.AUTH)
            raise
        self._set_state(aioimaplib.SELECTED)

    async def create(self, mailbox: str) -> None:
        await self._call("create", quote_mailbox(mailbox))
        logger.info("Created mailbox %r", mailbox)

    async def delete(self, mailbox: str) -> None:
        await self._call("delete", quote_mailbox(mailbox))
        logger.info("Deleted mailbox %r", mailbox)

    async def close(self) -> None:
        """Close the selected mailbox, returning the session to unselected."""
        await self._call("close")

    async def copy(self, uids: Sequence[int], destination: str) -> None:
        await self._call("uid", "copy", format_uid_set(uids), quote_mailbox(destination))

    async def store(
        self, uids: Sequence[int], flag: str, *, add: bool, silent: bool = True
    ) -> None:
        """Add (``+FLAGS``) or remove (``-FLAGS``) a single flag on the UIDs.

        The ``.SILENT`` variant suppresses the per-message FETCH echo.
        """
        item = ("+FLAGS" if add else "-FLAGS") + (".SILENT" if silent else "")
        await self._call("uid", "store", format_uid_set(uids), item, f"({flag})")

    async def expunge(self, uids: Sequence[int]) -> None:
        """Permanently remove the UIDs, provided they are flagged \\Deleted.

        Without UIDPLUS the server only offers a mailbox-wide EXPUNGE, which
        also removes any other message already flagged \\Deleted.
        """
        if self._client.has_capability("UIDPLUS"):
            await self._call("uid", "expunge", format_uid_set(uids))
        else:
            logger.debug("Server lacks UIDPLUS; falling back to mailbox-wide EXPUNGE")
            await self._call("expunge")

    async def search(self, query: str) -> list[int]:
        """Run UID SEARCH with a server-defined query and return matching UIDs.

        The query is passed through verbatim (RFC 3501 §6.4.4); quoting
        strings inside it is the caller's responsibility.
        """
        lines = await self._call("uid_search", query)
        return self._parse_search_uids(lines)

    async def fetch_raw(self, uids: Sequence[int]) -> list[tuple[int, bytes]]:
        """Fetch the full RFC822 source of each UID as ``(uid, raw_bytes)``."""
        lines = await self._call("uid", "fetch", format_uid_set(uids), "(UID RFC822)")
        return self._parse_fetch_literals(lines)

    # ── Internal helpers ───────────────────────────────────────────────────────

    def _set_state(self, state: str) -> None:
        """Move aioimaplib's client-side state machine to ``state``.

        aioimaplib only switches to SELECTED on SELECT.  Its EXAMINE goes
        through the generic command path and leaves the client in AUTH, where
        it then refuses CLOSE, SEARCH and every UID command.
        """
        self._client.protocol.state = state

    async def _call(self, command: str, *args: str) -> list[Any]:
        """Run one aioimaplib command and return its response lines.

        Raises ImapError if the command fails or the server answers NO/BAD.
        """
        logger.debug("IMAP → %s %s", command, " ".join(args))
        try:
            response = await getattr(self._client, command)(*args)
        except (aioimaplib.Abort, aioimaplib.CommandTimeout, OSError) as exc:
            raise ImapError(f"{command} {' '.join(args)} failed: {exc}") from exc

        if response.result != "OK":
            raise ImapError(
                f"{command} {' '.join(args)} returned {response.result}: {response.lines}"
            )
        return list(response.lines)

    @staticmethod
    def _parse_search_uids(lines: list[Any]) -> list[int]:
        """Extract the UID list from the untagged SEARCH line."""
        for line in lines:
            if isinstance(line, str):
                line = line.encode()
            match = _SEARCH_RESULT.fullmatch(bytes(line).strip())
            if match:
                return [int(uid) for uid in match.group(1).split()]
        return []

    @staticmethod
    def _parse_fetch_literals(lines: list[Any]) -> list[tuple[int, bytes]]:
        """Pair each FETCH response's UID with its RFC822 literal.

        aioimaplib hands literals back as ``bytearray`` items between the
        line that announces them (``... RFC822 {N}``) and the line that
        closes the response; the UID may appear on either side.
        """
        fetched: list[tuple[int, bytes]] = []
        uid: int | None = None
        body: bytes | None = None

        def _flush() -> None:
            if uid is not None and body is not None:
                fetched.append((uid, body))

        for line in lines:
            if isinstance(line, bytearray):
                body = bytes(line)
                continue
            if isinstance(line, str):
                line = line.encode()
            if _FETCH_START.match(line):
                _flush()
                uid, body = None, None
            match = _FETCH_UID.search(line)
            if match:
                uid = int(match.group(1))
        _flush()
        return fetched


@asynccontextmanager
async def imap_session(
    account: ImapAccount,
    *,
    timeout: float = _DEFAULT_TIMEOUT_SECONDS,
) -> AsyncIterator[ImapSession]:
    """Async context manager that yields a logged-in ImapSession.

    Opens a TLS connection, waits for the server greeting, logs in and logs
    out again on exit.  When ``account.server.skip_cert_verification`` is set
    the server certificate is not validated, which is only appropriate for
    servers using a self-signed certificate.

    Example::

        async with imap_session(ImapAccount.from_env()) as session:
            uids = await session.search("SEEN")
    """
    server = account.server
    ssl_context = ssl.create_default_context()
    if server.skip_cert_verification:
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE

    logger.info(
        "Connecting as %r to IMAP server %s:%d", account.username, server.host, server.port
    )
    client = aioimaplib.IMAP4_SSL(
        host=server.host, port=server.port, timeout=timeout, ssl_context=ssl_context
    )
    try:
        await client.wait_hello_from_server()
    except (aioimaplib.Abort, OSError, TimeoutError) as exc:
        raise ImapError(f"Could not connect to {server.host}:{server.port}: {exc}") from exc

    try:
        # LOGIN goes straight to the client: _call would log the password.
        response = await client.login(account.username, account.password)
        if response.result != "OK":
            raise ImapAuthError(f"Login failed for {account.username!r}: {response.result}")
        logger.info("Logged in as %r", account.username)
        yield ImapSession(client)
    finally:
        try:
            await client.logout()
        except Exception as exc:  # noqa: BLE001
            logger.warning("Error during logout: %s", exc)
