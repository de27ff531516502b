"""CLI command implementations: each command opens one IMAP session."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Sequence
from typing import TYPE_CHECKING, NoReturn

import click
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

if TYPE_CHECKING:
    from imapbulk.cli.main import ConnectionOptions

from imapbulk.bulk.executor import BulkOperationExecutor
from imapbulk.bulk.mailbox import ensure_mailbox, remove_mailbox
from imapbulk.bulk.planner import DEFAULT_CHUNK_SIZE
from imapbulk.bulk.types import OperationKind, OperationReport
from imapbulk.fetch.fetcher import DEFAULT_MAILBOX, FetchResult, MessageFetcher
from imapbulk.imap.session import ImapError, MailboxSession, imap_session

logger = logging.getLogger(__name__)
console = Console(width=200)


def _default_chunk_size() -> int:
    raw = os.environ.get("IMAP_CHUNK_SIZE", str(DEFAULT_CHUNK_SIZE))
    try:
        return int(raw)
    except ValueError:
        raise click.BadParameter(f"IMAP_CHUNK_SIZE must be an integer, got {raw!r}") from None


def _chunk_size_option(func: click.decorators.FC) -> click.decorators.FC:
    return click.option(
        "--chunk-size",
        default=_default_chunk_size,
        type=int,
        help="UIDs per IMAP command. [env: IMAP_CHUNK_SIZE, default 10]",
    )(func)


def _query_option(func: click.decorators.FC) -> click.decorators.FC:
    return click.option(
        "--query",
        default=None,
        help="Select UIDs by searching SOURCE instead of listing them, e.g. 'SEEN'.",
    )(func)


def _fail(message: str) -> NoReturn:
    console.print(f"[red]{escape(message)}[/red]")
    raise SystemExit(1)


# ── fetch ───────────────────────────────────────────────────────────────────────


@click.command()
@click.argument("query")
@click.option("--mailbox", default=DEFAULT_MAILBOX, show_default=True, help="Mailbox to search.")
@_chunk_size_option
@click.option("--json", "as_json", is_flag=True, help="Print one JSON object per message.")
@click.pass_obj
def fetch(
    options: ConnectionOptions, query: str, mailbox: str, chunk_size: int, as_json: bool
) -> None:
    """Fetch messages matching an IMAP search QUERY, e.g. 'SINCE 01-Apr-2014 SEEN'."""
    try:
        result = asyncio.run(_fetch_async(options, query, mailbox, chunk_size))
    except (ImapError, ValueError) as exc:
        _fail(f"IMAP error: {exc}")

    if as_json:
        for record in result.records:
            click.echo(record.to_json())
        return

    if not result.records:
        console.print("[yellow]No messages matched.[/yellow]")
        return

    table = Table(box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("UID", style="dim", width=8)
    table.add_column("From", max_width=32)
    table.add_column("To", max_width=32)
    table.add_column("Subject", max_width=48)
    table.add_column("Parts", width=14)

    for record in result.records:
        parts = [
            name
            for name, body in (
                ("text", record.text_body),
                ("html", record.html_body),
                ("gpg", record.gpg_body),
            )
            if body
        ]
        table.add_row(
            str(record.uid),
            escape(record.sender),
            escape(record.recipient),
            escape(record.subject),
            ",".join(parts),
        )

    console.print(table)
    if result.report is not None:
        _print_report(result.report)


async def _fetch_async(
    options: ConnectionOptions, query: str, mailbox: str, chunk_size: int
) -> FetchResult:
    async with imap_session(options.account()) as session:
        return await MessageFetcher(session).fetch(query, mailbox, chunk_size)


# ── mutations ───────────────────────────────────────────────────────────────────


@click.command()
@click.argument("source")
@click.argument("destination")
@click.argument("uids", nargs=-1, type=int)
@_query_option
@_chunk_size_option
@click.pass_obj
def copy(
    options: ConnectionOptions,
    source: str,
    destination: str,
    uids: tuple[int, ...],
    query: str | None,
    chunk_size: int,
) -> None:
    """Copy UIDS from SOURCE to DESTINATION (created if missing)."""
    _mutate(options, OperationKind.COPY, source, uids, query, chunk_size, destination=destination)


@click.command()
@click.argument("source")
@click.argument("destination")
@click.argument("uids", nargs=-1, type=int)
@_query_option
@_chunk_size_option
@click.pass_obj
def move(
    options: ConnectionOptions,
    source: str,
    destination: str,
    uids: tuple[int, ...],
    query: str | None,
    chunk_size: int,
) -> None:
    """Move UIDS from SOURCE to DESTINATION (copy, flag \\Deleted, expunge)."""
    _mutate(options, OperationKind.MOVE, source, uids, query, chunk_size, destination=destination)


@click.command()
@click.argument("source")
@click.argument("uids", nargs=-1, type=int)
@_query_option
@_chunk_size_option
@click.pass_obj
def delete(
    options: ConnectionOptions,
    source: str,
    uids: tuple[int, ...],
    query: str | None,
    chunk_size: int,
) -> None:
    """Permanently delete UIDS from SOURCE."""
    _mutate(options, OperationKind.DELETE, source, uids, query, chunk_size)


@click.command()
@click.argument("source")
@click.argument("flag")
@click.argument("uids", nargs=-1, type=int)
@_query_option
@_chunk_size_option
@click.pass_obj
def mark(
    options: ConnectionOptions,
    source: str,
    flag: str,
    uids: tuple[int, ...],
    query: str | None,
    chunk_size: int,
) -> None:
    """Add FLAG (e.g. '\\Seen' or a keyword) to UIDS in SOURCE."""
    _mutate(options, OperationKind.MARK, source, uids, query, chunk_size, flag=flag)


@click.command()
@click.argument("source")
@click.argument("flag")
@click.argument("uids", nargs=-1, type=int)
@_query_option
@_chunk_size_option
@click.pass_obj
def unmark(
    options: ConnectionOptions,
    source: str,
    flag: str,
    uids: tuple[int, ...],
    query: str | None,
    chunk_size: int,
) -> None:
    """Remove FLAG from UIDS in SOURCE."""
    _mutate(options, OperationKind.UNMARK, source, uids, query, chunk_size, flag=flag)


def _mutate(
    options: ConnectionOptions,
    op: OperationKind,
    source: str,
    uids: Sequence[int],
    query: str | None,
    chunk_size: int,
    *,
    destination: str | None = None,
    flag: str | None = None,
) -> None:
    if not uids and not query:
        raise click.UsageError("Give UIDS or --query to select messages.")
    try:
        report = asyncio.run(
            _mutate_async(options, op, source, list(uids), query, chunk_size, destination, flag)
        )
    except (ImapError, ValueError) as exc:
        _fail(f"IMAP error: {exc}")
    _print_report(report)


async def _mutate_async(
    options: ConnectionOptions,
    op: OperationKind,
    source: str,
    uids: list[int],
    query: str | None,
    chunk_size: int,
    destination: str | None,
    flag: str | None,
) -> OperationReport:
    async with imap_session(options.account()) as session:
        if query:
            uids = uids + await _search(session, source, query)
        return await BulkOperationExecutor(session).execute(
            op,
            source,
            uids,
            destination=destination,
            max_chunk_size=chunk_size,
            flag=flag,
        )


async def _search(session: MailboxSession, mailbox: str, query: str) -> list[int]:
    """Resolve a search query to UIDs, leaving the mailbox closed again."""
    await session.select(mailbox, readonly=True)
    uids = await session.search(query)
    await session.close()
    console.print(
        f"Query {escape(repr(query))} matched [bold]{len(uids)}[/bold] "
        f"message(s) in {escape(mailbox)}."
    )
    return uids


def _print_report(report: OperationReport) -> None:
    console.print(f"[green]{report.summary()}[/green]")
    if report.failed_chunks:
        console.print(
            f"[yellow]{len(report.failed_chunks)} of {report.chunks_attempted} "
            f"chunk(s) failed:[/yellow]"
        )
        for chunk in report.failed_chunks:
            console.print(f"  • {', '.join(str(uid) for uid in chunk)}")


# ── mailboxes ───────────────────────────────────────────────────────────────────


@click.command()
@click.argument("name")
@click.pass_obj
def mkbox(options: ConnectionOptions, name: str) -> None:
    """Create mailbox NAME unless it already exists."""
    try:
        asyncio.run(_mkbox_async(options, name))
    except (ImapError, ValueError) as exc:
        _fail(f"IMAP error: {exc}")
    console.print(f"[green]Mailbox {escape(repr(name))} is ready.[/green]")


async def _mkbox_async(options: ConnectionOptions, name: str) -> None:
    async with imap_session(options.account()) as session:
        await ensure_mailbox(session, name)


@click.command()
@click.argument("name")
@click.pass_obj
def rmbox(options: ConnectionOptions, name: str) -> None:
    """Delete mailbox NAME if it exists."""
    try:
        removed = asyncio.run(_rmbox_async(options, name))
    except (ImapError, ValueError) as exc:
        _fail(f"IMAP error: {exc}")
    if removed:
        console.print(f"[green]Deleted mailbox {escape(repr(name))}.[/green]")
    else:
        console.print(f"[yellow]Mailbox {escape(repr(name))} does not exist.[/yellow]")


async def _rmbox_async(options: ConnectionOptions, name: str) -> bool:
    async with imap_session(options.account()) as session:
        return await remove_mailbox(session, name)
