"""CLI entry point for the IMAP bulk tool."""

import logging
from dataclasses import dataclass

import click
from dotenv import load_dotenv

from imapbulk.imap.types import ImapAccount

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionOptions:
    """Connection settings given on the command line; None defers to IMAP_* env vars."""

    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None
    skip_cert_verification: bool | None = None

    def account(self) -> ImapAccount:
        return ImapAccount.from_env(
            host=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            skip_cert_verification=self.skip_cert_verification,
        )


@click.group()
@click.option("--host", default=None, help="IMAP server host. [env: IMAP_HOST]")
@click.option("--port", default=None, type=int, help="IMAP server port. [env: IMAP_PORT, default 993]")
@click.option("--username", default=None, help="Login name. [env: IMAP_USERNAME]")
@click.option("--password", default=None, help="Login password. [env: IMAP_PASSWORD]")
@click.option(
    "--skip-cert-verify/--verify-cert",
    default=None,
    help="Skip TLS certificate checks (self-signed servers only). [env: IMAP_SKIP_CERT_VERIFY]",
)
@click.option("-v", "--verbose", is_flag=True, help="Log every IMAP command.")
@click.pass_context
def cli(
    ctx: click.Context,
    host: str | None,
    port: int | None,
    username: str | None,
    password: str | None,
    skip_cert_verify: bool | None,
    verbose: bool,
) -> None:
    """Bulk copy, move, delete, flag and fetch IMAP messages by UID."""
    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    ctx.obj = ConnectionOptions(
        host=host,
        port=port,
        username=username,
        password=password,
        skip_cert_verification=skip_cert_verify,
    )


# Import and register commands after cli is defined to avoid circular imports.
from imapbulk.cli.commands import (  # noqa: E402
    copy,
    delete,
    fetch,
    mark,
    mkbox,
    move,
    rmbox,
    unmark,
)

for _command in (fetch, copy, move, delete, mark, unmark, mkbox, rmbox):
    cli.add_command(_command)
