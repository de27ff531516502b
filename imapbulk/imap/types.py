"""Data types shared across the IMAP session and fetch modules."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field

_DEFAULT_IMAP_PORT = 993


@dataclass(frozen=True)
class ImapServer:
    """Where to connect, and whether to trust a self-signed certificate."""

    host: str
    port: int = _DEFAULT_IMAP_PORT
    skip_cert_verification: bool = False


@dataclass(frozen=True)
class ImapAccount:
    """Login credentials bound to a server."""

    username: str
    password: str
    server: ImapServer

    @classmethod
    def from_env(
        cls,
        *,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        skip_cert_verification: bool | None = None,
    ) -> ImapAccount:
        """Build an ImapAccount from IMAP_* environment variables.

        Any keyword that is not None overrides the matching variable.

        Raises:
            ValueError: if no host or username is available, or IMAP_PORT
                is not an integer.
        """
        host = host or os.environ.get("IMAP_HOST", "")
        username = username or os.environ.get("IMAP_USERNAME", "")
        if not host:
            raise ValueError("host must be provided or IMAP_HOST env var must be set")
        if not username:
            raise ValueError("username must be provided or IMAP_USERNAME env var must be set")

        if port is None:
            raw_port = os.environ.get("IMAP_PORT", str(_DEFAULT_IMAP_PORT))
            try:
                port = int(raw_port)
            except ValueError:
                raise ValueError(f"IMAP_PORT must be an integer, got {raw_port!r}") from None

        if skip_cert_verification is None:
            skip_cert_verification = (
                os.environ.get("IMAP_SKIP_CERT_VERIFY", "false").lower() == "true"
            )

        return cls(
            username=username,
            password=password if password is not None else os.environ.get("IMAP_PASSWORD", ""),
            server=ImapServer(
                host=host, port=port, skip_cert_verification=skip_cert_verification
            ),
        )


@dataclass(frozen=True)
class MessageRecord:
    """A fetched message, decomposed into headers and selected body parts.

    ``headers`` keeps the last value seen for a repeated field name.
    ``sender``, ``recipient`` and ``subject`` mirror the From/To/Subject
    headers (empty string when absent).
    """

    uid: int
    headers: dict[str, str] = field(default_factory=dict)
    sender: str = ""
    recipient: str = ""
    subject: str = ""
    text_body: str | None = None
    html_body: str | None = None
    gpg_body: str | None = None

    def to_dict(self) -> dict[str, str]:
        """Flatten into one mapping: headers, imap_uid and any non-empty bodies."""
        data = dict(self.headers)
        data["imap_uid"] = str(self.uid)
        if self.text_body:
            data["text_body"] = self.text_body
        if self.html_body:
            data["html_body"] = self.html_body
        if self.gpg_body:
            data["gpg_body"] = self.gpg_body
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)
