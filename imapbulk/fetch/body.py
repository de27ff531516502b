"""Message decomposition: parse raw RFC822 bytes and pick out body parts."""

from email.message import Message
from email.parser import BytesParser
from email.policy import default

from imapbulk.imap.types import MessageRecord

_ARMOR_HEADER = "-----BEGIN PGP "

# Leaf media types that may carry an ASCII-armored OpenPGP payload.  The
# PGP/MIME control part (application/pgp-encrypted, "Version: 1") has no
# armor and is therefore never selected.
_PGP_CARRIER_TYPES = frozenset({
    "application/pgp-signature",
    "application/pgp-keys",
    "application/pgp",
    "application/pgp-encrypted",
    "application/octet-stream",
    "text/plain",
})


class MessageParseError(ValueError):
    """Raised when raw bytes do not form a parsable email message."""


def parse_message(raw: bytes) -> Message:
    """Parse raw RFC822 bytes into a message tree.

    Raises:
        MessageParseError: if ``raw`` is empty or carries no header fields.
    """
    if not raw or not raw.strip():
        raise MessageParseError("empty message")
    message = BytesParser(policy=default).parsebytes(raw)
    if not message.keys():
        raise MessageParseError("message has no header fields")
    return message


def select_bodies(message: Message) -> tuple[str | None, str | None, str | None]:
    """Return ``(text, html, gpg)``, the first matching leaf part of each kind.

    The first ``text/plain`` and the first ``text/html`` part are taken even
    when empty; a later part of the same type never replaces them.  Missing
    parts come back as None; so do parts whose content is empty.
    """
    text: str | None = None
    html: str | None = None
    gpg: str | None = None
    seen: set[str] = set()

    for part in message.walk():
        if part.is_multipart():
            continue
        content_type = part.get_content_type()

        if content_type == "text/plain" and content_type not in seen:
            text = _part_text(part)
        elif content_type == "text/html" and content_type not in seen:
            html = _part_text(part)
        seen.add(content_type)

        if gpg is None and content_type in _PGP_CARRIER_TYPES:
            content = _part_text(part)
            if content and _ARMOR_HEADER in content:
                gpg = content

    return text, html, gpg


def build_record(uid: int, message: Message) -> MessageRecord:
    """Flatten a parsed message into a MessageRecord."""
    headers: dict[str, str] = {}
    for name, value in message.items():
        headers[name] = str(value)  # repeated names: last one wins

    text, html, gpg = select_bodies(message)
    return MessageRecord(
        uid=uid,
        headers=headers,
        sender=str(message.get("From", "")),
        recipient=str(message.get("To", "")),
        subject=str(message.get("Subject", "")),
        text_body=text,
        html_body=html,
        gpg_body=gpg,
    )


def _part_text(part: Message) -> str | None:
    """Decode a leaf part's transfer-encoded payload with its declared charset."""
    payload = part.get_payload(decode=True)
    if not payload:
        return None
    charset = part.get_content_charset() or "utf-8"
    try:
        return payload.decode(charset, errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")
