"""Tests for message parsing and body selection: real MIME, no network."""

import json

import pytest

from imapbulk.fetch.body import MessageParseError, build_record, parse_message, select_bodies
from imapbulk.imap.types import MessageRecord


# ── Fixtures ───────────────────────────────────────────────────────────────────

PLAIN = b"""\
From: alice@example.com
To: bob@example.com
Subject: Lunch
Content-Type: text/plain; charset="utf-8"

Shall we meet at noon?
"""

ALTERNATIVE = b"""\
From: alice@example.com
To: bob@example.com
Subject: Newsletter
MIME-Version: 1.0
Content-Type: multipart/alternative; boundary="XX"

--XX
Content-Type: text/plain; charset="utf-8"

Plain version
--XX
Content-Type: text/html; charset="utf-8"

<p>HTML version</p>
--XX--
"""

HTML_ONLY = b"""\
From: shop@example.com
Subject: Sale
Content-Type: text/html; charset="utf-8"

<b>50% off</b>
"""

PGP_ENCRYPTED = b"""\
From: carol@example.com
To: bob@example.com
Subject: Secret
MIME-Version: 1.0
Content-Type: multipart/encrypted; protocol="application/pgp-encrypted"; boundary="ENC"

--ENC
Content-Type: application/pgp-encrypted

Version: 1
--ENC
Content-Type: application/octet-stream

-----BEGIN PGP MESSAGE-----
hQEMA0f00dLcbGxyAQf/abc
-----END PGP MESSAGE-----
--ENC--
"""

PGP_SIGNED = b"""\
From: dave@example.com
Subject: Signed
MIME-Version: 1.0
Content-Type: multipart/signed; micalg=pgp-sha256; protocol="application/pgp-signature"; boundary="SIG"

--SIG
Content-Type: text/plain; charset="utf-8"

I really said this.
--SIG
Content-Type: application/pgp-signature; name="signature.asc"

-----BEGIN PGP SIGNATURE-----
iQEzBAEBCAAdFiEE
-----END PGP SIGNATURE-----
--SIG--
"""

LATIN1_QP = b"""\
From: erik@example.com
Subject: Caf=C3=A9
Content-Type: text/plain; charset="iso-8859-1"
Content-Transfer-Encoding: quoted-printable

Un caf=E9, s'il vous pla=EEt.
"""


# ── parse_message ──────────────────────────────────────────────────────────────


class TestParseMessage:
    def test_parses_headers(self) -> None:
        message = parse_message(PLAIN)
        assert message["Subject"] == "Lunch"

    @pytest.mark.parametrize("raw", [b"", b"   \r\n", b"just some words without any header"])
    def test_rejects_non_messages(self, raw: bytes) -> None:
        with pytest.raises(MessageParseError):
            parse_message(raw)

    def test_parse_error_is_a_value_error(self) -> None:
        assert issubclass(MessageParseError, ValueError)


# ── select_bodies ──────────────────────────────────────────────────────────────


class TestSelectBodies:
    def test_plain_only_message(self) -> None:
        text, html, gpg = select_bodies(parse_message(PLAIN))
        assert text is not None and "noon" in text
        assert html is None
        assert gpg is None

    def test_alternative_yields_text_and_html(self) -> None:
        text, html, gpg = select_bodies(parse_message(ALTERNATIVE))
        assert text is not None and text.strip() == "Plain version"
        assert html is not None and html.strip() == "<p>HTML version</p>"
        assert gpg is None

    def test_html_only_message(self) -> None:
        text, html, _ = select_bodies(parse_message(HTML_ONLY))
        assert text is None
        assert html is not None and "50% off" in html

    def test_pgp_mime_encrypted_payload_selected(self) -> None:
        text, html, gpg = select_bodies(parse_message(PGP_ENCRYPTED))
        assert gpg is not None
        assert gpg.startswith("-----BEGIN PGP MESSAGE-----")
        assert "Version: 1" not in gpg
        assert text is None and html is None

    def test_pgp_signature_selected_alongside_text(self) -> None:
        text, _, gpg = select_bodies(parse_message(PGP_SIGNED))
        assert text is not None and "I really said this." in text
        assert gpg is not None and "BEGIN PGP SIGNATURE" in gpg

    def test_inline_pgp_text_fills_both_fields(self) -> None:
        raw = (
            b"From: f@example.com\nSubject: inline\n\n"
            b"-----BEGIN PGP MESSAGE-----\nabc\n-----END PGP MESSAGE-----\n"
        )
        text, _, gpg = select_bodies(parse_message(raw))
        assert text == gpg
        assert gpg is not None and "BEGIN PGP MESSAGE" in gpg

    def test_decodes_declared_charset(self) -> None:
        text, _, _ = select_bodies(parse_message(LATIN1_QP))
        assert text is not None and "Un café, s'il vous plaît." in text

    def test_first_part_of_a_type_wins_even_when_empty(self) -> None:
        raw = b"""\
From: g@example.com
Subject: two texts
MIME-Version: 1.0
Content-Type: multipart/mixed; boundary="MIX"

--MIX
Content-Type: text/plain; charset="utf-8"

--MIX
Content-Type: text/html; charset="utf-8"

--MIX
Content-Type: text/plain; charset="utf-8"

Second plain part
--MIX
Content-Type: text/html; charset="utf-8"

<p>Second html part</p>
--MIX--
"""
        text, html, _ = select_bodies(parse_message(raw))
        assert text is None
        assert html is None

    def test_empty_body_is_absent(self) -> None:
        text, html, gpg = select_bodies(parse_message(b"From: a@example.com\nSubject: x\n\n"))
        assert (text, html, gpg) == (None, None, None)


# ── build_record / serialization ───────────────────────────────────────────────


class TestBuildRecord:
    def test_core_headers_and_uid(self) -> None:
        record = build_record(42, parse_message(PLAIN))
        assert record.uid == 42
        assert record.sender == "alice@example.com"
        assert record.recipient == "bob@example.com"
        assert record.subject == "Lunch"
        assert set(record.headers) == {"From", "To", "Subject", "Content-Type"}

    def test_repeated_header_keeps_last_value(self) -> None:
        raw = b"From: a@example.com\nX-Tag: first\nX-Tag: second\n\nbody\n"
        record = build_record(1, parse_message(raw))
        assert record.headers["X-Tag"] == "second"

    def test_missing_to_is_empty_string(self) -> None:
        record = build_record(3, parse_message(HTML_ONLY))
        assert record.recipient == ""


class TestMessageRecordToDict:
    def test_gpg_body_has_its_own_key(self) -> None:
        record = MessageRecord(uid=7, html_body="<p>hi</p>", gpg_body="-----BEGIN PGP MESSAGE-----")
        data = record.to_dict()
        assert data["gpg_body"] == "-----BEGIN PGP MESSAGE-----"
        assert data["html_body"] == "<p>hi</p>"

    def test_empty_bodies_are_omitted(self) -> None:
        data = MessageRecord(uid=9, headers={"Subject": "x"}, text_body="").to_dict()
        assert data == {"Subject": "x", "imap_uid": "9"}

    def test_full_record_from_signed_message(self) -> None:
        data = build_record(12, parse_message(PGP_SIGNED)).to_dict()
        assert data["imap_uid"] == "12"
        assert data["Subject"] == "Signed"
        assert "text_body" in data and "gpg_body" in data
        assert "html_body" not in data

    def test_to_json_round_trips_to_dict(self) -> None:
        record = build_record(5, parse_message(LATIN1_QP))
        assert json.loads(record.to_json()) == record.to_dict()
