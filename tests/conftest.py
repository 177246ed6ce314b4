"""Shared fixtures: settings, a scripted IMAP client and a stub delivery handle."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from imapclient.response_types import Address, Envelope

from imap_mcp.config import Settings
from imap_mcp.server import EmailMCPServer


def make_envelope(
    subject: bytes | None = b"Test Subject",
    date: datetime | None = datetime(2026, 1, 13, 10, 0, 0),
    from_: tuple = (Address(b"Sender", None, b"sender", b"example.com"),),
    to: tuple = (Address(None, None, b"recipient", b"example.com"),),
) -> Envelope:
    """Envelope shaped the way imapclient parses a FETCH ENVELOPE response."""
    return Envelope(
        date=date,
        subject=subject,
        from_=from_,
        sender=from_,
        reply_to=from_,
        to=to,
        cc=None,
        bcc=None,
        in_reply_to=None,
        message_id=b"<abc123@example.com>",
    )


@pytest.fixture
def settings():
    """Valid configuration, independent of any .env on disk."""
    return Settings(
        _env_file=None,
        email_user="test@example.com",
        email_password="secret123",
        imap_host="imap.example.com",
        imap_port=993,
        smtp_host="smtp.example.com",
        smtp_port=587,
    )


@pytest.fixture
def imap_client():
    """A connected IMAPClient stand-in with a three-message INBOX."""
    client = MagicMock()
    client.select_folder.return_value = {b"EXISTS": 3, b"UIDVALIDITY": 12345, b"UIDNEXT": 301}
    client.search.return_value = [300, 100, 200]
    client.list_folders.return_value = [
        ((b"\\HasNoChildren",), b"/", "INBOX"),
        ((b"\\HasChildren",), b"/", "Archive"),
        ((b"\\HasNoChildren", b"\\Sent"), b"/", "Archive/Sent"),
    ]
    envelopes = {
        100: make_envelope(subject=b"first", date=datetime(2026, 1, 1, 9, 0)),
        200: make_envelope(subject=b"second", date=datetime(2026, 1, 2, 9, 0)),
        300: make_envelope(subject=b"third", date=datetime(2026, 1, 3, 9, 0)),
    }

    def fetch(messages, data, modifiers=None):
        uids = envelopes if messages == "1:*" else messages
        return {uid: {b"ENVELOPE": envelopes[uid], b"SEQ": i} for i, uid in enumerate(uids, 1)}

    client.fetch.side_effect = fetch
    return client


@pytest.fixture
def client_factory(imap_client):
    """Factory handing out the scripted client, as ``IMAPClient(...)`` would."""
    return MagicMock(return_value=imap_client)


@pytest.fixture
def delivery():
    handle = MagicMock()
    handle.send.return_value = "<generated@example.com>"
    return handle


@pytest.fixture
def server(settings, delivery, client_factory):
    return EmailMCPServer(settings, delivery=delivery, client_factory=client_factory)
