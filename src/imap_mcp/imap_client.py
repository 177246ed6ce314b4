"""
IMAP Client Wrapper
===================

Per-invocation IMAP sessions and the mapping of imapclient responses onto the
server's own entities.

Every session is opened fresh, used for exactly one unit of work and logged
out exactly once, whatever happened in between. Sessions are never pooled.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from email.header import decode_header
from typing import Any

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientAbortError, IMAPClientError

from imap_mcp.config import Settings
from imap_mcp.contracts import (
    AuthFailedError,
    ConnectionFailedError,
    EmailAddress,
    EmailFolder,
    EmailMessage,
    FolderNotFoundError,
    MailboxClient,
)
from imap_mcp.schemas import FetchOptions, SearchQuery

logger = logging.getLogger(__name__)

INBOX = "INBOX"
RECENT_MESSAGE_COUNT = 10

# RFC 6154 special-use attributes, in LIST response form.
SPECIAL_USE_FLAGS = (
    "\\All",
    "\\Archive",
    "\\Drafts",
    "\\Flagged",
    "\\Junk",
    "\\Sent",
    "\\Trash",
)

ClientFactory = Callable[..., MailboxClient]


@dataclass
class MailboxSession:
    """One authenticated connection, optionally with a folder selected."""

    client: MailboxClient
    folder: str | None = None
    folder_info: dict = field(default_factory=dict)

    @property
    def message_count(self) -> int:
        return int(self.folder_info.get(b"EXISTS", 0))


@contextmanager
def imap_session(
    settings: Settings,
    folder: str | None = None,
    *,
    client_factory: ClientFactory = IMAPClient,
) -> Iterator[MailboxSession]:
    """
    Open an authenticated session, optionally select ``folder``, and always
    log out afterwards.

    The folder is opened read-only so fetching never changes message flags.

    ERRORS:
    - ConnectionFailedError: the server could not be reached or dropped the connection
    - AuthFailedError: the server rejected the credentials
    - FolderNotFoundError: ``folder`` could not be selected
    """
    try:
        client = client_factory(
            settings.imap_host,
            port=settings.imap_port,
            ssl=settings.imap_secure,
            timeout=settings.email_timeout,
        )
    except (IMAPClientError, OSError) as e:
        raise ConnectionFailedError(f"Failed to connect: {e}") from e

    try:
        try:
            client.login(settings.email_user, settings.email_password.get_secret_value())
        except IMAPClientError as e:
            raise AuthFailedError(f"Authentication failed: {e}") from e

        session = MailboxSession(client=client)
        if folder is not None:
            try:
                session.folder_info = client.select_folder(folder, readonly=True)
            except IMAPClientAbortError as e:
                raise ConnectionFailedError(f"Connection lost opening {folder}: {e}") from e
            except IMAPClientError as e:
                raise FolderNotFoundError(f"Folder not found: {folder} ({e})") from e
            session.folder = folder

        yield session
    finally:
        _release(client)


def _release(client: MailboxClient) -> None:
    try:
        client.logout()
    except (IMAPClientError, OSError) as e:
        # The operation's own outcome is what the caller needs to see.
        logger.warning(f"IMAP logout did not complete cleanly: {e}")


# =============================================================================
# OPERATIONS
# =============================================================================


def search_messages(
    session: MailboxSession,
    query: SearchQuery,
    fetch_options: FetchOptions,
    limit: int,
) -> list[EmailMessage]:
    """
    Search the selected folder and fetch at most ``limit`` matches.

    Matches keep the order the server returned their UIDs in.
    """
    client = session.client
    uids = client.search(query.to_criteria(), charset=query.charset())
    limited = list(uids)[:limit]
    logger.info(f"Search in {session.folder} matched {len(uids)}, fetching {len(limited)}")
    if not limited:
        return []

    fetched = client.fetch(limited, fetch_options.to_fetch_items())
    messages = []
    for uid in limited:
        data = fetched.get(uid)
        if data is None:
            # Expunged between SEARCH and FETCH.
            continue
        messages.append(map_envelope(uid, data.get(b"ENVELOPE")))
    return messages


def fetch_recent(session: MailboxSession, count: int = RECENT_MESSAGE_COUNT) -> list[EmailMessage]:
    """Envelope-fetch every message and return the ``count`` newest by date."""
    if session.message_count == 0:
        return []

    fetched = session.client.fetch("1:*", ["ENVELOPE"])
    messages = [map_envelope(uid, data.get(b"ENVELOPE")) for uid, data in fetched.items()]
    messages.sort(key=_date_key, reverse=True)
    return messages[:count]


def list_mailboxes(session: MailboxSession) -> list[EmailFolder]:
    """List every folder of the account."""
    return [
        map_folder(flags, delimiter, name)
        for flags, delimiter, name in session.client.list_folders()
    ]


def _date_key(message: EmailMessage) -> float:
    # Undated messages sort after every dated one.
    if message.date is None:
        return float("-inf")
    return message.date.timestamp()


# =============================================================================
# MAPPING
# =============================================================================


def map_address(record: Any) -> EmailAddress:
    """
    Map an imapclient ``Address`` to ``EmailAddress``.

    Never fails: a missing name stays ``None``, a missing address becomes "".
    """
    raw_name = getattr(record, "name", None)
    mailbox = _to_str(getattr(record, "mailbox", None))
    host = _to_str(getattr(record, "host", None))

    if mailbox and host:
        address = f"{mailbox}@{host}"
    else:
        address = mailbox or ""

    return EmailAddress(
        name=_decode_header(raw_name) if raw_name else None,
        address=address,
    )


def map_envelope(uid: int, envelope: Any) -> EmailMessage:
    """Map an imapclient ``Envelope`` to an ``EmailMessage`` summary."""
    if envelope is None:
        return EmailMessage(id=uid, subject="", from_addrs=[], to_addrs=[], date=None)

    date = getattr(envelope, "date", None)
    return EmailMessage(
        id=uid,
        subject=_decode_header(getattr(envelope, "subject", None)),
        from_addrs=[map_address(a) for a in getattr(envelope, "from_", None) or ()],
        to_addrs=[map_address(a) for a in getattr(envelope, "to", None) or ()],
        date=date if isinstance(date, datetime) else None,
    )


def map_folder(flags: Any, delimiter: Any, path: Any) -> EmailFolder:
    """Map one LIST response entry to ``EmailFolder``."""
    path = _to_str(path)
    separator = _to_str(delimiter)
    name = path.rsplit(separator, 1)[-1] if separator else path
    flag_names = [_to_str(flag) for flag in flags or ()]

    special_use = None
    for flag in flag_names:
        if flag in SPECIAL_USE_FLAGS:
            special_use = flag
            break
    if special_use is None and path.upper() == INBOX:
        special_use = "\\Inbox"

    return EmailFolder(name=name, path=path, special_use=special_use, flags=flag_names)


def _to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _decode_header(header: Any) -> str:
    """Decode an RFC 2047 encoded header."""
    header = _to_str(header)
    if not header:
        return ""

    decoded_parts = []
    for part, charset in decode_header(header):
        if isinstance(part, bytes):
            try:
                decoded_parts.append(part.decode(charset or "utf-8", errors="replace"))
            except LookupError:
                decoded_parts.append(part.decode("utf-8", errors="replace"))
        else:
            decoded_parts.append(part)
    return "".join(decoded_parts)
