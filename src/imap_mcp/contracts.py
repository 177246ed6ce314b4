"""
IMAP MCP Contracts
==================

Single authoritative source for the domain types, error taxonomy and
collaborator interfaces of the IMAP MCP server. Import from here, not from
the modules that implement them.

Every mailbox operation owns one fresh connection for its whole duration.
Entities below are transient: built per response, never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

# =============================================================================
# DOMAIN TYPES
# =============================================================================


@dataclass(frozen=True)
class EmailAddress:
    """One message participant."""

    name: str | None
    address: str

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.name is not None:
            data["name"] = self.name
        data["address"] = self.address
        return data


@dataclass(frozen=True)
class EmailMessage:
    """
    Summary of one fetched message.

    ``id`` is the message UID within the folder it was fetched from.
    ``text`` and ``html`` are omitted from the JSON form when unset.
    """

    id: int
    subject: str
    from_addrs: list[EmailAddress]
    to_addrs: list[EmailAddress]
    date: datetime | None
    text: str | None = None
    html: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "subject": self.subject,
            "from": [addr.to_dict() for addr in self.from_addrs],
            "to": [addr.to_dict() for addr in self.to_addrs],
            "date": self.date.isoformat() if self.date else None,
        }
        if self.text is not None:
            data["text"] = self.text
        if self.html is not None:
            data["html"] = self.html
        return data


@dataclass(frozen=True)
class EmailFolder:
    """One mailbox folder. ``path`` is unique within the account."""

    name: str
    path: str
    special_use: str | None = None
    flags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "path": self.path}
        if self.special_use is not None:
            data["specialUse"] = self.special_use
        data["flags"] = list(self.flags)
        return data


# =============================================================================
# ERROR TYPES
# =============================================================================


class EmailMCPError(Exception):
    """Base error for all IMAP MCP operations."""

    code: str = "EMAIL_MCP_ERROR"


class ConfigurationError(EmailMCPError):
    """
    Startup parameters are missing or malformed.

    RECOVERY: Fatal. The process exits before serving any request.
    """

    code = "INVALID_ENV"


class ConnectionFailedError(EmailMCPError):
    """
    Mail server unreachable, host not found or TLS handshake refused.

    RECOVERY: Reported per invocation; the next call opens a new connection.
    """

    code = "CONNECTION_FAILED"


class AuthFailedError(EmailMCPError):
    """
    Mail server rejected the configured credentials.

    RECOVERY: User must fix EMAIL_USER / EMAIL_PASSWORD and restart.
    """

    code = "AUTH_FAILED"


class FolderNotFoundError(EmailMCPError):
    """
    Requested folder could not be opened.

    RECOVERY: Agent should call list_folders to get valid folder paths.
    """

    code = "FOLDER_NOT_FOUND"


class DeliveryError(EmailMCPError):
    """SMTP submission failed. The message is the transport's own error text."""

    code = "DELIVERY_FAILED"


class ResourceNotFoundError(EmailMCPError):
    """Resource URI does not belong to this server."""

    code = "RESOURCE_NOT_FOUND"


class ToolCallError(EmailMCPError):
    """
    Raised inside the MCP call_tool handler.

    The MCP server turns it into a tool result flagged ``isError`` whose text
    is this exception's message, so the host sees a normal response.
    """

    code = "TOOL_ERROR"


# =============================================================================
# COLLABORATOR CONTRACTS
# =============================================================================


@runtime_checkable
class MailboxClient(Protocol):
    """
    The subset of ``imapclient.IMAPClient`` the server relies on.

    A client is constructed already connected; ``logout`` is its terminal
    call and is made exactly once per invocation.
    """

    def login(self, username: str, password: str) -> Any: ...

    def select_folder(self, folder: str, readonly: bool = False) -> dict: ...

    def search(self, criteria: Any = "ALL", charset: str | None = None) -> list[int]: ...

    def fetch(self, messages: Any, data: list[str], modifiers: Any = None) -> dict: ...

    def list_folders(self, directory: str = "", pattern: str = "*") -> list: ...

    def logout(self) -> Any: ...


@runtime_checkable
class DeliveryTransport(Protocol):
    """
    Process-scoped outbound mail handle.

    Built once at startup and shared by every send_email call.
    Returns the Message-ID of the submitted message.
    """

    def send(
        self, *, to: str, subject: str, text: str, html: str | None = None
    ) -> str: ...
