"""
IMAP MCP Server
===============

MCP server exposing send_email, search_emails and list_folders tools plus
read-only inbox and folders resources.

Tools report failures as error results (``isError``) so the host can show
them without treating the call as a protocol failure. Resources re-raise
failures to the host's own error channel.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterable
from typing import Any

import anyio
from mcp.server import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.server.stdio import stdio_server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl, ValidationError

from imap_mcp import __version__
from imap_mcp.config import Settings, load_settings
from imap_mcp.contracts import (
    DeliveryTransport,
    EmailFolder,
    EmailMessage,
    ResourceNotFoundError,
    ToolCallError,
)
from imap_mcp.imap_client import (
    INBOX,
    ClientFactory,
    fetch_recent,
    imap_session,
    list_mailboxes,
    search_messages,
)
from imap_mcp.schemas import SearchEmailsRequest, SendEmailRequest
from imap_mcp.smtp_client import SMTPDelivery

# stdout carries the MCP stream; logging goes to stderr.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("imap-mcp")

SERVER_NAME = "imap-mcp"
JSON_MIME_TYPE = "application/json"
SEND_STATUS = "Email sent successfully"


def to_json(payload: Any) -> str:
    """Serialize entities (or lists of them) as indented JSON."""

    def default_serializer(obj: Any) -> Any:
        if hasattr(obj, "to_dict"):
            return obj.to_dict()
        raise TypeError(f"Cannot serialize {type(obj)}")

    return json.dumps(payload, default=default_serializer, indent=2)


class EmailMCPServer:
    """
    Email access for AI agents over MCP.

    The delivery handle is shared across sends. Mailbox connections are
    opened per invocation through ``client_factory`` and never reused.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        delivery: DeliveryTransport | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.settings = settings
        self._delivery = delivery if delivery is not None else SMTPDelivery(settings)
        self._session_kwargs: dict[str, Any] = {}
        if client_factory is not None:
            self._session_kwargs["client_factory"] = client_factory
        self._server = Server(SERVER_NAME, version=__version__)
        self._setup_tools()
        self._setup_resources()

    # -------------------------------------------------------------------------
    # MCP registration
    # -------------------------------------------------------------------------

    def _setup_tools(self) -> None:
        """Register MCP tools."""

        @self._server.list_tools()
        async def list_tools() -> list[Tool]:
            return self.tool_definitions()

        @self._server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
            text = await self.call_tool(name, arguments or {})
            return [TextContent(type="text", text=text)]

    def _setup_resources(self) -> None:
        """Register MCP resources."""

        @self._server.list_resources()
        async def list_resources() -> list[Resource]:
            return self.resource_definitions()

        @self._server.read_resource()
        async def read_resource(uri: AnyUrl) -> Iterable[ReadResourceContents]:
            text = await self.read_resource(str(uri))
            return [ReadResourceContents(content=text, mime_type=JSON_MIME_TYPE)]

    def tool_definitions(self) -> list[Tool]:
        return [
            Tool(
                name="send_email",
                description="Send an email message",
                inputSchema=SendEmailRequest.model_json_schema(),
            ),
            Tool(
                name="search_emails",
                description="Search for emails in the inbox",
                inputSchema=SearchEmailsRequest.model_json_schema(),
            ),
            Tool(
                name="list_folders",
                description="List all available email folders/mailboxes",
                inputSchema={"type": "object", "properties": {}},
            ),
        ]

    def resource_definitions(self) -> list[Resource]:
        return [
            Resource(
                uri=self.settings.inbox_uri,
                name="inbox",
                description="The 10 most recent messages in INBOX",
                mimeType=JSON_MIME_TYPE,
            ),
            Resource(
                uri=self.settings.folders_uri,
                name="folders",
                description="All folders of the account",
                mimeType=JSON_MIME_TYPE,
            ),
        ]

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> str:
        """
        Run one tool and return its JSON text.

        Raises ToolCallError for every failure; the MCP layer turns it into an
        error result.
        """
        if name == "send_email":
            request = self._parse(name, SendEmailRequest, arguments)
            try:
                message_id = await self.send_email(request)
            except Exception as e:
                logger.error(f"Error sending email: {e}")
                raise ToolCallError(f"Error sending email: {e}") from e
            return to_json({"messageId": message_id, "status": SEND_STATUS})

        if name == "search_emails":
            request = self._parse(name, SearchEmailsRequest, arguments)
            try:
                messages = await self.search_emails(request)
            except Exception as e:
                logger.error(f"Error searching emails: {e}")
                raise ToolCallError(f"Error searching emails: {e}") from e
            return to_json(messages)

        if name == "list_folders":
            try:
                folders = await self.list_folders()
            except Exception as e:
                logger.error(f"Error listing folders: {e}")
                raise ToolCallError(f"Error listing folders: {e}") from e
            return to_json(folders)

        raise ToolCallError(f"Unknown tool: {name}")

    async def read_resource(self, uri: str) -> str:
        """Return a resource's JSON text. Failures propagate to the host."""
        if uri == self.settings.inbox_uri:
            try:
                return to_json(await self.read_inbox())
            except Exception as e:
                logger.error(f"Error reading inbox: {e}")
                raise

        if uri == self.settings.folders_uri:
            try:
                return to_json(await self.list_folders())
            except Exception as e:
                logger.error(f"Error listing folders: {e}")
                raise

        raise ResourceNotFoundError(f"Unknown resource: {uri}")

    @staticmethod
    def _parse(name: str, model: type, arguments: dict[str, Any]) -> Any:
        try:
            return model.model_validate(arguments)
        except ValidationError as e:
            raise ToolCallError(f"Invalid arguments for {name}: {e}") from e

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def send_email(self, request: SendEmailRequest) -> str:
        """Submit one message from the configured account; returns its Message-ID."""
        logger.info("Sending email")
        return await anyio.to_thread.run_sync(
            lambda: self._delivery.send(
                to=request.to,
                subject=request.subject,
                text=request.text,
                html=request.html,
            )
        )

    async def search_emails(self, request: SearchEmailsRequest) -> list[EmailMessage]:
        logger.info(f"Searching {request.folder} with limit={request.limit}")

        def work() -> list[EmailMessage]:
            with imap_session(self.settings, request.folder, **self._session_kwargs) as session:
                return search_messages(
                    session, request.query, request.fetch_options, request.limit
                )

        return await anyio.to_thread.run_sync(work)

    async def list_folders(self) -> list[EmailFolder]:
        logger.info("Listing folders")

        def work() -> list[EmailFolder]:
            with imap_session(self.settings, **self._session_kwargs) as session:
                return list_mailboxes(session)

        return await anyio.to_thread.run_sync(work)

    async def read_inbox(self) -> list[EmailMessage]:
        logger.info("Reading inbox")

        def work() -> list[EmailMessage]:
            with imap_session(self.settings, INBOX, **self._session_kwargs) as session:
                return fetch_recent(session)

        return await anyio.to_thread.run_sync(work)

    async def run(self) -> None:
        """Run the MCP server over stdio."""
        async with stdio_server() as (read_stream, write_stream):
            await self._server.run(
                read_stream, write_stream, self._server.create_initialization_options()
            )


def create_server(settings: Settings | None = None, **kwargs: Any) -> EmailMCPServer:
    """Create a server; settings are loaded from the environment when omitted."""
    if settings is None:
        settings = load_settings()
    return EmailMCPServer(settings, **kwargs)


def main() -> None:
    """Console entry point. Invalid configuration terminates the process."""
    server = create_server()
    logger.info(f"Serving {SERVER_NAME} {__version__} for {server.settings.email_user}")
    asyncio.run(server.run())
