"""
IMAP MCP Server
===============

MCP server giving AI agents email access over IMAP (search, list folders,
read inbox) and SMTP (send).
"""

__version__ = "0.1.0"

from imap_mcp.config import Settings, load_settings
from imap_mcp.server import EmailMCPServer, create_server, main
from imap_mcp.smtp_client import SMTPDelivery

__all__ = [
    "EmailMCPServer",
    "create_server",
    "main",
    "Settings",
    "load_settings",
    "SMTPDelivery",
]
