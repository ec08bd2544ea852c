"""Zoho Books MCP Server.

A Model Context Protocol server and async client for managing Zoho Books
invoices, contacts, expenses and reports through Supabase edge functions.
"""

__version__ = "0.1.0"

from zohobooks_mcp.client import ZohoBooksClient
from zohobooks_mcp.config import Settings

__all__ = ["Settings", "ZohoBooksClient", "__version__"]
