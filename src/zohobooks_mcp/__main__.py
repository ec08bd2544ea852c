"""Entry point for running the Zoho Books MCP server.

Run with: python -m zohobooks_mcp
Or use the mcp CLI: mcp run zohobooks-mcp
"""

from zohobooks_mcp.server import mcp


def main() -> None:
    """Run the MCP server with stdio transport."""
    mcp.run()


if __name__ == "__main__":
    main()
