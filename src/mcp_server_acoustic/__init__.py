"""MCP Server for acoustic zone health analysis.

Run as a CLI:
    mcp-server-acoustic

Or via Python:
    python -m mcp_server_acoustic
"""

from __future__ import annotations

__version__ = "0.1.0"


def main() -> None:
    """CLI entry point for the acoustic analysis MCP server."""
    import argparse
    import logging

    parser = argparse.ArgumentParser(
        prog="mcp-server-acoustic",
        description="MCP server for acoustic feature extraction and zone health analysis",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse", "streamable-http"],
        default="stdio",
        help="MCP transport (default: stdio)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Log level; logs go to stderr (default: WARNING)",
    )
    args = parser.parse_args()

    # stdout carries the stdio transport
    logging.basicConfig(
        level=args.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from mcp_server_acoustic.server import serve

    serve(transport=args.transport)


if __name__ == "__main__":
    main()
