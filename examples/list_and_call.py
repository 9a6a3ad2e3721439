#!/usr/bin/env python3
"""
List and call tools on an MCP server.

This example demonstrates:
1. Building a client from a plain config mapping
2. Running several tool calls concurrently over one stdio server
3. Telling remote errors apart from transport failures

Run with:
    python examples/list_and_call.py

It talks to the stub server used by the test suite. Point SERVER at your own
server, or use {"transport": "http", "url": ...} for an HTTP endpoint.
"""

import asyncio
import logging
import sys
from pathlib import Path

from mcpcall import MCPError, RPCError, create_client

SERVER = {
    "transport": "stdio",
    "command": sys.executable,
    "args": [str(Path(__file__).parent.parent / "tests" / "stub_server.py"), "echo"],
    "timeoutMs": 10_000,
}


async def main():
    async with create_client(SERVER) as client:
        listing = await client.list_tools()
        for tool in listing.tools:
            print(f"{tool.name}\t{tool.description or ''}")

        results = await asyncio.gather(
            *(client.call_tool("echo", {"n": n}) for n in range(3))
        )
        print(results)

        try:
            await client.call_tool("does-not-exist", {})
        except RPCError as e:
            print(f"server said no: {e.message} ({e.code})")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    try:
        asyncio.run(main())
    except MCPError as e:
        print(e, file=sys.stderr)
        sys.exit(1)
