"""End-to-end tests for the stdio transport against tests/stub_server.py."""

import asyncio
import os
import sys
from pathlib import Path

import pytest

from mcpcall import (
    ConfigurationError,
    MCPTimeoutError,
    RPCError,
    ServerConfig,
    StdioTransport,
    TransportClosedError,
    TransportError,
    create_client,
)

STUB = str(Path(__file__).parent / "stub_server.py")


def stub_config(*args, **overrides):
    return {"transport": "stdio", "command": sys.executable, "args": [STUB, *args], **overrides}


def run(coro):
    return asyncio.run(coro)


class TestStdioTransport:
    def test_missing_command(self):
        with pytest.raises(ConfigurationError, match="missing command"):
            StdioTransport(ServerConfig(transport="stdio"))

    def test_list_tools(self):
        async def scenario():
            async with create_client(stub_config("echo")) as client:
                return await client.list_tools()

        listing = run(scenario())
        assert listing.model_dump(by_alias=True, exclude_unset=True) == {"tools": [{"name": "ping"}]}

    def test_lazy_connect(self):
        async def scenario():
            client = create_client(stub_config("echo"))
            assert client.transport.process is None
            try:
                return await client.call_tool("echo", {"msg": "hi ✓"})
            finally:
                await client.close()

        assert run(scenario()) == {"echo": {"msg": "hi ✓"}}

    def test_remote_error(self):
        async def scenario():
            async with create_client(stub_config("error")) as client:
                await client.call_tool("anything", {})

        with pytest.raises(RPCError) as info:
            run(scenario())
        assert info.value.code == -32601
        assert info.value.message == "Method not found"

    def test_out_of_order_responses(self):
        async def scenario():
            async with create_client(stub_config("reverse", "3")) as client:
                return await asyncio.gather(*(client.call_tool("echo", {"n": n}) for n in range(3)))

        assert run(scenario()) == [{"echo": {"n": n}} for n in range(3)]

    def test_timeout_isolation(self):
        async def scenario():
            async with create_client(stub_config("skip-first", timeoutMs=300)) as client:
                first = asyncio.create_task(client.call_tool("echo", {"n": 1}))
                await asyncio.sleep(0.05)
                second = asyncio.create_task(client.call_tool("echo", {"n": 2}))
                return await asyncio.gather(first, second, return_exceptions=True)

        first, second = run(scenario())
        assert isinstance(first, MCPTimeoutError)
        assert second == {"echo": {"n": 2}}

    def test_stray_messages_are_ignored(self):
        async def scenario():
            async with create_client(stub_config("noise")) as client:
                return await client.call_tool("echo", {"x": 1})

        assert run(scenario()) == {"echo": {"x": 1}}

    def test_environment_and_cwd(self, tmp_path):
        async def scenario():
            config = stub_config("echo", env={"MCPCALL_TEST_VALUE": "overlay"}, cwd=str(tmp_path))
            async with create_client(config) as client:
                overlay = await client.call_tool("env", {"key": "MCPCALL_TEST_VALUE"})
                inherited = await client.call_tool("env", {"key": "MCPCALL_INHERITED"})
                return overlay, inherited

        os.environ["MCPCALL_INHERITED"] = "from-parent"
        try:
            overlay, inherited = run(scenario())
        finally:
            del os.environ["MCPCALL_INHERITED"]
        assert overlay["value"] == "overlay"
        assert inherited["value"] == "from-parent"
        assert os.path.realpath(overlay["cwd"]) == os.path.realpath(str(tmp_path))

    def test_stderr_passthrough(self, capfd):
        async def scenario():
            async with create_client(stub_config("echo")) as client:
                return await client.call_tool("stderr", {"text": "diagnostic line"})

        assert run(scenario()) == {"ok": True}
        assert "diagnostic line" in capfd.readouterr().err

    def test_process_exit_fails_pending(self):
        async def scenario():
            async with create_client(stub_config("crash", timeoutMs=30_000)) as client:
                with pytest.raises(TransportClosedError):
                    await asyncio.wait_for(client.list_tools(), 10)
                # Later requests fail fast as well
                with pytest.raises(TransportClosedError):
                    await asyncio.wait_for(client.list_tools(), 10)

        run(scenario())

    def test_close_fails_pending(self):
        async def scenario():
            client = create_client(stub_config("silent", timeoutMs=30_000))
            await client.connect()
            pending = [asyncio.create_task(client.list_tools()) for _ in range(3)]
            await asyncio.sleep(0.1)
            assert client.transport.pending_count == 3
            await asyncio.wait_for(client.close(), 10)
            results = await asyncio.gather(*pending, return_exceptions=True)
            return results, client.transport.process.returncode

        results, returncode = run(scenario())
        assert all(isinstance(r, TransportClosedError) for r in results)
        assert returncode is not None

    def test_close_is_idempotent_and_tolerates_dead_process(self):
        async def scenario():
            client = create_client(stub_config("crash"))
            with pytest.raises(TransportClosedError):
                await client.list_tools()
            await client.transport.process.wait()
            await client.close()
            await client.close()
            with pytest.raises(TransportClosedError):
                await client.list_tools()

        run(scenario())

    def test_close_without_connect(self):
        async def scenario():
            client = create_client(stub_config("echo"))
            await client.close()
            return client.transport.process

        assert run(scenario()) is None

    def test_spawn_failure(self, tmp_path):
        async def scenario():
            client = create_client({"transport": "stdio", "command": str(tmp_path / "no-such-server")})
            try:
                await client.list_tools()
            finally:
                await client.close()

        with pytest.raises(TransportError, match="Failed to start process"):
            run(scenario())

    def test_unserializable_arguments(self):
        async def scenario():
            async with create_client(stub_config("echo")) as client:
                with pytest.raises(TransportError, match="serialize"):
                    await client.call_tool("echo", {"value": object()})
                assert client.transport.pending_count == 0
                # The transport is still usable
                return await client.call_tool("echo", {"value": 1})

        assert run(scenario()) == {"echo": {"value": 1}}

    def test_undecodable_frames_do_not_break_the_connection(self, caplog):
        async def scenario():
            async with create_client(stub_config("garbage")) as client:
                first = await client.call_tool("echo", {"n": 1})
                second = await client.call_tool("echo", {"n": 2})
                return first, second, client.transport.pending_count

        with caplog.at_level("WARNING", logger="mcpcall"):
            first, second, pending = run(scenario())
        assert (first, second) == ({"echo": {"n": 1}}, {"echo": {"n": 2}})
        assert pending == 0
        assert "Invalid JSON payload" in caplog.text

    def test_reader_failure_is_reported_on_close(self, caplog):
        class BrokenDecoder:
            def feed(self, data):
                raise RuntimeError("decoder exploded")

            def reset(self):
                pass

        async def scenario():
            client = create_client(stub_config("echo"))
            await client.connect()
            client.transport._decoder = BrokenDecoder()
            with pytest.raises(TransportClosedError):
                await asyncio.wait_for(client.list_tools(), 10)
            await client.close()

        with caplog.at_level("WARNING", logger="mcpcall"):
            run(scenario())
        assert "Server reader failed" in caplog.text
        assert "decoder exploded" in caplog.text
