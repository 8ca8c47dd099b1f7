"""End-to-end tests: DaemonServer and DaemonClient over a real Unix socket."""

import asyncio
import json
import os
import shutil
import tempfile
import unittest
from unittest.mock import patch

from fakes import FakeEngine

from wbrowse.core.configs import DaemonConfig
from wbrowse.core.errors import EngineError, RemoteError
from wbrowse.daemon.client import DaemonClient
from wbrowse.daemon.paths import get_pid_path, get_session_dir, get_socket_path
from wbrowse.daemon.protocol import FrameDecoder, encode_frame
from wbrowse.daemon.server import DaemonAlreadyRunning, DaemonServer, run_daemon


class TestDaemonServer(unittest.IsolatedAsyncioTestCase):

    async def asyncSetUp(self):
        # Short path: Unix socket paths are limited to ~100 bytes
        self.temp_dir = tempfile.mkdtemp(prefix="wb", dir="/tmp")
        self.env = patch.dict(os.environ, {"WB_SESSION_DIR": self.temp_dir})
        self.env.start()
        self.engine = FakeEngine()
        self.server = None
        self.server_task = None

    async def asyncTearDown(self):
        if self.server_task is not None and not self.server_task.done():
            self.server.request_shutdown()
            await asyncio.wait_for(self.server_task, timeout=5)
        self.env.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    async def _start(self, name="test", engine=None):
        self.server = DaemonServer(
            session_name=name,
            config=DaemonConfig(),
            engine=engine or self.engine,
            install_signal_handlers=False,
        )
        self.server_task = asyncio.create_task(self.server.start())
        await asyncio.wait_for(self.server.ready.wait(), timeout=5)
        return self.server

    async def _raw_exchange(self, payload: bytes, expected: int, read_eof: bool = False):
        reader, writer = await asyncio.open_unix_connection(str(get_socket_path("test")))
        writer.write(payload)
        await writer.drain()
        decoder = FrameDecoder()
        messages = []
        while len(messages) < expected:
            chunk = await asyncio.wait_for(reader.read(65536), timeout=5)
            if not chunk:
                break
            messages.extend(decoder.feed(chunk))
        eof = await asyncio.wait_for(reader.read(65536), timeout=5) if read_eof else None
        writer.close()
        await writer.wait_closed()
        return messages, eof

    async def test_engine_failure_creates_no_socket(self):
        server = DaemonServer(
            session_name="test",
            config=DaemonConfig(),
            engine=FakeEngine(fail_launch=True),
            install_signal_handlers=False,
        )
        with self.assertRaises(EngineError):
            await server.start()
        self.assertFalse(get_socket_path("test").exists())
        self.assertFalse(get_pid_path("test").exists())

    async def test_socket_and_pid_file(self):
        await self._start()
        socket_path = get_socket_path("test")
        self.assertTrue(socket_path.exists())
        self.assertEqual(oct(socket_path.stat().st_mode & 0o777), oct(0o600))
        self.assertEqual(get_pid_path("test").read_text(), str(os.getpid()))
        self.assertTrue(self.engine.launched)

    async def test_client_session_flow(self):
        await self._start()
        client = DaemonClient("test", timeout=5)
        try:
            tab = await asyncio.to_thread(client.new_tab, "docs", "https://docs.example")
            self.assertEqual(tab["url"], "https://docs.example")

            self.assertEqual(await asyncio.to_thread(client.list_tabs), ["docs"])
            text = await asyncio.to_thread(client.dump)
            self.assertIn("Hello world", text)

            await asyncio.to_thread(client.go, "https://docs.example/next")
            current = await asyncio.to_thread(client.get_current_tab)
            self.assertEqual(current["tabName"], "docs")
            self.assertEqual([a["type"] for a in current["actions"]], ["dump", "go"])

            result = await asyncio.to_thread(client.interact, "click the first link")
            self.assertEqual(result["description"], "Clicked the link")

            runtime = await asyncio.to_thread(client.runtime_seconds)
            self.assertGreaterEqual(runtime, 0.0)
        finally:
            client.close()

    async def test_remote_error_keeps_connection_usable(self):
        await self._start()
        client = DaemonClient("test", timeout=5)
        try:
            with self.assertRaises(RemoteError) as context:
                await asyncio.to_thread(client.set_current_tab, "missing")
            self.assertEqual(str(context.exception), "Tab missing does not exist")
            self.assertEqual(await asyncio.to_thread(client.list_tabs), [])
        finally:
            client.close()

    async def test_network_capture_over_socket(self):
        await self._start()
        client = DaemonClient("test", timeout=5)
        try:
            await asyncio.to_thread(client.new_tab, "a", "https://a.example")
            await asyncio.to_thread(client.start_network_record)
            self.engine.pages[0].load("https://a.example/api")
            events = await asyncio.to_thread(client.stop_network_record)
        finally:
            client.close()

        self.assertEqual([e["type"] for e in events], ["request", "response"])

    async def test_back_to_back_requests_in_one_write(self):
        await self._start()
        payload = (
            encode_frame({"method": "listTabs", "params": {}})
            + encode_frame({"method": "getCurrentTab", "params": {}})
        )
        messages, _ = await self._raw_exchange(payload, expected=2)
        self.assertEqual(messages, [{"result": []}, {"error": "No current tab set"}])

    async def test_invalid_frame_is_rejected_and_connection_closed(self):
        await self._start()
        messages, eof = await self._raw_exchange(b"{oops\n", expected=1, read_eof=True)
        self.assertIn("Invalid JSON frame", messages[0]["error"])
        self.assertEqual(eof, b"")

        # The listener survives a bad client
        client = DaemonClient("test", timeout=5)
        try:
            self.assertEqual(await asyncio.to_thread(client.list_tabs), [])
        finally:
            client.close()

    async def test_requests_before_bad_frame_are_answered(self):
        await self._start()
        payload = encode_frame({"method": "listTabs", "params": {}}) + b"{oops\n"
        messages, eof = await self._raw_exchange(payload, expected=2, read_eof=True)
        self.assertEqual(messages[0], {"result": []})
        self.assertIn("Invalid JSON frame", messages[1]["error"])
        self.assertEqual(eof, b"")

    async def test_listen_failure_releases_engine_and_pid_file(self):
        server = DaemonServer(
            session_name="test",
            config=DaemonConfig(),
            engine=self.engine,
            install_signal_handlers=False,
        )
        with patch(
            "wbrowse.daemon.server.asyncio.start_unix_server",
            side_effect=OSError("AF_UNIX path too long"),
        ):
            with self.assertRaises(OSError):
                await server.start()

        self.assertTrue(self.engine.closed)
        self.assertFalse(server.dispatcher.running)
        self.assertFalse(get_pid_path("test").exists())
        self.assertFalse(get_socket_path("test").exists())

    async def test_invalid_method(self):
        await self._start()
        payload = json.dumps({"method": "format", "params": {}}).encode() + b"\n"
        messages, _ = await self._raw_exchange(payload, expected=1)
        self.assertEqual(messages[0], {"error": "Invalid method 'format'"})

    async def test_delete_session_tears_everything_down(self):
        await self._start()
        client = DaemonClient("test", timeout=5)
        await asyncio.to_thread(client.new_tab, "a", "https://a.example")

        acknowledged = await asyncio.to_thread(client.delete_session)

        self.assertTrue(acknowledged)
        await asyncio.wait_for(self.server_task, timeout=5)
        self.assertTrue(self.engine.closed)
        self.assertTrue(self.engine.pages[0].closed)
        self.assertFalse(get_socket_path("test").exists())
        self.assertFalse(get_session_dir("test").exists())

    async def test_shutdown_keeps_session_dir(self):
        await self._start()
        self.server.request_shutdown()
        await asyncio.wait_for(self.server_task, timeout=5)

        self.assertTrue(self.engine.closed)
        self.assertFalse(get_socket_path("test").exists())
        self.assertFalse(get_pid_path("test").exists())
        self.assertTrue(get_session_dir("test").exists())

    async def test_refuses_to_replace_live_daemon(self):
        await self._start()
        second = DaemonServer(
            session_name="test",
            config=DaemonConfig(),
            engine=FakeEngine(),
            install_signal_handlers=False,
        )
        with self.assertRaises(DaemonAlreadyRunning):
            await second.start()
        self.assertTrue(get_socket_path("test").exists())


class TestRunDaemon(unittest.TestCase):

    def test_overlong_session_name_exits_1(self):
        with patch("wbrowse.daemon.server.DaemonServer") as server_cls:
            self.assertEqual(run_daemon(session_name="s" * 200), 1)
        server_cls.assert_not_called()


if __name__ == "__main__":
    unittest.main()
