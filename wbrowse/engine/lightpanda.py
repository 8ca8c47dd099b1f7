"""Lightpanda helper process.

Lightpanda is a lightweight headless browser reached over CDP at a fixed
local endpoint. The daemon starts it before connecting and stops it on
shutdown.
"""

import asyncio
import logging
import time
from typing import Optional

from wbrowse.core.errors import EngineError

logger = logging.getLogger(__name__)

LIGHTPANDA_HOST = "127.0.0.1"
LIGHTPANDA_PORT = 9222


def get_lightpanda_cdp_url() -> str:
    return f"ws://{LIGHTPANDA_HOST}:{LIGHTPANDA_PORT}"


class LightpandaProcess:
    """Owns the ``lightpanda serve`` child process."""

    def __init__(self, executable: str = "lightpanda", startup_timeout: float = 10.0):
        self.executable = executable
        self.startup_timeout = startup_timeout
        self.process: Optional[asyncio.subprocess.Process] = None

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    async def start(self) -> None:
        """
        Spawn lightpanda and wait until its CDP port accepts connections.

        Raises:
            EngineError: If the binary is missing, exits early, or the port
                never opens
        """
        if self.running:
            return

        try:
            self.process = await asyncio.create_subprocess_exec(
                self.executable,
                "serve",
                "--host",
                LIGHTPANDA_HOST,
                "--port",
                str(LIGHTPANDA_PORT),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            self.process = None
            raise EngineError(f"Failed to start Lightpanda: {e}") from e

        deadline = time.monotonic() + self.startup_timeout
        while time.monotonic() < deadline:
            if self.process.returncode is not None:
                code = self.process.returncode
                self.process = None
                raise EngineError(f"Lightpanda exited with code {code}")
            try:
                _, writer = await asyncio.open_connection(LIGHTPANDA_HOST, LIGHTPANDA_PORT)
            except OSError:
                await asyncio.sleep(0.1)
                continue
            writer.close()
            await writer.wait_closed()
            logger.info(f"Lightpanda listening on {get_lightpanda_cdp_url()}")
            return

        await self.stop()
        raise EngineError(
            f"Lightpanda did not open port {LIGHTPANDA_PORT} within {self.startup_timeout:.0f}s"
        )

    async def stop(self) -> None:
        if not self.running:
            self.process = None
            return
        self.process.terminate()
        try:
            await asyncio.wait_for(self.process.wait(), timeout=5.0)
        except asyncio.TimeoutError:
            logger.warning("Lightpanda did not exit after SIGTERM, killing it")
            self.process.kill()
            await self.process.wait()
        self.process = None
