"""Async Unix socket server for the wbd daemon.

This module implements the long-running daemon process that:
1. Launches the browser engine once at startup
2. Holds the session (tabs, current tab, network capture) in memory
3. Serves newline-delimited JSON requests on the session's Unix socket

The socket is opened only after the engine launched, so a reachable socket
means a ready session. Engine launch failure aborts startup with exit code 1
and no socket is ever created.

Usage:
    python -m wbrowse.daemon.server --session NAME [--debug] [--daemonize]

    Or let the CLI spawn it:
    wb -s NAME session create
"""

import argparse
import asyncio
import logging
import os
import shutil
import signal
import sys
import time
from typing import Any, Dict, Optional, Set

import setproctitle

from wbrowse.core.configs import DaemonConfig, get_daemon_config, load_raw_config
from wbrowse.core.errors import FrameError, ValidationError
from wbrowse.daemon.client import socket_is_live
from wbrowse.daemon.dispatcher import Dispatcher
from wbrowse.daemon.paths import (
    get_data_dir,
    get_log_path,
    get_pid_path,
    get_session_dir,
    get_socket_path,
    validate_session_name,
)
from wbrowse.daemon.protocol import FrameDecoder, serialize_response
from wbrowse.daemon.state import SessionState
from wbrowse.engine.base import Engine

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
READ_CHUNK = 65536


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


class DaemonAlreadyRunning(RuntimeError):
    pass


class DaemonServer:
    """
    Async Unix socket server for one session.

    Handles concurrent client connections using asyncio. Requests on one
    connection are answered in order; all session work goes through the
    dispatcher's single command queue.
    """

    def __init__(
        self,
        session_name: str = "default",
        debug: bool = False,
        config: Optional[DaemonConfig] = None,
        engine: Optional[Engine] = None,
        install_signal_handlers: bool = True,
    ):
        """
        Initialize daemon server.

        Args:
            session_name: Session this daemon serves
            debug: Show the browser window and log at DEBUG
            config: Daemon configuration (loaded from disk if omitted)
            engine: Engine to use (a PlaywrightEngine if omitted)
            install_signal_handlers: Handle SIGTERM/SIGINT (main thread only)
        """
        self.session_name = validate_session_name(session_name)
        self.debug = debug
        self.config = config
        self.engine = engine
        self.install_signal_handlers = install_signal_handlers

        self.session_dir = get_session_dir(session_name)
        self.socket_path = get_socket_path(session_name)
        self.pid_path = get_pid_path(session_name)

        self.state: Optional[SessionState] = None
        self.dispatcher: Optional[Dispatcher] = None
        self.server: Optional[asyncio.Server] = None
        self.ready = asyncio.Event()
        self._shutdown_event = asyncio.Event()
        self._writers: Set[asyncio.StreamWriter] = set()

    def _build_engine(self) -> Engine:
        from wbrowse.engine.playwright_engine import PlaywrightEngine

        return PlaywrightEngine(
            self.config,
            get_data_dir(self.session_name),
            debug=self.debug,
        )

    async def start(self) -> None:
        """Start the daemon and serve until shutdown."""
        logger.info(f"Starting wbd daemon for session {self.session_name}...")
        self.session_dir.mkdir(parents=True, exist_ok=True)

        if self.socket_path.exists():
            if socket_is_live(self.socket_path):
                raise DaemonAlreadyRunning(
                    f"Session {self.session_name} already has a live daemon"
                )
            logger.info(f"Removing stale socket {self.socket_path}")
            self.socket_path.unlink()

        if self.config is None:
            self.config = get_daemon_config(load_raw_config())
        engine = self.engine or self._build_engine()

        # Fatal on failure: no session, no socket
        start = time.time()
        try:
            await engine.launch()
        except Exception as e:
            logger.error(f"Engine initialization failed: {e}")
            try:
                await engine.close()
            except Exception as close_error:
                logger.debug(f"Engine cleanup after failed launch: {close_error}")
            raise
        logger.info(f"Engine ready in {time.time() - start:.2f}s")

        self.state = SessionState(self.session_name, engine)
        self.dispatcher = Dispatcher(self.state)
        self.dispatcher.start()

        try:
            self.pid_path.write_text(str(os.getpid()))

            self.server = await asyncio.start_unix_server(
                self._handle_client,
                path=str(self.socket_path),
            )

            # Set socket permissions (owner only)
            os.chmod(self.socket_path, 0o600)

            if self.install_signal_handlers:
                loop = asyncio.get_running_loop()
                for sig in (signal.SIGTERM, signal.SIGINT):
                    loop.add_signal_handler(sig, self._signal_handler)
        except Exception as e:
            # Nothing launched above may outlive a failed start
            logger.error(f"Daemon startup failed after engine launch: {e}")
            await self._cleanup()
            raise

        logger.info(f"Daemon listening on {self.socket_path}")
        self.ready.set()
        await self._shutdown_event.wait()
        await self._cleanup()

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def _handle_client(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Serve one client connection, one request at a time."""
        self._writers.add(writer)
        decoder = FrameDecoder()
        try:
            while not self._shutdown_event.is_set():
                chunk = await reader.read(READ_CHUNK)
                if not chunk:
                    decoder.close()
                    break

                bad_frame = None
                try:
                    messages = decoder.feed(chunk)
                except FrameError as e:
                    messages, bad_frame = e.decoded, e

                # Frames ahead of a bad one are still answered, in order
                for message in messages:
                    response = await self._process(message)
                    writer.write(serialize_response(response.get("result"), response.get("error")))
                    await writer.drain()
                    if self.dispatcher.delete_requested:
                        self.request_shutdown()
                        return

                if bad_frame is not None:
                    logger.warning(f"Dropping connection after bad frame: {bad_frame}")
                    writer.write(serialize_response(error=str(bad_frame)))
                    await writer.drain()
                    break

        except FrameError as e:
            logger.warning(f"Client closed mid-frame: {e}")
        except (ConnectionResetError, BrokenPipeError) as e:
            logger.debug(f"Client went away: {e}")
        except Exception as e:
            logger.exception(f"Error handling client: {e}")
        finally:
            self._writers.discard(writer)
            writer.close()
            try:
                await writer.wait_closed()
            except (ConnectionResetError, BrokenPipeError) as e:
                logger.debug(f"Error while closing client connection: {e}")

    async def _process(self, message: Dict[str, Any]) -> Dict[str, Any]:
        method = message.get("method")
        params = message.get("params")
        logger.debug(f"Received {method} {params}")

        response = await self.dispatcher.dispatch(method, params)
        if "error" in response:
            logger.debug(f"{method} -> error: {response['error']}")
        else:
            logger.debug(f"{method} -> ok")
        return response

    def _signal_handler(self) -> None:
        """Handle SIGTERM/SIGINT for graceful shutdown."""
        logger.info("Received shutdown signal")
        self._shutdown_event.set()

    async def _cleanup(self) -> None:
        """Cleanup on shutdown."""
        logger.info("Cleaning up...")
        delete_requested = bool(self.dispatcher and self.dispatcher.delete_requested)

        # Stop accepting, then drop idle clients so wait_closed can finish
        if self.server:
            self.server.close()
        for writer in list(self._writers):
            writer.close()

        if self.dispatcher:
            await self.dispatcher.stop()

        if self.state:
            logger.info(f"Final session stats: {self.state.get_stats()}")
            try:
                await self.state.shutdown()
            except Exception as e:
                logger.error(f"Error shutting down engine: {e}")

        if self.server:
            await self.server.wait_closed()

        # Remove socket and PID file
        self.socket_path.unlink(missing_ok=True)
        self.pid_path.unlink(missing_ok=True)

        if delete_requested:
            shutil.rmtree(self.session_dir, ignore_errors=True)
            logger.info(f"Session {self.session_name} deleted")

        logger.info("Daemon stopped")


def _daemonize(session_name: str) -> None:
    """Double-fork into the background with stdio redirected to the session log."""
    pid = os.fork()
    if pid > 0:
        # Parent exits
        os._exit(0)

    os.setsid()

    pid = os.fork()
    if pid > 0:
        os._exit(0)

    log_path = get_log_path(session_name)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    devnull = os.open(os.devnull, os.O_RDONLY)
    os.dup2(devnull, sys.stdin.fileno())
    log_fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
    os.dup2(log_fd, sys.stdout.fileno())
    os.dup2(log_fd, sys.stderr.fileno())


def run_daemon(
    session_name: str = "default",
    debug: bool = False,
    daemonize: bool = False,
) -> int:
    """
    Run the daemon server.

    Args:
        session_name: Session to serve
        debug: Headed browser and DEBUG logging
        daemonize: Fork to background (Unix only)

    Returns:
        Process exit code
    """
    try:
        get_socket_path(session_name)
    except ValidationError as e:
        configure_logging()
        logger.error(str(e))
        return 1
    if daemonize:
        _daemonize(session_name)

    try:
        config = get_daemon_config(load_raw_config())
    except ValueError as e:
        configure_logging()
        logger.error(f"Invalid configuration: {e}")
        return 1

    configure_logging("DEBUG" if debug else config.log_level)
    setproctitle.setproctitle(f"wbd [{session_name}]")

    try:
        server = DaemonServer(session_name=session_name, debug=debug, config=config)
        asyncio.run(server.start())
    except DaemonAlreadyRunning as e:
        logger.error(str(e))
        return 1
    except Exception as e:
        logger.error(f"Daemon startup failed: {e}")
        return 1
    return 0


def main() -> None:
    """Entry point for the ``wbd`` console script."""
    parser = argparse.ArgumentParser(description="wbrowse session daemon")
    parser.add_argument(
        "-s",
        "--session",
        default="default",
        help="Name of the session to serve",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Show the browser window and log at DEBUG level",
    )
    parser.add_argument(
        "--daemonize",
        action="store_true",
        help="Fork to background",
    )

    args = parser.parse_args()
    sys.exit(run_daemon(session_name=args.session, debug=args.debug, daemonize=args.daemonize))


if __name__ == "__main__":
    main()
