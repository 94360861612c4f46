"""
Resident front for Taskline.

A long-lived asyncio process that holds one :class:`ResidentContext`
and serves it over a unix domain socket.  Each connection runs in its
own task and its requests are answered strictly in order; separate
connections proceed independently, so one slow fallback call never
stalls another client.

Shutdown (SIGINT, SIGTERM or the ``shutdown`` command):

1. Stop taking work: any request that arrives from now on, on a new or
   existing connection, is answered ``shutting_down``.
2. Give in-flight requests up to ``resident.grace_period_seconds``.
3. Close the listener, cancel remaining connections, remove the socket.
"""

import asyncio
import contextlib
import logging
import os
import signal
import socket
import time
from pathlib import Path
from typing import Optional, Set

from taskline.config import get_settings
from taskline.exceptions import (
    InvalidInputError,
    ProtocolError,
    ResidentError,
    StorageError,
)
from taskline.resident.context import ResidentContext
from taskline.resident.protocol import (
    Command,
    ErrorKind,
    IpcResponse,
    decode_request,
    encode_frame,
)
from taskline.resident.warmer import BackgroundWarmer

logger = logging.getLogger(__name__)

# How long a connection opened during shutdown may take to send its request.
_REJECT_READ_TIMEOUT = 1.0


class ResidentServer:
    """Unix-socket server over a shared :class:`ResidentContext`.

    Args:
        context: Shared state built at startup.
        socket_path: Filesystem address.  Defaults to settings.
        grace_period: Seconds in-flight requests get at shutdown.
        max_request_bytes: Longest accepted request line.
        warmer: Background warmer to start with the server.
    """

    def __init__(
        self,
        context: ResidentContext,
        socket_path: Optional[str] = None,
        grace_period: Optional[float] = None,
        max_request_bytes: Optional[int] = None,
        warmer: Optional[BackgroundWarmer] = None,
    ) -> None:
        _s = get_settings().resident
        self._context = context
        self._socket_path = Path(socket_path or _s.socket_path)
        self._grace_period = grace_period if grace_period is not None else _s.grace_period_seconds
        self._max_request_bytes = max_request_bytes or _s.max_request_bytes
        self._warmer = warmer

        self._server: Optional[asyncio.AbstractServer] = None
        self._connections: Set["asyncio.Task[None]"] = set()
        self._inflight = 0
        self._drained = asyncio.Event()
        self._drained.set()
        self._stop_requested = asyncio.Event()
        self._shutting_down = False
        self._closed = asyncio.Event()

    @property
    def socket_path(self) -> Path:
        return self._socket_path

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    async def start(self) -> None:
        """Bind the socket and start the warmer."""
        self._remove_stale_socket()
        self._socket_path.parent.mkdir(parents=True, exist_ok=True)
        self._server = await asyncio.start_unix_server(
            self._handle_connection,
            path=str(self._socket_path),
            limit=self._max_request_bytes,
        )
        os.chmod(self._socket_path, 0o600)
        if self._warmer is not None:
            self._warmer.start()
        logger.info(
            "Resident process listening",
            extra={"socket_path": str(self._socket_path), "pid": os.getpid()},
        )

    async def serve_forever(self) -> None:
        """Start, install signal handlers and run until shutdown completes."""
        await self.start()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except (NotImplementedError, RuntimeError):
                logger.debug("Signal handler not installed", extra={"signal": sig.name})
        try:
            await self._stop_requested.wait()
            await self.shutdown()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                with contextlib.suppress(NotImplementedError, RuntimeError):
                    loop.remove_signal_handler(sig)

    def request_shutdown(self) -> None:
        """Begin graceful shutdown; safe to call more than once."""
        if not self._stop_requested.is_set():
            logger.info("Shutdown requested")
        self._shutting_down = True
        self._stop_requested.set()

    async def shutdown(self) -> None:
        """Drain in-flight requests, then close everything."""
        if self._closed.is_set():
            return
        self._shutting_down = True
        self._stop_requested.set()

        try:
            await asyncio.wait_for(self._drained.wait(), self._grace_period)
        except asyncio.TimeoutError:
            logger.warning(
                "Grace period expired with requests in flight",
                extra={"inflight": self._inflight},
            )

        if self._server is not None:
            self._server.close()
        for task in list(self._connections):
            task.cancel()
        if self._connections:
            await asyncio.gather(*self._connections, return_exceptions=True)
        if self._server is not None:
            await self._server.wait_closed()

        if self._warmer is not None:
            await self._warmer.stop()
        await self._context.aclose()
        with contextlib.suppress(FileNotFoundError):
            self._socket_path.unlink()

        self._closed.set()
        logger.info("Resident process stopped")

    async def wait_closed(self) -> None:
        await self._closed.wait()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._connections.add(task)
        try:
            if self._shutting_down:
                await self._reject(reader, writer)
                return
            await self._serve(reader, writer)
        except (ConnectionError, asyncio.IncompleteReadError) as exc:
            logger.debug("Client disconnected", extra={"error": str(exc)})
        finally:
            if task is not None:
                self._connections.discard(task)
            writer.close()
            with contextlib.suppress(ConnectionError, asyncio.CancelledError):
                await writer.wait_closed()

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        while True:
            try:
                line = await reader.readline()
            except ValueError:
                # Line longer than the stream limit.
                await self._send(
                    writer,
                    IpcResponse.fail(ErrorKind.BAD_REQUEST, "Request exceeds maximum size"),
                )
                return
            if not line:
                return
            if self._shutting_down:
                await self._send(writer, _shutting_down_response())
                return

            self._begin_request()
            try:
                response = await self._dispatch(line)
                await self._send(writer, response)
            finally:
                self._end_request()

    async def _reject(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        with contextlib.suppress(asyncio.TimeoutError, ValueError):
            await asyncio.wait_for(reader.readline(), _REJECT_READ_TIMEOUT)
        await self._send(writer, _shutting_down_response())

    async def _send(self, writer: asyncio.StreamWriter, response: IpcResponse) -> None:
        writer.write(encode_frame(response))
        await writer.drain()

    def _begin_request(self) -> None:
        self._inflight += 1
        self._drained.clear()

    def _end_request(self) -> None:
        self._inflight -= 1
        if self._inflight == 0:
            self._drained.set()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _dispatch(self, line: bytes) -> IpcResponse:
        started = time.perf_counter()
        response = await self._execute(line)
        response.elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        return response

    async def _execute(self, line: bytes) -> IpcResponse:
        try:
            request = decode_request(line)
        except ProtocolError as exc:
            return IpcResponse.fail(ErrorKind.BAD_REQUEST, str(exc))

        orchestrator = self._context.orchestrator
        try:
            if request.command is Command.HEALTH:
                return IpcResponse.ok(stats=orchestrator.stats().model_dump())

            if request.command is Command.SHUTDOWN:
                self.request_shutdown()
                return IpcResponse.ok()

            if request.command is Command.PARSE:
                result = await orchestrator.parse(request.raw_text)
                return IpcResponse.ok(result=result)

            # Command.ADD
            store = self._context.store
            if store is None:
                return IpcResponse.fail(ErrorKind.STORAGE_ERROR, "No task store configured")
            key, result = await orchestrator.parse_keyed(request.raw_text)
            record_id = await asyncio.to_thread(store.save, request.raw_text, key, result)
            return IpcResponse.ok(result=result, record_id=record_id)

        except InvalidInputError as exc:
            return IpcResponse.fail(ErrorKind.INVALID_INPUT, str(exc))
        except StorageError as exc:
            logger.warning("Task store write failed", extra={"error": str(exc)})
            return IpcResponse.fail(ErrorKind.STORAGE_ERROR, str(exc))
        except Exception as exc:
            logger.error(
                "Request handler failed",
                extra={"command": request.command.value, "error": str(exc)},
                exc_info=True,
            )
            return IpcResponse.fail(ErrorKind.INTERNAL_ERROR, "Internal error")

    def _remove_stale_socket(self) -> None:
        if not self._socket_path.exists():
            return
        if not self._socket_path.is_socket():
            raise ResidentError(f"Not a socket: {self._socket_path}")
        listener_check = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            listener_check.connect(str(self._socket_path))
        except OSError:
            self._socket_path.unlink()
            logger.info("Removed stale socket", extra={"socket_path": str(self._socket_path)})
            return
        finally:
            listener_check.close()
        raise ResidentError(f"Resident process already listening on {self._socket_path}")


def _shutting_down_response() -> IpcResponse:
    return IpcResponse.fail(ErrorKind.SHUTTING_DOWN, "Resident process is shutting down")


async def run_resident(context: Optional[ResidentContext] = None) -> None:
    """Build the context and warmer from settings and serve until stopped."""
    settings = get_settings()
    context = context or ResidentContext.from_settings(settings)
    warmer = None
    if settings.warmer.enabled:
        warmer = BackgroundWarmer(
            context.orchestrator,
            fallback=context.fallback,
            store=context.store,
            preload_top_k=settings.warmer.preload_top_k,
            interval_seconds=settings.warmer.interval_seconds,
        )
    server = ResidentServer(context, warmer=warmer)
    await server.serve_forever()
