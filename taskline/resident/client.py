"""
Client side of the resident channel.

Short-lived callers (the CLI) use :class:`ResidentClient` to hand work to
a running resident process.  A missing socket file means no resident
process is running, reported as :class:`ResidentNotRunningError` so the
caller can fall back to running the pipeline in-process.
"""

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import Optional, Tuple

from taskline.config import get_settings
from taskline.exceptions import (
    InvalidInputError,
    ProtocolError,
    ResidentError,
    ResidentNotRunningError,
    ShuttingDownError,
    StorageError,
)
from taskline.models import ParsedResult
from taskline.resident.protocol import (
    Command,
    ErrorKind,
    IpcRequest,
    IpcResponse,
    decode_response,
    encode_frame,
)

logger = logging.getLogger(__name__)


class ResidentClient:
    """One-request-per-connection client for the resident process.

    Args:
        socket_path: Filesystem address.  Defaults to settings.
        timeout: Seconds to wait for a response.  Defaults to the
            fallback cold-start timeout plus the shutdown grace period.
    """

    def __init__(self, socket_path: Optional[str] = None, timeout: Optional[float] = None) -> None:
        _s = get_settings()
        self._socket_path = Path(socket_path or _s.resident.socket_path)
        self._timeout = (
            timeout
            if timeout is not None
            else _s.fallback.cold_timeout_ms / 1000.0 + _s.resident.grace_period_seconds
        )

    @property
    def socket_path(self) -> Path:
        return self._socket_path

    async def send(self, request: IpcRequest) -> IpcResponse:
        """Send one request and wait for its response.

        Raises:
            ResidentNotRunningError: If nothing is listening on the socket.
            ProtocolError: If the server closes without a valid response.
        """
        if not self._socket_path.exists():
            raise ResidentNotRunningError(f"No resident process at {self._socket_path}")
        try:
            reader, writer = await asyncio.open_unix_connection(str(self._socket_path))
        except (FileNotFoundError, ConnectionRefusedError) as exc:
            raise ResidentNotRunningError(
                f"No resident process at {self._socket_path}"
            ) from exc

        try:
            writer.write(encode_frame(request))
            await writer.drain()
            line = await asyncio.wait_for(reader.readline(), self._timeout)
        except asyncio.TimeoutError as exc:
            raise ResidentError(f"No response within {self._timeout:.1f}s") from exc
        except ConnectionError as exc:
            raise ProtocolError(f"Connection lost: {exc}") from exc
        finally:
            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()

        if not line:
            raise ProtocolError("Connection closed without a response")
        return decode_response(line)

    async def parse(self, raw_text: str) -> ParsedResult:
        """Parse ``raw_text`` in the resident process."""
        response = _raise_for_error(
            await self.send(IpcRequest(command=Command.PARSE, raw_text=raw_text))
        )
        if response.result is None:
            raise ProtocolError("Parse response carries no result")
        return response.result

    async def add(self, raw_text: str) -> Tuple[int, ParsedResult]:
        """Parse and store ``raw_text``; returns ``(record_id, result)``."""
        response = _raise_for_error(
            await self.send(IpcRequest(command=Command.ADD, raw_text=raw_text))
        )
        if response.result is None or response.record_id is None:
            raise ProtocolError("Add response carries no record")
        return response.record_id, response.result

    async def health(self) -> IpcResponse:
        return _raise_for_error(await self.send(IpcRequest(command=Command.HEALTH)))

    async def is_running(self) -> bool:
        """Whether a resident process answers on the socket."""
        try:
            await self.health()
        except (ResidentError, ProtocolError):
            return False
        except OSError as exc:
            logger.debug("Resident health check failed", extra={"error": str(exc)})
            return False
        return True

    async def stop(self) -> bool:
        """Ask the resident process to shut down.

        Returns:
            ``False`` if no resident process was running.
        """
        try:
            _raise_for_error(await self.send(IpcRequest(command=Command.SHUTDOWN)))
        except ResidentNotRunningError:
            return False
        return True


def _raise_for_error(response: IpcResponse) -> IpcResponse:
    if response.is_ok:
        return response
    message = response.message or "request failed"
    if response.error is ErrorKind.SHUTTING_DOWN:
        raise ShuttingDownError(message)
    if response.error is ErrorKind.INVALID_INPUT:
        raise InvalidInputError(message)
    if response.error is ErrorKind.STORAGE_ERROR:
        raise StorageError(message)
    if response.error is ErrorKind.BAD_REQUEST:
        raise ProtocolError(message)
    raise ResidentError(message)
