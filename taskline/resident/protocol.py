"""
Wire format for the resident channel.

Newline-delimited JSON: one request object per line in, one response
object per line out.  Requests on a connection are answered in the
order they arrive.

Request::

    {"command": "parse", "raw_text": "Submit report tomorrow at 3pm"}

Response::

    {"status": "ok", "result": {...}, "error": null, "message": null,
     "record_id": null, "stats": null, "elapsed_ms": 0.4}
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError

from taskline.exceptions import ProtocolError
from taskline.models import ParsedResult


class Command(str, Enum):
    PARSE = "parse"
    ADD = "add"
    HEALTH = "health"
    SHUTDOWN = "shutdown"


class Status(str, Enum):
    OK = "ok"
    ERROR = "error"


class ErrorKind(str, Enum):
    """Error codes a caller can act on."""

    INVALID_INPUT = "invalid_input"
    BAD_REQUEST = "bad_request"
    SHUTTING_DOWN = "shutting_down"
    STORAGE_ERROR = "storage_error"
    INTERNAL_ERROR = "internal_error"


class IpcRequest(BaseModel):
    command: Command
    raw_text: Optional[Any] = None


class IpcResponse(BaseModel):
    """One response frame.

    Attributes:
        status: ``ok`` or ``error``.
        result: The parsed task, for ``parse`` and ``add``.
        error: Error code when ``status`` is ``error``.
        message: Human-readable error detail.
        record_id: Stored record id, for ``add``.
        stats: Cache statistics, for ``health``.
        elapsed_ms: Server-side handling time.
    """

    status: Status
    result: Optional[ParsedResult] = None
    error: Optional[ErrorKind] = None
    message: Optional[str] = None
    record_id: Optional[int] = None
    stats: Optional[Dict[str, Any]] = None
    elapsed_ms: float = 0.0

    @classmethod
    def ok(cls, **fields: Any) -> "IpcResponse":
        return cls(status=Status.OK, **fields)

    @classmethod
    def fail(cls, error: ErrorKind, message: str, **fields: Any) -> "IpcResponse":
        return cls(status=Status.ERROR, error=error, message=message, **fields)

    @property
    def is_ok(self) -> bool:
        return self.status is Status.OK


def encode_frame(message: BaseModel) -> bytes:
    """Serialise a request or response as one newline-terminated line."""
    return message.model_dump_json().encode("utf-8") + b"\n"


def decode_request(line: bytes) -> IpcRequest:
    """Parse one request frame.

    ``raw_text`` is deliberately typed loosely here so a non-text value
    reaches the normaliser and is reported as ``invalid_input`` rather
    than ``bad_request``.

    Raises:
        ProtocolError: If the line is not a valid request object.
    """
    try:
        return IpcRequest.model_validate_json(line.strip())
    except ValidationError as exc:
        raise ProtocolError(f"Malformed request: {exc.error_count()} errors") from exc


def decode_response(line: bytes) -> IpcResponse:
    """Parse one response frame.

    Raises:
        ProtocolError: If the line is not a valid response object.
    """
    try:
        return IpcResponse.model_validate_json(line.strip())
    except ValidationError as exc:
        raise ProtocolError(f"Malformed response: {exc.error_count()} errors") from exc
