"""Resident process: shared context, local channel and background warming."""

from taskline.resident.client import ResidentClient
from taskline.resident.context import ResidentContext
from taskline.resident.protocol import ErrorKind, IpcRequest, IpcResponse
from taskline.resident.server import ResidentServer, run_resident
from taskline.resident.warmer import BackgroundWarmer

__all__ = [
    "BackgroundWarmer",
    "ErrorKind",
    "IpcRequest",
    "IpcResponse",
    "ResidentClient",
    "ResidentContext",
    "ResidentServer",
    "run_resident",
]
