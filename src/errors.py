#!/usr/bin/env python3
"""
Error taxonomy for the LLVM Pipeline Inspector.

Parse anomalies and resolution gaps are absorbed and logged where they
occur; only persistence failures are raised to the caller.
"""

from typing import Optional


class InspectorError(Exception):
    """Base class for all inspector errors"""


class SessionError(InspectorError):
    """A session payload could not be loaded"""


class SchemaVersionMismatch(SessionError):
    """Payload was written by a newer schema than this tool understands"""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found} (current: {supported}); "
            f"upgrade the inspector to load this session"
        )


class PayloadCorrupt(SessionError):
    """Payload cannot be reconstructed into a well-formed pipeline"""

    def __init__(self, detail: str, offset: Optional[int] = None):
        self.detail = detail
        self.offset = offset
        message = f"Corrupt session payload: {detail}"
        if offset is not None:
            message += f" (at byte {offset})"
        super().__init__(message)


class SessionIOError(SessionError):
    """Reading or writing a session file failed"""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Session I/O failed for {path}: {reason}")


class SessionNotFound(InspectorError):
    """No stored session matches the request"""


class SourceDrift(UserWarning):
    """Source file changed since the session was saved (advisory)"""
