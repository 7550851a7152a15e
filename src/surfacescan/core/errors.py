"""
SURFACESCAN - Error Taxonomy

Every error the engine raises derives from SurfaceScanError.
"""

from typing import Optional


class SurfaceScanError(Exception):
    """Base class for engine errors."""


class TransportError(SurfaceScanError):
    """An HTTP-layer failure: connection error, DNS failure, timeout or relay failure."""

    def __init__(self, message: str, reasons: Optional[list[str]] = None):
        super().__init__(message)
        self.reasons = list(reasons or [])


class RequestTimeout(TransportError):
    """A single request exceeded its call-local timeout."""


class OperationCancelled(SurfaceScanError):
    """A cancellation token fired while an operation was in flight."""

    def __init__(self, reason: str = "cancelled"):
        super().__init__(reason)
        self.reason = reason


class ScanAborted(SurfaceScanError):
    """The scan-wide token fired. Never retried; ends the whole scan."""

    def __init__(self, reason: str = "scan aborted"):
        super().__init__(reason)
        self.reason = reason


class ScanNotFound(SurfaceScanError):
    """No scan record exists for the requested id."""

    def __init__(self, scan_id: str):
        super().__init__(f"Scan not found: {scan_id}")
        self.scan_id = scan_id


class InvalidTransition(SurfaceScanError):
    """A lifecycle operation was requested from a state that does not allow it."""

    def __init__(self, scan_id: str, current: str, operation: str):
        super().__init__(f"Cannot {operation} scan {scan_id} while {current}")
        self.scan_id = scan_id
        self.current = current
        self.operation = operation


class PersistenceError(SurfaceScanError):
    """The scan store failed to read or write a record."""
