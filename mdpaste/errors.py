"""Exception hierarchy for the asset and diagram pipeline."""

from __future__ import annotations


class MdpasteError(Exception):
    """Base class for pipeline errors."""


class HostUnavailable(MdpasteError):
    """Raised when no host bridge is available to run an operation."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"{operation} requires a host environment, none is available")
        self.operation = operation


class PreconditionError(MdpasteError):
    """Raised when an operation is requested without its prerequisites."""


class DiagramRenderError(MdpasteError):
    """Raised when diagram source cannot be rendered to SVG."""


class RasterConversionError(MdpasteError):
    """Raised when an SVG cannot be converted to PNG bytes."""


class PersistenceError(MdpasteError):
    """Raised when an external write fails."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to write {path}: {reason}")
        self.path = path
        self.reason = reason
