"""Exception taxonomy for the recording engine."""

from __future__ import annotations


class RecorderError(Exception):
    """Base class for every error raised by the engine."""


class SessionConflict(RecorderError):
    """``start()`` called while a session is already active for the owner."""


class NoActiveSession(RecorderError):
    """A capture operation was called outside the ``recording`` state."""


class PersistenceError(RecorderError):
    """A persistence gateway call failed or timed out."""


class EmptyExportError(RecorderError):
    """Export requested with zero data points."""


class InvalidFormatError(RecorderError):
    """Import input is not recognisable CSV / BRC."""


class ExportError(RecorderError):
    """Export refused for a recording that cannot be exported yet."""
