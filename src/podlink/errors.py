"""
Error taxonomy.

These exceptions are never raised across a public API; components wrap them
in an ``ErrorOccurred`` event so callers can inspect what went wrong.
"""


class PodlinkError(Exception):
    """Base class for podlink errors."""


class TransportError(PodlinkError):
    """The transport could not be constructed or a frame could not be sent."""


class PersistenceError(PodlinkError):
    """The offline queue store could not be opened, read or written."""
