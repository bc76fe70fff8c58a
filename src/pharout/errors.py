"""
Exception types for pharout.

Filesystem failures are not wrapped: they propagate as the ``OSError`` raised by
the failing call.
"""

from __future__ import annotations


class PharoutError(Exception):
    """Base class for errors raised by pharout."""

    pass


class ConfigError(PharoutError):
    """Build configuration is incomplete or unreadable."""

    pass


class PharError(PharoutError):
    """A phar stub or archive is malformed."""

    pass
