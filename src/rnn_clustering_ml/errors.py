"""
Exception types shared across the package.

Argument problems are reported with the builtin ValueError / IndexError /
TypeError. The classes here cover the remaining categories: calling an
operation at the wrong time, and reading a corrupt or foreign persisted
dendrogram.
"""

__all__ = ["IllegalStateError", "DendrogramFormatError"]


class IllegalStateError(RuntimeError):
    """Raised when an object is used in a state that does not permit the call."""


class DendrogramFormatError(OSError):
    """Raised when a persisted dendrogram cannot be decoded."""
