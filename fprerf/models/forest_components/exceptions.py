"""
Exceptions

Typed failures raised by forest growing and packing. Each one also derives
from the builtin exception callers would otherwise catch.
"""


class FPRerFError(Exception):
    """Base class for all fprerf errors."""


class InvalidConfigError(FPRerFError, ValueError):
    """A configuration parameter violates its invariant."""


class MissingConfigError(FPRerFError, KeyError):
    """A parameter was requested that is neither set nor defaulted."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable
        return str(self.args[0]) if self.args else ""


class DimensionMismatchError(FPRerFError, ValueError):
    """Feature matrix and labels (or a model) disagree on shape."""


class PackingError(FPRerFError, RuntimeError):
    """The packed layout could not be produced or failed verification."""
