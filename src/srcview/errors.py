"""Exceptions raised while decoding game content.

Each one also inherits from the builtin exception that plain parsing code
would raise, so ``except ValueError`` and friends still catch them.
"""
__all__ = [
    'SourceError', 'FormatError', 'NotFound', 'Truncated', 'Unsupported', 'NotAvailable',
]


class SourceError(Exception):
    """Base class for all decoding failures."""


class FormatError(SourceError, ValueError):
    """The data does not match the expected layout.

    This is used for bad magic numbers, terminators and versions.
    """


class NotFound(SourceError, FileNotFoundError):
    """A requested entry, archive chunk or include target does not exist."""
    def __str__(self) -> str:
        # FileNotFoundError formats (errno, strerror) specially, skip that.
        return str(self.args[0]) if self.args else ''


class Truncated(FormatError, EOFError):
    """The data ended before a structure was fully read."""


class Unsupported(SourceError, NotImplementedError):
    """The data is valid, but uses a version or format we cannot handle."""


class NotAvailable(SourceError, LookupError):
    """A payload was requested, but the file never contained it."""
