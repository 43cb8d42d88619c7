"""
xsc command line errors

Every error is terminal for the run and maps to a non-zero exit code.
"""

from typing import Optional

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class CliError(Exception):
    """Base class for command line failures."""

    exit_code = EXIT_FAILURE

    def __init__(self, message: str, path: Optional[str] = None):
        self.message = message
        self.path = path
        super().__init__(message)


class UsageError(CliError):
    """Malformed or conflicting switches, or no program file."""
    pass


class FileError(CliError):
    """A program or output file could not be opened, read or written."""
    pass


class SerializationError(CliError):
    """The compiled unit could not be written out."""
    pass
