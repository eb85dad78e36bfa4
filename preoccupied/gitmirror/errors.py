"""
Exception types for the gitmirror service.

:author: Christopher O'Brien <obriencj@preoccupied.net>
:license: GNU General Public License v3
:ai-assistant: Auto via Cursor
"""

from typing import Optional, Sequence


class GitMirrorError(Exception):
    """
    Base class for gitmirror failures
    """


class ConfigError(GitMirrorError):
    """
    The configured local path of a mirror is missing or is not a
    directory. A malformed configuration file is reported by pydantic as
    a ValidationError instead.
    """


class BindError(GitMirrorError):
    """
    A webhook listener could not bind its port
    """


class VcsError(GitMirrorError):
    """
    A git operation failed. The message carries git's own diagnostic
    output, with any credentials already redacted.
    """

    def __init__(
            self,
            message: str,
            command: Optional[Sequence[str]] = None,
            returncode: Optional[int] = None):

        super().__init__(message)
        self.message = message
        self.command = tuple(command or ())
        self.returncode = returncode


# The end.
