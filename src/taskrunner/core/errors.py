"""Exception hierarchy for taskrunner.

Usage errors are raised at the point of misuse, task file errors abort a
sidecar run before anything is launched, protocol errors abort the caller's
run while results are being streamed back.
"""
from __future__ import annotations

from pathlib import Path
from typing import Union


class TaskRunnerError(Exception):
    """Base exception for all taskrunner errors."""


class UsageError(TaskRunnerError):
    """A session or the sidecar was used in a way it does not allow."""


class TaskFileError(TaskRunnerError):
    """A line of the task file is not a valid task record."""

    def __init__(self, path: Union[str, Path], lineno: int, reason: str) -> None:
        self.path = str(path)
        self.lineno = lineno
        self.reason = reason
        super().__init__(f"invalid task in {self.path} at line {lineno}: {reason}")


class LaunchError(TaskRunnerError):
    """The OS refused to create a child process."""


class ProtocolError(TaskRunnerError):
    """The sidecar's result stream could not be understood or ended early."""


class SidecarError(ProtocolError):
    """The sidecar reported a fatal error record."""


class ResultStreamClosed(TaskRunnerError):
    """The sidecar's reader closed stdout; results can no longer be delivered."""
