from __future__ import annotations

import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import IO, Callable, Optional

from pydantic import BaseModel, ConfigDict

# (job_id, exit_status, stdout, stderr)
CompletionHandler = Callable[[str, int, str, str], None]


class SessionState(str, Enum):
    EMPTY = "EMPTY"
    ACCEPTING = "ACCEPTING"
    RUNNING = "RUNNING"
    FINISHED = "FINISHED"


@dataclass
class Job:
    id: str                  # opaque, echoed back as-is
    command: str             # handed to the shell verbatim
    handler: Optional[CompletionHandler] = None


@dataclass
class RunningSlot:
    process: subprocess.Popen
    stdout: IO[str]
    stderr: IO[str]
    job: Job


# --------- wire records ---------

class TaskRecord(BaseModel):
    """One line of the task file."""

    model_config = ConfigDict(extra="ignore")

    id: str
    cmd: str


class ResultRecord(BaseModel):
    """One line of the sidecar's result stream."""

    id: str
    status: int
    stdout: str
    stderr: str


class ErrorRecord(BaseModel):
    """Terminal line of a failed sidecar run."""

    error: str
