from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional

import structlog
from pydantic import ValidationError

from ..core.errors import ProtocolError, UsageError
from ..core.models import ResultRecord, SessionState, TaskRecord
from ..core.protocol import decode_result_line, describe_validation_error
from ..core.settings import Settings, load_settings
from .task_buffer import TaskBuffer

log = structlog.get_logger(__name__)

ResultCallback = Callable[[ResultRecord, int, int], None]

SIDECAR_MODULE = "taskrunner.runner.sidecar"
# src/ directory holding the taskrunner package, made importable for the sidecar
SRC_ROOT = Path(__file__).resolve().parents[2]


class TaskRunner:
    """
    Runs many shell commands through a separate, lightweight sidecar process.

    Tasks are buffered to a temporary file by ``add``; ``run`` spawns the
    sidecar on that file and streams its results back to the callback as
    they arrive, in the order the jobs finished. Spawning children from the
    sidecar keeps the per-child fork cost independent of this process's
    memory footprint.

    A session runs once: EMPTY -> ACCEPTING -> RUNNING -> FINISHED.
    """

    def __init__(self, concurrency: Optional[int] = None, settings: Optional[Settings] = None):
        self.settings = settings or load_settings()
        if concurrency is None:
            concurrency = self.settings.resolved_concurrency()
        if concurrency < 1:
            raise UsageError("concurrency must be > 0")
        self.concurrency = concurrency

        self.state = SessionState.EMPTY
        self.completed = 0
        self._buffer = TaskBuffer(self.settings.tmp_dir)

    @property
    def total(self) -> int:
        return self._buffer.count

    def __enter__(self) -> "TaskRunner":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Drop the buffered tasks; the session cannot be run afterwards."""
        self._buffer.discard()
        self.state = SessionState.FINISHED

    # --------- public ---------

    def add(self, task_id: str, command: str) -> None:
        if self.state not in (SessionState.EMPTY, SessionState.ACCEPTING):
            raise UsageError(f"cannot add tasks to a session in state {self.state.value}")
        try:
            record = TaskRecord(id=task_id, cmd=command)
        except ValidationError as e:
            raise UsageError(f"invalid task: {describe_validation_error(e)}") from None
        self._buffer.append(record)
        self.state = SessionState.ACCEPTING

    def run(self, callback: Optional[ResultCallback] = None) -> int:
        """
        Run every added task and block until all results are delivered.

        ``callback(result, completed, total)`` is called once per task.
        Returns the number of results delivered.
        """
        if self.state in (SessionState.RUNNING, SessionState.FINISHED):
            raise UsageError("a session can only be run once")
        if self.state == SessionState.EMPTY:
            self.state = SessionState.FINISHED
            return 0

        self.state = SessionState.RUNNING
        try:
            self._buffer.flush()
            self._stream_results(callback)
        finally:
            self._buffer.discard()
            self.state = SessionState.FINISHED
        return self.completed

    # --------- internals ---------

    def _sidecar_cmd(self) -> List[str]:
        return [
            self.settings.python_bin,
            "-m",
            SIDECAR_MODULE,
            str(self._buffer.path),
            str(self.concurrency),
        ]

    def _sidecar_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        env["PYTHONIOENCODING"] = "utf-8"
        # the sidecar runs with this session's settings, not its own config file
        env["TASKRUNNER_CONF"] = ""
        env["TASKRUNNER_POLL_INTERVAL_S"] = str(self.settings.poll_interval_s)
        env["TASKRUNNER_LOG_LEVEL"] = self.settings.log_level
        env["TASKRUNNER_LOG_JSON"] = "true" if self.settings.log_json else "false"
        env.pop("TASKRUNNER_CONCURRENCY", None)
        paths = [str(SRC_ROOT)]
        if env.get("PYTHONPATH"):
            paths.append(env["PYTHONPATH"])
        env["PYTHONPATH"] = os.pathsep.join(paths)
        return env

    def _stream_results(self, callback: Optional[ResultCallback]) -> None:
        total = self.total
        p = subprocess.Popen(
            self._sidecar_cmd(),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            encoding="utf-8",
            env=self._sidecar_env(),
        )
        log.info("sidecar_spawned", pid=p.pid, tasks=total, concurrency=self.concurrency)

        try:
            for lineno, line in enumerate(p.stdout, start=1):
                result = decode_result_line(line, lineno)
                self.completed += 1
                if callback is not None:
                    callback(result, self.completed, total)
        except BaseException:
            p.kill()
            p.stdout.close()
            p.wait()
            raise

        p.stdout.close()
        rc = p.wait()
        if rc != 0:
            raise ProtocolError(f"sidecar exited with status {rc}")
        if self.completed != total:
            raise ProtocolError(f"result stream ended after {self.completed} of {total} results")
        log.info("sidecar_finished", pid=p.pid, results=self.completed)
