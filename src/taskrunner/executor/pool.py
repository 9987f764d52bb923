# src/taskrunner/executor/pool.py
from __future__ import annotations

import subprocess
import time
from typing import Dict, List, Optional

import structlog

from ..core.models import CompletionHandler, Job, RunningSlot

log = structlog.get_logger(__name__)

DEFAULT_POLL_INTERVAL_S = 0.005


class ProcessPool:
    """
    Runs shell commands with at most ``max_concurrency`` children alive.

    A single thread drives everything: ``submit`` launches a child (first
    harvesting one if the pool is full), ``wait_any``/``wait_all`` poll the
    children and hand each finished one to its completion handler.

    stdout/stderr are read only after the child has exited. A child that
    writes more than the OS pipe buffer holds blocks forever, and so does the
    pool waiting on it. Commands with large output should redirect it to a
    file themselves.
    """

    def __init__(self, max_concurrency: int, poll_interval_s: float = DEFAULT_POLL_INTERVAL_S):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be > 0")
        self.max_concurrency = max_concurrency
        self.poll_interval_s = poll_interval_s
        self._slots: Dict[int, RunningSlot] = {}

    @property
    def running(self) -> int:
        return len(self._slots)

    # ------------ public ------------

    def submit(self, job_id: str, command: str, handler: Optional[CompletionHandler] = None) -> int:
        """Launch ``command`` through the shell and return the child's pid.

        Does not wait for the command to finish. OSError from process
        creation propagates.
        """
        if len(self._slots) >= self.max_concurrency:
            self.wait_any()

        p = subprocess.Popen(
            command,
            shell=True,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            encoding="utf-8",
            errors="replace",
        )
        self._slots[p.pid] = RunningSlot(
            process=p,
            stdout=p.stdout,
            stderr=p.stderr,
            job=Job(id=job_id, command=command, handler=handler),
        )
        log.debug("job_started", job_id=job_id, pid=p.pid, running=len(self._slots))
        return p.pid

    def wait_any(self) -> int:
        """Block until at least one child exits; return how many were harvested."""
        return self._wait(wait_all=False)

    def wait_all(self) -> int:
        """Block until every child has exited; return how many were harvested."""
        return self._wait(wait_all=True)

    # ------------ internals ------------

    def _wait(self, wait_all: bool) -> int:
        harvested = 0
        while self._slots:
            finished: List[int] = [
                pid for pid, slot in self._slots.items() if slot.process.poll() is not None
            ]
            for pid in finished:
                harvested += 1
                self._harvest(self._slots.pop(pid))

            if finished and not wait_all:
                break
            if not finished:
                time.sleep(self.poll_interval_s)
        return harvested

    def _harvest(self, slot: RunningSlot) -> None:
        try:
            out = slot.stdout.read()
            err = slot.stderr.read()
        finally:
            slot.stdout.close()
            slot.stderr.close()
            slot.process.wait()

        rc = slot.process.returncode
        log.debug("job_finished", job_id=slot.job.id, pid=slot.process.pid, status=rc, running=len(self._slots))
        if slot.job.handler is not None:
            slot.job.handler(slot.job.id, rc, out, err)
