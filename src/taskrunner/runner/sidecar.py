from __future__ import annotations

import sys
from pathlib import Path
from typing import IO, List, Optional, Sequence, Tuple

import structlog
import yaml
from pydantic import ValidationError

from ..core.errors import (
    LaunchError,
    ResultStreamClosed,
    TaskFileError,
    TaskRunnerError,
    UsageError,
)
from ..core.models import ErrorRecord, ResultRecord
from ..core.protocol import describe_validation_error, parse_task_line, write_record
from ..core.settings import Settings, load_settings
from ..core.utils import iter_lines
from ..executor.pool import ProcessPool
from ..logging import setup_logging

log = structlog.get_logger(__name__)

USAGE = "usage: python -m taskrunner.runner.sidecar <task-file> [concurrency]"


def parse_args(argv: Sequence[str], settings: Settings) -> Tuple[Path, int]:
    if not argv:
        raise UsageError(f"missing task file; {USAGE}")
    if len(argv) > 2:
        raise UsageError(f"too many arguments; {USAGE}")

    path = Path(argv[0])
    try:
        with open(path, "r", encoding="utf-8"):
            pass
    except OSError as e:
        raise UsageError(f"cannot open task file {path}: {e.strerror or e}") from e

    if len(argv) == 1:
        return path, settings.resolved_concurrency()

    try:
        concurrency = int(argv[1])
    except ValueError:
        raise UsageError(f"concurrency must be a positive integer, got {argv[1]!r}") from None
    if concurrency < 1:
        raise UsageError(f"concurrency must be a positive integer, got {argv[1]!r}")
    return path, concurrency


def _decode(raw: bytes, path: Path, lineno: int) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise TaskFileError(path, lineno, f"not valid UTF-8 ({e.reason} at byte {e.start})") from None


def validate_task_file(path: Path) -> int:
    """
    First pass: check every line before anything is launched.

    Returns the number of tasks; raises TaskFileError on the first bad line.
    """
    count = 0
    for lineno, raw in enumerate(iter_lines(path), start=1):
        if not raw.strip():
            continue
        line = _decode(raw, path, lineno)
        try:
            parse_task_line(line)
        except ValidationError as e:
            raise TaskFileError(path, lineno, describe_validation_error(e)) from None
        count += 1
    return count


def execute_task_file(path: Path, concurrency: int, out: IO[str], poll_interval_s: float) -> int:
    """Second pass: run every task, streaming one result line per finished job."""
    pool = ProcessPool(concurrency, poll_interval_s)

    def emit(job_id: str, status: int, stdout: str, stderr: str) -> None:
        try:
            write_record(out, ResultRecord(id=job_id, status=status, stdout=stdout, stderr=stderr))
        except BrokenPipeError as e:
            raise ResultStreamClosed(f"result reader went away before {job_id!r} was reported") from e

    submitted = 0
    for lineno, raw in enumerate(iter_lines(path), start=1):
        if not raw.strip():
            continue
        task = parse_task_line(_decode(raw, path, lineno))
        try:
            pool.submit(task.id, task.cmd, emit)
        except OSError as e:
            raise LaunchError(f"failed to launch task {task.id!r}: {e}") from e
        submitted += 1

    pool.wait_all()
    return submitted


def _startup_settings() -> Settings:
    try:
        return load_settings()
    except ValidationError as e:
        raise UsageError(f"invalid settings: {describe_validation_error(e)}") from None
    except yaml.YAMLError as e:
        raise UsageError(f"invalid config file: {e}") from None


def main(argv: Optional[List[str]] = None, out: Optional[IO[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    out = out or sys.stdout

    try:
        settings = _startup_settings()
    except UsageError as e:
        # logging is not configured yet; stdout belongs to the result stream
        write_record(out, ErrorRecord(error=str(e)))
        return 1
    setup_logging(settings.log_level, settings.log_json)

    try:
        path, concurrency = parse_args(argv, settings)
        total = validate_task_file(path)
        log.info("sidecar_started", task_file=str(path), tasks=total, concurrency=concurrency)
        execute_task_file(path, concurrency, out, settings.poll_interval_s)
    except ResultStreamClosed as e:
        log.error("sidecar_reader_gone", error=str(e))
        return 1
    except TaskRunnerError as e:
        log.error("sidecar_failed", error=str(e))
        write_record(out, ErrorRecord(error=str(e)))
        return 1

    log.info("sidecar_finished", task_file=str(path), tasks=total)
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
