"""Line-delimited JSON encoding for task files and result streams."""
from __future__ import annotations

import json
from typing import IO

from pydantic import BaseModel, ValidationError

from .errors import ProtocolError, SidecarError
from .models import ResultRecord, TaskRecord


def encode_line(record: BaseModel) -> str:
    return record.model_dump_json() + "\n"


def write_record(stream: IO[str], record: BaseModel) -> None:
    """Write one record and flush so the reader sees it right away."""
    stream.write(encode_line(record))
    stream.flush()


def parse_task_line(line: str) -> TaskRecord:
    # ValidationError covers both broken JSON and missing/ill-typed fields
    return TaskRecord.model_validate_json(line)


def describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "line"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def decode_result_line(line: str, lineno: int) -> ResultRecord:
    """
    Decode one line of the sidecar's stdout.

    Raises SidecarError when the line is an error record and ProtocolError
    when it is neither an error record nor a result record.
    """
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"malformed result at line {lineno}: {e.msg}") from e

    if not isinstance(payload, dict):
        raise ProtocolError(f"malformed result at line {lineno}: not an object")

    if "error" in payload:
        raise SidecarError(str(payload["error"]))

    try:
        return ResultRecord.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(
            f"malformed result at line {lineno}: {describe_validation_error(e)}"
        ) from e
