from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import IO, Optional

from ..core.models import TaskRecord
from ..core.protocol import encode_line


class TaskBuffer:
    """
    Session-scoped task file, one JSON task record per line.

    The file is created on the first append and removed by ``discard``.
    Nothing is kept in memory beyond the file object's own write buffer.
    """

    def __init__(self, tmp_dir: Optional[Path] = None):
        self.tmp_dir = tmp_dir
        self.count = 0
        self._file: Optional[IO[str]] = None
        self._path: Optional[Path] = None

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def append(self, record: TaskRecord) -> None:
        if self._file is None:
            if self.tmp_dir is not None:
                self.tmp_dir.mkdir(parents=True, exist_ok=True)
            self._file = tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                prefix="taskrunner-",
                suffix=".jsonl",
                dir=self.tmp_dir,
                delete=False,
            )
            self._path = Path(self._file.name)
        self._file.write(encode_line(record))
        self.count += 1

    def flush(self) -> None:
        if self._file is not None:
            self._file.flush()

    def discard(self) -> None:
        """Close and delete the file. Safe to call more than once."""
        if self._file is not None:
            self._file.close()
            self._file = None
        if self._path is not None:
            try:
                os.unlink(self._path)
            except FileNotFoundError:
                pass
            self._path = None
