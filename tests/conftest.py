from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, List, Tuple

import pytest

from taskrunner.core.settings import Settings
from taskrunner.logging import setup_logging


@pytest.fixture(autouse=True, scope="session")
def _logging():
    setup_logging("DEBUG", json_logs=True)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(tmp_dir=tmp_path / "buffers", poll_interval_s=0.002, log_level="DEBUG")


@pytest.fixture
def write_tasks(tmp_path: Path) -> Callable[[List[Tuple[str, str]]], Path]:
    """Write (id, cmd) pairs as a task file and return its path."""

    def _write(tasks: List[Tuple[str, str]], name: str = "tasks.jsonl") -> Path:
        path = tmp_path / name
        with open(path, "w", encoding="utf-8") as f:
            for task_id, cmd in tasks:
                f.write(json.dumps({"id": task_id, "cmd": cmd}) + "\n")
        return path

    return _write
