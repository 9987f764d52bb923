from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils import default_concurrency

DEFAULT_CONF = "conf/taskrunner.yaml"


class Settings(BaseSettings):
    """Runtime configuration, overridable with TASKRUNNER_* env vars."""

    # ---- pool ----
    concurrency: Optional[int] = Field(default=None, gt=0)
    poll_interval_s: float = Field(default=0.005, gt=0)

    # ---- sidecar / buffering ----
    python_bin: str = Field(default_factory=lambda: sys.executable)
    tmp_dir: Optional[Path] = None

    # ---- logging ----
    log_level: str = "INFO"
    log_json: bool = True

    model_config = SettingsConfigDict(env_prefix="TASKRUNNER_", extra="ignore")

    def resolved_concurrency(self) -> int:
        return self.concurrency or default_concurrency()


def _read_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        data = {}
    if not isinstance(data, dict):
        data = {}
    return data


def load_settings(conf_path: Optional[Union[str, Path]] = None) -> Settings:
    """
    Build Settings from env (TASKRUNNER_*) plus an optional YAML file.

    Keys present in the YAML file win over the environment. An empty
    TASKRUNNER_CONF disables the file, leaving env and defaults only.
    """
    path = conf_path or os.environ.get("TASKRUNNER_CONF", DEFAULT_CONF)
    data = _read_yaml(path) if path else {}
    return Settings(**data)
