from __future__ import annotations

import os
from pathlib import Path
from typing import Iterator, Union

FALLBACK_CONCURRENCY = 8


def default_concurrency() -> int:
    cpus = os.cpu_count()
    if not cpus:
        return FALLBACK_CONCURRENCY
    return cpus * 2


def iter_lines(path: Union[str, Path]) -> Iterator[bytes]:
    """
    Yield the raw lines of a file one at a time, undecoded.

    Decoding is left to the caller so a bad line can be reported by number.
    The file is closed once the lines run out, and also when the caller stops
    iterating early (generator close / garbage collection).
    """
    with open(path, "rb") as f:
        for line in f:
            yield line
