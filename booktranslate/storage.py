from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional, TextIO


def _ensure_exists(path: Path) -> Path:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return path


def read_json(path: str | Path) -> Any:
    p = _ensure_exists(Path(path))
    with open(p, "r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: str | Path, obj: Any, indent: int = 2) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=indent)


class SegmentWriter:
    """
    Writes finalized segments to a UTF-8 text file, one per line, in call order.

    Every line is flushed as soon as it is written so that a run aborted later
    leaves all finished segments on disk. Write errors (OSError) propagate.
    """

    def __init__(self, path: str | Path, logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.logger = logger
        self.lines_written = 0
        self._fh: Optional[TextIO] = None

    def open(self) -> "SegmentWriter":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.path, "w", encoding="utf-8", newline="\n")
        return self

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def __enter__(self) -> "SegmentWriter":
        return self.open()

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def write(self, text: str) -> None:
        if self._fh is None:
            raise ValueError(f"Writer for {self.path} is not open.")
        self._fh.write(text + "\n")
        self._fh.flush()
        self.lines_written += 1

    def progress(self, index: int, total: int, original: str, translated: str) -> None:
        if not self.logger:
            return
        position = index + 1
        pct = 100.0 * position / total if total else 100.0
        self.logger.info("[%s/%s] %.1f%% | %s -> %s", position, total, pct, original, translated)
