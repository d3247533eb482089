from __future__ import annotations

import logging
import re
from pathlib import Path


_LINE_BREAKS_PATTERN = re.compile(r"\s*\n\s*")


def setup_logger(log_dir: str | Path, name: str = "booktranslate") -> logging.Logger:
    """Create a simple file+console logger."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    # Avoid adding multiple handlers (e.g., repeated main() calls in one process)
    if logger.handlers:
        return logger

    fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")

    fh = logging.FileHandler(log_dir / "app.log", encoding="utf-8")
    fh.setLevel(logging.INFO)
    fh.setFormatter(fmt)

    ch = logging.StreamHandler()
    ch.setLevel(logging.INFO)
    ch.setFormatter(fmt)

    logger.addHandler(fh)
    logger.addHandler(ch)
    return logger


def single_line(s: str) -> str:
    """Strip a model response and fold its newlines (and the blanks around them) into single spaces."""
    return _LINE_BREAKS_PATTERN.sub(" ", s.strip())
