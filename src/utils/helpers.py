#!/usr/bin/env python3
"""
Common utility functions for the data preparation pipeline.

This module provides shared helper functions used across multiple stages.
"""
from __future__ import annotations

import os
import shlex
import sys
import tempfile
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Sequence, TextIO


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def timestamp() -> str:
    """Current local time in log format."""
    return datetime.now().strftime('%Y-%m-%d %H:%M:%S')


def log(message: str, stage: Optional[str] = None, file: Optional[TextIO] = None) -> None:
    """
    Print a timestamped log line.

    Parameters
    ----------
    message : str
        Text to print
    stage : str, optional
        Stage module name shown in parentheses (e.g. 's04_combine')
    file : file-like, optional
        Destination stream (default: stdout)
    """
    prefix = f"{timestamp()} ({stage})" if stage else timestamp()
    print(f"{prefix} {message}", file=file or sys.stdout, flush=True)


def log_error(message: str, stage: Optional[str] = None) -> None:
    """Print a timestamped error line to stderr."""
    log(f"ERROR: {message}", stage=stage, file=sys.stderr)


def format_command(command: Sequence) -> str:
    """Render a command list the way a shell trace would show it."""
    return ' '.join(shlex.quote(str(part)) for part in command)


@contextmanager
def atomic_output(path: Path) -> Iterator[Path]:
    """
    Yield a temporary path that replaces ``path`` only on success.

    The temporary file lives in the destination directory so the final
    rename stays on one filesystem, and keeps the destination's suffixes
    (``.jsonl.gz`` stays ``.jsonl.gz``). If the block raises, the
    temporary file is removed and ``path`` is left untouched.

    Usage
    -----
        with atomic_output(out_path) as tmp:
            tmp.write_text('...')
    """
    path = Path(path)
    ensure_dir(path.parent)
    suffix = ''.join(path.suffixes)
    fd, tmp_name = tempfile.mkstemp(prefix=f'.{path.name}.tmp.', suffix=suffix, dir=path.parent)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        yield tmp_path
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def human_size(n_bytes: int) -> str:
    """Format a byte count for summaries."""
    if n_bytes < 1024:
        return f"{n_bytes} B"
    size = n_bytes / 1024
    for unit in ('KB', 'MB'):
        if size < 1024:
            return f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"
