#!/usr/bin/env python3
"""
Readers for Lhotse-style manifests.

Manifests are JSON-lines files, optionally gzip-compressed
(``*.jsonl.gz``). Cut manifests are handled as opaque lines so that
shuffling and splitting never re-serialize records; supervision
manifests are read with pandas when only a column is needed.

Usage
-----
    from utils.manifests import count_lines, iter_supervision_texts

    n_cuts = count_lines(manifests_dir / 'fisher-swbd_cuts.jsonl.gz')
    for text in iter_supervision_texts(sups_path):
        ...
"""
from __future__ import annotations

import gzip
from pathlib import Path
from typing import Iterator, TextIO, Union

import pandas as pd


# Rows per pandas chunk when streaming supervision manifests
DEFAULT_CHUNKSIZE = 100_000


def is_gzipped(path: Union[str, Path]) -> bool:
    """Check the file name for a gzip suffix."""
    return str(path).endswith('.gz')


def open_text(path: Union[str, Path], mode: str = 'r') -> TextIO:
    """
    Open a plain or gzip-compressed text file.

    Parameters
    ----------
    path : str or Path
        File to open; gzip is selected by the ``.gz`` suffix
    mode : str
        'r' or 'w'
    """
    if mode not in ('r', 'w'):
        raise ValueError(f"Unsupported mode: {mode!r}")
    if is_gzipped(path):
        return gzip.open(path, mode + 't', encoding='utf-8')
    return open(path, mode, encoding='utf-8')


def iter_lines(path: Union[str, Path]) -> Iterator[str]:
    """Yield non-empty lines (without trailing newline) from a manifest."""
    with open_text(path) as f:
        for line in f:
            line = line.rstrip('\n')
            if line:
                yield line


def count_lines(path: Union[str, Path]) -> int:
    """Count records in a JSON-lines manifest."""
    return sum(1 for _ in iter_lines(path))


def write_lines(path: Union[str, Path], lines) -> int:
    """
    Write lines to a plain or gzip-compressed file.

    Returns
    -------
    int
        Number of lines written
    """
    n = 0
    with open_text(path, 'w') as f:
        for line in lines:
            f.write(line)
            f.write('\n')
            n += 1
    return n


def iter_supervision_texts(
    path: Union[str, Path],
    chunksize: int = DEFAULT_CHUNKSIZE,
) -> Iterator[str]:
    """
    Stream the ``text`` field of a supervision manifest.

    Supervisions without text (missing column or null) are skipped.
    Compression is inferred from the file suffix.

    Parameters
    ----------
    path : str or Path
        Supervision manifest (``.jsonl`` or ``.jsonl.gz``)
    chunksize : int
        Rows per pandas chunk

    Yields
    ------
    str
        Transcript text of each supervision, in manifest order
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Supervision manifest not found: {path}")

    # dtype=False keeps numeric-looking transcripts as strings
    with pd.read_json(
        path,
        lines=True,
        chunksize=chunksize,
        dtype=False,
        convert_dates=False,
    ) as reader:
        for chunk in reader:
            if 'text' not in chunk.columns:
                continue
            for text in chunk['text'].dropna():
                yield str(text)
