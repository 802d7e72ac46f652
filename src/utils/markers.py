#!/usr/bin/env python3
"""
Completion markers for pipeline steps.

A step's outputs existing on disk is not proof that the step finished:
an interrupted tool can leave a truncated file behind. This module
records a small JSON marker after each successful step, holding a hash
of the step's dependencies and a content hash of every output. A step
counts as complete only when its marker exists, the dependency hash
matches and every output is still present with the recorded size.

Usage
-----
    from utils.markers import CompletionMarkers

    markers = CompletionMarkers(data_dir / '.markers')

    if not markers.is_complete('s09_lm/arpa', [arpa], depends_on={'text': text}):
        build_arpa()
        markers.mark_complete('s09_lm/arpa', [arpa], depends_on={'text': text})

    print(markers.stats())
"""
from __future__ import annotations

import hashlib
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from utils.helpers import atomic_output


# =============================================================================
# HASHING UTILITIES
# =============================================================================

def hash_file(path: Union[str, Path]) -> str:
    """
    Compute MD5 hash of a file's contents.

    Parameters
    ----------
    path : str or Path
        Path to file

    Returns
    -------
    str
        MD5 hash hex digest, or ``missing:<path>`` if the file is absent
    """
    path = Path(path)
    if not path.exists():
        return f"missing:{path}"

    hasher = hashlib.md5()

    # For large files, hash in chunks
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(65536), b''):
            hasher.update(chunk)

    return hasher.hexdigest()


def fingerprint_file(path: Union[str, Path]) -> str:
    """
    Cheap identity of a file taken from its stat record.

    Used for step inputs, which may be multi-gigabyte manifests that
    would be too slow to re-hash on every run.
    """
    path = Path(path)
    if not path.exists():
        return f"missing:{path}"
    st = path.stat()
    if path.is_dir():
        return f"dir:{st.st_mtime_ns}"
    return f"{st.st_size}:{st.st_mtime_ns}:{st.st_ino}"


def hash_config(config: dict) -> str:
    """
    Compute hash of a configuration dictionary.

    Parameters
    ----------
    config : dict
        Configuration dictionary (must be JSON-serializable)

    Returns
    -------
    str
        MD5 hash hex digest
    """
    # Sort keys for deterministic ordering
    config_str = json.dumps(config, sort_keys=True, default=str)
    return hashlib.md5(config_str.encode()).hexdigest()


def hash_dependencies(depends_on: dict) -> str:
    """
    Compute combined hash of multiple dependencies.

    Parameters
    ----------
    depends_on : dict
        Dictionary mapping names to values. Values can be:
        - Path objects (fingerprinted by size and mtime)
        - dicts (hashed as JSON)
        - Other (converted to string and hashed)

    Returns
    -------
    str
        Combined MD5 hash hex digest
    """
    hasher = hashlib.md5()

    for name in sorted(depends_on.keys()):
        value = depends_on[name]

        if isinstance(value, Path):
            dep_hash = fingerprint_file(value)
        elif isinstance(value, dict):
            dep_hash = hash_config(value)
        else:
            dep_hash = hashlib.md5(str(value).encode()).hexdigest()

        hasher.update(f"{name}:{dep_hash}".encode())

    return hasher.hexdigest()


def describe_output(path: Path) -> dict:
    """Record an output's type, size and content hash for a marker."""
    if path.is_dir():
        return {'type': 'dir'}
    return {
        'type': 'file',
        'size_bytes': path.stat().st_size,
        'md5': hash_file(path),
    }


# =============================================================================
# MARKER STORE
# =============================================================================

class CompletionMarkers:
    """
    Stores one JSON marker per completed pipeline step.

    Parameters
    ----------
    root : Path
        Directory holding marker files (e.g. data/.markers)
    enabled : bool
        When False, completion degrades to "all outputs exist"

    Examples
    --------
    >>> markers = CompletionMarkers(Path('data/.markers'))
    >>> markers.mark_complete('s06_transcripts/dump', [Path('data/lm/transcript_words.txt')])
    >>> markers.is_complete('s06_transcripts/dump', [Path('data/lm/transcript_words.txt')])
    True
    """

    def __init__(self, root: Path, enabled: bool = True):
        self.root = Path(root)
        self.enabled = enabled

        # Statistics
        self._hits = 0
        self._misses = 0

    def _marker_path(self, key: str) -> Path:
        """Get the marker file path for a step key."""
        safe_key = key.replace('/', '__').replace('\\', '__')
        return self.root / f"{safe_key}.done.json"

    def read(self, key: str) -> Optional[dict]:
        """Load a marker, or None if absent or unreadable."""
        path = self._marker_path(key)
        if not path.exists():
            return None
        try:
            with open(path) as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError):
            return None

    def is_complete(
        self,
        key: str,
        outputs: Iterable[Path],
        depends_on: Optional[dict] = None,
    ) -> bool:
        """
        Check whether a step can be skipped.

        Parameters
        ----------
        key : str
            Step key (e.g. 's08_lang_bpe/500/train_bpe')
        outputs : iterable of Path
            Terminal outputs of the step
        depends_on : dict, optional
            Dependencies that must hash to the recorded value

        Returns
        -------
        bool
            True if every output exists and, with markers enabled, the
            marker matches the dependencies and recorded output sizes
        """
        outputs = [Path(p) for p in outputs]
        if not all(p.exists() for p in outputs):
            self._misses += 1
            return False

        if not self.enabled:
            self._hits += 1
            return True

        meta = self.read(key)
        if meta is None or meta.get('dep_hash') != hash_dependencies(depends_on or {}):
            self._misses += 1
            return False

        recorded = meta.get('outputs', {})
        for path in outputs:
            info = recorded.get(str(path))
            if info is None:
                self._misses += 1
                return False
            if info.get('type') == 'file' and path.stat().st_size != info.get('size_bytes'):
                self._misses += 1
                return False

        self._hits += 1
        return True

    def mark_complete(
        self,
        key: str,
        outputs: Iterable[Path],
        depends_on: Optional[dict] = None,
        stage: Optional[str] = None,
        elapsed: Optional[float] = None,
    ) -> Optional[Path]:
        """
        Record a successful step.

        Returns
        -------
        Path or None
            Path to the marker file, or None if markers are disabled
        """
        if not self.enabled:
            return None

        meta = {
            'key': key,
            'stage': stage,
            'created': datetime.now().isoformat(),
            'dep_hash': hash_dependencies(depends_on or {}),
            'elapsed_sec': round(elapsed, 3) if elapsed is not None else None,
            'outputs': {str(Path(p)): describe_output(Path(p)) for p in outputs},
        }

        marker_path = self._marker_path(key)
        with atomic_output(marker_path) as tmp:
            with open(tmp, 'w') as f:
                json.dump(meta, f, indent=2)

        return marker_path

    def invalidate(self, key: str) -> bool:
        """
        Remove the marker for a step.

        Returns
        -------
        bool
            True if a marker was found and removed
        """
        path = self._marker_path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def clear(self) -> int:
        """
        Remove all markers.

        Returns
        -------
        int
            Number of marker files removed
        """
        if not self.root.exists():
            return 0

        count = 0
        for path in self.root.glob('*.done.json'):
            path.unlink()
            count += 1
        return count

    def list_markers(self) -> list[dict]:
        """Load every marker, sorted by key."""
        if not self.root.exists():
            return []
        markers = []
        for path in sorted(self.root.glob('*.done.json')):
            try:
                with open(path) as f:
                    markers.append(json.load(f))
            except (json.JSONDecodeError, OSError):
                continue
        return sorted(markers, key=lambda m: m.get('key', ''))

    def verify(self, key: str) -> list[str]:
        """
        Re-hash a step's recorded outputs.

        Returns
        -------
        list[str]
            Problems found (empty if every output matches its marker)
        """
        meta = self.read(key)
        if meta is None:
            return [f"no marker for {key}"]

        problems = []
        for path_str, info in meta.get('outputs', {}).items():
            path = Path(path_str)
            if not path.exists():
                problems.append(f"missing output: {path}")
            elif info.get('type') == 'file' and hash_file(path) != info.get('md5'):
                problems.append(f"content changed: {path}")
        return problems

    def stats(self) -> dict:
        """
        Get marker lookup statistics.

        Returns
        -------
        dict
            Dictionary with hits, misses and hit_rate
        """
        total = self._hits + self._misses
        hit_rate = (self._hits / total * 100) if total > 0 else 0.0

        return {
            'hits': self._hits,
            'misses': self._misses,
            'hit_rate': round(hit_rate, 1),
        }
