"""
Utilities package.

Provides shared utilities for the data preparation pipeline:
- helpers: logging, directory and atomic-write helpers
- manifests: readers for JSON-lines manifests
- markers: completion markers for idempotent steps
"""
from .helpers import atomic_output, ensure_dir, log
from .markers import CompletionMarkers
