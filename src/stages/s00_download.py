#!/usr/bin/env python3
"""
Stage 00: Download Data

Purpose: Link pre-downloaded LDC corpora and fetch MUSAN if missing.

Fisher and Switchboard are LDC corpora and cannot be downloaded
automatically. If ``ldc_root`` is configured, each package directory
found there is symlinked into the download directory (existing links
are replaced). Alternatively link them by hand:

    ln -sfv /path/to/LDC2004S13 download/

MUSAN is fetched with ``lhotse download musan`` unless
``download/musan`` already exists (a symlink to a local copy counts).

Input Files
-----------
- <ldc_root>/LDC2004S13, LDC2004T19, LDC2005S13, LDC2005T19, LDC97S62

Output Files
------------
- <dl_dir>/LDC* (symlinks)
- <dl_dir>/musan/{music,noise,speech}

Usage
-----
    python src/pipeline.py run --stage 0 --stop-stage 0
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Sequence

from utils.helpers import ensure_dir, log

STAGE_INDEX = 0
STAGE_NAME = 'Download data'


def link_ldc_packages(
    ldc_root: Path,
    packages: Sequence[str],
    dl_dir: Path,
    stage: Optional[str] = 's00_download',
) -> list[Path]:
    """
    Symlink LDC package directories into the download directory.

    Behaves like ``ln -sf``: an existing link (or file) at the
    destination is replaced. Packages absent from ``ldc_root`` are
    reported and skipped; the stage that needs them will fail with the
    corpus tool's own error.

    Parameters
    ----------
    ldc_root : Path
        Directory containing one sub-directory per LDC package
    packages : sequence of str
        Package names (e.g. 'LDC97S62')
    dl_dir : Path
        Download directory receiving the links

    Returns
    -------
    list[Path]
        Links created
    """
    ensure_dir(dl_dir)
    links = []
    for pkg in packages:
        source = Path(ldc_root) / pkg
        if not source.exists():
            log(f"WARNING: LDC package not found: {source}", stage=stage)
            continue

        link = Path(dl_dir) / pkg
        if link.is_symlink() or link.is_file():
            link.unlink()
        elif link.exists():
            log(f"Keeping existing directory {link}", stage=stage)
            continue

        os.symlink(source.resolve(), link)
        log(f"'{link}' -> '{source}'", stage=stage)
        links.append(link)
    return links


def run(ctx) -> None:
    """Link LDC corpora and download MUSAN."""
    cfg = ctx.config
    ensure_dir(cfg.dl_dir)

    if cfg.ldc_root is not None:
        link_ldc_packages(cfg.ldc_root, cfg.ldc_packages, cfg.dl_dir, stage=ctx.stage.tag)
    else:
        ctx.log(f"No ldc_root configured; expecting LDC packages in {cfg.dl_dir}")

    # A user-provided musan directory has no marker, so only existence counts
    ctx.step(
        's00_download/musan',
        outputs=[cfg.musan_dir],
        action=lambda: ctx.tool('lhotse').download_musan(cfg.dl_dir),
        check='exists',
    )
