#!/usr/bin/env python3
"""
Stage 02: Switchboard Manifests

Purpose: Prepare Lhotse manifests for Switchboard-1, omitting silence segments.

Input Files
-----------
- <dl_dir>/LDC97S62

Output Files
------------
- data/manifests/swbd/swbd_recordings.jsonl
- data/manifests/swbd/swbd_supervisions.jsonl
"""
from __future__ import annotations

from config import SWBD_PACKAGE, SWBD_RECORDINGS, SWBD_SUPERVISIONS
from utils.helpers import ensure_dir

STAGE_INDEX = 2
STAGE_NAME = 'Prepare SWBD manifests'


def run(ctx) -> None:
    cfg = ctx.config
    out_dir = ensure_dir(cfg.swbd_dir)
    corpus_dir = cfg.dl_dir / SWBD_PACKAGE

    ctx.step(
        's02_swbd/prepare',
        outputs=[out_dir / SWBD_RECORDINGS, out_dir / SWBD_SUPERVISIONS],
        action=lambda: ctx.tool('lhotse').prepare(
            'switchboard', corpus_dir, out_dir,
            absolute_paths=1, omit_silence=True,
        ),
        depends_on={'corpus_dir': str(corpus_dir)},
    )
