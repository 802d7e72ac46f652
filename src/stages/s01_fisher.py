#!/usr/bin/env python3
"""
Stage 01: Fisher Manifests

Purpose: Prepare Lhotse recording/supervision manifests for Fisher English.

Input Files
-----------
- <dl_dir>/LDC2004S13, LDC2004T19, LDC2005S13, LDC2005T19

Output Files
------------
- data/manifests/fisher/recordings.jsonl.gz
- data/manifests/fisher/supervisions.jsonl.gz
"""
from __future__ import annotations

from config import FISHER_RECORDINGS, FISHER_SUPERVISIONS
from utils.helpers import ensure_dir

STAGE_INDEX = 1
STAGE_NAME = 'Prepare Fisher manifests'


def run(ctx) -> None:
    cfg = ctx.config
    out_dir = ensure_dir(cfg.fisher_dir)

    ctx.step(
        's01_fisher/prepare',
        outputs=[out_dir / FISHER_RECORDINGS, out_dir / FISHER_SUPERVISIONS],
        action=lambda: ctx.tool('lhotse').prepare(
            'fisher-english', cfg.dl_dir, out_dir, absolute_paths=1,
        ),
        depends_on={'dl_dir': str(cfg.dl_dir)},
    )
