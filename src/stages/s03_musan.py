#!/usr/bin/env python3
"""
Stage 03: MUSAN Manifests

Purpose: Prepare the MUSAN noise/music/speech manifest used for augmentation.

Input Files
-----------
- <dl_dir>/musan/{music,noise,speech}

Output Files
------------
- data/manifests/musan_recordings_{music,speech,noise}.jsonl.gz
"""
from __future__ import annotations

from config import MUSAN_PARTS
from utils.helpers import ensure_dir

STAGE_INDEX = 3
STAGE_NAME = 'Prepare musan manifest'


def musan_outputs(manifests_dir) -> list:
    """Manifest files written by ``lhotse prepare musan``."""
    return [manifests_dir / f'musan_recordings_{part}.jsonl.gz' for part in MUSAN_PARTS]


def run(ctx) -> None:
    cfg = ctx.config
    out_dir = ensure_dir(cfg.manifests_dir)

    ctx.step(
        's03_musan/prepare',
        outputs=musan_outputs(out_dir),
        action=lambda: ctx.tool('lhotse').prepare('musan', cfg.musan_dir, out_dir),
        depends_on={'musan_dir': str(cfg.musan_dir)},
    )
