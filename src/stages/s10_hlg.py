#!/usr/bin/env python3
"""
Stage 10: HLG

Purpose: Compile the HLG decoding graph for the phone and every BPE lang dir.

Input Files
-----------
- data/lang_phone/, data/lang_bpe_<size>/
- data/lm/G_<order>_gram.fst.txt

Output Files
------------
- data/lang_phone/HLG.pt
- data/lang_bpe_<size>/HLG.pt
"""
from __future__ import annotations

from config import HLG_FILE, LEXICON_FILE
from stages.s09_lm import fst_filename

STAGE_INDEX = 10
STAGE_NAME = 'Compile HLG'


def lang_dirs(cfg) -> list:
    """Every lang dir that gets an HLG, phone first."""
    return [cfg.lang_phone_dir] + [cfg.lang_bpe_dir(size) for size in cfg.vocab_sizes]


def run(ctx) -> None:
    cfg = ctx.config
    fst = cfg.lm_dir / fst_filename(cfg.lm_order)

    for lang_dir in lang_dirs(cfg):
        ctx.step(
            f's10_hlg/{lang_dir.name}',
            outputs=[lang_dir / HLG_FILE],
            action=lambda lang_dir=lang_dir: ctx.tool('compile_hlg').compile(lang_dir),
            depends_on={'lexicon': lang_dir / LEXICON_FILE, 'G': fst},
        )
