#!/usr/bin/env python3
"""
Stage 09: Language Model

Purpose: Train a Kneser-Ney word n-gram LM and convert it to an FST for G.

Input Files
-----------
- data/lm/transcript_words.txt
- data/lang_phone/words.txt

Output Files
------------
- data/lm/G.arpa
- data/lm/G_<order>_gram.fst.txt
"""
from __future__ import annotations

from pathlib import Path

from config import ARPA_FILE, DISAMBIG_SYMBOL, TRANSCRIPT_FILE, WORDS_FILE
from utils.helpers import ensure_dir

STAGE_INDEX = 9
STAGE_NAME = 'Train LM'


def fst_filename(order: int) -> str:
    """Name of the G FST for an n-gram order (G_3_gram.fst.txt for 3)."""
    return f'G_{order}_gram.fst.txt'


def run(ctx) -> None:
    cfg = ctx.config
    lm_dir = ensure_dir(cfg.lm_dir)
    transcript = lm_dir / TRANSCRIPT_FILE
    arpa = lm_dir / ARPA_FILE
    fst = lm_dir / fst_filename(cfg.lm_order)
    words_txt = cfg.lang_phone_dir / WORDS_FILE

    ctx.step(
        's09_lm/arpa',
        outputs=[arpa],
        action=lambda: ctx.tool('make_kn_lm').estimate(transcript, arpa, cfg.lm_order),
        depends_on={'transcript': transcript, 'order': cfg.lm_order},
    )

    ctx.step(
        f's09_lm/fst_{cfg.lm_order}',
        outputs=[fst],
        action=lambda: ctx.tool('kaldilm').arpa_to_fst(
            arpa, words_txt, fst,
            max_order=cfg.lm_order,
            disambig_symbol=DISAMBIG_SYMBOL,
        ),
        depends_on={'arpa': arpa, 'words': words_txt},
    )
