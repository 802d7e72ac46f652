#!/usr/bin/env python3
"""
Stage 08: BPE Lexicons

Purpose: Train a BPE model and lexicon for each configured vocabulary size.

Each size gets its own directory, data/lang_bpe_<size>, so sizes never
share or overwrite each other's artifacts. words.txt is copied from the
phone lexicon so the phone and BPE systems can share G later.

Input Files
-----------
- data/lang_phone/words.txt
- data/lm/transcript_words.txt

Output Files
------------
- data/lang_bpe_<size>/words.txt
- data/lang_bpe_<size>/bpe.model
- data/lang_bpe_<size>/L_disambig.pt (and the rest of the lang dir)
"""
from __future__ import annotations

import shutil
from pathlib import Path

from config import BPE_MODEL_FILE, LEXICON_FILE, TRANSCRIPT_FILE, WORDS_FILE
from utils.helpers import atomic_output, ensure_dir

STAGE_INDEX = 8
STAGE_NAME = 'Prepare BPE based lang'


def copy_file(src: Path, dst: Path) -> None:
    """Copy atomically so a half-copied file never looks complete."""
    if not src.exists():
        raise FileNotFoundError(f"Missing input: {src}")
    with atomic_output(dst) as tmp:
        shutil.copyfile(src, tmp)


def prepare_vocab_size(ctx, vocab_size: int) -> Path:
    """Build data/lang_bpe_<vocab_size>; returns the directory."""
    cfg = ctx.config
    lang_dir = ensure_dir(cfg.lang_bpe_dir(vocab_size))
    phone_words = cfg.lang_phone_dir / WORDS_FILE
    words_txt = lang_dir / WORDS_FILE
    transcript = cfg.lm_dir / TRANSCRIPT_FILE
    bpe_model = lang_dir / BPE_MODEL_FILE
    prefix = f's08_lang_bpe/{vocab_size}'

    ctx.step(
        f'{prefix}/words',
        outputs=[words_txt],
        action=lambda: copy_file(phone_words, words_txt),
        depends_on={'words': phone_words},
    )

    ctx.step(
        f'{prefix}/train_bpe',
        outputs=[bpe_model],
        action=lambda: ctx.tool('train_bpe_model').train(lang_dir, vocab_size, transcript),
        depends_on={'transcript': transcript, 'vocab_size': vocab_size},
    )

    ctx.step(
        f'{prefix}/lexicon',
        outputs=[lang_dir / LEXICON_FILE],
        action=lambda: ctx.tool('prepare_lang_bpe').prepare(lang_dir),
        depends_on={'words': words_txt, 'bpe_model': bpe_model},
    )

    return lang_dir


def run(ctx) -> None:
    for vocab_size in ctx.config.vocab_sizes:
        ctx.log(f"Vocabulary size {vocab_size}")
        prepare_vocab_size(ctx, vocab_size)
