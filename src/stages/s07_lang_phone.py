#!/usr/bin/env python3
"""
Stage 07: Phone Lexicon

Purpose: Build the word symbol table and a g2p_en phone lexicon.

words.txt layout
----------------
    <eps> 0
    !SIL 1
    [UNK] 2
    <sorted unique words> 3 ... N+2
    <s> N+3
    </s> N+4
    #0 N+5

The same words.txt is copied into every lang_bpe_<size> directory so
that phone and BPE systems can share one G.

Input Files
-----------
- data/manifests/fisher-swbd_supervisions_norm.jsonl.gz

Output Files
------------
- data/lang_phone/words.txt
- data/lang_phone/L_disambig.pt (and the rest of the lang dir)

Notes
-----
Words are sorted by code point, independent of the system locale.
``local/prepare_lang_g2pen.py`` needs the g2p_en package installed.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable

from config import LEXICON_FILE, LM_SPECIAL_WORDS, NORM_SUPERVISIONS, SPECIAL_WORDS, WORDS_FILE
from stages._qa_utils import QAMetrics, qa_for_stage
from stages.s06_transcripts import clean_transcript
from utils.helpers import atomic_output, ensure_dir
from utils.manifests import iter_supervision_texts

STAGE_INDEX = 7
STAGE_NAME = 'Prepare lexicon using g2p_en'


def collect_words(supervisions: Path) -> set[str]:
    """Unique whitespace-separated tokens across all supervision texts."""
    words: set[str] = set()
    for text in iter_supervision_texts(supervisions):
        words.update(clean_transcript(text).split())
    return words


def build_word_table(words: Iterable[str]) -> dict[str, int]:
    """
    Assign symbol ids.

    Reserved symbols keep their fixed positions; any occurrence of them
    among the regular words is dropped so every entry stays unique.

    Returns
    -------
    dict[str, int]
        Symbol -> id, in id order
    """
    reserved = set(SPECIAL_WORDS) | set(LM_SPECIAL_WORDS)
    table: dict[str, int] = {}
    for symbol in SPECIAL_WORDS:
        table[symbol] = len(table)
    for word in sorted(set(words) - reserved):
        table[word] = len(table)
    for symbol in LM_SPECIAL_WORDS:
        table[symbol] = len(table)
    return table


def write_word_table(words: Iterable[str], path: Path) -> dict[str, int]:
    """
    Build the symbol table and write it as ``<symbol> <id>`` lines.

    Returns
    -------
    dict[str, int]
        The table that was written
    """
    table = build_word_table(words)
    with atomic_output(path) as tmp:
        with open(tmp, 'w', encoding='utf-8') as f:
            for symbol, idx in table.items():
                f.write(f"{symbol} {idx}\n")
    return table


def read_word_table(path: Path) -> dict[str, int]:
    """Parse a words.txt file."""
    table = {}
    with open(path, encoding='utf-8') as f:
        for line in f:
            parts = line.split()
            if len(parts) != 2:
                continue
            table[parts[0]] = int(parts[1])
    return table


def run(ctx) -> None:
    cfg = ctx.config
    lang_dir = ensure_dir(cfg.lang_phone_dir)
    supervisions = cfg.manifest(NORM_SUPERVISIONS)
    words_txt = lang_dir / WORDS_FILE

    counts = {}

    def words():
        table = write_word_table(collect_words(supervisions), words_txt)
        counts['symbols'] = len(table)
        counts['words'] = len(table) - len(SPECIAL_WORDS) - len(LM_SPECIAL_WORDS)

    ctx.step(
        's07_lang_phone/words',
        outputs=[words_txt],
        action=words,
        depends_on={'supervisions': supervisions},
    )

    ctx.step(
        's07_lang_phone/lexicon',
        outputs=[lang_dir / LEXICON_FILE],
        action=lambda: ctx.tool('prepare_lang_g2pen').prepare(lang_dir),
        depends_on={'words': words_txt},
    )

    if cfg.qa_reports and counts:
        metrics = QAMetrics()
        metrics.add_count('words', counts['words'])
        metrics.add_count('symbols', counts['symbols'])
        qa_for_stage('s07_lang_phone', metrics, cfg.quality_dir)
