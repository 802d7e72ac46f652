#!/usr/bin/env python3
"""
Stage 06: LM Transcripts

Purpose: Dump normalized transcripts, one supervision per line, for LM and BPE training.

Input Files
-----------
- data/manifests/fisher-swbd_supervisions_norm.jsonl.gz

Output Files
------------
- data/lm/transcript_words.txt
"""
from __future__ import annotations

from pathlib import Path

from config import NORM_SUPERVISIONS, TRANSCRIPT_FILE
from stages._qa_utils import QAMetrics, qa_for_stage
from utils.helpers import atomic_output, ensure_dir
from utils.manifests import iter_supervision_texts

STAGE_INDEX = 6
STAGE_NAME = 'Dump transcripts for LM training'


def clean_transcript(text: str) -> str:
    """Strip double quotes, which the LM and BPE tools do not expect."""
    return text.replace('"', '')


def dump_transcripts(supervisions: Path, output: Path) -> int:
    """
    Write the text of every supervision to ``output``, one per line.

    Parameters
    ----------
    supervisions : Path
        Supervision manifest (.jsonl or .jsonl.gz)
    output : Path
        Plain-text transcript file, written atomically

    Returns
    -------
    int
        Number of lines written
    """
    n = 0
    with atomic_output(output) as tmp:
        with open(tmp, 'w', encoding='utf-8') as f:
            for text in iter_supervision_texts(supervisions):
                f.write(clean_transcript(text) + '\n')
                n += 1
    return n


def run(ctx) -> None:
    cfg = ctx.config
    ensure_dir(cfg.lm_dir)
    supervisions = cfg.manifest(NORM_SUPERVISIONS)
    transcript = cfg.lm_dir / TRANSCRIPT_FILE

    counts = {}

    def dump():
        counts['lines'] = dump_transcripts(supervisions, transcript)

    ctx.step(
        's06_transcripts/dump',
        outputs=[transcript],
        action=dump,
        depends_on={'supervisions': supervisions},
    )

    if cfg.qa_reports and counts:
        metrics = QAMetrics()
        metrics.add_count('transcript_lines', counts['lines'])
        metrics.add('transcript_bytes', transcript.stat().st_size)
        qa_for_stage('s06_transcripts', metrics, cfg.quality_dir)
