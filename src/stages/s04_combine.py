#!/usr/bin/env python3
"""
Stage 04: Combine Fisher + SWBD

Purpose: Merge corpora, normalize supervisions, build and split cuts.

This stage handles:
- Combining Fisher and SWBD recordings and supervisions
- Normalizing text and dropping supervisions that are hard to handle
- Creating cuts that span whole recording sessions
- Shuffling the cuts so SWBD is not only seen towards the end of training
- Splitting off the first N sessions as the dev set
- Trimming train/dev cuts to one cut per supervision segment

Input Files
-----------
- data/manifests/fisher/{recordings,supervisions}.jsonl.gz
- data/manifests/swbd/swbd_{recordings,supervisions}.jsonl

Output Files
------------
- data/manifests/fisher-swbd_recordings.jsonl.gz
- data/manifests/fisher-swbd_supervisions.jsonl.gz
- data/manifests/fisher-swbd_supervisions_norm.jsonl.gz
- data/manifests/fisher-swbd_cuts_unshuf.jsonl.gz
- data/manifests/fisher-swbd_cuts.jsonl.gz
- data/manifests/{dev,train}_fisher-swbd_cuts.jsonl.gz
- data/manifests/{dev,train}_utterances_fisher-swbd_cuts.jsonl.gz

Notes
-----
The shuffle is seeded with ``shuffle_seed`` (42 by default) so the
train/dev split is reproducible. Setting the seed to null in the YAML
config (or ``--no-seed``) gives a different split on every run.
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

# Add parent directory for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import numpy as np

from config import (
    COMBINED_RECORDINGS,
    COMBINED_SUPERVISIONS,
    CUTS_SHUFFLED,
    CUTS_UNSHUFFLED,
    DEV_CUTS,
    DEV_UTTERANCE_CUTS,
    FISHER_RECORDINGS,
    FISHER_SUPERVISIONS,
    NORM_SUPERVISIONS,
    SWBD_RECORDINGS,
    SWBD_SUPERVISIONS,
    TRAIN_CUTS,
    TRAIN_UTTERANCE_CUTS,
)
from stages._qa_utils import QAMetrics, qa_for_stage
from utils.helpers import atomic_output, ensure_dir
from utils.manifests import count_lines, iter_lines, open_text, write_lines

STAGE_INDEX = 4
STAGE_NAME = 'Combine Fisher + SWBD manifests'


# ============================================================
# SHUFFLE AND SPLIT
# ============================================================

def shuffle_cuts(src: Path, dst: Path, seed: Optional[int] = None) -> int:
    """
    Write the lines of ``src`` to ``dst`` in random order.

    Records are moved as opaque lines, never re-serialized.

    Parameters
    ----------
    src : Path
        Input cut manifest (.jsonl or .jsonl.gz)
    dst : Path
        Output cut manifest, written atomically
    seed : int, optional
        Seed for numpy's generator; None draws fresh entropy

    Returns
    -------
    int
        Number of records written
    """
    lines = list(iter_lines(src))
    order = np.random.default_rng(seed).permutation(len(lines))

    with atomic_output(dst) as tmp:
        n = write_lines(tmp, (lines[i] for i in order))
    return n


def split_cuts(src: Path, dev_path: Path, train_path: Path, num_dev: int) -> tuple[int, int]:
    """
    Split a cut manifest into dev (first ``num_dev`` records) and train (the rest).

    Parameters
    ----------
    src : Path
        Shuffled cut manifest
    dev_path, train_path : Path
        Outputs, each written atomically
    num_dev : int
        Number of records (full sessions) for the dev set

    Returns
    -------
    tuple[int, int]
        (n_dev, n_train); they sum to the number of input records

    Raises
    ------
    ValueError
        If ``num_dev`` is negative or exceeds the number of records
    """
    if num_dev < 0:
        raise ValueError(f"num_dev must be non-negative: {num_dev}")

    total = count_lines(src)
    if num_dev > total:
        raise ValueError(
            f"Cannot take {num_dev} dev sessions from {src}: only {total} cuts"
        )

    n_dev = n_train = 0
    with atomic_output(dev_path) as dev_tmp, atomic_output(train_path) as train_tmp:
        with open_text(dev_tmp, 'w') as dev_f, open_text(train_tmp, 'w') as train_f:
            for line in iter_lines(src):
                if n_dev < num_dev:
                    dev_f.write(line + '\n')
                    n_dev += 1
                else:
                    train_f.write(line + '\n')
                    n_train += 1

    return n_dev, n_train


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def run(ctx) -> None:
    """Combine manifests, create cuts and split train/dev."""
    cfg = ctx.config
    m = ensure_dir(cfg.manifests_dir)

    def lhotse():
        return ctx.tool('lhotse')

    fisher_recs = cfg.fisher_dir / FISHER_RECORDINGS
    fisher_sups = cfg.fisher_dir / FISHER_SUPERVISIONS
    swbd_recs = cfg.swbd_dir / SWBD_RECORDINGS
    swbd_sups = cfg.swbd_dir / SWBD_SUPERVISIONS

    recordings = m / COMBINED_RECORDINGS
    supervisions = m / COMBINED_SUPERVISIONS
    supervisions_norm = m / NORM_SUPERVISIONS
    cuts_unshuf = m / CUTS_UNSHUFFLED
    cuts = m / CUTS_SHUFFLED
    dev_cuts = m / DEV_CUTS
    train_cuts = m / TRAIN_CUTS

    # Combine Fisher and SWBD recordings and supervisions
    ctx.step(
        's04_combine/recordings',
        outputs=[recordings],
        action=lambda: lhotse().combine([fisher_recs, swbd_recs], recordings),
        depends_on={'fisher': fisher_recs, 'swbd': swbd_recs},
    )
    ctx.step(
        's04_combine/supervisions',
        outputs=[supervisions],
        action=lambda: lhotse().combine([fisher_sups, swbd_sups], supervisions),
        depends_on={'fisher': fisher_sups, 'swbd': swbd_sups},
    )

    # Normalize text and remove supervisions that are not useful / hard to handle
    ctx.step(
        's04_combine/normalize',
        outputs=[supervisions_norm],
        action=lambda: ctx.tool('normalize_supervisions').normalize(supervisions, supervisions_norm),
        depends_on={'supervisions': supervisions},
    )

    # Cuts spanning whole recording sessions
    ctx.step(
        's04_combine/cut_simple',
        outputs=[cuts_unshuf],
        action=lambda: lhotse().cut_simple(recordings, supervisions_norm, cuts_unshuf),
        depends_on={'recordings': recordings, 'supervisions': supervisions_norm},
    )

    ctx.step(
        's04_combine/shuffle',
        outputs=[cuts],
        action=lambda: shuffle_cuts(cuts_unshuf, cuts, seed=cfg.shuffle_seed),
        depends_on={'cuts': cuts_unshuf, 'seed': cfg.shuffle_seed},
    )

    ctx.step(
        's04_combine/split',
        outputs=[dev_cuts, train_cuts],
        action=lambda: split_cuts(cuts, dev_cuts, train_cuts, cfg.num_dev_sessions),
        depends_on={'cuts': cuts, 'num_dev': cfg.num_dev_sessions},
    )

    # One cut per supervision segment; overlapping segments are discarded
    for split, src, dst in [
        ('train', train_cuts, m / TRAIN_UTTERANCE_CUTS),
        ('dev', dev_cuts, m / DEV_UTTERANCE_CUTS),
    ]:
        ctx.step(
            f's04_combine/trim_{split}',
            outputs=[dst],
            action=lambda src=src, dst=dst: lhotse().trim_to_supervisions(src, dst),
            depends_on={'cuts': src},
        )

    if cfg.qa_reports:
        n_dev = count_lines(dev_cuts)
        n_train = count_lines(train_cuts)
        metrics = QAMetrics()
        metrics.add_count('cuts', n_dev + n_train)
        metrics.add_count('dev_cuts', n_dev)
        metrics.add_count('train_cuts', n_train)
        if n_dev + n_train:
            metrics.add_pct('dev', n_dev / (n_dev + n_train) * 100)
        metrics.add('shuffle_seed', cfg.shuffle_seed)
        qa_for_stage('s04_combine', metrics, cfg.quality_dir)
