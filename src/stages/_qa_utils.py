#!/usr/bin/env python3
"""
Quality Assurance Utilities for Pipeline Stages.

This module provides functions for generating per-stage QA reports
that track corpus statistics (cut counts, split sizes, vocabulary size)
throughout the pipeline.

Usage
-----
    from stages._qa_utils import qa_for_stage, QAMetrics

    # At the end of a pipeline stage:
    metrics = QAMetrics()
    metrics.add_count('cuts', n_cuts)
    metrics.add_count('dev_cuts', n_dev)

    qa_for_stage('s04_combine', metrics, output_dir=cfg.quality_dir)
"""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd

# Add parent for config import
sys.path.insert(0, str(Path(__file__).parent.parent))

from config import QA_THRESHOLDS


class QAMetrics:
    """
    Container for QA metrics collected during a pipeline stage.

    Examples
    --------
    >>> metrics = QAMetrics()
    >>> metrics.add_count('cuts', 1000)
    >>> metrics.add_pct('dev', 2.0)
    >>> metrics.to_dict()
    {'cuts_count': 1000, 'dev_pct': 2.0}
    """

    def __init__(self):
        self._metrics: dict[str, Any] = {}

    def add(self, name: str, value: Any) -> 'QAMetrics':
        """Add a metric."""
        self._metrics[name] = value
        return self

    def add_pct(self, name: str, value: float) -> 'QAMetrics':
        """Add a percentage metric (appends '_pct' to name)."""
        self._metrics[f'{name}_pct'] = round(value, 2)
        return self

    def add_count(self, name: str, value: int) -> 'QAMetrics':
        """Add a count metric (appends '_count' to name)."""
        self._metrics[f'{name}_count'] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return self._metrics.copy()

    def __len__(self) -> int:
        return len(self._metrics)

    def __repr__(self) -> str:
        return f"QAMetrics({self._metrics})"


def generate_qa_report(
    stage_name: str,
    metrics: Union[QAMetrics, dict],
    output_dir: Path,
    include_timestamp: bool = False,
) -> Path:
    """
    Generate a QA report for a pipeline stage.

    Parameters
    ----------
    stage_name : str
        Name of the stage (e.g., 's04_combine', 's07_lang_phone')
    metrics : QAMetrics or dict
        Metrics to include in the report
    output_dir : Path
        Output directory (normally data/quality)
    include_timestamp : bool
        Whether to include timestamp in filename (default: False, so a
        re-run replaces the previous report)

    Returns
    -------
    Path
        Path to generated report
    """
    if isinstance(metrics, QAMetrics):
        metrics_dict = metrics.to_dict()
    else:
        metrics_dict = dict(metrics)

    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    if include_timestamp:
        filename = f'{stage_name}_quality_{timestamp}.csv'
    else:
        filename = f'{stage_name}_quality.csv'

    report_path = output_dir / filename

    rows = [
        {
            'metric': key,
            'value': value,
            'stage': stage_name,
            'timestamp': timestamp,
        }
        for key, value in metrics_dict.items()
    ]

    df = pd.DataFrame(rows, columns=['metric', 'value', 'stage', 'timestamp'])
    df.to_csv(report_path, index=False)

    print(f"QA report saved: {report_path}")
    return report_path


def print_qa_summary(metrics: Union[QAMetrics, dict], stage_name: str = '') -> None:
    """
    Print a formatted summary of QA metrics.

    Parameters
    ----------
    metrics : QAMetrics or dict
        Metrics to display
    stage_name : str, optional
        Stage name for header
    """
    if isinstance(metrics, QAMetrics):
        metrics_dict = metrics.to_dict()
    else:
        metrics_dict = dict(metrics)

    if stage_name:
        print(f"\nQA Summary: {stage_name}")
    else:
        print("\nQA Summary")
    print("-" * 40)

    for key, value in metrics_dict.items():
        if isinstance(value, bool):
            print(f"  {key}: {value}")
        elif isinstance(value, float):
            print(f"  {key}: {value:,.2f}")
        elif isinstance(value, int):
            print(f"  {key}: {value:,}")
        else:
            print(f"  {key}: {value}")


def check_thresholds(
    metrics: Union[QAMetrics, dict],
    thresholds: Optional[dict] = None,
) -> list[str]:
    """
    Check metrics against thresholds and return warnings.

    Parameters
    ----------
    metrics : QAMetrics or dict
        Metrics to check
    thresholds : dict, optional
        Threshold definitions (default: QA_THRESHOLDS from config)

    Returns
    -------
    list[str]
        List of warning messages for threshold violations
    """
    if thresholds is None:
        thresholds = QA_THRESHOLDS

    if isinstance(metrics, QAMetrics):
        metrics_dict = metrics.to_dict()
    else:
        metrics_dict = dict(metrics)

    warnings = []

    # Full-session cut count
    if 'cuts_count' in metrics_dict and 'min_cuts' in thresholds:
        if metrics_dict['cuts_count'] < thresholds['min_cuts']:
            warnings.append(
                f"Cut count ({metrics_dict['cuts_count']}) below "
                f"threshold ({thresholds['min_cuts']})"
            )

    # Dev split size
    if 'dev_cuts_count' in metrics_dict and 'min_dev_cuts' in thresholds:
        if metrics_dict['dev_cuts_count'] < thresholds['min_dev_cuts']:
            warnings.append(
                f"Dev cut count ({metrics_dict['dev_cuts_count']}) below "
                f"threshold ({thresholds['min_dev_cuts']})"
            )

    # Vocabulary size
    if 'words_count' in metrics_dict and 'min_words' in thresholds:
        if metrics_dict['words_count'] < thresholds['min_words']:
            warnings.append(
                f"Word count ({metrics_dict['words_count']}) below "
                f"threshold ({thresholds['min_words']})"
            )

    return warnings


# =============================================================================
# CONVENIENCE FUNCTIONS FOR COMMON PATTERNS
# =============================================================================

def qa_for_stage(
    stage_name: str,
    metrics: Union[QAMetrics, dict],
    output_dir: Path,
    enabled: bool = True,
) -> Optional[Path]:
    """
    Complete QA workflow for a pipeline stage.

    This is a convenience function that:
    1. Checks thresholds and prints warnings
    2. Prints a summary
    3. Generates the QA report

    Parameters
    ----------
    stage_name : str
        Name of the stage
    metrics : QAMetrics or dict
        Metrics collected by the stage
    output_dir : Path
        Directory for the CSV report
    enabled : bool
        When False nothing is printed or written

    Returns
    -------
    Path or None
        Path to generated report
    """
    if not enabled:
        return None

    warnings = check_thresholds(metrics)
    if warnings:
        print(f"\nQA Warnings for {stage_name}:")
        for warning in warnings:
            print(f"  WARNING: {warning}")

    print_qa_summary(metrics, stage_name)

    return generate_qa_report(stage_name, metrics, output_dir)
