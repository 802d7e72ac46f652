#!/usr/bin/env python3
"""
Module: pipeline.py
Purpose: Main orchestration CLI for the Fisher + Switchboard data preparation pipeline.

This module provides a command-line interface to execute a range of
stages. Each stage prepares manifests, lexicons or language models and
skips any step whose outputs are already complete.

Stages
------
 0  download      Link LDC packages, download musan
 1  fisher        Prepare Fisher manifests
 2  swbd          Prepare Switchboard manifests
 3  musan         Prepare musan manifests
 4  combine       Combine, normalize, shuffle, split and trim cuts
 6  transcripts   Dump transcripts for LM training
 7  lang_phone    words.txt and g2p_en phone lexicon
 8  lang_bpe      BPE model and lexicon per vocabulary size
 9  lm            Kneser-Ney n-gram LM and G FST
10  hlg           HLG for every lang dir

Commands
--------
run : Execute stages in the inclusive range [--stage, --stop-stage]
    Options: --config, --dl-dir, --data-dir, --vocab-size, --force, ...
list_stages : List stage indices, modules and purposes
status : Show completion markers per stage
    Options: --verify
list_tools : List external tools and whether they are installed
clear_markers : Delete every completion marker

Usage
-----
    python src/pipeline.py run --stage 4 --stop-stage 6
    python src/pipeline.py run --vocab-size 500 --vocab-size 2000
    python src/pipeline.py status --verify

Notes
-----
Exit status is 0 on success, the failing tool's exit status when an
external tool fails, and 1 for configuration errors or missing outputs.
"""
from __future__ import annotations

import argparse
import importlib
import re
import sys
from pathlib import Path
from typing import Optional, Sequence

from config import DEFAULT_CONFIG_PATH, PipelineConfig, ensure_directories, load_config, validate_config
from stages._runner import PipelineError, Stage, StageRunner
from tools import ToolError, get_tool_info, registered_tools
from utils.helpers import log_error
from utils.markers import CompletionMarkers

STAGES_DIR = Path(__file__).parent / 'stages'


def _add_config_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        '--config', '-c',
        default=None,
        help=f'YAML configuration file (default: {DEFAULT_CONFIG_PATH.name} if present)'
    )
    p.add_argument(
        '--data-dir',
        default=None,
        help='Working directory for all outputs'
    )


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(
        description='Fisher + Switchboard data preparation pipeline',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    sub = p.add_subparsers(dest='cmd', required=True)

    # Run
    p_run = sub.add_parser('run', help='Run a range of stages')
    _add_config_args(p_run)
    p_run.add_argument('--dl-dir', default=None, help='Directory with raw corpora')
    p_run.add_argument('--stage', type=int, default=None, help='First stage to run (inclusive)')
    p_run.add_argument('--stop-stage', type=int, default=None, help='Last stage to run (inclusive)')
    p_run.add_argument(
        '--vocab-size',
        dest='vocab_sizes',
        type=int,
        action='append',
        default=None,
        help='BPE vocabulary size (repeatable)'
    )
    p_run.add_argument('--nj', type=int, default=None, help='Number of parallel jobs (reserved)')
    p_run.add_argument(
        '--num-dev-sessions',
        type=int,
        default=None,
        help='Number of full sessions held out as dev'
    )
    seed = p_run.add_mutually_exclusive_group()
    seed.add_argument('--seed', type=int, default=None, help='Shuffle seed')
    seed.add_argument('--no-seed', action='store_true', help='Shuffle without a fixed seed')
    p_run.add_argument('--ldc-root', default=None, help='Directory with pre-downloaded LDC packages')
    p_run.add_argument('--recipe-dir', default=None, help='Directory with local/ and shared/ scripts')
    p_run.add_argument('--force', action='store_true', help='Re-run steps even if complete')
    p_run.add_argument(
        '--no-markers',
        action='store_true',
        help='Skip steps whenever their outputs exist'
    )
    p_run.add_argument('--no-qa', action='store_true', help='Do not write QA reports')
    p_run.add_argument('--verbose', '-v', action='store_true', help='Log skipped stages and steps')

    # Inspection
    sub.add_parser('list_stages', help='List pipeline stages')

    p_status = sub.add_parser('status', help='Show completion markers')
    _add_config_args(p_status)
    p_status.add_argument(
        '--verify',
        action='store_true',
        help='Re-hash recorded outputs'
    )

    p_tools = sub.add_parser('list_tools', help='List external tools')
    p_tools.add_argument('--config', '-c', default=None, help='YAML configuration file')

    p_clear = sub.add_parser('clear_markers', help='Delete all completion markers')
    _add_config_args(p_clear)

    return p.parse_args(argv)


# ============================================================
# CONFIGURATION
# ============================================================

def _config_path(args: argparse.Namespace) -> Optional[Path]:
    if getattr(args, 'config', None):
        return Path(args.config)
    if DEFAULT_CONFIG_PATH.exists():
        return DEFAULT_CONFIG_PATH
    return None


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    """
    Build the run configuration from the YAML file and CLI flags.

    Paths are made absolute because external tools run with the recipe
    directory as their working directory.
    """
    overrides = {
        'data_dir': getattr(args, 'data_dir', None),
        'dl_dir': getattr(args, 'dl_dir', None),
        'stage': getattr(args, 'stage', None),
        'stop_stage': getattr(args, 'stop_stage', None),
        'vocab_sizes': getattr(args, 'vocab_sizes', None),
        'nj': getattr(args, 'nj', None),
        'num_dev_sessions': getattr(args, 'num_dev_sessions', None),
        'shuffle_seed': getattr(args, 'seed', None),
        'ldc_root': getattr(args, 'ldc_root', None),
        'recipe_dir': getattr(args, 'recipe_dir', None),
    }
    if getattr(args, 'force', False):
        overrides['force'] = True
    if getattr(args, 'no_markers', False):
        overrides['use_markers'] = False
    if getattr(args, 'no_qa', False):
        overrides['qa_reports'] = False
    if getattr(args, 'verbose', False):
        overrides['verbose'] = True

    cfg = load_config(_config_path(args), overrides=overrides)
    if getattr(args, 'no_seed', False):
        cfg = cfg.with_overrides(shuffle_seed=None)

    return cfg.with_overrides(
        dl_dir=cfg.dl_dir.resolve(),
        data_dir=cfg.data_dir.resolve(),
        recipe_dir=cfg.recipe_dir.resolve(),
        ldc_root=cfg.ldc_root.resolve() if cfg.ldc_root is not None else None,
    )


# ============================================================
# STAGE DISCOVERY
# ============================================================

def discover_stages(prefix: str = None) -> list[tuple[str, str]]:
    """
    Discover available stage modules.

    Parameters
    ----------
    prefix : str, optional
        Filter by stage prefix (e.g., 's00', 's04')

    Returns
    -------
    list[tuple[str, str]]
        List of (module_name, description) tuples
    """
    stages = []

    for f in sorted(STAGES_DIR.glob('s*.py')):
        name = f.stem
        if prefix and not name.startswith(prefix):
            continue

        # Look for Purpose: line in docstring
        match = re.search(r'Purpose:\s*(.+?)(?:\n|$)', f.read_text())
        desc = match.group(1).strip() if match else ''

        stages.append((name, desc))

    return stages


def load_stages() -> list[Stage]:
    """
    Import every stage module and build the pipeline.

    Returns
    -------
    list[Stage]
        Stages sorted by index

    Raises
    ------
    PipelineError
        If a stage module lacks STAGE_INDEX or run()
    """
    stages = []
    for name, _ in discover_stages():
        module = importlib.import_module(f'stages.{name}')
        if not hasattr(module, 'STAGE_INDEX') or not hasattr(module, 'run'):
            raise PipelineError(f"Stage module '{name}' must define STAGE_INDEX and run()")
        stages.append(Stage(
            index=module.STAGE_INDEX,
            name=getattr(module, 'STAGE_NAME', name),
            body=module.run,
            module=name,
        ))
    return sorted(stages, key=lambda s: s.index)


# ============================================================
# COMMANDS
# ============================================================

def run_pipeline(cfg: PipelineConfig, stages: Optional[Sequence[Stage]] = None, tools: Optional[dict] = None):
    """
    Validate the configuration and execute the selected stages.

    Returns
    -------
    RunReport
        Per-stage results
    """
    validate_config(cfg)
    ensure_directories(cfg)

    print("=" * 60)
    print("Fisher + Switchboard data preparation")
    print("=" * 60)
    print(f"  dl_dir:      {cfg.dl_dir}")
    print(f"  data_dir:    {cfg.data_dir}")
    print(f"  stages:      {cfg.stage} .. {cfg.stop_stage}")
    print(f"  vocab sizes: {', '.join(str(v) for v in cfg.vocab_sizes)}")
    print(f"  seed:        {cfg.shuffle_seed if cfg.shuffle_seed is not None else 'unseeded'}")
    print(f"  nj:          {cfg.nj}")
    print()

    runner = StageRunner(cfg, stages if stages is not None else load_stages(), tools=tools)
    report = runner.run()

    print()
    print("=" * 60)
    print("PIPELINE COMPLETE")
    print("=" * 60)
    print(report.summary())
    return report


def list_available_stages() -> None:
    """List stage modules."""
    print("Available Pipeline Stages")
    print("=" * 60)

    stages = discover_stages()
    if not stages:
        print("No stages found")
        return

    for name, desc in stages:
        match = re.match(r's(\d+)', name)
        num = int(match.group(1)) if match else -1
        print(f"  {num:>2}  {name:<20} {desc}")

    print()
    print(f"Total: {len(stages)} stage(s)")
    print()
    print("Run a range with: python src/pipeline.py run --stage N --stop-stage M")


def show_status(cfg: PipelineConfig, verify: bool = False) -> int:
    """
    Print completion markers grouped by stage.

    Returns
    -------
    int
        Number of markers with problems (only counted with ``verify``)
    """
    markers = CompletionMarkers(cfg.markers_dir)
    records = markers.list_markers()

    print("Pipeline Status")
    print("=" * 60)
    print(f"  Markers: {cfg.markers_dir}")
    print()

    if not records:
        print("  No completed steps")
        return 0

    problems = 0
    current = None
    for meta in records:
        stage = meta.get('stage') or '?'
        if stage != current:
            if current is not None:
                print()
            print(f"  {stage}")
            current = stage

        line = f"    {meta.get('key', ''):<40} {meta.get('created', '')[:19]}"
        if verify:
            issues = markers.verify(meta.get('key', ''))
            if issues:
                problems += 1
                line += '  STALE'
                print(line)
                for issue in issues:
                    print(f"      - {issue}")
                continue
            line += '  OK'
        print(line)

    print()
    print(f"Total: {len(records)} step(s) complete")
    if verify:
        print(f"Stale: {problems}")
    return problems


def show_tools(cfg: PipelineConfig) -> None:
    """Print registered tools and whether they can be run."""
    print("External Tools")
    print("=" * 60)
    for name in registered_tools():
        info = get_tool_info(
            name,
            cwd=cfg.recipe_dir,
            command=cfg.tool_settings(name).get('command'),
        )
        status = 'OK' if info['available'] else 'MISSING'
        print(f"  {name:<24} {status:<8} {' '.join(info['command'])}")
        if not info['available']:
            print(f"      {info['message']}")


def clear_markers(cfg: PipelineConfig) -> int:
    """Delete all completion markers; returns the number removed."""
    removed = CompletionMarkers(cfg.markers_dir).clear()
    print(f"Removed {removed} marker(s) from {cfg.markers_dir}")
    return removed


# ============================================================
# MAIN
# ============================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Command-line entry point.

    Returns
    -------
    int
        Process exit status
    """
    args = parse_args(argv)

    try:
        if args.cmd == 'list_stages':
            list_available_stages()
            return 0

        cfg = config_from_args(args)

        if args.cmd == 'run':
            run_pipeline(cfg)

        elif args.cmd == 'status':
            problems = show_status(cfg, verify=args.verify)
            return 1 if problems else 0

        elif args.cmd == 'list_tools':
            show_tools(cfg)

        elif args.cmd == 'clear_markers':
            clear_markers(cfg)

    except ToolError as e:
        log_error(str(e))
        return e.returncode
    except (PipelineError, ValueError, OSError) as e:
        log_error(str(e))
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
