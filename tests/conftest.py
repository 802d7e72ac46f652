#!/usr/bin/env python3
"""
Shared pytest fixtures for the test suite.

This module provides common fixtures used across test modules including:
- Temporary directories
- Pipeline configurations rooted in a temporary directory
- Manifest writers
- Fake external tools that run in-process instead of as subprocesses
"""
from __future__ import annotations

import sys
from pathlib import Path

# Add src directory to Python path for test imports
_project_root = Path(__file__).parent.parent
_src_path = _project_root / 'src'
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

import json
import shutil
import subprocess
import tempfile

import pytest

from config import MUSAN_PARTS, PipelineConfig
from stages._runner import Stage, StageRunner
from tools.commands import (
    CompileHlgTool,
    KaldilmTool,
    LhotseTool,
    MakeKneserNeyLmTool,
    NormalizeSupervisionsTool,
    PrepareLangBpeTool,
    PrepareLangG2pTool,
    TrainBpeModelTool,
)
from utils.manifests import iter_lines, write_lines


# ============================================================
# PATH FIXTURES
# ============================================================

@pytest.fixture
def project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def temp_dir():
    """Create a temporary directory that is cleaned up after tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


# ============================================================
# CONFIGURATION FIXTURES
# ============================================================

@pytest.fixture
def pipeline_config(temp_dir) -> PipelineConfig:
    """Configuration with every directory under a temporary root."""
    return PipelineConfig(
        dl_dir=temp_dir / 'download',
        data_dir=temp_dir / 'data',
        recipe_dir=temp_dir,
        qa_reports=False,
    )


@pytest.fixture
def sample_config_yaml(temp_dir) -> Path:
    """Write a small YAML configuration file."""
    path = temp_dir / 'pipeline.yml'
    path.write_text(
        "data_dir: work\n"
        "stage: 2\n"
        "stop_stage: 8\n"
        "vocab_sizes: [500, 2000]\n"
        "num_dev_sessions: 5\n"
    )
    return path


# ============================================================
# MANIFEST FIXTURES
# ============================================================

def _write_records(path: Path, records) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    write_lines(path, (json.dumps(r) for r in records))
    return path


@pytest.fixture
def write_manifest():
    """Return a function writing dicts as a JSON-lines manifest (gzip if .gz)."""
    return _write_records


def make_supervisions(prefix: str, n: int) -> list[dict]:
    """One supervision per session with a small, overlapping vocabulary."""
    return [
        {
            'id': f'{prefix}_{i:04d}-A-0',
            'recording_id': f'{prefix}_{i:04d}',
            'start': 0.0,
            'duration': 2.5,
            'channel': 0,
            'text': f'hello "there" {prefix}word{i % 7}',
        }
        for i in range(n)
    ]


def make_recordings(prefix: str, n: int) -> list[dict]:
    return [
        {'id': f'{prefix}_{i:04d}', 'sampling_rate': 8000, 'duration': 600.0}
        for i in range(n)
    ]


@pytest.fixture
def supervision_records():
    """Return a factory for supervision dicts."""
    return make_supervisions


# ============================================================
# FAKE TOOLS
# ============================================================

NUM_FISHER_SESSIONS = 30
NUM_SWBD_SESSIONS = 10


def _touch(path) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text('fake\n')


def _lhotse(args, stdout):
    if args[0] == 'download':
        for part in MUSAN_PARTS:
            (Path(args[-1]) / 'musan' / part).mkdir(parents=True, exist_ok=True)

    elif args[0] == 'prepare':
        recipe, out_dir = args[1], Path(args[-1])
        if recipe == 'fisher-english':
            _write_records(out_dir / 'recordings.jsonl.gz', make_recordings('fe', NUM_FISHER_SESSIONS))
            _write_records(out_dir / 'supervisions.jsonl.gz', make_supervisions('fe', NUM_FISHER_SESSIONS))
        elif recipe == 'switchboard':
            _write_records(out_dir / 'swbd_recordings.jsonl', make_recordings('sw', NUM_SWBD_SESSIONS))
            _write_records(out_dir / 'swbd_supervisions.jsonl', make_supervisions('sw', NUM_SWBD_SESSIONS))
        elif recipe == 'musan':
            for part in MUSAN_PARTS:
                _write_records(out_dir / f'musan_recordings_{part}.jsonl.gz', [{'id': part}])

    elif args[0] == 'combine':
        *inputs, output = args[1:]
        write_lines(output, (line for src in inputs for line in iter_lines(src)))

    elif args[:2] == ['cut', 'simple']:
        recordings, output = args[3], args[-1]
        write_lines(output, (
            json.dumps({'id': json.loads(line)['id'], 'recording_id': json.loads(line)['id']})
            for line in iter_lines(recordings)
        ))

    elif args[:2] == ['cut', 'trim-to-supervisions']:
        src, output = args[-2], args[-1]
        write_lines(output, iter_lines(src))

    return 0


def _normalize(args, stdout):
    src, output = args
    write_lines(output, iter_lines(src))
    return 0


def _lang_dir(args) -> Path:
    return Path(args[args.index('--lang-dir') + 1])


def _lexicon(args, stdout):
    _touch(_lang_dir(args) / 'L_disambig.pt')
    return 0


def _train_bpe(args, stdout):
    vocab_size = args[args.index('--vocab-size') + 1]
    (_lang_dir(args) / 'bpe.model').write_text(f'vocab_size={vocab_size}\n')
    return 0


def _make_kn_lm(args, stdout):
    order = args[args.index('-ngram-order') + 1]
    Path(args[args.index('-lm') + 1]).write_text(f'\\data\\\nngram order={order}\n')
    return 0


def _kaldilm(args, stdout):
    stdout.write('0 1 hello hello\n1\n')
    return 0


def _compile_hlg(args, stdout):
    _touch(_lang_dir(args) / 'HLG.pt')
    return 0


FAKE_HANDLERS = {
    'lhotse': (LhotseTool, _lhotse),
    'normalize_supervisions': (NormalizeSupervisionsTool, _normalize),
    'prepare_lang_g2pen': (PrepareLangG2pTool, _lexicon),
    'train_bpe_model': (TrainBpeModelTool, _train_bpe),
    'prepare_lang_bpe': (PrepareLangBpeTool, _lexicon),
    'make_kn_lm': (MakeKneserNeyLmTool, _make_kn_lm),
    'kaldilm': (KaldilmTool, _kaldilm),
    'compile_hlg': (CompileHlgTool, _compile_hlg),
}


def build_fake_tool(tool_cls, handler):
    """
    Instance of ``tool_cls`` whose subprocess is replaced by ``handler``.

    ``handler(args, stdout)`` receives the arguments after the command
    prefix and the stdout file (or None) and returns the exit status.
    """
    class FakeTool(tool_cls):
        def _run_subprocess(self, command, stdout=None):
            returncode = handler(command[len(self.command):], stdout) or 0
            return subprocess.CompletedProcess(command, returncode, stdout=None)

    FakeTool.__name__ = f'Fake{tool_cls.__name__}'
    return FakeTool(echo=False)


@pytest.fixture
def make_fake_tool():
    """Return the fake tool builder."""
    return build_fake_tool


@pytest.fixture
def fake_tools() -> dict:
    """One fake per registered tool, producing small but valid outputs."""
    return {
        name: build_fake_tool(tool_cls, handler)
        for name, (tool_cls, handler) in FAKE_HANDLERS.items()
    }


# ============================================================
# STAGE FIXTURES
# ============================================================

def _run_stage(config, module, tools=None):
    stage = Stage(
        index=module.STAGE_INDEX,
        name=module.STAGE_NAME,
        body=module.run,
        module=module.__name__.rsplit('.', 1)[-1],
    )
    cfg = config.with_overrides(stage=stage.index, stop_stage=stage.index)
    return StageRunner(cfg, [stage], tools=tools).run()


@pytest.fixture
def run_stage():
    """Return a function running one stage module with the given config and tools."""
    return _run_stage
