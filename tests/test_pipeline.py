#!/usr/bin/env python3
"""
Tests for src/pipeline.py

Tests cover:
- CLI argument parsing
- Configuration from flags
- Stage discovery
- Command routing and exit status
"""
from __future__ import annotations

import pytest
import sys
from pathlib import Path
from unittest.mock import patch

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from pipeline import config_from_args, discover_stages, load_stages, main, parse_args

STAGE_MODULES = [
    's00_download',
    's01_fisher',
    's02_swbd',
    's03_musan',
    's04_combine',
    's06_transcripts',
    's07_lang_phone',
    's08_lang_bpe',
    's09_lm',
    's10_hlg',
]


class TestParseArgs:
    """Tests for argument parsing."""

    def test_run_defaults(self):
        """Unset flags are None so the config file is not masked."""
        with patch('sys.argv', ['pipeline.py', 'run']):
            args = parse_args()
        assert args.cmd == 'run'
        assert args.stage is None
        assert args.stop_stage is None
        assert args.vocab_sizes is None
        assert args.force is False

    def test_stage_range(self):
        args = parse_args(['run', '--stage', '4', '--stop-stage', '6'])
        assert (args.stage, args.stop_stage) == (4, 6)

    def test_vocab_size_repeatable(self):
        args = parse_args(['run', '--vocab-size', '500', '--vocab-size', '2000'])
        assert args.vocab_sizes == [500, 2000]

    def test_seed_exclusive(self):
        """--seed and --no-seed cannot be combined."""
        with pytest.raises(SystemExit):
            parse_args(['run', '--seed', '1', '--no-seed'])

    def test_status_verify(self):
        args = parse_args(['status', '--verify'])
        assert args.cmd == 'status'
        assert args.verify is True

    def test_command_required(self):
        with patch('sys.argv', ['pipeline.py']):
            with pytest.raises(SystemExit):
                parse_args()

    def test_unknown_command(self):
        with pytest.raises(SystemExit):
            parse_args(['ingest_data'])


class TestConfigFromArgs:
    """Tests for config_from_args()."""

    def test_flags_override_file(self, sample_config_yaml, temp_dir):
        args = parse_args([
            'run', '--config', str(sample_config_yaml),
            '--stage', '3', '--vocab-size', '1000', '--data-dir', str(temp_dir / 'd'),
        ])
        cfg = config_from_args(args)
        assert cfg.stage == 3
        assert cfg.stop_stage == 8
        assert cfg.vocab_sizes == (1000,)
        assert cfg.data_dir == (temp_dir / 'd').resolve()

    def test_paths_absolute(self, sample_config_yaml):
        """Relative directories are resolved against the current directory."""
        cfg = config_from_args(parse_args(['run', '--config', str(sample_config_yaml)]))
        assert cfg.data_dir.is_absolute()
        assert cfg.dl_dir.is_absolute()
        assert cfg.recipe_dir.is_absolute()

    def test_no_seed(self, sample_config_yaml):
        cfg = config_from_args(parse_args(['run', '--config', str(sample_config_yaml), '--no-seed']))
        assert cfg.shuffle_seed is None

    def test_seed(self, sample_config_yaml):
        cfg = config_from_args(parse_args(['run', '--config', str(sample_config_yaml), '--seed', '7']))
        assert cfg.shuffle_seed == 7

    def test_switches(self, sample_config_yaml):
        cfg = config_from_args(parse_args([
            'run', '--config', str(sample_config_yaml),
            '--force', '--no-markers', '--no-qa', '--verbose',
        ]))
        assert cfg.force is True
        assert cfg.use_markers is False
        assert cfg.qa_reports is False
        assert cfg.verbose is True


class TestDiscoverStages:
    """Tests for stage discovery."""

    def test_all_modules_found(self):
        assert [name for name, _ in discover_stages()] == STAGE_MODULES

    def test_descriptions(self):
        """Each stage documents its purpose."""
        assert all(desc for _, desc in discover_stages())

    def test_prefix(self):
        assert [name for name, _ in discover_stages('s0')][-1] == 's09_lm'

    def test_load_stages(self):
        """Indices follow the recipe numbering (there is no stage 5)."""
        stages = load_stages()
        assert [s.index for s in stages] == [0, 1, 2, 3, 4, 6, 7, 8, 9, 10]
        assert stages[4].module == 's04_combine'


class TestMain:
    """Tests for main() routing and exit status."""

    def test_list_stages(self, capsys):
        assert main(['list_stages']) == 0
        assert 's07_lang_phone' in capsys.readouterr().out

    def test_empty_range(self, temp_dir):
        """A range with no stages succeeds without doing anything."""
        code = main([
            'run', '--data-dir', str(temp_dir / 'data'), '--dl-dir', str(temp_dir / 'dl'),
            '--stage', '50', '--stop-stage', '60',
        ])
        assert code == 0

    def test_invalid_range(self, temp_dir):
        """Configuration errors exit with 1."""
        code = main([
            'run', '--data-dir', str(temp_dir / 'data'), '--dl-dir', str(temp_dir / 'dl'),
            '--stage', '6', '--stop-stage', '4',
        ])
        assert code == 1

    def test_tool_exit_status_propagated(self, temp_dir):
        """The failing tool's exit status becomes the pipeline's."""
        config = temp_dir / 'fail.yml'
        config.write_text(
            "tools:\n"
            "  lhotse:\n"
            f"    command: ['{sys.executable}', '-c', 'import sys; sys.exit(3)']\n"
        )
        code = main([
            'run', '--config', str(config),
            '--data-dir', str(temp_dir / 'data'), '--dl-dir', str(temp_dir / 'dl'),
            '--stage', '1', '--stop-stage', '2',
        ])
        assert code == 3
        # Fail-fast: stage 2 never started
        assert not (temp_dir / 'data' / 'manifests' / 'swbd').exists()
        assert not list((temp_dir / 'data' / '.markers').glob('*.json'))

    def test_missing_tool(self, temp_dir):
        """A missing executable exits with 127."""
        config = temp_dir / 'missing.yml'
        config.write_text("tools:\n  lhotse:\n    command: [definitely-not-a-real-tool-xyz]\n")
        code = main([
            'run', '--config', str(config),
            '--data-dir', str(temp_dir / 'data'), '--dl-dir', str(temp_dir / 'dl'),
            '--stage', '1', '--stop-stage', '1',
        ])
        assert code == 127

    def test_status_empty(self, temp_dir, capsys):
        assert main(['status', '--data-dir', str(temp_dir)]) == 0
        assert 'No completed steps' in capsys.readouterr().out

    def test_clear_markers(self, temp_dir, capsys):
        markers = temp_dir / '.markers'
        markers.mkdir()
        (markers / 'a.done.json').write_text('{"key": "a"}')
        assert main(['clear_markers', '--data-dir', str(temp_dir)]) == 0
        assert not list(markers.iterdir())

    def test_list_tools(self, capsys):
        assert main(['list_tools']) == 0
        assert 'compile_hlg' in capsys.readouterr().out
