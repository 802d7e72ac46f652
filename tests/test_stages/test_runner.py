#!/usr/bin/env python3
"""
Tests for src/stages/_runner.py

Tests cover:
- Inclusive stage range selection
- Fail-fast behaviour and the attached run report
- Step idempotence, force and completion policies
- Tool construction from configuration
"""
from __future__ import annotations

import pytest
import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / 'src'))

from stages._runner import (
    MissingOutputError,
    Stage,
    StageContext,
    StageRunner,
    StageStatus,
)
from tools import ToolError
from utils.markers import CompletionMarkers


def make_stages(indices, log, fail_at=None):
    """Stages that record their index when run."""
    def body_for(index):
        def body(ctx):
            log.append(index)
            if index == fail_at:
                raise ToolError('fake', ['fake'], 5)
        return body
    return [Stage(i, f'stage {i}', body_for(i)) for i in indices]


@pytest.fixture
def context(pipeline_config):
    """A StageContext for a dummy stage."""
    markers = CompletionMarkers(pipeline_config.markers_dir)
    return StageContext(pipeline_config, Stage(1, 'dummy', lambda ctx: None), markers)


# ============================================================
# STAGE SELECTION
# ============================================================

class TestStageSelection:
    """Tests for range selection in StageRunner."""

    def test_inclusive_range(self, pipeline_config):
        """Exactly the stages in [stage, stop_stage] run, in order."""
        log = []
        cfg = pipeline_config.with_overrides(stage=2, stop_stage=4)
        report = StageRunner(cfg, make_stages(range(7), log)).run()
        assert log == [2, 3, 4]
        assert report.executed == [2, 3, 4]
        assert report.skipped == [0, 1, 5, 6]

    def test_single_stage(self, pipeline_config):
        """stage == stop_stage runs one stage."""
        log = []
        cfg = pipeline_config.with_overrides(stage=3, stop_stage=3)
        StageRunner(cfg, make_stages(range(7), log)).run()
        assert log == [3]

    def test_gaps_in_indices(self, pipeline_config):
        """Missing indices are simply absent from the run."""
        log = []
        cfg = pipeline_config.with_overrides(stage=4, stop_stage=7)
        StageRunner(cfg, make_stages([0, 4, 6, 7, 8], log)).run()
        assert log == [4, 6, 7]

    def test_empty_range(self, pipeline_config):
        """A range that matches nothing runs nothing."""
        log = []
        cfg = pipeline_config.with_overrides(stage=50, stop_stage=60)
        report = StageRunner(cfg, make_stages(range(5), log)).run()
        assert log == []
        assert report.success

    def test_out_of_order_definition(self, pipeline_config):
        """Stages run in index order regardless of definition order."""
        log = []
        StageRunner(pipeline_config, make_stages([3, 1, 2], log)).run()
        assert log == [1, 2, 3]

    def test_duplicate_indices(self, pipeline_config):
        """Two stages cannot share an index."""
        with pytest.raises(ValueError, match='Duplicate'):
            StageRunner(pipeline_config, make_stages([1, 2, 2], []))


# ============================================================
# FAIL-FAST
# ============================================================

class TestFailFast:
    """Tests for abort-on-first-failure."""

    def test_later_stages_not_run(self, pipeline_config):
        """A failing stage stops the run."""
        log = []
        runner = StageRunner(pipeline_config, make_stages(range(6), log, fail_at=2))
        with pytest.raises(ToolError) as exc_info:
            runner.run()
        assert log == [0, 1, 2]
        assert exc_info.value.returncode == 5

    def test_report_attached(self, pipeline_config):
        """The partial report travels with the exception."""
        runner = StageRunner(pipeline_config, make_stages(range(4), [], fail_at=1))
        with pytest.raises(ToolError) as exc_info:
            runner.run()
        report = exc_info.value.report
        assert report.failed.index == 1
        assert report.status_of(0) == StageStatus.SUCCESS
        assert report.status_of(2) is None
        assert not report.success


# ============================================================
# STEPS
# ============================================================

class TestStep:
    """Tests for StageContext.step()."""

    def test_second_run_skips(self, context, temp_dir):
        """A completed step is not repeated."""
        out = temp_dir / 'out.txt'
        calls = []

        def action():
            calls.append(1)
            out.write_text('x')

        assert context.step('k', [out], action) is True
        assert context.step('k', [out], action) is False
        assert len(calls) == 1
        assert context.result.steps_run == 1
        assert context.result.steps_skipped == 1

    def test_output_without_marker_reruns(self, context, temp_dir):
        """An output of unknown provenance is regenerated."""
        out = temp_dir / 'out.txt'
        out.write_text('stale')
        context.step('k', [out], lambda: out.write_text('fresh'))
        assert out.read_text() == 'fresh'

    def test_changed_input_reruns(self, context, temp_dir):
        """Changing a dependency invalidates the step."""
        src = temp_dir / 'in.txt'
        out = temp_dir / 'out.txt'
        src.write_text('a')

        def action():
            out.write_text(src.read_text().upper())

        context.step('k', [out], action, depends_on={'src': src})
        src.write_text('bb')
        assert context.step('k', [out], action, depends_on={'src': src}) is True
        assert out.read_text() == 'BB'

    def test_changed_parameter_reruns(self, context, temp_dir):
        """Changing a parameter invalidates the step."""
        out = temp_dir / 'out.txt'
        context.step('k', [out], lambda: out.write_text('1'), depends_on={'n': 1})
        assert context.step('k', [out], lambda: out.write_text('2'), depends_on={'n': 2}) is True

    def test_force(self, context, temp_dir):
        """force re-runs completed steps."""
        out = temp_dir / 'out.txt'
        context.step('k', [out], lambda: out.write_text('1'))
        context.config = context.config.with_overrides(force=True)
        assert context.step('k', [out], lambda: out.write_text('2')) is True
        assert out.read_text() == '2'

    def test_missing_output(self, context, temp_dir):
        """A step that does not create its outputs fails."""
        out = temp_dir / 'never.txt'
        with pytest.raises(MissingOutputError) as exc_info:
            context.step('k', [out], lambda: None)
        assert exc_info.value.missing == [out]
        assert context.markers.read('k') is None

    def test_failed_action_leaves_no_marker(self, context, temp_dir):
        """An exception from the action propagates and nothing is recorded."""
        out = temp_dir / 'out.txt'

        def action():
            out.write_text('partial')
            raise ToolError('fake', ['fake'], 2)

        with pytest.raises(ToolError):
            context.step('k', [out], action)
        assert context.markers.read('k') is None

    def test_exists_policy(self, context, temp_dir):
        """check='exists' accepts outputs without a marker."""
        out = temp_dir / 'given'
        out.mkdir()
        assert context.step('k', [out], lambda: None, check='exists') is False

    def test_always_policy(self, context, temp_dir):
        """check='always' never skips."""
        out = temp_dir / 'out.txt'
        context.step('k', [out], lambda: out.write_text('1'), check='always')
        assert context.step('k', [out], lambda: out.write_text('2'), check='always') is True

    def test_unknown_policy(self, context, temp_dir):
        """Unknown policies are rejected."""
        with pytest.raises(ValueError):
            context.step('k', [temp_dir / 'x'], lambda: None, check='sometimes')

    def test_markers_disabled(self, pipeline_config, temp_dir):
        """Without markers, existing outputs are enough to skip."""
        cfg = pipeline_config.with_overrides(use_markers=False)
        markers = CompletionMarkers(cfg.markers_dir, enabled=False)
        ctx = StageContext(cfg, Stage(1, 'dummy', lambda c: None), markers)
        out = temp_dir / 'out.txt'
        out.write_text('given')
        assert ctx.step('k', [out], lambda: out.write_text('new')) is False
        assert out.read_text() == 'given'


# ============================================================
# TOOLS
# ============================================================

class TestContextTools:
    """Tests for StageContext.tool()."""

    def test_command_override(self, pipeline_config):
        """Configured command and recipe dir are applied."""
        cfg = pipeline_config.with_overrides(tools={'lhotse': {'command': ['my-lhotse']}})
        ctx = StageContext(cfg, Stage(1, 'dummy', lambda c: None), CompletionMarkers(cfg.markers_dir))
        tool = ctx.tool('lhotse')
        assert tool.command == ['my-lhotse']
        assert tool.cwd == cfg.recipe_dir

    def test_tool_cached(self, context):
        """The same instance is returned for repeated lookups."""
        assert context.tool('kaldilm') is context.tool('kaldilm')

    def test_prebuilt_tools_used(self, pipeline_config, fake_tools):
        """Tools passed to the runner take precedence over the registry."""
        seen = []
        stage = Stage(1, 'probe', lambda ctx: seen.append(ctx.tool('lhotse')))
        StageRunner(pipeline_config, [stage], tools=fake_tools).run()
        assert seen == [fake_tools['lhotse']]
