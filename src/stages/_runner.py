#!/usr/bin/env python3
"""
Stage runner for the data preparation pipeline.

A pipeline is an ordered list of integer-indexed stages. A run executes,
in index order, every stage whose index falls inside the configured
inclusive range ``[stage, stop_stage]``; the others are skipped. Each
stage body is a sequence of steps; a step is skipped when its outputs
are already complete, and the first failing step aborts the whole run.

Usage
-----
    from stages._runner import Stage, StageRunner

    runner = StageRunner(cfg, stages)
    report = runner.run()
    print(report.summary())
"""
from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

sys.path.insert(0, str(Path(__file__).parent.parent))

from config import PipelineConfig
from tools import CorpusTool, get_tool
from utils.helpers import log
from utils.markers import CompletionMarkers


# ============================================================
# ERRORS
# ============================================================

class PipelineError(RuntimeError):
    """Base class for errors raised by pipeline stages."""


class MissingOutputError(PipelineError):
    """A step finished without producing one of its declared outputs."""

    def __init__(self, key: str, missing: Sequence[Path]):
        self.key = key
        self.missing = [Path(p) for p in missing]
        listed = ', '.join(str(p) for p in self.missing)
        super().__init__(f"step '{key}' did not produce: {listed}")


# ============================================================
# TYPES
# ============================================================

class StageStatus(str, Enum):
    """Lifecycle of a stage within one run."""

    PENDING = 'pending'
    RUNNING = 'running'
    SUCCESS = 'success'
    FAILED = 'failed'
    SKIPPED = 'skipped'


# Completion policies for steps
CHECK_MARKER = 'marker'    # outputs exist and a matching marker exists
CHECK_EXISTS = 'exists'    # outputs exist
CHECK_ALWAYS = 'always'    # never skip
CHECK_POLICIES = (CHECK_MARKER, CHECK_EXISTS, CHECK_ALWAYS)


@dataclass
class Stage:
    """
    One unit of the pipeline.

    Attributes
    ----------
    index : int
        Position in the pipeline; also the value compared against the
        configured stage range
    name : str
        Human-readable name shown in logs
    body : callable
        Function taking a StageContext
    module : str
        Module the stage was loaded from (used as the log tag)
    """

    index: int
    name: str
    body: Callable[['StageContext'], None]
    module: str = ''

    @property
    def tag(self) -> str:
        return self.module or f's{self.index:02d}'


@dataclass
class StageResult:
    """Status and counters for one stage in a run."""

    index: int
    name: str
    status: StageStatus = StageStatus.PENDING
    steps_run: int = 0
    steps_skipped: int = 0
    elapsed_seconds: float = 0.0
    error: Optional[str] = None


@dataclass
class RunReport:
    """Outcome of a pipeline run."""

    results: list = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def executed(self) -> list[int]:
        """Indices of stages whose bodies ran (successfully or not)."""
        return [r.index for r in self.results
                if r.status in (StageStatus.SUCCESS, StageStatus.FAILED)]

    @property
    def skipped(self) -> list[int]:
        return [r.index for r in self.results if r.status == StageStatus.SKIPPED]

    @property
    def failed(self) -> Optional[StageResult]:
        for r in self.results:
            if r.status == StageStatus.FAILED:
                return r
        return None

    @property
    def success(self) -> bool:
        return self.failed is None

    def status_of(self, index: int) -> Optional[StageStatus]:
        for r in self.results:
            if r.index == index:
                return r.status
        return None

    def summary(self) -> str:
        """Human-readable table of stage outcomes."""
        lines = []
        for r in self.results:
            if r.status == StageStatus.SKIPPED:
                continue
            counts = f"{r.steps_run} run, {r.steps_skipped} up to date"
            lines.append(
                f"  Stage {r.index:>2} {r.name:<40} {r.status.value:<8} "
                f"{counts} ({r.elapsed_seconds:.1f}s)"
            )
        lines.append(f"  Total: {self.elapsed_seconds:.1f}s")
        return '\n'.join(lines)


# ============================================================
# STAGE CONTEXT
# ============================================================

class StageContext:
    """
    Everything a stage body needs: configuration, tools, markers.

    Parameters
    ----------
    config : PipelineConfig
        Run configuration
    stage : Stage
        Stage being executed
    markers : CompletionMarkers
        Marker store for idempotence checks
    tools : dict, optional
        Pre-built tools by name; anything missing is built from the
        registry with the configured command overrides
    result : StageResult, optional
        Counters updated as steps run or are skipped
    """

    def __init__(
        self,
        config: PipelineConfig,
        stage: Stage,
        markers: CompletionMarkers,
        tools: Optional[dict] = None,
        result: Optional[StageResult] = None,
    ):
        self.config = config
        self.stage = stage
        self.markers = markers
        self._tools = tools if tools is not None else {}
        self.result = result or StageResult(stage.index, stage.name)

    def log(self, message: str) -> None:
        log(message, stage=self.stage.tag)

    def tool(self, name: str) -> CorpusTool:
        """Get (and cache) the external tool registered under ``name``."""
        if name not in self._tools:
            settings = self.config.tool_settings(name)
            self._tools[name] = get_tool(
                name,
                command=settings.get('command'),
                timeout=settings.get('timeout', self.config.tool_timeout),
                cwd=self.config.recipe_dir,
            )
        return self._tools[name]

    def step(
        self,
        key: str,
        outputs: Iterable[Path],
        action: Callable[[], object],
        depends_on: Optional[dict] = None,
        check: str = CHECK_MARKER,
    ) -> bool:
        """
        Run one idempotent unit of work.

        Parameters
        ----------
        key : str
            Step identifier, unique within the pipeline
            (e.g. 's08_lang_bpe/500/train_bpe')
        outputs : iterable of Path
            Files or directories the step must produce
        action : callable
            Does the work; its return value is ignored
        depends_on : dict, optional
            Inputs and parameters recorded in the marker; a change
            makes the step run again
        check : str
            Completion policy: 'marker', 'exists' or 'always'

        Returns
        -------
        bool
            True if the action ran, False if the step was up to date

        Raises
        ------
        MissingOutputError
            If the action returns without creating every output
        """
        if check not in CHECK_POLICIES:
            raise ValueError(f"Unknown check policy '{check}'. Options: {CHECK_POLICIES}")

        outputs = [Path(p) for p in outputs]
        if not self.config.force and self._is_complete(key, outputs, depends_on, check):
            self.result.steps_skipped += 1
            if self.config.verbose:
                self.log(f"{key}: up to date, skipping")
            return False

        # A stale marker must not survive a partial rewrite of the outputs
        self.markers.invalidate(key)

        start = time.time()
        action()
        elapsed = time.time() - start

        missing = [p for p in outputs if not p.exists()]
        if missing:
            raise MissingOutputError(key, missing)

        self.markers.mark_complete(
            key, outputs, depends_on=depends_on,
            stage=self.stage.tag, elapsed=elapsed,
        )
        self.result.steps_run += 1
        return True

    def _is_complete(self, key, outputs, depends_on, check) -> bool:
        if check == CHECK_ALWAYS:
            return False
        if check == CHECK_EXISTS:
            return all(p.exists() for p in outputs)
        return self.markers.is_complete(key, outputs, depends_on)


# ============================================================
# RUNNER
# ============================================================

class StageRunner:
    """
    Executes the selected stages of a pipeline in index order.

    Parameters
    ----------
    config : PipelineConfig
        Run configuration (stage range, paths, tool overrides)
    stages : sequence of Stage
        All stages of the pipeline; indices must be unique
    tools : dict, optional
        Pre-built tools shared by all stages (mostly for tests)
    markers : CompletionMarkers, optional
        Marker store (default: config.markers_dir)
    """

    def __init__(
        self,
        config: PipelineConfig,
        stages: Sequence[Stage],
        tools: Optional[dict] = None,
        markers: Optional[CompletionMarkers] = None,
    ):
        indices = [s.index for s in stages]
        duplicates = sorted({i for i in indices if indices.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate stage indices: {duplicates}")

        self.config = config
        self.stages = sorted(stages, key=lambda s: s.index)
        self.tools = tools if tools is not None else {}
        self.markers = markers or CompletionMarkers(
            config.markers_dir, enabled=config.use_markers
        )

    def selected(self) -> list[Stage]:
        """Stages inside the configured range, in index order."""
        return [s for s in self.stages if self.config.in_range(s.index)]

    def run(self) -> RunReport:
        """
        Execute every selected stage.

        Returns
        -------
        RunReport
            Per-stage results

        Raises
        ------
        Exception
            The first error raised by a stage body; the report so far is
            attached as ``error.report`` and no later stage runs
        """
        report = RunReport()
        start = time.time()

        for stage in self.stages:
            result = StageResult(stage.index, stage.name)
            report.results.append(result)

            if not self.config.in_range(stage.index):
                result.status = StageStatus.SKIPPED
                if self.config.verbose:
                    log(f"Stage {stage.index}: {stage.name} (not selected)", stage=stage.tag)
                continue

            log(f"Stage {stage.index}: {stage.name}", stage=stage.tag)
            ctx = StageContext(self.config, stage, self.markers, tools=self.tools, result=result)

            result.status = StageStatus.RUNNING
            stage_start = time.time()
            try:
                stage.body(ctx)
            except Exception as e:
                result.status = StageStatus.FAILED
                result.error = str(e)
                result.elapsed_seconds = time.time() - stage_start
                report.elapsed_seconds = time.time() - start
                e.report = report
                raise
            result.status = StageStatus.SUCCESS
            result.elapsed_seconds = time.time() - stage_start

        report.elapsed_seconds = time.time() - start
        return report
