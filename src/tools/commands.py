"""
Tool Implementations used by the recipe.

- lhotse: corpus download, manifest preparation and cut manipulation
- kaldilm: ARPA to OpenFst text conversion
- recipe scripts under local/ and shared/: supervision normalization,
  lexicon preparation, BPE training, n-gram estimation, HLG compilation

Script paths are relative to the tool's working directory, which the
stage runner sets to the configured recipe directory.
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterable, Optional, Union

from .base import BaseCorpusTool, ToolResult
from .factory import register_tool

PathLike = Union[str, Path]


def _options(**options) -> list[str]:
    """
    Render keyword options as CLI flags.

    ``True`` becomes a bare flag, ``False``/``None`` are dropped and
    anything else becomes ``--name value``. Underscores turn into dashes.
    """
    args: list[str] = []
    for key, value in options.items():
        flag = '--' + key.replace('_', '-')
        if value is True:
            args.append(flag)
        elif value is False or value is None:
            continue
        else:
            args.extend([flag, str(value)])
    return args


# =============================================================================
# LHOTSE
# =============================================================================

@register_tool('lhotse')
class LhotseTool(BaseCorpusTool):
    """The ``lhotse`` command line interface."""

    default_command = ['lhotse']

    def download_musan(self, target_dir: PathLike) -> ToolResult:
        return self.run(['download', 'musan', target_dir])

    def prepare(self, recipe: str, *positional: PathLike, **options) -> ToolResult:
        """Run ``lhotse prepare <recipe> [options] <positional...>``."""
        return self.run(['prepare', recipe, *_options(**options), *positional])

    def combine(self, inputs: Iterable[PathLike], output: PathLike) -> ToolResult:
        return self.run(['combine', *inputs, output])

    def cut_simple(
        self,
        recordings: PathLike,
        supervisions: PathLike,
        output: PathLike,
    ) -> ToolResult:
        """Create one cut per recording (whole sessions)."""
        return self.run(['cut', 'simple', '-r', recordings, '-s', supervisions, output])

    def trim_to_supervisions(
        self,
        cuts: PathLike,
        output: PathLike,
        discard_overlapping: bool = True,
    ) -> ToolResult:
        """Split cuts into one cut per supervision segment."""
        return self.run([
            'cut', 'trim-to-supervisions',
            *_options(discard_overlapping=discard_overlapping),
            cuts, output,
        ])


# =============================================================================
# KALDILM
# =============================================================================

@register_tool('kaldilm')
class KaldilmTool(BaseCorpusTool):
    """``python -m kaldilm``: converts an ARPA LM to an FST in text form."""

    default_command = [sys.executable, '-m', 'kaldilm']

    def arpa_to_fst(
        self,
        arpa: PathLike,
        symbol_table: PathLike,
        output: Path,
        max_order: int,
        disambig_symbol: str = '#0',
    ) -> ToolResult:
        """Write the FST for ``arpa`` to ``output`` (captured from stdout)."""
        return self.run(
            [
                f'--read-symbol-table={symbol_table}',
                f'--disambig-symbol={disambig_symbol}',
                f'--max-order={max_order}',
                arpa,
            ],
            stdout_path=output,
        )


# =============================================================================
# RECIPE SCRIPTS
# =============================================================================

class RecipeScript(BaseCorpusTool):
    """A Python script shipped with the recipe, run with this interpreter."""

    script = ''

    def __init__(self, command=None, timeout=None, cwd: Optional[Path] = None, echo: bool = True):
        if command is None:
            command = [sys.executable, self.script]
        super().__init__(command=command, timeout=timeout, cwd=cwd, echo=echo)


@register_tool('normalize_supervisions')
class NormalizeSupervisionsTool(RecipeScript):
    """Normalize transcripts and drop supervisions that are hard to train on."""

    script = 'local/normalize_and_filter_supervisions.py'

    def normalize(self, supervisions: PathLike, output: PathLike) -> ToolResult:
        return self.run([supervisions, output])


@register_tool('prepare_lang_g2pen')
class PrepareLangG2pTool(RecipeScript):
    """Phone lexicon from words.txt using g2p_en."""

    script = 'local/prepare_lang_g2pen.py'

    def prepare(self, lang_dir: PathLike) -> ToolResult:
        return self.run(['--lang-dir', lang_dir])


@register_tool('train_bpe_model')
class TrainBpeModelTool(RecipeScript):
    script = 'local/train_bpe_model.py'

    def train(self, lang_dir: PathLike, vocab_size: int, transcript: PathLike) -> ToolResult:
        return self.run([
            '--lang-dir', lang_dir,
            '--vocab-size', vocab_size,
            '--transcript', transcript,
        ])


@register_tool('prepare_lang_bpe')
class PrepareLangBpeTool(RecipeScript):
    script = 'local/prepare_lang_bpe.py'

    def prepare(self, lang_dir: PathLike) -> ToolResult:
        return self.run(['--lang-dir', lang_dir])


@register_tool('make_kn_lm')
class MakeKneserNeyLmTool(RecipeScript):
    """Kneser-Ney n-gram estimation to an ARPA file."""

    script = 'shared/make_kn_lm.py'

    def estimate(self, text: PathLike, lm: PathLike, order: int) -> ToolResult:
        return self.run(['-ngram-order', order, '-text', text, '-lm', lm])


@register_tool('compile_hlg')
class CompileHlgTool(RecipeScript):
    script = 'local/compile_hlg.py'

    def compile(self, lang_dir: PathLike) -> ToolResult:
        return self.run(['--lang-dir', lang_dir])
