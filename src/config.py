#!/usr/bin/env python3
"""
Configuration for the Fisher + Switchboard data preparation pipeline.

This module centralizes defaults, file naming conventions and the
run configuration record. A run is configured once at start (defaults,
then an optional YAML file, then command-line overrides) and the
resulting immutable ``PipelineConfig`` is passed explicitly to the
stage runner.

Usage
-----
    from config import load_config, validate_config

    cfg = load_config('conf/pipeline.yml', overrides={'stage': 4, 'stop_stage': 6})
    validate_config(cfg)

    cfg.manifests_dir          # data/manifests
    cfg.lang_bpe_dir(500)      # data/lang_bpe_500
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml


# =============================================================================
# PATHS
# =============================================================================

def _find_project_root() -> Path:
    """Find project root by looking for characteristic directories."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'src').exists() and (parent / 'conf').exists():
            return parent
    # Fallback: use parent of src/
    return Path(__file__).resolve().parent.parent


PROJECT_ROOT = _find_project_root()

# Default YAML configuration
DEFAULT_CONFIG_PATH = PROJECT_ROOT / 'conf' / 'pipeline.yml'

# Download directory (raw corpora) and working directory (all outputs),
# relative to the current directory unless absolute
DEFAULT_DL_DIR = Path('download')
DEFAULT_DATA_DIR = Path('data')

# Directory holding the recipe's local/ and shared/ scripts
DEFAULT_RECIPE_DIR = Path('.')


# =============================================================================
# STAGE SELECTION
# =============================================================================

# Inclusive range; the defaults run every stage
DEFAULT_STAGE = -1
DEFAULT_STOP_STAGE = 100

# Reserved parallelism hint (number of jobs)
DEFAULT_NJ = 15


# =============================================================================
# CORPORA
# =============================================================================

# LDC packages linked into the download directory in stage 0
# (Fisher English speech/transcripts parts 1-2, Switchboard-1)
LDC_PACKAGES = ('LDC2004S13', 'LDC2004T19', 'LDC2005S13', 'LDC2005T19', 'LDC97S62')

# Switchboard package directory inside the download directory
SWBD_PACKAGE = 'LDC97S62'

# MUSAN parts produced by `lhotse prepare musan`
MUSAN_PARTS = ('music', 'speech', 'noise')


# =============================================================================
# SPLITS AND RANDOMNESS
# =============================================================================

# 20 full sessions is about 2h of dev data
NUM_DEV_SESSIONS = 20

# Seed for shuffling cuts before the train/dev split; None = unseeded
SHUFFLE_SEED = 42


# =============================================================================
# LEXICON AND LANGUAGE MODEL
# =============================================================================

# Vocabulary sizes for BPE lang dirs (data/lang_bpe_<size>)
VOCAB_SIZES = (500,)

# N-gram order for the word LM
LM_ORDER = 3

# Symbols at the head of words.txt, with fixed ids 0, 1, 2
SPECIAL_WORDS = ('<eps>', '!SIL', '[UNK]')

# Symbols appended after the regular words, as expected by LM scripts
LM_SPECIAL_WORDS = ('<s>', '</s>', '#0')

# Disambiguation symbol passed to kaldilm
DISAMBIG_SYMBOL = '#0'


# =============================================================================
# FILE NAMING CONVENTIONS
# =============================================================================

FISHER_RECORDINGS = 'recordings.jsonl.gz'
FISHER_SUPERVISIONS = 'supervisions.jsonl.gz'
SWBD_RECORDINGS = 'swbd_recordings.jsonl'
SWBD_SUPERVISIONS = 'swbd_supervisions.jsonl'

COMBINED_RECORDINGS = 'fisher-swbd_recordings.jsonl.gz'
COMBINED_SUPERVISIONS = 'fisher-swbd_supervisions.jsonl.gz'
NORM_SUPERVISIONS = 'fisher-swbd_supervisions_norm.jsonl.gz'
CUTS_UNSHUFFLED = 'fisher-swbd_cuts_unshuf.jsonl.gz'
CUTS_SHUFFLED = 'fisher-swbd_cuts.jsonl.gz'
DEV_CUTS = 'dev_fisher-swbd_cuts.jsonl.gz'
TRAIN_CUTS = 'train_fisher-swbd_cuts.jsonl.gz'
DEV_UTTERANCE_CUTS = 'dev_utterances_fisher-swbd_cuts.jsonl.gz'
TRAIN_UTTERANCE_CUTS = 'train_utterances_fisher-swbd_cuts.jsonl.gz'

TRANSCRIPT_FILE = 'transcript_words.txt'
WORDS_FILE = 'words.txt'
LEXICON_FILE = 'L_disambig.pt'
BPE_MODEL_FILE = 'bpe.model'
ARPA_FILE = 'G.arpa'
HLG_FILE = 'HLG.pt'


# =============================================================================
# EXECUTION SETTINGS
# =============================================================================

# Record a completion marker after each step (see utils.markers)
USE_MARKERS = True

# Per-tool timeout in seconds; None waits indefinitely
TOOL_TIMEOUT = None


# =============================================================================
# QUALITY ASSURANCE
# =============================================================================

# Enable per-stage QA report generation
ENABLE_QA_REPORTS = True

# QA thresholds (warnings only)
QA_THRESHOLDS = {
    'min_cuts': 100,          # Warn if fewer full-session cuts
    'min_dev_cuts': 1,        # Warn if the dev split is empty
    'min_words': 1000,        # Warn if words.txt is suspiciously small
}


# =============================================================================
# RUN CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class PipelineConfig:
    """
    Immutable configuration for one pipeline run.

    Attributes
    ----------
    dl_dir : Path
        Directory with raw corpora (LDC packages, musan)
    data_dir : Path
        Root of every artifact written by the pipeline
    stage, stop_stage : int
        Inclusive range of stage indices to execute
    vocab_sizes : tuple[int, ...]
        BPE vocabulary sizes; one lang_bpe_<size> directory each
    nj : int
        Parallelism hint (reserved)
    num_dev_sessions : int
        Number of full-session cuts moved to the dev split
    shuffle_seed : int or None
        Seed for shuffling cuts; None leaves the shuffle unseeded
    lm_order : int
        N-gram order of the word LM
    ldc_root : Path or None
        Directory with pre-downloaded LDC packages to symlink
    ldc_packages : tuple[str, ...]
        LDC package names to link from ldc_root
    recipe_dir : Path
        Directory containing the local/ and shared/ recipe scripts
    tools : dict
        Per-tool overrides, e.g. {'lhotse': {'command': ['lhotse']}}
    use_markers : bool
        Require completion markers (not just outputs) to skip a step
    force : bool
        Re-run every selected step regardless of existing outputs
    tool_timeout : float or None
        Per-invocation timeout in seconds
    qa_reports : bool
        Write per-stage QA reports under data_dir/quality
    verbose : bool
        Log skipped stages and steps
    """

    dl_dir: Path = DEFAULT_DL_DIR
    data_dir: Path = DEFAULT_DATA_DIR
    stage: int = DEFAULT_STAGE
    stop_stage: int = DEFAULT_STOP_STAGE
    vocab_sizes: tuple = VOCAB_SIZES
    nj: int = DEFAULT_NJ
    num_dev_sessions: int = NUM_DEV_SESSIONS
    shuffle_seed: Optional[int] = SHUFFLE_SEED
    lm_order: int = LM_ORDER
    ldc_root: Optional[Path] = None
    ldc_packages: tuple = LDC_PACKAGES
    recipe_dir: Path = DEFAULT_RECIPE_DIR
    tools: dict = field(default_factory=dict)
    use_markers: bool = USE_MARKERS
    force: bool = False
    tool_timeout: Optional[float] = TOOL_TIMEOUT
    qa_reports: bool = ENABLE_QA_REPORTS
    verbose: bool = False

    # -------------------------------------------------------------------------
    # Stage selection
    # -------------------------------------------------------------------------

    def in_range(self, index: int) -> bool:
        """True if a stage with this index is selected for the run."""
        return self.stage <= index <= self.stop_stage

    # -------------------------------------------------------------------------
    # Layout
    # -------------------------------------------------------------------------

    @property
    def manifests_dir(self) -> Path:
        return self.data_dir / 'manifests'

    @property
    def fisher_dir(self) -> Path:
        return self.manifests_dir / 'fisher'

    @property
    def swbd_dir(self) -> Path:
        return self.manifests_dir / 'swbd'

    @property
    def lm_dir(self) -> Path:
        return self.data_dir / 'lm'

    @property
    def lang_phone_dir(self) -> Path:
        return self.data_dir / 'lang_phone'

    @property
    def quality_dir(self) -> Path:
        return self.data_dir / 'quality'

    @property
    def markers_dir(self) -> Path:
        return self.data_dir / '.markers'

    @property
    def musan_dir(self) -> Path:
        return self.dl_dir / 'musan'

    def lang_bpe_dir(self, vocab_size: int) -> Path:
        """Lang directory for one BPE vocabulary size."""
        return self.data_dir / f'lang_bpe_{vocab_size}'

    def manifest(self, name: str) -> Path:
        """Path of a combined manifest file under manifests/."""
        return self.manifests_dir / name

    # -------------------------------------------------------------------------
    # Tools
    # -------------------------------------------------------------------------

    def tool_settings(self, name: str) -> dict:
        """Overrides for one external tool (empty if none)."""
        return dict(self.tools.get(name) or {})

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> dict:
        """Plain-dict view for logging and hashing."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Path):
                data[key] = str(value)
            elif isinstance(value, tuple):
                data[key] = list(value)
        return data

    def with_overrides(self, **overrides) -> 'PipelineConfig':
        """Return a copy with some fields replaced."""
        return replace(self, **overrides)


_PATH_FIELDS = {'dl_dir', 'data_dir', 'recipe_dir', 'ldc_root'}
_INT_FIELDS = {'stage', 'stop_stage', 'nj', 'num_dev_sessions', 'lm_order'}
_BOOL_FIELDS = {'use_markers', 'force', 'qa_reports', 'verbose'}


def _coerce(name: str, value: Any) -> Any:
    """Convert a raw YAML/CLI value to the field's type."""
    if value is None:
        return None
    if name in _PATH_FIELDS:
        return Path(value).expanduser()
    if name in _INT_FIELDS:
        return int(value)
    if name in _BOOL_FIELDS:
        return bool(value)
    if name == 'vocab_sizes':
        if isinstance(value, (int, str)):
            value = [value]
        return tuple(int(v) for v in value)
    if name == 'ldc_packages':
        if isinstance(value, str):
            value = value.split()
        return tuple(str(v) for v in value)
    if name == 'shuffle_seed':
        return int(value)
    if name == 'tool_timeout':
        return float(value)
    if name == 'tools':
        if not isinstance(value, Mapping):
            raise ValueError(f"'tools' must be a mapping, got {type(value).__name__}")
        return {str(k): dict(v or {}) for k, v in value.items()}
    return value


def read_config_file(path: Union[str, Path]) -> dict:
    """
    Load a YAML configuration file.

    Parameters
    ----------
    path : str or Path
        YAML file with PipelineConfig field names as keys

    Returns
    -------
    dict
        Parsed configuration (empty if the file is empty)

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    ValueError
        If the top level is not a mapping
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config {path} must contain a mapping at the top level")
    return data


def load_config(
    path: Optional[Union[str, Path]] = None,
    overrides: Optional[dict] = None,
) -> PipelineConfig:
    """
    Build the run configuration.

    Values are layered: dataclass defaults, then the YAML file (if
    given), then ``overrides``. Override values that are None are
    ignored so that unset command-line flags do not mask the file.
    ``shuffle_seed`` is the exception: it may be set to None through
    the file to request an unseeded shuffle.

    Parameters
    ----------
    path : str or Path, optional
        YAML configuration file
    overrides : dict, optional
        Field values from the command line

    Returns
    -------
    PipelineConfig

    Raises
    ------
    ValueError
        If a key is not a PipelineConfig field
    """
    known = {f.name for f in fields(PipelineConfig)}
    values: dict[str, Any] = {}

    layers = []
    if path is not None:
        layers.append((str(path), read_config_file(path), True))
    if overrides:
        layers.append(('overrides', overrides, False))

    for source, layer, keep_none in layers:
        unknown = sorted(set(layer) - known)
        if unknown:
            raise ValueError(f"Unknown configuration keys in {source}: {', '.join(unknown)}")
        for key, raw in layer.items():
            if raw is None and not (keep_none and key in ('shuffle_seed', 'ldc_root', 'tool_timeout')):
                continue
            values[key] = _coerce(key, raw)

    return PipelineConfig(**values)


# =============================================================================
# VALIDATION
# =============================================================================

def validate_config(cfg: PipelineConfig) -> bool:
    """
    Validate configuration settings.

    Returns
    -------
    bool
        True if all validations pass

    Raises
    ------
    ValueError
        If any configuration is invalid
    """
    errors = []

    if cfg.stage > cfg.stop_stage:
        errors.append(f"stage ({cfg.stage}) must not exceed stop_stage ({cfg.stop_stage})")

    if not cfg.vocab_sizes:
        errors.append("vocab_sizes must contain at least one size")
    for size in cfg.vocab_sizes:
        if size <= 0:
            errors.append(f"vocab size must be positive: {size}")
    if len(set(cfg.vocab_sizes)) != len(cfg.vocab_sizes):
        errors.append(f"vocab_sizes contains duplicates: {list(cfg.vocab_sizes)}")

    if cfg.num_dev_sessions < 0:
        errors.append(f"num_dev_sessions must be non-negative: {cfg.num_dev_sessions}")

    if cfg.nj < 1:
        errors.append(f"nj must be at least 1: {cfg.nj}")

    if cfg.lm_order < 1:
        errors.append(f"lm_order must be at least 1: {cfg.lm_order}")

    if cfg.tool_timeout is not None and cfg.tool_timeout <= 0:
        errors.append(f"tool_timeout must be positive: {cfg.tool_timeout}")

    for name, settings in cfg.tools.items():
        command = settings.get('command')
        if command is not None and (not isinstance(command, (list, tuple)) or not command):
            errors.append(f"tools.{name}.command must be a non-empty list")

    if errors:
        raise ValueError("Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors))

    return True


def ensure_directories(cfg: PipelineConfig) -> None:
    """Create the download and working directories if they don't exist."""
    for path in [cfg.dl_dir, cfg.data_dir]:
        path.mkdir(parents=True, exist_ok=True)


# =============================================================================
# MODULE INITIALIZATION
# =============================================================================

if __name__ == '__main__':
    # Print configuration when run directly
    cfg = load_config(DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.exists() else None)
    print("Pipeline Configuration")
    print("=" * 50)
    for key, value in cfg.to_dict().items():
        print(f"{key + ':':<20}{value}")
    print()
    print("Validating configuration...")
    try:
        validate_config(cfg)
        print("Configuration valid.")
    except ValueError as e:
        print(f"Configuration invalid:\n{e}")
