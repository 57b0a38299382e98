"""
Run Configuration

A single immutable AnalyzerConfig is built once (normally from CLI arguments)
and handed to the LadderAnalyzer. Nothing in the package reads global flags.
"""

import logging
import os
from dataclasses import dataclass

from .errors import ArgumentError

logger = logging.getLogger(__name__)

# Bandwidth distribution: 100 buckets of 100 kbps each
BANDWIDTH_BUCKETS = 100
BANDWIDTH_BUCKET_BPS = 100_000

# Resolution distribution: widths in 16 pixel steps
RESOLUTION_BUCKET_PX = 16

DEFAULT_MIN_RESOLUTION = 192
DEFAULT_LOW_SCORE_THRESHOLD = 0.0

WEIGHTING_MODES = ('all_viewers', 'playable_viewers')
SKIPPED_CELL_MODES = ('zero', 'exclude')


@dataclass(frozen=True)
class AnalyzerConfig:
    """
    Configuration for one analysis run.

    Attributes:
        subsample: VMAF frame subsampling factor
        threads: Threads used by the VMAF tool
        model_path: VMAF model file
        datafile: Viewer distribution JSON file
        reference_scratch: Scratch path for the decoded reference
        distorted_scratch: Scratch path for the decoded rendition
        logs_dir: Directory receiving one VMAF JSON log per cell
        work_dir: Directory receiving the remuxed renditions
        min_resolution: Smallest width/height submitted to VMAF
        low_score_threshold: Scores below this abort the run
        use_fifos: Create the scratch paths as named pipes (POSIX only)
        weighting: 'all_viewers' counts unplayable viewers as zero quality,
            'playable_viewers' renormalises over viewers who can play something
        skipped_cells: 'zero' counts skipped cells as zero quality,
            'exclude' renormalises over computed cells only
        http_timeout: Manifest fetch timeout in seconds
    """
    subsample: int = 30
    threads: int = 10
    model_path: str = 'model/vmaf_v0.6.1.pkl'
    datafile: str = 'data.json'
    reference_scratch: str = '/tmp/mezzanine.yuv'
    distorted_scratch: str = '/tmp/distorted.yuv'
    logs_dir: str = 'logs'
    work_dir: str = '.'
    min_resolution: int = DEFAULT_MIN_RESOLUTION
    low_score_threshold: float = DEFAULT_LOW_SCORE_THRESHOLD
    use_fifos: bool = hasattr(os, 'mkfifo')
    weighting: str = 'all_viewers'
    skipped_cells: str = 'zero'
    http_timeout: float = 30.0

    def validate(self) -> 'AnalyzerConfig':
        """Raise ArgumentError on values the pipeline cannot work with."""
        if self.threads <= 0:
            raise ArgumentError(f"threads must be positive, got {self.threads}")
        if self.subsample <= 0:
            raise ArgumentError(f"subsample must be positive, got {self.subsample}")
        if self.min_resolution <= 0:
            raise ArgumentError(f"min_resolution must be positive, got {self.min_resolution}")
        if self.weighting not in WEIGHTING_MODES:
            raise ArgumentError(
                f"Unsupported weighting '{self.weighting}'. Supported: {WEIGHTING_MODES}"
            )
        if self.skipped_cells not in SKIPPED_CELL_MODES:
            raise ArgumentError(
                f"Unsupported skipped_cells '{self.skipped_cells}'. "
                f"Supported: {SKIPPED_CELL_MODES}"
            )
        if self.reference_scratch == self.distorted_scratch:
            raise ArgumentError("Reference and distorted scratch paths must differ")
        if self.use_fifos and not hasattr(os, 'mkfifo'):
            raise ArgumentError("Named pipes are not supported on this platform, use plain scratch files")
        return self

    @classmethod
    def from_args(cls, args) -> 'AnalyzerConfig':
        """Build a validated config from an argparse namespace."""
        config = cls(
            subsample=args.subsample,
            threads=args.threads,
            model_path=args.model,
            datafile=args.datafile,
            reference_scratch=args.reference_scratch,
            distorted_scratch=args.distorted_scratch,
            logs_dir=args.logs_dir,
            work_dir=args.work_dir,
            min_resolution=args.min_resolution,
            low_score_threshold=args.low_score_threshold,
            use_fifos=hasattr(os, 'mkfifo') and not args.no_fifo,
            weighting=args.weighting,
            skipped_cells=args.skipped_cells,
            http_timeout=args.http_timeout,
        )
        logger.debug(f"Using configuration: {config}")
        return config.validate()
