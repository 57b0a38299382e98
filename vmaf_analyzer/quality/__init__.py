"""
Quality Estimation Module

Decodes reference and rendition to matching raw sizes and scores them with
VMAF, one quality cell at a time:
- FFmpegDecoder: scaled yuv420p decode to a scratch path
- VmafScorer: vmafossexec run + JSON log parsing (harmonic-mean pooling)
- QualityEstimator: plans cells and fills the quality matrix
"""

from .decoder import Decoder, FFmpegDecoder
from .estimator import (
    CellResult,
    QualityCell,
    QualityEstimator,
    QualityReport,
    cleanup_scratch,
    prepare_scratch,
)
from .vmaf_integration import Scorer, VmafResult, VmafScorer, harmonic_mean, parse_vmaf_log

__all__ = [
    'CellResult',
    'Decoder',
    'FFmpegDecoder',
    'QualityCell',
    'QualityEstimator',
    'QualityReport',
    'Scorer',
    'VmafResult',
    'VmafScorer',
    'cleanup_scratch',
    'harmonic_mean',
    'parse_vmaf_log',
    'prepare_scratch',
]
