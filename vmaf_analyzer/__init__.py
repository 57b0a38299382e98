"""
Average Viewer VMAF Analyzer

Estimates the video quality viewers actually experience on an HLS encoding
ladder by weighting per-rendition, per-resolution VMAF scores with real
viewer bandwidth and display-resolution distributions.

Main Components:
- FFprobeProber / FFmpegRemuxer: probe the reference, materialize renditions
- bucket_bandwidth_shares / width_to_height: map viewer buckets onto the ladder
- QualityEstimator: decode + score every (rendition, resolution) cell
- aggregate: viewer-weighted expectation of the quality matrix
- LadderAnalyzer: end-to-end driver

Example:
    >>> from vmaf_analyzer import AnalyzerConfig, LadderAnalyzer
    >>> config = AnalyzerConfig(datafile='data.json', threads=8)
    >>> result = LadderAnalyzer(config).run('mezzanine.mp4', 'https://example.com/master.m3u8')
    >>> print(f"Average VMAF: {result.average_vmaf:.2f}")
"""

from .aggregate import aggregate
from .bucketing import bucket_bandwidth_shares, width_to_height
from .config import AnalyzerConfig
from .distribution import ViewerDistribution, load_distribution
from .media import MediaInfo, Rendition, Variant
from .pipeline import AnalysisResult, LadderAnalyzer

__all__ = [
    'AnalysisResult',
    'AnalyzerConfig',
    'LadderAnalyzer',
    'MediaInfo',
    'Rendition',
    'Variant',
    'ViewerDistribution',
    'aggregate',
    'bucket_bandwidth_shares',
    'load_distribution',
    'width_to_height',
]

__version__ = '0.1.0'
