"""
Ladder Analysis Pipeline

LadderAnalyzer sequences a complete run:

    1. load + validate the viewer distribution
    2. probe the reference (mezzanine), require one video stream
    3. fetch the master manifest, sort variants by ascending bandwidth
    4. materialize + validate every rendition
    5. bucket viewer bandwidth onto the ladder
    6. prepare scratch resources (logs dir, named pipes)
    7. estimate the quality matrix, one cell at a time
    8. aggregate into the average viewer VMAF

The viewer data is validated first so a malformed file fails before any
external tool runs. Any failure aborts the run; there is no resumption.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

import numpy as np

from .aggregate import aggregate
from .bucketing import bucket_bandwidth_shares, describe_rendition_shares
from .config import AnalyzerConfig
from .distribution import ViewerDistribution, load_distribution
from .errors import ScratchError
from .manifest import fetch_master_playlist, sort_by_bandwidth
from .media import MediaInfo, Rendition, Variant
from .probe import FFmpegRemuxer, FFprobeProber, Prober, Remuxer, materialize, require_single_video_stream
from .process import CancelScope
from .quality import (
    Decoder,
    FFmpegDecoder,
    QualityEstimator,
    QualityReport,
    Scorer,
    VmafScorer,
    cleanup_scratch,
    prepare_scratch,
)

logger = logging.getLogger(__name__)

ManifestLoader = Callable[[str, float], List[Variant]]


@dataclass
class AnalysisResult:
    """Everything a run produced, ready to be reported or saved."""
    reference_path: str
    manifest_url: str
    reference: MediaInfo
    renditions: List[Rendition]
    distribution: ViewerDistribution
    rendition_shares: List[float]
    quality: QualityReport
    average_vmaf: float
    weighting: str = 'all_viewers'
    skipped_cells: str = 'zero'
    finished_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict:
        return {
            'finished_at': self.finished_at,
            'reference_path': self.reference_path,
            'manifest_url': self.manifest_url,
            'reference': self.reference.to_dict(),
            'renditions': [rendition.to_dict() for rendition in self.renditions],
            'rendition_shares': list(self.rendition_shares),
            'resolution_shares': list(self.distribution.resolution_shares),
            'cells': [result.to_dict() for result in self.quality.results],
            'quality_matrix': np.asarray(self.quality.matrix).tolist(),
            'weighting': self.weighting,
            'skipped_cells': self.skipped_cells,
            'average_vmaf': self.average_vmaf,
        }

    def save_results(self, path: str) -> Path:
        """Write the run report as JSON."""
        filepath = Path(path)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info(f"Results saved to {filepath}")
        return filepath


class LadderAnalyzer:
    """Runs the full ladder analysis with pluggable external tools."""

    def __init__(
        self,
        config: AnalyzerConfig,
        prober: Optional[Prober] = None,
        remuxer: Optional[Remuxer] = None,
        decoder: Optional[Decoder] = None,
        scorer: Optional[Scorer] = None,
        manifest_loader: Optional[ManifestLoader] = None,
    ):
        """
        Args:
            config: Validated run configuration
            prober: Defaults to FFprobeProber
            remuxer: Defaults to FFmpegRemuxer
            decoder: Defaults to FFmpegDecoder
            scorer: Defaults to VmafScorer built from the config
            manifest_loader: Defaults to fetch_master_playlist
        """
        self.config = config.validate()
        self.prober = prober or FFprobeProber()
        self.remuxer = remuxer or FFmpegRemuxer()
        self.decoder = decoder or FFmpegDecoder()
        self.scorer = scorer or VmafScorer(
            model_path=config.model_path, threads=config.threads, subsample=config.subsample
        )
        self.manifest_loader = manifest_loader or fetch_master_playlist
        self.estimator = QualityEstimator(config, self.decoder, self.scorer)

    def probe_reference(self, reference_path: str, scope: CancelScope) -> MediaInfo:
        logger.info(f"Probing mezzanine file {reference_path!r}")
        info = require_single_video_stream(self.prober.probe(reference_path, scope=scope), 'Input file')
        logger.info(f"Mezzanine widthxheight: {info.resolution} ({info.frame_count} frames)")
        return info

    def materialize_ladder(
        self, variants: List[Variant], reference: MediaInfo, scope: CancelScope
    ) -> List[Rendition]:
        try:
            Path(self.config.work_dir).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ScratchError(f"Failed to create work directory {self.config.work_dir}: {e}")
        renditions = []
        for index, variant in enumerate(variants, start=1):
            renditions.append(materialize(
                variant, index, self.config.work_dir, reference, self.remuxer, self.prober, scope=scope
            ))
        return renditions

    def run(
        self, reference_path: str, manifest_url: str, scope: Optional[CancelScope] = None
    ) -> AnalysisResult:
        """
        Analyze a ladder against a reference.

        Args:
            reference_path: Mezzanine file
            manifest_url: HLS master playlist URL
            scope: Optional run-level cancel scope

        Returns:
            AnalysisResult with the average viewer VMAF

        Raises:
            AnalyzerError: any validation or processing failure
        """
        config = self.config
        scope = scope or CancelScope()

        distribution = load_distribution(config.datafile)
        reference = self.probe_reference(reference_path, scope)

        variants = sort_by_bandwidth(self.manifest_loader(manifest_url, config.http_timeout))
        logger.info(f"Input has {len(variants)} variants")

        renditions = self.materialize_ladder(variants, reference, scope)

        rendition_shares = bucket_bandwidth_shares(
            [rendition.bandwidth_bps for rendition in renditions], distribution.bandwidth_shares
        )
        describe_rendition_shares(rendition_shares)

        logger.info("Preparing for VMAF")
        try:
            prepare_scratch(config)
            quality = self.estimator.estimate(
                renditions,
                rendition_shares,
                distribution.resolution_shares,
                reference_path,
                reference,
                scope=scope,
            )
        finally:
            cleanup_scratch(config)

        average = aggregate(
            quality.matrix,
            rendition_shares,
            distribution.resolution_shares,
            weighting=config.weighting,
            skipped_cells=config.skipped_cells,
            computed=quality.computed,
        )
        logger.info(f"Average VMAF: {average:f}")

        return AnalysisResult(
            reference_path=reference_path,
            manifest_url=manifest_url,
            reference=reference,
            renditions=renditions,
            distribution=distribution,
            rendition_shares=rendition_shares,
            quality=quality,
            average_vmaf=average,
            weighting=config.weighting,
            skipped_cells=config.skipped_cells,
        )
