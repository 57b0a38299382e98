"""
Quality Estimation

Computes one VMAF score per quality cell, a (rendition, resolution bucket)
pair that real viewers end up watching.

A cell is only planned when its rendition has a nonzero bandwidth share,
its resolution bucket has a nonzero share, and both target dimensions are
at least the minimum VMAF resolution. Every other cell keeps score 0.

Each cell runs three sub-operations concurrently under one cancel scope:

    decode-reference   reference  -> reference scratch (yuv420p, W x H)
    decode-distorted   rendition  -> distorted scratch (yuv420p, W x H)
    score              vmafossexec reading both scratch paths

With named pipes as scratch paths the decoders stream straight into the
scorer. The first failing sub-operation cancels the other two. Cells run
strictly one after another because they share the two scratch paths.
"""

import logging
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..bucketing import SKIP_TOO_SMALL, iter_resolution_buckets
from ..config import AnalyzerConfig
from ..errors import LowScoreDetected, ScratchError
from ..media import MediaInfo, Rendition
from ..process import CancelScope, join_or_cancel
from .decoder import Decoder
from .vmaf_integration import Scorer, VmafResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QualityCell:
    """One (rendition, resolution bucket) pair scheduled for scoring."""
    rendition_index: int
    bucket_index: int
    width: int
    height: int
    rendition_share: float
    resolution_share: float

    @property
    def weight(self) -> float:
        return self.rendition_share * self.resolution_share


@dataclass
class CellResult:
    cell: QualityCell
    score: float
    vmaf: VmafResult

    def to_dict(self) -> Dict:
        result = {
            'rendition_index': self.cell.rendition_index,
            'bucket_index': self.cell.bucket_index,
            'width': self.cell.width,
            'height': self.cell.height,
            'rendition_share': self.cell.rendition_share,
            'resolution_share': self.cell.resolution_share,
            'score': self.score,
            'frame_count': self.vmaf.frame_count,
        }
        result.update(self.vmaf.secondary)
        return result


@dataclass
class QualityReport:
    """
    Dense quality matrix plus bookkeeping of which cells were computed.

    matrix and computed have shape (renditions + 1, resolution buckets);
    row 0 (no playable rendition) is never computed.
    """
    matrix: np.ndarray
    computed: np.ndarray
    results: List[CellResult] = field(default_factory=list)


def _scratch_mode(path: str) -> Optional[int]:
    try:
        return os.stat(path).st_mode
    except FileNotFoundError:
        return None
    except OSError as e:
        raise ScratchError(f"Failed to inspect scratch path {path}: {e}")


def _remove_scratch(path: str) -> None:
    try:
        os.remove(path)
    except OSError as e:
        raise ScratchError(f"Failed to remove stale scratch path {path}: {e}")


def prepare_scratch(config: AnalyzerConfig) -> None:
    """
    Create the logs directory and the scratch paths.

    With use_fifos, both scratch paths become named pipes; existing pipes
    are reused. Without it, pipes left behind by an earlier run are removed
    so the decoders write plain files.

    Raises:
        ScratchError: a directory or pipe could not be created or replaced
    """
    try:
        Path(config.logs_dir).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ScratchError(f"Failed to create logs directory {config.logs_dir}: {e}")

    for path in (config.reference_scratch, config.distorted_scratch):
        mode = _scratch_mode(path)
        is_fifo = mode is not None and stat.S_ISFIFO(mode)

        if not config.use_fifos:
            if is_fifo:
                logger.info(f"Removing named pipe {path} left by an earlier run")
                _remove_scratch(path)
            continue

        if is_fifo:
            logger.debug(f"Reusing named pipe {path}")
            continue
        if mode is not None:
            _remove_scratch(path)

        try:
            os.mkfifo(path, 0o600)
        except OSError as e:
            raise ScratchError(f"Failed to create named pipe {path}: {e}")
        logger.debug(f"Created named pipe {path}")


def cleanup_scratch(config: AnalyzerConfig) -> None:
    for path in (config.reference_scratch, config.distorted_scratch):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove scratch path {path}: {e}")


class QualityEstimator:
    """Plans and computes quality cells for a validated ladder."""

    def __init__(self, config: AnalyzerConfig, decoder: Decoder, scorer: Scorer):
        self.config = config
        self.decoder = decoder
        self.scorer = scorer

    def plan_cells(
        self,
        renditions: Sequence[Rendition],
        rendition_shares: Sequence[float],
        resolution_shares: Sequence[float],
        reference: MediaInfo,
    ) -> List[QualityCell]:
        """
        List the cells to compute, in execution order.

        Renditions are visited in ascending bandwidth order and, within a
        rendition, buckets in ascending index order.
        """
        if len(rendition_shares) != len(renditions) + 1:
            raise ValueError(
                f"Expected {len(renditions) + 1} rendition shares, got {len(rendition_shares)}"
            )

        cells = []
        for rendition in renditions:
            bitrate_share = rendition_shares[rendition.index]
            if bitrate_share == 0.0:
                logger.info(
                    f"Skipping rendition {rendition.index} - "
                    f"no users have the bandwidth to watch it"
                )
                continue

            buckets = iter_resolution_buckets(
                resolution_shares, reference.width, reference.height, self.config.min_resolution
            )
            for bucket in buckets:
                if bucket.skip_reason == SKIP_TOO_SMALL:
                    logger.info(
                        f"Skipping resolution {bucket.width}x{bucket.height} - "
                        f"too small for VMAF"
                    )
                    continue
                if bucket.skip_reason is not None:
                    logger.debug(
                        f"Skipping resolution {bucket.width}x{bucket.height} - "
                        f"zero percentage of users watch at this resolution"
                    )
                    continue

                cells.append(QualityCell(
                    rendition_index=rendition.index,
                    bucket_index=bucket.index,
                    width=bucket.width,
                    height=bucket.height,
                    rendition_share=bitrate_share,
                    resolution_share=bucket.share,
                ))

        return cells

    def log_path(self, cell: QualityCell) -> str:
        name = f"{cell.rendition_index - 1}_{cell.width}_{cell.height}.log"
        return str(Path(self.config.logs_dir) / name)

    def compute_cell(
        self,
        cell: QualityCell,
        rendition: Rendition,
        reference_path: str,
        scope: Optional[CancelScope] = None,
    ) -> CellResult:
        """
        Decode both inputs to the cell's size and score them.

        Raises:
            DecodeFailed, ScoreToolFailed: an external tool failed
            LowScoreDetected: score below the configured threshold
            Cancelled: the parent scope was cancelled
        """
        config = self.config
        width, height = cell.width, cell.height
        log_path = self.log_path(cell)
        scope = scope or CancelScope()
        scope.raise_if_cancelled(f"Cell {cell.rendition_index} {width}x{height}")

        logger.info(f"Calculating VMAF score for rendition {cell.rendition_index} at {width}x{height}")

        def decode_reference(task_scope: CancelScope) -> None:
            self.decoder.decode(reference_path, config.reference_scratch, width, height, scope=task_scope)

        def decode_distorted(task_scope: CancelScope) -> None:
            self.decoder.decode(rendition.local_path, config.distorted_scratch, width, height,
                                scope=task_scope)

        def score(task_scope: CancelScope) -> VmafResult:
            result = self.scorer.score(
                config.reference_scratch, config.distorted_scratch, width, height, log_path,
                scope=task_scope,
            )
            if result.vmaf < config.low_score_threshold:
                raise LowScoreDetected(result.vmaf, config.low_score_threshold)
            return result

        decodes = {'decode-reference': decode_reference, 'decode-distorted': decode_distorted}
        if config.use_fifos:
            results = join_or_cancel(dict(decodes, score=score), scope)
        else:
            # Plain files must be complete before the scorer reads them
            join_or_cancel(decodes, scope)
            results = join_or_cancel({'score': score}, scope)

        vmaf_result = results['score']
        vmaf_score = vmaf_result.vmaf
        logger.info(f"VMAF harmonic mean for rendition {cell.rendition_index} at {width}x{height}: "
                    f"{vmaf_score:f}")

        return CellResult(cell=cell, score=vmaf_score, vmaf=vmaf_result)

    def estimate(
        self,
        renditions: Sequence[Rendition],
        rendition_shares: Sequence[float],
        resolution_shares: Sequence[float],
        reference_path: str,
        reference: MediaInfo,
        scope: Optional[CancelScope] = None,
    ) -> QualityReport:
        """
        Compute every planned cell, one at a time, into a dense matrix.

        The first failing cell aborts the estimation; its error propagates
        and no partial report is returned.
        """
        scope = scope or CancelScope()
        shape = (len(renditions) + 1, len(resolution_shares))
        report = QualityReport(matrix=np.zeros(shape), computed=np.zeros(shape, dtype=bool))

        by_index = {rendition.index: rendition for rendition in renditions}
        cells = self.plan_cells(renditions, rendition_shares, resolution_shares, reference)
        logger.info(f"Computing {len(cells)} quality cells")

        for cell in cells:
            scope.raise_if_cancelled('quality estimation')
            result = self.compute_cell(cell, by_index[cell.rendition_index], reference_path, scope)

            report.matrix[cell.rendition_index, cell.bucket_index] = result.score
            report.computed[cell.rendition_index, cell.bucket_index] = True
            report.results.append(result)

            logger.info(
                f"{cell.rendition_share:f} of users have the bitrate to watch rendition "
                f"{cell.rendition_index}; of those, {cell.resolution_share:f} watch at "
                f"{cell.width}x{cell.height}"
            )

        return report
