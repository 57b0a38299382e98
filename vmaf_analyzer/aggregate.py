"""
Viewer-Weighted Quality Aggregation

Combines the quality matrix with the viewer distributions into one expected
viewer quality:

    average = Σ_i Σ_j Q[i][j] × R[i] × S[j]

    Where:
    - Q[i][j]: VMAF of rendition i watched at resolution bucket j
      (row 0, "nothing playable", is always 0)
    - R[i]: share of viewers whose bandwidth selects rendition i
    - S[j]: share of viewers watching at resolution bucket j

This assumes bandwidth and display resolution are independent.

Two choices are left to configuration:

    weighting='all_viewers' (default)
        Viewers who cannot play any rendition count as quality 0.
    weighting='playable_viewers'
        The sum is divided by the share of viewers who can play something,
        Σ R[i] for i >= 1.

    skipped_cells='zero' (default)
        Cells that were never computed (too small, zero share) count as 0.
    skipped_cells='exclude'
        Only computed cells contribute, and weights are renormalised over
        them: Σ Q·w / Σ w across computed cells. Row 0 is never computed,
        so this mode already ignores unplayable viewers.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from .config import SKIPPED_CELL_MODES, WEIGHTING_MODES

logger = logging.getLogger(__name__)


def aggregate(
    quality_matrix,
    rendition_shares: Sequence[float],
    resolution_shares: Sequence[float],
    weighting: str = 'all_viewers',
    skipped_cells: str = 'zero',
    computed: Optional[np.ndarray] = None,
) -> float:
    """
    Weight the quality matrix by viewer shares.

    Args:
        quality_matrix: Array of shape (len(rendition_shares), len(resolution_shares))
        rendition_shares: Bandwidth share per rendition slot, slot 0 unplayable
        resolution_shares: Share per resolution bucket
        weighting: 'all_viewers' or 'playable_viewers'
        skipped_cells: 'zero' or 'exclude'
        computed: Boolean mask of computed cells, required for 'exclude'

    Returns:
        Expected viewer VMAF

    Raises:
        ValueError: shape mismatch or unknown mode
    """
    if weighting not in WEIGHTING_MODES:
        raise ValueError(f"Unsupported weighting '{weighting}'")
    if skipped_cells not in SKIPPED_CELL_MODES:
        raise ValueError(f"Unsupported skipped_cells '{skipped_cells}'")

    quality = np.asarray(quality_matrix, dtype=float)
    bitrate = np.asarray(rendition_shares, dtype=float)
    resolution = np.asarray(resolution_shares, dtype=float)

    expected_shape = (bitrate.size, resolution.size)
    if quality.shape != expected_shape:
        raise ValueError(f"Quality matrix shape {quality.shape} does not match {expected_shape}")

    weights = np.outer(bitrate, resolution)

    if skipped_cells == 'exclude':
        if computed is None:
            raise ValueError("A computed-cell mask is required when excluding skipped cells")
        mask = np.asarray(computed, dtype=bool)
        if mask.shape != expected_shape:
            raise ValueError(f"Computed mask shape {mask.shape} does not match {expected_shape}")
        total_weight = float(weights[mask].sum())
        if total_weight <= 0:
            logger.warning("No computed cells carry any viewer weight")
            return 0.0
        return float((quality * weights)[mask].sum() / total_weight)

    total = float(np.sum(quality * weights))

    if weighting == 'playable_viewers':
        playable = float(bitrate[1:].sum())
        if playable <= 0:
            logger.warning("No viewers have the bandwidth for any rendition")
            return 0.0
        return total / playable

    return total
