"""
Bandwidth and Resolution Bucketing

Maps the viewer distributions onto the rendition ladder and onto concrete
scaling targets.

Bandwidth bucketing
===================

Bucket i covers [i * 100 kbps, (i+1) * 100 kbps). Buckets are walked once in
increasing order alongside a cursor over the ascending ladder:

    for each bucket:
        if cursor is past the last rendition: slot[last] += share
        else:
            if bucket_lower_bound >= bandwidth[cursor]: cursor += 1
            slot[cursor] += share

slot[0] collects viewers who cannot sustain any rendition. A bucket whose
lower bound equals a rendition's bandwidth belongs to that rendition.

Resolution scaling
==================

Bucket j is a player width of (j+1) * 16 px. The matching height keeps the
reference aspect ratio and is rounded down to an even number, which 4:2:0
chroma subsampling requires.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

from .config import BANDWIDTH_BUCKET_BPS, RESOLUTION_BUCKET_PX

logger = logging.getLogger(__name__)

SKIP_TOO_SMALL = 'too_small'
SKIP_ZERO_SHARE = 'zero_share'


def bucket_bandwidth_shares(
    rendition_bandwidths: Sequence[int],
    bandwidth_shares: Sequence[float],
) -> List[float]:
    """
    Attribute viewer bandwidth shares to ladder renditions.

    Args:
        rendition_bandwidths: Rendition bandwidths in bps, ascending
        bandwidth_shares: Share of viewers per 100 kbps bucket

    Returns:
        len(rendition_bandwidths) + 1 shares; index 0 is "nothing playable",
        index k is the k-th rendition (1-based)

    Raises:
        ValueError: bandwidths are not in ascending order
    """
    for lower, upper in zip(rendition_bandwidths, rendition_bandwidths[1:]):
        if upper < lower:
            raise ValueError("Rendition bandwidths must be sorted in ascending order")

    count = len(rendition_bandwidths)
    shares = [0.0] * (count + 1)

    cursor = 0
    for i, share in enumerate(bandwidth_shares):
        if cursor == count:
            shares[cursor] += share
            continue

        if i * BANDWIDTH_BUCKET_BPS >= rendition_bandwidths[cursor]:
            cursor += 1

        shares[cursor] += share

    return shares


def describe_rendition_shares(shares: Sequence[float]) -> None:
    for i, total in enumerate(shares):
        if i == 0:
            logger.info(f"{total:0.3f} of users have insufficient bandwidth for *any* rendition to play smoothly")
        else:
            logger.info(f"{total:0.3f} of users have sufficient bandwidth for rendition {i}")


def width_to_height(width: int, reference_width: int, reference_height: int) -> int:
    """
    Height matching width at the reference aspect ratio, rounded down to even.

    >>> width_to_height(1280, 1920, 1080)
    720
    """
    if reference_width <= 0 or reference_height <= 0:
        raise ValueError(
            f"Reference dimensions must be positive, got {reference_width}x{reference_height}"
        )
    height = (width * reference_height) // reference_width
    return (height >> 1) << 1


def bucket_width(index: int) -> int:
    return (index + 1) * RESOLUTION_BUCKET_PX


@dataclass(frozen=True)
class ResolutionBucket:
    """A viewer resolution bucket resolved to concrete scaling dimensions."""
    index: int
    width: int
    height: int
    share: float
    skip_reason: Optional[str] = None

    @property
    def computable(self) -> bool:
        return self.skip_reason is None


def iter_resolution_buckets(
    resolution_shares: Sequence[float],
    reference_width: int,
    reference_height: int,
    min_resolution: int,
) -> Iterator[ResolutionBucket]:
    """
    Yield every resolution bucket with its target size and skip reason.

    Buckets below min_resolution in either dimension are skipped before
    zero-share buckets, so the logged reason for a tiny bucket is always
    its size.
    """
    for index, share in enumerate(resolution_shares):
        width = bucket_width(index)
        height = width_to_height(width, reference_width, reference_height)

        skip_reason = None
        if width < min_resolution or height < min_resolution:
            skip_reason = SKIP_TOO_SMALL
        elif share == 0.0:
            skip_reason = SKIP_ZERO_SHARE

        yield ResolutionBucket(index=index, width=width, height=height, share=share,
                               skip_reason=skip_reason)
