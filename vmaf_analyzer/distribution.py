"""
Viewer Distribution Loading

The viewer data file describes the audience the ladder serves:

    {
        "resolution_pcts": [...],   # index j: viewers whose player is (j+1)*16 px wide
        "bandwidth_pcts": [...]     # exactly 100 entries, index i: viewers with
                                    # bandwidth in [i*100kbps, (i+1)*100kbps)
    }

Each list should sum to 1.0. Deviations are logged, not rejected.
"""

import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Tuple

from .config import BANDWIDTH_BUCKETS
from .errors import DistributionFormatError

logger = logging.getLogger(__name__)

SUM_TOLERANCE = 0.01


@dataclass(frozen=True)
class ViewerDistribution:
    """Viewer bandwidth and display-width shares."""
    bandwidth_shares: Tuple[float, ...]
    resolution_shares: Tuple[float, ...]

    @property
    def bandwidth_total(self) -> float:
        return math.fsum(self.bandwidth_shares)

    @property
    def resolution_total(self) -> float:
        return math.fsum(self.resolution_shares)


def _validate_shares(values: Any, key: str) -> List[float]:
    if not isinstance(values, list):
        raise DistributionFormatError(f"'{key}' must be a list of numbers")

    shares = []
    for i, value in enumerate(values):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise DistributionFormatError(f"'{key}'[{i}] is not a number: {value!r}")
        if not math.isfinite(value) or value < 0:
            raise DistributionFormatError(f"'{key}'[{i}] must be a non-negative number, got {value}")
        shares.append(float(value))
    return shares


def parse_distribution(data: Dict[str, Any]) -> ViewerDistribution:
    """
    Validate a decoded viewer data document.

    Raises:
        DistributionFormatError: missing keys, bad values, or a bandwidth
            list that does not have exactly 100 entries
    """
    if not isinstance(data, dict):
        raise DistributionFormatError("Viewer data must be a JSON object")

    for key in ('resolution_pcts', 'bandwidth_pcts'):
        if key not in data:
            raise DistributionFormatError(f"Viewer data is missing '{key}'")

    bandwidth = _validate_shares(data['bandwidth_pcts'], 'bandwidth_pcts')
    resolution = _validate_shares(data['resolution_pcts'], 'resolution_pcts')

    if len(bandwidth) != BANDWIDTH_BUCKETS:
        raise DistributionFormatError(
            f"Invalid input data; expected {BANDWIDTH_BUCKETS} bandwidth entries "
            f"but got {len(bandwidth)}"
        )

    return ViewerDistribution(bandwidth_shares=tuple(bandwidth), resolution_shares=tuple(resolution))


def load_distribution(path: str) -> ViewerDistribution:
    """
    Load and validate the viewer distribution file.

    Args:
        path: JSON file path

    Returns:
        ViewerDistribution

    Raises:
        DistributionFormatError: file missing, unreadable or malformed
    """
    try:
        with open(Path(path)) as f:
            data = json.load(f)
    except FileNotFoundError:
        raise DistributionFormatError(f"Failed to load data file: {path} not found")
    except OSError as e:
        raise DistributionFormatError(f"Failed to read data file {path}: {e}")
    except json.JSONDecodeError as e:
        raise DistributionFormatError(f"Failed to unmarshal data file {path}: {e}")

    distribution = parse_distribution(data)
    report_totals(distribution)
    return distribution


def report_totals(distribution: ViewerDistribution) -> None:
    """Log list sizes and sums, warning when a sum is far from 1.0."""
    logger.info(
        f"Bandwidths len: {len(distribution.bandwidth_shares)} "
        f"sum: {distribution.bandwidth_total:f}"
    )
    logger.info(
        f"Resolutions len: {len(distribution.resolution_shares)} "
        f"sum: {distribution.resolution_total:f}"
    )

    for name, total in (('Bandwidth', distribution.bandwidth_total),
                        ('Resolution', distribution.resolution_total)):
        if abs(total - 1.0) > SUM_TOLERANCE:
            logger.warning(f"{name} shares sum to {total:.4f}, expected ~1.0")
