"""
VMAF (Video Multimethod Assessment Fusion) Integration

Scores a decoded rendition against the decoded reference with vmafossexec
and reduces the per-frame scores to one number per quality cell.

VMAF scores range from 0-100, where higher values indicate better quality.
Per-frame scores are pooled with the harmonic mean rather than the
arithmetic mean: a few very bad frames drag the harmonic mean down much
further, which matches how viewers judge a stream with visible glitches.

Command:
    vmafossexec yuv420p W H <reference> <distorted> <model>
        --log <log> --log-fmt json --thread N --subsample N
        --pool harmonic_mean --psnr --ssim --ms-ssim

Log format (only the fields used here):
    {
        "frames": [
            {"frameNum": 0, "metrics": {"vmaf": 93.1, "psnr": 41.2, ...}},
            ...
        ]
    }
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np

from ..errors import ScoreToolFailed
from ..process import CancelScope, run_command

logger = logging.getLogger(__name__)

PRIMARY_METRIC = 'vmaf'
SECONDARY_METRICS = ('psnr', 'ssim', 'ms_ssim')
POOL_METHOD = 'harmonic_mean'


def harmonic_mean(values: Sequence[float]) -> float:
    """
    Harmonic mean of per-frame scores.

    A frame scoring exactly 0 makes the harmonic mean collapse to 0, so
    0.0 is returned in that case instead of dividing by zero. Negative
    scores are kept, so a broken comparison pools to a negative value.

    >>> harmonic_mean([-5.0, -5.0])
    -5.0

    Raises:
        ValueError: values is empty
    """
    scores = np.asarray(values, dtype=float)
    if scores.size == 0:
        raise ValueError("harmonic mean of an empty sequence")
    if np.any(scores == 0):
        return 0.0
    reciprocal_sum = np.sum(1.0 / scores)
    if reciprocal_sum == 0:
        return 0.0
    return float(scores.size / reciprocal_sum)


@dataclass
class VmafResult:
    """Per-frame metrics of one VMAF run and their pooled values."""
    frames: List[Dict[str, float]]
    log_path: Optional[str] = None
    secondary: Dict[str, float] = field(default_factory=dict)

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    @property
    def vmaf(self) -> float:
        return harmonic_mean([frame[PRIMARY_METRIC] for frame in self.frames])

    def to_dict(self) -> Dict:
        result = {'vmaf': self.vmaf, 'frame_count': self.frame_count}
        result.update(self.secondary)
        if self.log_path:
            result['log_path'] = self.log_path
        return result


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_vmaf_log(text: str, log_path: Optional[str] = None) -> VmafResult:
    """
    Parse a vmafossexec JSON log.

    Args:
        text: Log file contents
        log_path: Where the log came from, kept for reporting

    Returns:
        VmafResult with per-frame metrics and pooled secondary metrics

    Raises:
        ScoreToolFailed: invalid JSON, no frames, or a frame without a
            numeric vmaf metric
    """
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        raise ScoreToolFailed(f"Failed to unmarshal vmaf logs: {e}")

    raw_frames = data.get('frames') if isinstance(data, dict) else None
    if not isinstance(raw_frames, list) or not raw_frames:
        raise ScoreToolFailed("VMAF log contains no frames")

    frames = []
    for i, raw in enumerate(raw_frames):
        metrics = raw.get('metrics') if isinstance(raw, dict) else None
        if not isinstance(metrics, dict) or not _is_number(metrics.get(PRIMARY_METRIC)):
            raise ScoreToolFailed(f"VMAF log frame {i} has no numeric '{PRIMARY_METRIC}' metric")
        frames.append({name: float(value) for name, value in metrics.items() if _is_number(value)})

    secondary = {}
    for name in SECONDARY_METRICS:
        if all(name in frame for frame in frames):
            secondary[name] = harmonic_mean([frame[name] for frame in frames])

    return VmafResult(frames=frames, log_path=log_path, secondary=secondary)


class Scorer:
    """Scores a distorted raw stream against a reference raw stream."""

    def score(
        self,
        reference_path: str,
        distorted_path: str,
        width: int,
        height: int,
        log_path: str,
        scope: Optional[CancelScope] = None,
    ) -> VmafResult:
        raise NotImplementedError


class VmafScorer(Scorer):
    """Scorer backed by vmafossexec."""

    def __init__(
        self,
        model_path: str,
        threads: int = 10,
        subsample: int = 30,
        binary: str = 'vmafossexec',
    ):
        """
        Args:
            model_path: VMAF model file (e.g. model/vmaf_v0.6.1.pkl)
            threads: Worker threads used by vmafossexec
            subsample: Score every Nth frame
            binary: vmafossexec executable
        """
        self.model_path = model_path
        self.threads = threads
        self.subsample = subsample
        self.binary = binary

    def build_command(
        self, reference_path: str, distorted_path: str, width: int, height: int, log_path: str
    ) -> List[str]:
        return [
            self.binary,
            'yuv420p',
            str(width),
            str(height),
            reference_path,
            distorted_path,
            self.model_path,
            '--log', log_path,
            '--log-fmt', 'json',
            '--thread', str(self.threads),
            '--subsample', str(self.subsample),
            '--pool', POOL_METHOD,
            '--psnr',
            '--ssim',
            '--ms-ssim',
        ]

    def score(
        self,
        reference_path: str,
        distorted_path: str,
        width: int,
        height: int,
        log_path: str,
        scope: Optional[CancelScope] = None,
    ) -> VmafResult:
        result = run_command(
            self.build_command(reference_path, distorted_path, width, height, log_path),
            scope=scope,
            error_cls=ScoreToolFailed,
        )
        if result.returncode != 0:
            logger.debug(f"VMAF output:\n{result.stdout}")
            raise ScoreToolFailed("Error running VMAF", stderr=result.stderr)

        try:
            text = Path(log_path).read_text()
        except OSError as e:
            raise ScoreToolFailed(f"Failed to read VMAF logs output {log_path}: {e}")

        try:
            return parse_vmaf_log(text, log_path=log_path)
        except ScoreToolFailed:
            logger.error(f"This is vmaf stdout: {result.stdout}")
            raise
