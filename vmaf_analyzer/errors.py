"""
Error Taxonomy

Every failure the analyzer can hit is fatal to the run. Nothing is retried;
each error carries enough context (the external tool's diagnostic output,
expected vs actual counts) for an operator to fix the environment and rerun.

Hierarchy:
    AnalyzerError
    ├── ArgumentError            bad CLI usage or configuration
    ├── FetchError               manifest unreachable or malformed
    ├── DistributionFormatError  viewer file missing/malformed
    ├── InvalidMediaError        wrong stream topology or dimensions
    ├── LowScoreDetected         score below the configured threshold
    ├── Cancelled                sibling sub-operation failed first
    ├── ScratchError             scratch paths or output directories unusable
    └── ToolError                external process failed
        ├── ProbeFailed
        ├── MaterializeFailed
        ├── DecodeFailed
        └── ScoreToolFailed
"""

from typing import Optional


class AnalyzerError(Exception):
    """Base class for all analyzer failures."""


class ArgumentError(AnalyzerError):
    """Invalid command line usage or configuration value."""


class FetchError(AnalyzerError):
    """Master manifest could not be fetched or parsed."""


class DistributionFormatError(AnalyzerError):
    """Viewer distribution file is missing or malformed."""


class InvalidMediaError(AnalyzerError):
    """Media has the wrong number of video streams or invalid dimensions."""


class LowScoreDetected(AnalyzerError):
    """
    A quality cell scored below the low-score threshold.

    Usually a wrong model or mismatched resolutions. The run stops.
    """

    def __init__(self, score: float, threshold: float):
        self.score = score
        self.threshold = threshold
        super().__init__(
            f"Low vmaf score detected, most likely due to misconfiguration. "
            f"Score {score:f} is below threshold {threshold:f}"
        )


class Cancelled(AnalyzerError):
    """Raised by a sub-operation whose cancel scope was cancelled."""


class ScratchError(AnalyzerError):
    """A scratch path, pipe or working directory could not be prepared."""


class ToolError(AnalyzerError):
    """An external tool exited non-zero or produced unusable output."""

    def __init__(self, message: str, stderr: Optional[str] = None):
        self.stderr = stderr
        if stderr:
            message = f"{message}: {stderr.strip()}"
        super().__init__(message)


class ProbeFailed(ToolError):
    """ffprobe failed or its output could not be parsed."""


class MaterializeFailed(ToolError):
    """Remuxing a variant failed, or the remuxed file did not validate."""


class DecodeFailed(ToolError):
    """ffmpeg could not decode/scale an input to the scratch location."""


class ScoreToolFailed(ToolError):
    """The VMAF tool failed or its JSON log could not be parsed."""
