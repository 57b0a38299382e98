"""Media data model shared by the prober, materializer and estimator."""

from dataclasses import dataclass, field
from typing import Dict, Tuple


@dataclass(frozen=True)
class MediaInfo:
    """
    Structural metadata of the first video stream of a media file.

    frame_timestamps is empty when the file was probed without a frame dump.
    stream_count is the number of video streams ffprobe reported; caller
    policy rejects anything other than exactly one.
    """
    width: int
    height: int
    frame_count: int = 0
    frame_timestamps: Tuple[int, ...] = field(default_factory=tuple)
    stream_count: int = 1

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def has_frames(self) -> bool:
        return len(self.frame_timestamps) > 0

    def to_dict(self) -> Dict:
        return {
            'width': self.width,
            'height': self.height,
            'frame_count': self.frame_count,
        }


@dataclass(frozen=True)
class Variant:
    """One EXT-X-STREAM-INF entry of a master playlist."""
    uri: str
    bandwidth: int


@dataclass(frozen=True)
class Rendition:
    """
    A materialized, validated ladder rendition.

    index is 1-based in ascending bandwidth order; 0 is reserved for
    viewers who cannot play any rendition.
    """
    index: int
    source_uri: str
    bandwidth_bps: int
    local_path: str
    info: MediaInfo

    def to_dict(self) -> Dict:
        return {
            'index': self.index,
            'source_uri': self.source_uri,
            'bandwidth_bps': self.bandwidth_bps,
            'local_path': self.local_path,
            'info': self.info.to_dict(),
        }
