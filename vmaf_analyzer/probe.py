"""
Media Probing and Rendition Materialization

Wraps ffprobe and ffmpeg stream-copy so the rest of the pipeline only sees
MediaInfo and Rendition objects.

Probe command:
    ffprobe -v error -print_format json -show_streams -show_frames
            -select_streams v:0 <path>

Remux command:
    ffmpeg -y -v error -i <variant uri> -c copy <output>

A materialized rendition is re-probed immediately and must have exactly one
video stream and the same number of frames as the reference. Any mismatch
stops the run.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .errors import InvalidMediaError, MaterializeFailed, ProbeFailed
from .media import MediaInfo, Rendition, Variant
from .process import CancelScope, run_command

logger = logging.getLogger(__name__)

# Frame fields carrying a presentation timestamp, newest ffprobe last
FRAME_TIMESTAMP_KEYS = ('pkt_pts', 'pts', 'best_effort_timestamp')


class Prober:
    """Returns structural metadata for a media file."""

    def probe(self, path: str, scope: Optional[CancelScope] = None) -> MediaInfo:
        raise NotImplementedError


class Remuxer:
    """Copies a remote variant stream to a local file without re-encoding."""

    def remux(self, source_uri: str, output_path: str, scope: Optional[CancelScope] = None) -> None:
        raise NotImplementedError


class FFprobeProber(Prober):
    """Prober backed by ffprobe's JSON writer."""

    def __init__(self, binary: str = 'ffprobe', frames: bool = True):
        """
        Args:
            binary: ffprobe executable
            frames: Also dump per-frame timestamps (slower, exact frame count)
        """
        self.binary = binary
        self.frames = frames

    def build_command(self, path: str) -> list:
        cmd = [self.binary, '-v', 'error', '-print_format', 'json', '-show_streams']
        if self.frames:
            cmd.append('-show_frames')
        cmd.extend(['-select_streams', 'v:0', path])
        return cmd

    def probe(self, path: str, scope: Optional[CancelScope] = None) -> MediaInfo:
        result = run_command(self.build_command(path), scope=scope, error_cls=ProbeFailed)
        if result.returncode != 0:
            raise ProbeFailed(f"Error running probe on {path}", stderr=result.stderr)
        return parse_probe_output(result.stdout)


def _parse_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return None


def _frame_timestamp(frame: Dict[str, Any]) -> int:
    for key in FRAME_TIMESTAMP_KEYS:
        ts = _parse_int(frame.get(key))
        if ts is not None:
            return ts
    return -1


def parse_probe_output(output: str) -> MediaInfo:
    """
    Parse ffprobe JSON output into MediaInfo.

    Only the first stream's dimensions are used; the number of streams is
    kept so caller policy can reject files that are not single-stream.

    Raises:
        ProbeFailed: output is not JSON or has no streams list
    """
    try:
        data = json.loads(output)
    except (json.JSONDecodeError, TypeError) as e:
        raise ProbeFailed(f"Failed to unmarshal probe response: '{e}'")

    if not isinstance(data, dict) or not isinstance(data.get('streams'), list):
        raise ProbeFailed("Probe response has no streams list")

    streams = data['streams']
    frames = data.get('frames') or []
    timestamps = tuple(_frame_timestamp(frame) for frame in frames if isinstance(frame, dict))

    if not streams:
        return MediaInfo(width=0, height=0, frame_count=len(timestamps),
                         frame_timestamps=timestamps, stream_count=0)

    stream = streams[0]
    width = _parse_int(stream.get('width')) or 0
    height = _parse_int(stream.get('height')) or 0

    if timestamps:
        frame_count = len(timestamps)
    else:
        frame_count = _parse_int(stream.get('nb_frames')) or 0

    return MediaInfo(
        width=width,
        height=height,
        frame_count=frame_count,
        frame_timestamps=timestamps,
        stream_count=len(streams),
    )


def require_single_video_stream(info: MediaInfo, label: str) -> MediaInfo:
    """
    Apply the single-video-stream policy to a probed file.

    Raises:
        InvalidMediaError: zero or several video streams, or zero dimensions
    """
    if info.stream_count != 1:
        raise InvalidMediaError(
            f"{label} must have exactly 1 video stream, but had {info.stream_count} streams"
        )
    if info.width <= 0 or info.height <= 0:
        raise InvalidMediaError(
            f"{label} must have a valid width and height, but has {info.width}x{info.height}"
        )
    return info


class FFmpegRemuxer(Remuxer):
    """Remuxer backed by ffmpeg stream copy."""

    def __init__(self, binary: str = 'ffmpeg'):
        self.binary = binary

    def build_command(self, source_uri: str, output_path: str) -> list:
        return [self.binary, '-y', '-v', 'error', '-i', source_uri, '-c', 'copy', output_path]

    def remux(self, source_uri: str, output_path: str, scope: Optional[CancelScope] = None) -> None:
        result = run_command(
            self.build_command(source_uri, output_path), scope=scope, error_cls=MaterializeFailed
        )
        if result.returncode != 0:
            raise MaterializeFailed(f"Error running ffmpeg dump of {source_uri}", stderr=result.stderr)


def _frame_counts(reference: MediaInfo, candidate: MediaInfo) -> Tuple[int, int]:
    """Counts to compare: timestamp sequences when both were dumped."""
    if reference.has_frames and candidate.has_frames:
        return len(reference.frame_timestamps), len(candidate.frame_timestamps)
    return reference.frame_count, candidate.frame_count


def materialize(
    variant: Variant,
    index: int,
    work_dir: str,
    reference: MediaInfo,
    remuxer: Remuxer,
    prober: Prober,
    scope: Optional[CancelScope] = None,
) -> Rendition:
    """
    Remux a variant to local storage and validate it against the reference.

    Args:
        variant: Manifest variant to download
        index: 1-based rendition index in ascending bandwidth order
        work_dir: Directory for the local copy
        reference: Probed reference (mezzanine) info
        remuxer: Remuxer implementation
        prober: Prober implementation
        scope: Optional cancel scope

    Returns:
        Validated Rendition

    Raises:
        MaterializeFailed: remux failed or validation did not pass
    """
    output_path = str(Path(work_dir) / f"variant_{index - 1}.ts")
    logger.info(f"Dumping variant {index - 1} ({variant.bandwidth} bps) to {output_path}")

    remuxer.remux(variant.uri, output_path, scope=scope)

    try:
        info = prober.probe(output_path, scope=scope)
    except ProbeFailed as e:
        raise MaterializeFailed(f"Failed to probe dumped variant {index - 1}: {e}")

    if info.stream_count != 1:
        raise MaterializeFailed(
            f"Invalid variant stream {index - 1}: expected 1 video stream, found {info.stream_count}"
        )

    expected, actual = _frame_counts(reference, info)
    if expected != actual:
        raise MaterializeFailed(
            f"Variant frame count doesn't match mezzanine frame count: {actual} != {expected}"
        )

    logger.info(f"Variant info looks good: {index - 1} ({info.resolution}, {actual} frames)")

    return Rendition(
        index=index,
        source_uri=variant.uri,
        bandwidth_bps=variant.bandwidth,
        local_path=output_path,
        info=info,
    )
