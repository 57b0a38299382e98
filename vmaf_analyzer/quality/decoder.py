"""
Scaled Raw Decoding

Decodes a media file to raw 8-bit planar 4:2:0 video at an exact size,
the input format vmafossexec expects:

    ffmpeg -y -v error -i <input> -vf scale=W:H -pix_fmt yuv420p -f rawvideo <output>

The output is normally one of the two scratch paths (often named pipes),
so a decode blocks until the scorer reads it.
"""

import logging
from typing import List, Optional

from ..errors import DecodeFailed
from ..process import CancelScope, run_command

logger = logging.getLogger(__name__)

PIXEL_FORMAT = 'yuv420p'


class Decoder:
    """Decodes and scales a media file to raw video."""

    def decode(
        self,
        input_path: str,
        output_path: str,
        width: int,
        height: int,
        scope: Optional[CancelScope] = None,
    ) -> None:
        raise NotImplementedError


class FFmpegDecoder(Decoder):
    """Decoder backed by ffmpeg's scale filter."""

    def __init__(self, binary: str = 'ffmpeg'):
        self.binary = binary

    def build_command(self, input_path: str, output_path: str, width: int, height: int) -> List[str]:
        return [
            self.binary,
            '-y',
            '-v', 'error',
            '-i', input_path,
            '-vf', f'scale={width}:{height}',
            '-pix_fmt', PIXEL_FORMAT,
            '-f', 'rawvideo',
            output_path,
        ]

    def decode(
        self,
        input_path: str,
        output_path: str,
        width: int,
        height: int,
        scope: Optional[CancelScope] = None,
    ) -> None:
        logger.info(f"Decoding {input_path} at {width}x{height}")
        result = run_command(
            self.build_command(input_path, output_path, width, height),
            scope=scope,
            error_cls=DecodeFailed,
        )
        if result.returncode != 0:
            raise DecodeFailed(f"Error running ffmpeg decode of {input_path}", stderr=result.stderr)
