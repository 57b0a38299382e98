#!/usr/bin/env python3
"""
Average Viewer VMAF Analyzer

Estimates the VMAF an average viewer experiences on an HLS ladder, given a
mezzanine file, the ladder's master manifest and a viewer distribution file.

Usage:
    vmaf-analyzer [--subsample n] [--threads n] [--model vmaf_v0.6.1.pkl]
                  [--datafile data.json] mezzanine.mp4 https://example.com/hls_stream.m3u8
"""

import argparse
import logging
import sys

from .config import (
    DEFAULT_LOW_SCORE_THRESHOLD,
    DEFAULT_MIN_RESOLUTION,
    SKIPPED_CELL_MODES,
    WEIGHTING_MODES,
    AnalyzerConfig,
)
from .errors import AnalyzerError, ArgumentError
from .pipeline import LadderAnalyzer

logger = logging.getLogger(__name__)

USAGE = (
    "Usage: vmaf-analyzer [--subsample n] [--threads n] [--model vmaf_v0.6.1.pkl] "
    "[--datafile data.json] mezzanine.mp4 https://example.com/hls_stream.m3u8"
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='vmaf-analyzer',
        description='Estimate the average viewer VMAF of an HLS encoding ladder',
    )
    parser.add_argument('mezzanine', nargs='?', help='Reference (mezzanine) media file')
    parser.add_argument('manifest_url', nargs='?', help='HLS master manifest URL')

    parser.add_argument('--subsample', type=int, default=30,
                        help='What vmaf subsampling factor to use')
    parser.add_argument('--threads', type=int, default=10,
                        help='How many threads used to run vmaf')
    parser.add_argument('--model', default='model/vmaf_v0.6.1.pkl',
                        help='vmaf model to use')
    parser.add_argument('--datafile', default='data.json',
                        help='Location of the data file to use for processing')

    parser.add_argument('--logs-dir', default='logs')
    parser.add_argument('--work-dir', default='.',
                        help='Where remuxed variants are written')
    parser.add_argument('--reference-scratch', default='/tmp/mezzanine.yuv')
    parser.add_argument('--distorted-scratch', default='/tmp/distorted.yuv')
    parser.add_argument('--no-fifo', action='store_true',
                        help='Use plain scratch files instead of named pipes')
    parser.add_argument('--min-resolution', type=int, default=DEFAULT_MIN_RESOLUTION)
    parser.add_argument('--low-score-threshold', type=float, default=DEFAULT_LOW_SCORE_THRESHOLD)
    parser.add_argument('--weighting', choices=WEIGHTING_MODES, default='all_viewers')
    parser.add_argument('--skipped-cells', choices=SKIPPED_CELL_MODES, default='zero')
    parser.add_argument('--http-timeout', type=float, default=30.0)
    parser.add_argument('--output', default=None,
                        help='Write a JSON report of the run to this file')
    parser.add_argument('--verbose', action='store_true')
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    if not args.mezzanine or not args.manifest_url:
        print(USAGE)
        return 2

    try:
        config = AnalyzerConfig.from_args(args)
    except ArgumentError as e:
        logger.error(f"Invalid arguments: {e}")
        print(USAGE)
        return 2

    try:
        result = LadderAnalyzer(config).run(args.mezzanine, args.manifest_url)
    except AnalyzerError as e:
        logger.error(f"Analysis failed: {e}")
        return 1

    if args.output:
        result.save_results(args.output)

    print(f"Average VMAF: {result.average_vmaf:f}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
