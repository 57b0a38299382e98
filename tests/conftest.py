"""Shared fakes standing in for ffprobe, ffmpeg and vmafossexec."""

import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from vmaf_analyzer.config import AnalyzerConfig
from vmaf_analyzer.errors import Cancelled, DecodeFailed, ScoreToolFailed
from vmaf_analyzer.media import MediaInfo
from vmaf_analyzer.probe import Prober, Remuxer
from vmaf_analyzer.quality import Decoder, Scorer, VmafResult


class FakeProber(Prober):
    """Returns canned MediaInfo keyed by file name."""

    def __init__(self, infos: Dict[str, MediaInfo]):
        self.infos = infos
        self.calls: List[str] = []

    def probe(self, path, scope=None):
        self.calls.append(path)
        return self.infos[Path(path).name]


class FakeRemuxer(Remuxer):
    def __init__(self):
        self.calls = []

    def remux(self, source_uri, output_path, scope=None):
        self.calls.append((source_uri, output_path))


class FakeDecoder(Decoder):
    """Records decodes; fails for inputs listed in fail_inputs."""

    def __init__(self, fail_inputs=()):
        self.fail_inputs = set(fail_inputs)
        self.calls = []

    def decode(self, input_path, output_path, width, height, scope=None):
        self.calls.append((input_path, output_path, width, height))
        if input_path in self.fail_inputs:
            raise DecodeFailed(f"Error running ffmpeg decode of {input_path}", stderr='corrupt input')


class FakeScorer(Scorer):
    """
    Returns score_fn(width, height) as a single-frame VMAF result.

    With wait_for_cancel set, blocks until its scope is cancelled and then
    raises Cancelled, like a vmafossexec process waiting on a named pipe.
    """

    def __init__(self, score_fn: Optional[Callable[[int, int], float]] = None,
                 wait_for_cancel: bool = False, fail: bool = False):
        self.score_fn = score_fn or (lambda width, height: 90.0)
        self.wait_for_cancel = wait_for_cancel
        self.fail = fail
        self.calls = []
        self.saw_cancel = False

    def score(self, reference_path, distorted_path, width, height, log_path, scope=None):
        self.calls.append((reference_path, distorted_path, width, height, log_path))
        if self.wait_for_cancel:
            deadline = time.monotonic() + 5
            while time.monotonic() < deadline:
                if scope is not None and scope.cancelled:
                    self.saw_cancel = True
                    raise Cancelled('vmafossexec cancelled')
                time.sleep(0.01)
        if self.fail:
            raise ScoreToolFailed('Error running VMAF', stderr='model not found')
        value = self.score_fn(width, height)
        return VmafResult(frames=[{'vmaf': value}], log_path=log_path)


@pytest.fixture
def config(tmp_path):
    """Config writing everything under tmp_path, with plain scratch files."""
    return AnalyzerConfig(
        datafile=str(tmp_path / 'data.json'),
        reference_scratch=str(tmp_path / 'mezzanine.yuv'),
        distorted_scratch=str(tmp_path / 'distorted.yuv'),
        logs_dir=str(tmp_path / 'logs'),
        work_dir=str(tmp_path / 'work'),
        use_fifos=False,
    )


@pytest.fixture
def reference_info():
    return MediaInfo(width=1920, height=1080, frame_count=3, frame_timestamps=(0, 3000, 6000))
