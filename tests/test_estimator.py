"""Tests for the vmaf_analyzer.quality.estimator module."""

import os
import stat
from dataclasses import replace

import pytest

from vmaf_analyzer.errors import Cancelled, DecodeFailed, LowScoreDetected, ScoreToolFailed, ScratchError
from vmaf_analyzer.media import MediaInfo, Rendition
from vmaf_analyzer.process import CancelScope
from vmaf_analyzer.quality import QualityCell, QualityEstimator, cleanup_scratch, prepare_scratch

from conftest import FakeDecoder, FakeScorer


def _ladder(tmp_path):
    return [
        Rendition(index=i + 1, source_uri=f'https://cdn/{bw}.m3u8', bandwidth_bps=bw,
                  local_path=str(tmp_path / f'variant_{i}.ts'),
                  info=MediaInfo(width=1920, height=1080, frame_count=3))
        for i, bw in enumerate([500_000, 1_500_000, 4_000_000])
    ]


def _resolution_shares(**shares):
    values = [0.0] * 120
    for index, share in shares.items():
        values[int(index.lstrip('b'))] = share
    return values


class TestPlanCells:
    """Tests for QualityEstimator.plan_cells."""

    def test_only_nonzero_cells(self, config, tmp_path, reference_info):
        """Test cells need bandwidth share, resolution share and a viable size."""
        estimator = QualityEstimator(config, FakeDecoder(), FakeScorer())
        cells = estimator.plan_cells(
            _ladder(tmp_path), [0.0, 0.0, 1.0, 0.0], _resolution_shares(b44=1.0), reference_info
        )

        assert cells == [QualityCell(rendition_index=2, bucket_index=44, width=720, height=404,
                                     rendition_share=1.0, resolution_share=1.0)]

    def test_order(self, config, tmp_path, reference_info):
        """Test renditions ascend in the outer loop, buckets in the inner loop."""
        estimator = QualityEstimator(config, FakeDecoder(), FakeScorer())
        cells = estimator.plan_cells(
            _ladder(tmp_path), [0.1, 0.3, 0.3, 0.3], _resolution_shares(b79=0.5, b44=0.5), reference_info
        )

        assert [(c.rendition_index, c.bucket_index) for c in cells] == [
            (1, 44), (1, 79), (2, 44), (2, 79), (3, 44), (3, 79),
        ]

    def test_too_small_never_planned(self, config, tmp_path, reference_info):
        """Test cells below the minimum resolution are never planned."""
        estimator = QualityEstimator(config, FakeDecoder(), FakeScorer())
        cells = estimator.plan_cells(
            _ladder(tmp_path), [0.0, 1.0, 0.0, 0.0], _resolution_shares(b4=1.0), reference_info
        )

        assert cells == []

    def test_share_length_checked(self, config, tmp_path, reference_info):
        """Test a rendition share list of the wrong length is rejected."""
        estimator = QualityEstimator(config, FakeDecoder(), FakeScorer())

        with pytest.raises(ValueError):
            estimator.plan_cells(_ladder(tmp_path), [1.0], [1.0], reference_info)


class TestComputeCell:
    """Tests for QualityEstimator.compute_cell."""

    def _cell(self):
        return QualityCell(rendition_index=2, bucket_index=44, width=720, height=404,
                           rendition_share=1.0, resolution_share=1.0)

    def test_decodes_and_scores(self, config, tmp_path):
        """Test both decodes target the scratch paths and the scorer reads them."""
        decoder = FakeDecoder()
        scorer = FakeScorer(lambda w, h: 91.5)
        rendition = _ladder(tmp_path)[1]

        result = QualityEstimator(config, decoder, scorer).compute_cell(
            self._cell(), rendition, 'mezzanine.mp4')

        assert pytest.approx(result.score) == 91.5
        assert sorted(decoder.calls) == sorted([
            ('mezzanine.mp4', config.reference_scratch, 720, 404),
            (rendition.local_path, config.distorted_scratch, 720, 404),
        ])
        reference, distorted, width, height, log_path = scorer.calls[0]
        assert (reference, distorted) == (config.reference_scratch, config.distorted_scratch)
        assert log_path == os.path.join(config.logs_dir, '1_720_404.log')

    def test_low_score_raises(self, config, tmp_path):
        """Test a score under the threshold is an error."""
        strict = replace(config, low_score_threshold=50.0)
        scorer = FakeScorer(lambda w, h: 12.0)

        with pytest.raises(LowScoreDetected, match="below threshold"):
            QualityEstimator(strict, FakeDecoder(), scorer).compute_cell(
                self._cell(), _ladder(tmp_path)[1], 'mezzanine.mp4')

    def test_decode_failure_cancels_scorer(self, config, tmp_path):
        """Test a failing decode cancels the concurrently running scorer."""
        fifo_config = replace(config, use_fifos=True)
        decoder = FakeDecoder(fail_inputs=['mezzanine.mp4'])
        scorer = FakeScorer(wait_for_cancel=True)

        with pytest.raises(DecodeFailed, match="corrupt input"):
            QualityEstimator(fifo_config, decoder, scorer).compute_cell(
                self._cell(), _ladder(tmp_path)[1], 'mezzanine.mp4')

        assert scorer.saw_cancel

    def test_negative_score_fails_default_threshold(self, config, tmp_path):
        """Test a negative pooled score aborts with the default threshold of 0."""
        scorer = FakeScorer(lambda w, h: -5.0)

        with pytest.raises(LowScoreDetected, match="below threshold"):
            QualityEstimator(config, FakeDecoder(), scorer).compute_cell(
                self._cell(), _ladder(tmp_path)[1], 'mezzanine.mp4')

    def test_score_failure(self, config, tmp_path):
        """Test scorer errors propagate."""
        with pytest.raises(ScoreToolFailed, match="model not found"):
            QualityEstimator(config, FakeDecoder(), FakeScorer(fail=True)).compute_cell(
                self._cell(), _ladder(tmp_path)[1], 'mezzanine.mp4')

    def test_cancelled_run(self, config, tmp_path):
        """Test a cancelled run scope stops the cell."""
        scope = CancelScope()
        scope.cancel()

        with pytest.raises(Cancelled):
            QualityEstimator(config, FakeDecoder(), FakeScorer(wait_for_cancel=True)).compute_cell(
                self._cell(), _ladder(tmp_path)[1], 'mezzanine.mp4', scope)


class TestEstimate:
    """Tests for QualityEstimator.estimate."""

    def test_fills_matrix(self, config, tmp_path, reference_info):
        """Test computed scores land in a dense matrix."""
        scorer = FakeScorer(lambda w, h: float(w) / 10)
        report = QualityEstimator(config, FakeDecoder(), scorer).estimate(
            _ladder(tmp_path), [0.1, 0.0, 0.5, 0.4], _resolution_shares(b44=0.5, b79=0.5),
            'mezzanine.mp4', reference_info,
        )

        assert report.matrix.shape == (4, 120)
        assert pytest.approx(report.matrix[2, 44]) == 72.0
        assert pytest.approx(report.matrix[3, 79]) == 128.0
        assert report.matrix[1].sum() == 0.0
        assert report.matrix[0].sum() == 0.0
        assert report.computed.sum() == 4
        assert len(report.results) == 4

    def test_stops_at_first_failure(self, config, tmp_path, reference_info):
        """Test a low score aborts before later cells run."""
        strict = replace(config, low_score_threshold=50.0)
        scorer = FakeScorer(lambda w, h: 10.0)

        with pytest.raises(LowScoreDetected):
            QualityEstimator(strict, FakeDecoder(), scorer).estimate(
                _ladder(tmp_path), [0.0, 0.5, 0.5, 0.0], _resolution_shares(b44=0.5, b79=0.5),
                'mezzanine.mp4', reference_info,
            )

        assert len(scorer.calls) == 1


@pytest.mark.skipif(not hasattr(os, 'mkfifo'), reason='named pipes need POSIX')
class TestScratch:
    """Tests for scratch preparation."""

    def test_creates_fifos_and_logs_dir(self, config):
        """Test named pipes and the logs directory are created."""
        fifo_config = replace(config, use_fifos=True)
        prepare_scratch(fifo_config)

        assert os.path.isdir(fifo_config.logs_dir)
        for path in (fifo_config.reference_scratch, fifo_config.distorted_scratch):
            assert stat.S_ISFIFO(os.stat(path).st_mode)

        # Second call reuses the pipes
        prepare_scratch(fifo_config)

        cleanup_scratch(fifo_config)
        assert not os.path.exists(fifo_config.reference_scratch)

    def test_replaces_regular_file(self, config):
        """Test a stale regular scratch file is replaced by a pipe."""
        fifo_config = replace(config, use_fifos=True)
        with open(fifo_config.reference_scratch, 'w') as f:
            f.write('stale')

        prepare_scratch(fifo_config)

        assert stat.S_ISFIFO(os.stat(fifo_config.reference_scratch).st_mode)
        cleanup_scratch(fifo_config)

    def test_plain_files_mode(self, config):
        """Test no pipes are created when disabled."""
        prepare_scratch(config)

        assert os.path.isdir(config.logs_dir)
        assert not os.path.exists(config.reference_scratch)

    def test_plain_files_mode_removes_stale_pipes(self, config):
        """Test pipes left by an earlier run are removed in plain-file mode."""
        os.mkfifo(config.reference_scratch, 0o600)

        prepare_scratch(config)

        assert not os.path.exists(config.reference_scratch)

    def test_missing_scratch_directory(self, config, tmp_path):
        """Test a pipe in a missing directory raises ScratchError naming the path."""
        missing = str(tmp_path / 'missing' / 'mezzanine.yuv')
        fifo_config = replace(config, use_fifos=True, reference_scratch=missing)

        with pytest.raises(ScratchError, match="missing"):
            prepare_scratch(fifo_config)


class TestScratchDirectories:
    """Tests for scratch directory failures."""

    def test_logs_dir_under_file(self, config, tmp_path):
        """Test an unusable logs directory raises ScratchError."""
        blocker = tmp_path / 'blocker'
        blocker.write_text('not a directory')
        bad_config = replace(config, logs_dir=str(blocker / 'logs'))

        with pytest.raises(ScratchError, match="logs directory"):
            prepare_scratch(bad_config)
