"""
検査パイプライン（inspection_pipeline.py）のユニットテスト.

InspectionPipeline をモック検出器でテストします。
"""

from unittest.mock import MagicMock

import pytest

from part_inspection.config.settings import Settings
from part_inspection.errors import ConfigurationError
from part_inspection.models.detector import BaseDetector, PartDefectDetector
from part_inspection.models.types import DefectCandidate, InspectionResult
from part_inspection.pipeline.inspection_pipeline import InspectionPipeline, PipelineConfig


def _mock_detector(result: InspectionResult) -> MagicMock:
    detector = MagicMock(spec=BaseDetector)
    detector.inspect.return_value = result
    detector.inspect_diff.return_value = result
    detector.highlight.return_value = b"\xff\xd8jpeg"
    return detector


# ========================================
# PipelineConfig テスト
# ========================================


class TestPipelineConfig:
    """PipelineConfig のテスト."""

    def test_config_defaults(self):
        """デフォルト設定が正しいことを確認."""
        config = PipelineConfig()

        assert config.highlight_jpeg_quality == 90
        assert config.profile.diff_min_threshold == 22

    def test_config_from_settings(self):
        """設定から構成が作られることを確認."""
        settings = Settings(highlight_jpeg_quality=75, diff_min_threshold=30, enable_registration=False)

        config = PipelineConfig.from_settings(settings)

        assert config.highlight_jpeg_quality == 75
        assert config.profile.diff_min_threshold == 30
        assert config.profile.enable_registration is False


# ========================================
# 初期化テスト
# ========================================


class TestInspectionPipelineInit:
    """InspectionPipeline 初期化のテスト."""

    def test_not_initialized(self):
        """初期化前の使用でConfigurationErrorが発生."""
        pipeline = InspectionPipeline()

        assert pipeline.is_initialized is False
        with pytest.raises(ConfigurationError, match="Pipeline not initialized"):
            pipeline.inspect(b"data")
        with pytest.raises(ConfigurationError, match="Pipeline not initialized"):
            _ = pipeline.image_loader

    def test_injected_detector_still_requires_initialize(self, clean_inspection_result):
        """検出器を渡しても初期化前は使えないことを確認."""
        pipeline = InspectionPipeline(detector=_mock_detector(clean_inspection_result))

        with pytest.raises(ConfigurationError):
            pipeline.inspect_diff(b"a", b"b")

    def test_initialize_builds_detector(self):
        """初期化で構成どおりの検出器が作られることを確認."""
        config = PipelineConfig(highlight_jpeg_quality=70)
        pipeline = InspectionPipeline(config)

        pipeline.initialize()

        assert pipeline.is_initialized is True
        assert isinstance(pipeline.detector, PartDefectDetector)
        assert pipeline.detector.jpeg_quality == 70
        assert pipeline.detector.profile is config.profile


# ========================================
# 検査メソッド テスト
# ========================================


class TestInspectionPipelineCalls:
    """inspect系メソッドの委譲のテスト."""

    @pytest.fixture
    def pipeline(self, sample_inspection_result):
        pipeline = InspectionPipeline(detector=_mock_detector(sample_inspection_result))
        pipeline.initialize()
        return pipeline

    def test_inspect_delegates(self, pipeline, sample_inspection_result):
        """inspect()が検出器に委譲されることを確認."""
        result = pipeline.inspect(b"photo")

        assert result is sample_inspection_result
        pipeline.detector.inspect.assert_called_once_with(b"photo")

    def test_inspect_diff_delegates(self, pipeline):
        """inspect_diff()が基準・現在の順で委譲されることを確認."""
        pipeline.inspect_diff(b"base", b"current")

        pipeline.detector.inspect_diff.assert_called_once_with(b"base", b"current")

    def test_highlight_delegates(self, pipeline, sample_inspection_result):
        """highlight()が検出器の出力を返すことを確認."""
        assert pipeline.highlight(b"photo", sample_inspection_result) == b"\xff\xd8jpeg"

    def test_inspect_file(self, pipeline, temp_image_file):
        """ファイルの内容がそのまま検出器に渡されることを確認."""
        pipeline.inspect_file(temp_image_file)

        pipeline.detector.inspect.assert_called_once_with(temp_image_file.read_bytes())

    def test_inspect_diff_files(self, pipeline, temp_image_file):
        """2つのファイルの比較が委譲されることを確認."""
        data = temp_image_file.read_bytes()

        pipeline.inspect_diff_files(temp_image_file, str(temp_image_file))

        pipeline.detector.inspect_diff.assert_called_once_with(data, data)

    def test_inspect_file_not_found(self, pipeline):
        """存在しないファイルでFileNotFoundErrorが発生."""
        with pytest.raises(FileNotFoundError):
            pipeline.inspect_file("/nonexistent/part.png")

    def test_inspect_batch(self, pipeline, temp_image_file):
        """バッチ検査で画像ごとに結果が返されることを確認."""
        results = pipeline.inspect_batch([temp_image_file, temp_image_file])

        assert len(results) == 2
        assert pipeline.detector.inspect.call_count == 2


# ========================================
# get_statistics() テスト
# ========================================


class TestGetStatistics:
    """get_statistics() のテスト."""

    def test_statistics_empty(self):
        """空リストでゼロの統計が返されることを確認."""
        stats = InspectionPipeline().get_statistics([])

        assert stats["total"] == 0
        assert stats["defect_rate"] == 0.0
        assert stats["defects_by_stage"] == {}

    def test_statistics(self, sample_inspection_result, clean_inspection_result):
        """欠陥率と段階別件数が集計されることを確認."""
        results = [sample_inspection_result, clean_inspection_result]

        stats = InspectionPipeline().get_statistics(results)

        assert stats["total"] == 2
        assert stats["defective"] == 1
        assert stats["clean"] == 1
        assert stats["defect_rate"] == 0.5
        assert stats["total_defects"] == 3
        assert stats["defects_by_stage"] == {"diff_contour": 2, "broken_structural_mask": 1}

    def test_statistics_geometry_stage(self):
        """形状不一致の欠陥が段階名で集計されることを確認."""
        result = InspectionResult.from_candidates(
            600,
            600,
            [DefectCandidate.from_box(0, 0, 10, 10, "geometry_mismatch reason=shape_family; geometry_mask_union")],
        )

        stats = InspectionPipeline().get_statistics([result])

        assert stats["defects_by_stage"] == {"geometry_mismatch": 1}
