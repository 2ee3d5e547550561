"""
検査サービス（service.py）のユニットテスト.

InspectionService の基準写真の管理、比較の流れ、強調画像と
説明文の付与をモック検出器でテストします。
"""

import threading
from unittest.mock import MagicMock

import pytest

from part_inspection.errors import (
    BasePhotoNotFoundError,
    ConfigurationError,
    ErrorKind,
    InspectionError,
    QualityGateError,
    classify_error,
)
from part_inspection.models.detector import BaseDetector
from part_inspection.pipeline.service import BasePhotoStore, InspectionOutput, InspectionService


@pytest.fixture
def mock_detector(sample_inspection_result):
    """欠陥ありの結果を返すモック検出器."""
    detector = MagicMock(spec=BaseDetector)
    detector.inspect.return_value = sample_inspection_result
    detector.inspect_diff.return_value = sample_inspection_result
    detector.highlight.return_value = b"\xff\xd8highlighted"
    return detector


# ========================================
# BasePhotoStore テスト
# ========================================


class TestBasePhotoStore:
    """BasePhotoStore のテスト."""

    def test_put_get_discard(self):
        """保存・取得・削除ができることを確認."""
        store = BasePhotoStore()

        store.put(1, b"photo")
        assert store.get(1) == b"photo"
        assert len(store) == 1

        store.discard(1)
        assert store.get(1) is None
        assert len(store) == 0

    def test_discard_missing_user(self):
        """未登録ユーザーの削除でエラーにならないことを確認."""
        BasePhotoStore().discard("nobody")

    def test_concurrent_puts(self):
        """複数スレッドからの保存が全て反映されることを確認."""
        store = BasePhotoStore()

        def worker(offset: int) -> None:
            for i in range(100):
                store.put(offset + i, b"x")

        threads = [threading.Thread(target=worker, args=(n * 100,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store) == 800


# ========================================
# 基準写真 テスト
# ========================================


class TestAcceptBasePhoto:
    """accept_base_photo() のテスト."""

    def test_accept_replaces_previous(self, mock_detector):
        """同じユーザーの基準写真が置き換えられることを確認."""
        service = InspectionService(mock_detector)

        service.accept_base_photo(42, b"first")
        service.accept_base_photo(42, b"second")

        assert service.store.get(42) == b"second"

    def test_accept_empty_photo(self, mock_detector):
        """空の写真でValueErrorが発生."""
        with pytest.raises(ValueError, match="base photo must not be empty"):
            InspectionService(mock_detector).accept_base_photo(42, b"")


# ========================================
# process_current_photo() テスト
# ========================================


class TestProcessCurrentPhoto:
    """process_current_photo() のテスト."""

    def test_compares_with_stored_base(self, mock_detector, sample_inspection_result):
        """保存した基準写真と比較され、強調画像が付くことを確認."""
        service = InspectionService(mock_detector)
        service.accept_base_photo(42, b"base")

        output = service.process_current_photo(42, b"current")

        assert isinstance(output, InspectionOutput)
        assert output.result is sample_inspection_result
        assert output.highlighted == b"\xff\xd8highlighted"
        assert output.description is None
        mock_detector.inspect_diff.assert_called_once_with(b"base", b"current")
        mock_detector.highlight.assert_called_once_with(b"current", sample_inspection_result)

    def test_base_is_per_user(self, mock_detector):
        """他のユーザーの基準写真は使われないことを確認."""
        service = InspectionService(mock_detector)
        service.accept_base_photo(1, b"base")

        with pytest.raises(BasePhotoNotFoundError, match="original photo is not found"):
            service.process_current_photo(2, b"current")

    def test_missing_base_kind(self, mock_detector):
        """基準写真がない場合は専用の種別で、前提条件エラーではないことを確認."""
        with pytest.raises(BasePhotoNotFoundError) as exc_info:
            InspectionService(mock_detector).process_current_photo(7, b"current")

        assert classify_error(exc_info.value) is ErrorKind.BASE_PHOTO_MISSING
        assert exc_info.value.retryable is True
        mock_detector.inspect_diff.assert_not_called()

    def test_without_detector(self):
        """検出器がない場合ConfigurationErrorが発生."""
        service = InspectionService(None)
        service.accept_base_photo(1, b"base")

        with pytest.raises(ConfigurationError, match="detector is not configured"):
            service.process_current_photo(1, b"current")

    def test_no_highlight_when_clean(self, mock_detector, clean_inspection_result):
        """欠陥がない場合は強調画像を作らないことを確認."""
        mock_detector.inspect_diff.return_value = clean_inspection_result
        service = InspectionService(mock_detector)
        service.accept_base_photo(1, b"base")

        output = service.process_current_photo(1, b"current")

        assert output.highlighted is None
        mock_detector.highlight.assert_not_called()

    def test_highlight_failure_is_tolerated(self, mock_detector):
        """強調画像の生成に失敗しても結果は返されることを確認."""
        mock_detector.highlight.side_effect = InspectionError("failed to encode highlighted image")
        service = InspectionService(mock_detector)
        service.accept_base_photo(1, b"base")

        output = service.process_current_photo(1, b"current")

        assert output.result.has_defects is True
        assert output.highlighted is None

    def test_detector_error_propagates(self, mock_detector):
        """検出器のエラーはそのまま呼び出し元に伝わることを確認."""
        mock_detector.inspect_diff.side_effect = QualityGateError("image is blurry (edge_ratio=0.0010)")
        service = InspectionService(mock_detector)
        service.accept_base_photo(1, b"base")

        with pytest.raises(QualityGateError) as exc_info:
            service.process_current_photo(1, b"current")

        assert exc_info.value.retryable is True

    def test_describer(self, mock_detector, sample_inspection_result):
        """説明文生成器の出力が付与されることを確認."""
        describer = MagicMock()
        describer.describe.return_value = "3 defects found"
        service = InspectionService(mock_detector, describer=describer)
        service.accept_base_photo(1, b"base")

        output = service.process_current_photo(1, b"current")

        assert output.description == "3 defects found"
        describer.describe.assert_called_once_with(sample_inspection_result)

    def test_describer_failure_is_tolerated(self, mock_detector, sample_inspection_result):
        """説明文の生成に失敗しても検査結果と強調画像は返されることを確認."""
        describer = MagicMock()
        describer.describe.side_effect = RuntimeError("describer unavailable")
        service = InspectionService(mock_detector, describer=describer)
        service.accept_base_photo(1, b"base")

        output = service.process_current_photo(1, b"current")

        assert output.result is sample_inspection_result
        assert output.highlighted == b"\xff\xd8highlighted"
        assert output.description is None


# ========================================
# process_single_photo() テスト
# ========================================


class TestProcessSinglePhoto:
    """process_single_photo() のテスト."""

    def test_single_photo(self, mock_detector):
        """基準写真なしで単独検査されることを確認."""
        output = InspectionService(mock_detector).process_single_photo(b"photo")

        mock_detector.inspect.assert_called_once_with(b"photo")
        assert output.highlighted is not None

    def test_single_photo_without_detector(self):
        """検出器がない場合ConfigurationErrorが発生."""
        with pytest.raises(ConfigurationError):
            InspectionService(None).process_single_photo(b"photo")
