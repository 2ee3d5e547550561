"""
画像バッファ・マスク・描画ヘルパー（imaging/）のユニットテスト.

BufferScope、masks モジュール、drawing モジュールをテストします。
"""

from unittest.mock import patch

import cv2
import numpy as np
import pytest

from part_inspection.errors import InspectionError, PreconditionError
from part_inspection.imaging import drawing, masks
from part_inspection.imaging.buffers import BufferScope
from part_inspection.models.differencer import Differencer
from part_inspection.models.geometry import GeometryDetector
from part_inspection.models.quality import QualityGate
from part_inspection.models.structural import StructuralDetector


# ========================================
# BufferScope テスト
# ========================================


class TestBufferScope:
    """BufferScope コンテキストマネージャのテスト."""

    def test_track_and_release(self):
        """追跡した配列がスコープ終了時に解放されることを確認."""
        with BufferScope("test") as scope:
            scope.track(np.zeros((10, 10), dtype=np.uint8))
            scope.track(np.zeros((10, 10), dtype=np.uint8))
            assert scope.live_count == 2

        assert scope.closed is True
        assert scope.live_count == 0
        assert scope.released_bytes == 200

    def test_release_on_exception(self):
        """例外発生時も解放されることを確認."""
        scope = BufferScope("failing")

        with pytest.raises(ValueError):
            with scope:
                scope.track(np.zeros((4, 4), dtype=np.uint8))
                raise ValueError("boom")

        assert scope.closed is True
        assert scope.live_count == 0

    def test_keep_detaches_array(self):
        """keepした配列は解放対象外になることを確認."""
        with BufferScope() as scope:
            kept = scope.keep(scope.track(np.ones((5, 5), dtype=np.uint8)))
            scope.track(np.zeros((5, 5), dtype=np.uint8))

        assert scope.released_bytes == 25
        assert kept.sum() == 25

    def test_track_none(self):
        """Noneはそのまま返されることを確認."""
        with BufferScope() as scope:
            assert scope.track(None) is None
            assert scope.live_count == 0

    def test_track_after_release(self):
        """解放後のtrackでRuntimeErrorが発生."""
        scope = BufferScope("closed")
        scope.release()

        with pytest.raises(RuntimeError, match="already released"):
            scope.track(np.zeros((2, 2), dtype=np.uint8))

    def test_release_idempotent(self):
        """releaseを複数回呼んでも問題ないことを確認."""
        scope = BufferScope()
        scope.track(np.zeros((3, 3), dtype=np.uint8))
        scope.release()
        scope.release()

        assert scope.released_bytes == 9


# ========================================
# 各段のバッファ追跡 テスト
# ========================================


class _RecordingScope(BufferScope):
    """track() / keep() された配列を記録する BufferScope."""

    created: list = []

    def __init__(self, name: str = "stage") -> None:
        super().__init__(name)
        self.tracked = []
        self.kept = []
        _RecordingScope.created.append(self)

    def track(self, array):
        if array is not None:
            self.tracked.append(array)
        return super().track(array)

    def keep(self, array):
        self.kept.append(array)
        return super().keep(array)


@pytest.fixture
def recording_scope():
    """生成されたスコープを記録する BufferScope の差し替え."""
    _RecordingScope.created = []
    return _RecordingScope


def _contains(arrays, target) -> bool:
    return any(a is target for a in arrays)


class TestStageBufferTracking:
    """各段が中間配列を追跡し、返す配列だけを切り離すことを確認."""

    def test_quality_tracks_glare_channels(self, profile, part_image, recording_scope):
        """品質ゲートがHSVチャンネルとグレア用マスクも追跡することを確認."""
        roi = masks.empty_mask(700, 700)
        roi[150:550, 150:550] = 255

        with patch("part_inspection.models.quality.BufferScope", recording_scope):
            report = QualityGate(profile).check(part_image, roi, profile.max_glare_ratio)

        assert report.passed is True
        scope = recording_scope.created[0]
        # gray, bright, dark, edges, hsv, 3チャンネル, low_sat, high_val, glare
        assert len(scope.tracked) == 11
        assert scope.live_count == 0
        assert scope.released_bytes == sum(a.nbytes for a in scope.tracked)

    def test_differencer_keeps_result(self, profile, recording_scope):
        """差分マスクは追跡後に切り離され、中間配列だけが解放されることを確認."""
        base = np.full((100, 100), 128, dtype=np.uint8)
        current = base.copy()
        current[40:60, 40:60] = 0

        with patch("part_inspection.models.differencer.BufferScope", recording_scope):
            mask = Differencer(profile).diff(base, current, masks.full_mask(100, 100))

        scope = recording_scope.created[0]
        assert _contains(scope.tracked, mask)
        assert _contains(scope.kept, mask)
        assert scope.released_bytes == sum(a.nbytes for a in scope.tracked if a is not mask)
        assert mask[50, 50] == 255

    def test_structural_keeps_focused_evidence(self, profile, recording_scope):
        """破損判定の証拠マスクだけが切り離されることを確認."""
        base = masks.empty_mask(600, 600)
        base[200:400, 100:500] = 255
        current = base.copy()
        current[:, 300:320] = 0

        with patch("part_inspection.models.structural.BufferScope", recording_scope):
            result = StructuralDetector(profile).detect(base, current)

        assert result.split is True
        scope = recording_scope.created[0]
        assert _contains(scope.tracked, result.mask)
        assert [id(a) for a in scope.kept] == [id(result.mask)]
        assert scope.live_count == 0

    def test_geometry_keeps_evidence(self, profile, square_mask, circle_mask, recording_scope):
        """形状判定の証拠マスクが追跡後に切り離されることを確認."""
        with patch("part_inspection.models.geometry.BufferScope", recording_scope):
            evidence = GeometryDetector(profile)._evidence(square_mask, circle_mask)

        scope = recording_scope.created[0]
        # raw, cleaned, ring, focused
        assert len(scope.tracked) == 4
        assert _contains(scope.kept, evidence)
        assert masks.count(evidence) > 0


# ========================================
# masks モジュール テスト
# ========================================


class TestMasks:
    """マスクヘルパー関数のテスト."""

    def test_require_same_shape_mismatch(self):
        """サイズが異なるとPreconditionErrorが発生."""
        a = np.zeros((10, 10), dtype=np.uint8)
        b = np.zeros((10, 12), dtype=np.uint8)

        with pytest.raises(PreconditionError, match="masks must have the same size"):
            masks.require_same_shape(a, b)

    def test_require_same_shape_ignores_channels(self):
        """チャンネル数の違いは許容されることを確認."""
        masks.require_same_shape(
            np.zeros((10, 10, 3), dtype=np.uint8), np.zeros((10, 10), dtype=np.uint8)
        )

    @pytest.mark.parametrize("op", [masks.intersect, masks.union, masks.xor, masks.mask_iou])
    def test_binary_ops_check_shape(self, op):
        """二項演算がサイズ不一致でPreconditionErrorを発生させることを確認."""
        with pytest.raises(PreconditionError):
            op(np.zeros((5, 5), dtype=np.uint8), np.zeros((6, 5), dtype=np.uint8))

    def test_mask_iou(self, square_mask):
        """IoUの計算を確認."""
        half = square_mask.copy()
        half[:, 300:] = 0

        assert masks.mask_iou(square_mask, square_mask) == 1.0
        assert masks.mask_iou(square_mask, half) == pytest.approx(0.5)

    def test_mask_iou_both_empty(self):
        """両方空のときIoUが0.0になることを確認."""
        empty = masks.empty_mask(10, 10)

        assert masks.mask_iou(empty, empty) == 0.0

    def test_ratio_in_roi(self, square_mask):
        """ROI内の割合を確認."""
        roi = masks.empty_mask(600, 600)
        roi[150:450, 150:300] = 255

        assert masks.ratio_in_roi(square_mask, roi) == pytest.approx(1.0)

    def test_ratio_in_roi_fallback(self, square_mask):
        """ROIが空またはNoneのとき全体の割合を返すことを確認."""
        expected = 300 * 300 / (600 * 600)

        assert masks.ratio_in_roi(square_mask, None) == pytest.approx(expected)
        assert masks.ratio_in_roi(square_mask, masks.empty_mask(600, 600)) == pytest.approx(expected)

    @pytest.mark.parametrize(
        "size,fallback,expected",
        [(3, 3, 3), (4, 3, 5), (0, 7, 7), (-2, 6, 7)],
    )
    def test_normalize_kernel_size(self, size, fallback, expected):
        """カーネルサイズが正の奇数になることを確認."""
        assert masks.normalize_kernel_size(size, fallback) == expected

    def test_open_close_removes_specks(self, square_mask):
        """オープン処理で孤立点が除去されることを確認."""
        noisy = square_mask.copy()
        noisy[20, 20] = 255

        cleaned = masks.open_close(noisy, 3, 7)

        assert cleaned[20, 20] == 0
        assert cleaned[300, 300] == 255

    def test_erode_dilate(self, square_mask):
        """侵食で縮み、膨張で広がることを確認."""
        eroded = masks.erode(square_mask, 11)
        dilated = masks.dilate(square_mask, 11)

        assert eroded[152, 300] == 0 and eroded[300, 300] == 255
        assert dilated[147, 300] == 255 and dilated[140, 300] == 0

    def test_largest_contour(self, square_mask):
        """最大輪郭を取得できることを確認."""
        square_mask[10:20, 10:20] = 255

        contour = masks.largest_contour(square_mask)

        assert cv2.boundingRect(contour) == (150, 150, 300, 300)

    def test_largest_contour_empty(self):
        """空マスクではNoneを返すことを確認."""
        assert masks.largest_contour(masks.empty_mask(10, 10)) is None

    def test_helpers_do_not_modify_inputs(self, square_mask, circle_mask):
        """入力マスクが変更されないことを確認."""
        before = square_mask.copy()

        masks.xor(square_mask, circle_mask)
        masks.open_close(square_mask, 3, 7)

        assert np.array_equal(square_mask, before)


# ========================================
# drawing モジュール テスト
# ========================================


class TestDrawing:
    """描画・エンコードヘルパーのテスト."""

    def test_scale_boxes(self):
        """ボックスが縮尺に合わせて変換されることを確認."""
        boxes = drawing.scale_boxes([(10, 20, 30, 40)], (100, 100), (200, 50))

        assert boxes == [(20, 10, 60, 20)]

    def test_scale_boxes_same_size(self):
        """同サイズでは変換されないことを確認."""
        assert drawing.scale_boxes([(1, 2, 3, 4)], (50, 50), (50, 50)) == [(1, 2, 3, 4)]

    def test_draw_boxes_on_copy(self):
        """入力画像を変更せずに描画することを確認."""
        image = np.zeros((100, 100, 3), dtype=np.uint8)

        output = drawing.draw_boxes(image, [(10, 10, 50, 50)])

        assert image.sum() == 0
        assert tuple(output[10, 30]) == drawing.GREEN

    def test_encode_jpeg(self):
        """JPEGとしてエンコードされることを確認."""
        data = drawing.encode_jpeg(np.full((50, 50, 3), 128, dtype=np.uint8), quality=80)

        assert data[:2] == b"\xff\xd8"
        decoded = cv2.imdecode(np.frombuffer(data, np.uint8), cv2.IMREAD_COLOR)
        assert decoded.shape == (50, 50, 3)

    def test_encode_jpeg_failure(self):
        """エンコード失敗時にInspectionErrorが発生."""
        with patch("part_inspection.imaging.drawing.cv2.imencode", return_value=(False, None)):
            with pytest.raises(InspectionError, match="failed to encode"):
                drawing.encode_jpeg(np.zeros((10, 10, 3), dtype=np.uint8))
