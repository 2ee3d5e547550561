"""
部品セグメンター（segmenter.py）のユニットテスト.

PartSegmenter の部品マスク抽出と内部ROIの生成をテストします。
"""

import numpy as np
import pytest

from part_inspection.imaging import masks
from part_inspection.models.profile import DetectionProfile
from part_inspection.models.segmenter import PartSegmenter


# ========================================
# segment() テスト
# ========================================


class TestPartSegmenterSegment:
    """PartSegmenter.segment() のテスト."""

    def test_segment_part(self, profile, part_image):
        """部品の正方形がマスクとして抽出されることを確認."""
        mask = PartSegmenter(profile).segment(part_image)

        assert mask.shape == (700, 700)
        assert mask.dtype == np.uint8
        assert set(np.unique(mask)) <= {0, 255}
        assert mask[350, 350] == 255
        assert mask[20, 20] == 0
        # 500x500 の部品 + エッジ膨張分
        assert 250000 <= masks.count(mask) <= 270000

    def test_segment_uniform_image_falls_back_to_full_frame(self, profile):
        """エッジがない画像では全面マスクになることを確認."""
        image = np.full((500, 500, 3), 128, dtype=np.uint8)

        mask = PartSegmenter(profile).segment(image)

        assert masks.count(mask) == 500 * 500

    def test_segment_small_part_falls_back_to_full_frame(self, profile):
        """部品が小さすぎると全面マスクになることを確認."""
        image = np.full((600, 600, 3), 255, dtype=np.uint8)
        image[290:310, 290:310] = 0

        mask = PartSegmenter(profile).segment(image)

        assert masks.count(mask) == 600 * 600

    def test_segment_grayscale_input(self, profile, part_image):
        """グレースケール入力も受け付けることを確認."""
        gray = part_image[:, :, 0].copy()

        mask = PartSegmenter(profile).segment(gray)

        assert mask[350, 350] == 255

    def test_segment_ignores_interior_defect(self, profile, part_image, defect_image):
        """部品内部の欠陥はマスク形状に影響しないことを確認."""
        segmenter = PartSegmenter(profile)

        base = segmenter.segment(part_image)
        current = segmenter.segment(defect_image)

        assert masks.mask_iou(base, current) == pytest.approx(1.0)


# ========================================
# interior_mask() テスト
# ========================================


class TestPartSegmenterInterior:
    """PartSegmenter.interior_mask() のテスト."""

    def test_interior_is_eroded(self, profile, square_mask):
        """内部マスクが元のマスクより小さいことを確認."""
        interior = PartSegmenter(profile).interior_mask(square_mask)

        assert masks.count(interior) < masks.count(square_mask)
        assert masks.count(masks.intersect(interior, square_mask)) == masks.count(interior)

    def test_interior_does_not_alias_input(self, square_mask):
        """侵食無効時もコピーを返すことを確認."""
        segmenter = PartSegmenter(DetectionProfile(roi_margin_kernel=2))

        interior = segmenter.interior_mask(square_mask)

        assert interior is not square_mask
        assert np.array_equal(interior, square_mask)

    def test_interior_keeps_mask_when_erosion_empties_it(self, profile):
        """侵食で空になる場合は元のマスクを返すことを確認."""
        tiny = np.zeros((50, 50), dtype=np.uint8)
        tiny[25:27, 25:27] = 255

        interior = PartSegmenter(profile).interior_mask(tiny)

        assert np.array_equal(interior, tiny)
