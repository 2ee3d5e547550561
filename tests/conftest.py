"""
共通テストフィクスチャ

このモジュールは全テストで共有されるフィクスチャを提供します。
- 合成した部品画像（正常 / 欠陥あり / 欠け）
- テスト用マスク
- テスト用データ構造
"""

import tempfile
from pathlib import Path

import cv2
import matplotlib
import numpy as np
import pytest

matplotlib.use("Agg")

from part_inspection.models.profile import DetectionProfile  # noqa: E402
from part_inspection.models.types import DefectCandidate, InspectionResult  # noqa: E402


# ========================================
# 合成画像ヘルパー
# ========================================

FRAME_SIZE = 700
PART_TOP_LEFT = 100
PART_SIZE = 500
PART_GRAY = 128
DOT_GRAY = 30
DEFECT_BOX = (300, 300, 40, 40)  # (x, y, w, h)


def make_part_image(offset: tuple[int, int] = (0, 0)) -> np.ndarray:
    """白背景に灰色の正方形部品（ドット模様付き）を描いたBGR画像を生成.

    Args:
        offset: 部品の平行移動量 (dx, dy)。
    """
    dx, dy = offset
    image = np.full((FRAME_SIZE, FRAME_SIZE, 3), 255, dtype=np.uint8)
    x0, y0 = PART_TOP_LEFT + dx, PART_TOP_LEFT + dy
    image[y0:y0 + PART_SIZE, x0:x0 + PART_SIZE] = PART_GRAY

    # シャープネス判定用のテクスチャ
    for y in range(y0 + 10, y0 + PART_SIZE - 5, 20):
        for x in range(x0 + 10, x0 + PART_SIZE - 5, 20):
            image[y - 1:y + 2, x - 1:x + 2] = DOT_GRAY
    return image


def add_dark_defect(image: np.ndarray, box: tuple[int, int, int, int] = DEFECT_BOX) -> np.ndarray:
    """部品上に黒い正方形の欠陥を描いたコピーを返す."""
    output = image.copy()
    x, y, w, h = box
    output[y:y + h, x:x + w] = 0
    return output


def break_corner(image: np.ndarray) -> np.ndarray:
    """部品の左上角を三角形に切り欠いたコピーを返す."""
    output = image.copy()
    triangle = np.array([[100, 100], [350, 100], [100, 350]], dtype=np.int32)
    cv2.fillPoly(output, [triangle], (255, 255, 255))
    return output


def encode_png(image: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".png", image)
    assert ok
    return buf.tobytes()


# ========================================
# 画像フィクスチャ
# ========================================


@pytest.fixture
def part_image() -> np.ndarray:
    """欠陥のない部品画像 (700x700x3, BGR)."""
    return make_part_image()


@pytest.fixture
def defect_image(part_image) -> np.ndarray:
    """黒い欠陥を含む部品画像."""
    return add_dark_defect(part_image)


@pytest.fixture
def broken_image(part_image) -> np.ndarray:
    """角が欠けた部品画像."""
    return break_corner(part_image)


@pytest.fixture
def shifted_part_image() -> np.ndarray:
    """部品を (30, 20) 平行移動した画像."""
    return make_part_image(offset=(30, 20))


@pytest.fixture
def part_bytes(part_image) -> bytes:
    return encode_png(part_image)


@pytest.fixture
def defect_bytes(defect_image) -> bytes:
    return encode_png(defect_image)


@pytest.fixture
def broken_bytes(broken_image) -> bytes:
    return encode_png(broken_image)


@pytest.fixture
def dark_bytes() -> bytes:
    """真っ黒な画像 (600x600)."""
    return encode_png(np.zeros((600, 600, 3), dtype=np.uint8))


@pytest.fixture
def small_bytes() -> bytes:
    """品質ゲートの最小サイズ未満の画像 (300x300)."""
    return encode_png(make_part_image()[:300, :300])


@pytest.fixture
def temp_image_file(part_image) -> Path:
    """一時画像ファイルを作成."""
    with tempfile.NamedTemporaryFile(suffix=".png", delete=False) as f:
        cv2.imwrite(f.name, part_image)
        temp_path = Path(f.name)

    yield temp_path

    # クリーンアップ
    temp_path.unlink(missing_ok=True)


# ========================================
# マスクフィクスチャ
# ========================================


@pytest.fixture
def square_mask() -> np.ndarray:
    """中央に正方形 (300x300) のあるマスク (600x600)."""
    mask = np.zeros((600, 600), dtype=np.uint8)
    mask[150:450, 150:450] = 255
    return mask


@pytest.fixture
def circle_mask() -> np.ndarray:
    """中央に円 (半径150) のあるマスク (600x600)."""
    mask = np.zeros((600, 600), dtype=np.uint8)
    cv2.circle(mask, (300, 300), 150, 255, thickness=-1)
    return mask


# ========================================
# プロファイル・検査結果フィクスチャ
# ========================================


@pytest.fixture
def profile() -> DetectionProfile:
    """デフォルトの検出プロファイル."""
    return DetectionProfile()


@pytest.fixture
def sample_candidates() -> list[DefectCandidate]:
    """段階の異なる複数の欠陥候補."""
    return [
        DefectCandidate.from_box(100, 100, 40, 40, "diff_contour contour_area=1521.0 fill=0.951 aspect=1.000"),
        DefectCandidate.from_box(300, 320, 60, 30, "diff_contour contour_area=1711.0 fill=0.951 aspect=2.000"),
        DefectCandidate.from_box(10, 10, 200, 150, "broken_structural_mask contour_area=15000.0 fill=0.500 aspect=1.333"),
    ]


@pytest.fixture
def sample_inspection_result(sample_candidates) -> InspectionResult:
    """欠陥ありの検査結果."""
    return InspectionResult.from_candidates(700, 700, sample_candidates)


@pytest.fixture
def clean_inspection_result() -> InspectionResult:
    """欠陥なしの検査結果."""
    return InspectionResult.from_candidates(700, 700, [])
