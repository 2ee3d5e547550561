"""
Image loading and resizing utilities.

Decodes uploaded photos into BGR pixel arrays and applies the size
normalization used by the detector.
"""

import logging
from pathlib import Path
from typing import Union

import cv2
import numpy as np

from ..errors import DecodeError

logger = logging.getLogger(__name__)


class ImageLoader:
    """Image loader for inspection photos.

    All arrays returned are uint8 BGR with shape (H, W, 3), the channel
    order OpenCV expects throughout the pipeline.

    Example:
        >>> loader = ImageLoader()
        >>> image = loader.decode(Path("part.jpg").read_bytes())
        >>> image = loader.resize_to_max_side(image, 1024)
    """

    def decode(self, image_bytes: bytes) -> np.ndarray:
        """Decode encoded image bytes.

        Args:
            image_bytes: Encoded image data (JPEG, PNG, ...).

        Returns:
            Image as numpy array in BGR format.

        Raises:
            DecodeError: If the input is empty or not a decodable image.
        """
        if not image_bytes:
            raise DecodeError("empty image data")

        nparr = np.frombuffer(image_bytes, np.uint8)
        try:
            image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
        except cv2.error as e:
            raise DecodeError(f"failed to decode image: {e}") from e

        if image is None or image.size == 0:
            raise DecodeError("failed to decode image from bytes")

        return image

    def load(self, image_path: Union[str, Path]) -> np.ndarray:
        """Load image from file.

        Args:
            image_path: Path to image file.

        Returns:
            Image as numpy array in BGR format.

        Raises:
            FileNotFoundError: If image file doesn't exist.
            DecodeError: If the file is not a decodable image.
        """
        return self.decode(self.read_bytes(image_path))

    def read_bytes(self, image_path: Union[str, Path]) -> bytes:
        """Read the raw bytes of an image file.

        Raises:
            FileNotFoundError: If image file doesn't exist.
        """
        path = Path(image_path)
        if not path.exists():
            raise FileNotFoundError(f"Image not found: {path}")
        return path.read_bytes()

    def resize_to_max_side(self, image: np.ndarray, max_side: int) -> np.ndarray:
        """Downscale so the longest side is at most ``max_side``.

        Images already small enough are returned unchanged. Uses area
        interpolation, which avoids moire on downscaling.
        """
        h, w = image.shape[:2]
        longest = max(h, w)
        if max_side <= 0 or longest <= max_side:
            return image

        scale = max_side / longest
        new_w = max(1, int(round(w * scale)))
        new_h = max(1, int(round(h * scale)))
        logger.debug("loader.resize from=%dx%d to=%dx%d", w, h, new_w, new_h)
        return cv2.resize(image, (new_w, new_h), interpolation=cv2.INTER_AREA)

    def resize_to(self, image: np.ndarray, width: int, height: int) -> np.ndarray:
        """Resize to an exact size with area interpolation."""
        h, w = image.shape[:2]
        if (w, h) == (width, height):
            return image
        return cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)

