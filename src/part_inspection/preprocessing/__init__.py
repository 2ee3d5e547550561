"""Image loading for the part inspection package."""

from .image_loader import ImageLoader

__all__ = ["ImageLoader"]
