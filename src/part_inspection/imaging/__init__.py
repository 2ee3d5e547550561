"""Low-level image buffer and mask helpers."""

from . import masks
from .buffers import BufferScope

__all__ = ["BufferScope", "masks"]
