"""
Scoped ownership of intermediate image buffers.

Every stage derives a handful of full-frame arrays (gray copies, masks,
blurred images). A ``BufferScope`` records them as they are created and
drops its references when the stage exits, whether it returns normally
or raises. Arrays handed back to the caller are detached with ``keep``.
The scope only drops its own references; an array also bound to a local
name lives until that name goes out of scope.
"""

import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


class BufferScope:
    """Context manager tracking arrays derived inside one stage.

    Attributes:
        name: Stage name used in log messages.

    Example:
        >>> with BufferScope("differencer") as scope:
        ...     gray = scope.track(cv2.cvtColor(image, cv2.COLOR_BGR2GRAY))
        ...     mask = scope.track(cv2.threshold(gray, 0, 255, cv2.THRESH_OTSU)[1])
        ...     return scope.keep(mask)
    """

    def __init__(self, name: str = "stage") -> None:
        self.name = name
        self._buffers: dict[int, np.ndarray] = {}
        self._released_bytes = 0
        self._closed = False

    def __enter__(self) -> "BufferScope":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    @property
    def live_count(self) -> int:
        """Number of arrays still owned by the scope."""
        return len(self._buffers)

    @property
    def released_bytes(self) -> int:
        """Total bytes of arrays released so far."""
        return self._released_bytes

    @property
    def closed(self) -> bool:
        return self._closed

    def track(self, array: Optional[np.ndarray]) -> Optional[np.ndarray]:
        """Register an array with the scope and return it unchanged."""
        if array is None:
            return None
        if self._closed:
            raise RuntimeError(f"Buffer scope '{self.name}' is already released")
        self._buffers[id(array)] = array
        return array

    def keep(self, array: np.ndarray) -> np.ndarray:
        """Detach an array so it outlives the scope."""
        self._buffers.pop(id(array), None)
        return array

    def release(self) -> None:
        """Drop every tracked array. Safe to call more than once."""
        if self._closed:
            return
        freed = sum(buf.nbytes for buf in self._buffers.values())
        self._released_bytes += freed
        if self._buffers:
            logger.debug(
                "buffers.release scope=%s count=%d bytes=%d",
                self.name,
                len(self._buffers),
                freed,
            )
        self._buffers.clear()
        self._closed = True
