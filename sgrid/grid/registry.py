"""Arena of grids addressed by integer handles.

Handles stay valid until destroyed; destroyed slots are reused, smallest
first. Each registry is an ordinary object, nothing is module global.

Import Policy:
    from sgrid.grid.registry import GridRegistry
"""

import heapq
import logging
from typing import Iterator, List, Optional

from sgrid.config.validation import InvalidArgumentError
from sgrid.grid.sparse_grid import SparseGrid

logger = logging.getLogger(__name__)


class GridRegistry:
    """Owns SparseGrid objects on behalf of handle based callers.

    Example:
        >>> registry = GridRegistry()
        >>> handle = registry.create()
        >>> registry.get(handle).empty()
        True
    """

    def __init__(self):
        self._slots: List[Optional[SparseGrid]] = []
        self._free: List[int] = []

    def create(self, **kwargs) -> int:
        """Store a new empty grid and return its handle."""
        grid = SparseGrid(**kwargs)
        if self._free:
            handle = heapq.heappop(self._free)
            self._slots[handle] = grid
        else:
            handle = len(self._slots)
            self._slots.append(grid)
        logger.debug("created grid handle %d", handle)
        return handle

    def _check(self, handle: int) -> int:
        if not isinstance(handle, int) or handle < 0 or handle >= len(self._slots) \
                or self._slots[handle] is None:
            raise InvalidArgumentError(f"unknown grid handle {handle}")
        return handle

    def get(self, handle: int) -> SparseGrid:
        return self._slots[self._check(handle)]

    def destroy(self, handle: int) -> None:
        self._check(handle)
        self._slots[handle] = None
        heapq.heappush(self._free, handle)
        logger.debug("destroyed grid handle %d", handle)

    def __contains__(self, handle) -> bool:
        return isinstance(handle, int) and 0 <= handle < len(self._slots) \
            and self._slots[handle] is not None

    def __len__(self) -> int:
        return len(self._slots) - len(self._free)

    def handles(self) -> Iterator[int]:
        return (h for h, grid in enumerate(self._slots) if grid is not None)
