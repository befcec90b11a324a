"""Physical page allocator handing out page-aligned addresses from a free list."""

from __future__ import annotations

import threading

from .bio import Panic

PGSIZE = 4096


def _pgroundup(addr: int) -> int:
    return (addr + PGSIZE - 1) & ~(PGSIZE - 1)


class PageAllocator:
    """Allocates PGSIZE pages from the addresses between end and top."""

    def __init__(self, end: int, top: int) -> None:
        self.end = end
        self.top = top
        self._lock = threading.Lock()
        self._freelist: list[int] = []

    def __len__(self) -> int:
        return len(self._freelist)

    def free_range(self, start: int, end: int) -> None:
        """Free every whole page lying between start and end."""
        for page in range(_pgroundup(start), end - PGSIZE + 1, PGSIZE):
            self.free(page)

    def free(self, addr: int) -> None:
        """Return a page to the free list."""
        if addr % PGSIZE or addr < self.end or addr >= self.top:
            raise Panic("kfree")
        with self._lock:
            self._freelist.append(addr)

    def alloc(self) -> int:
        """Take one page from the free list."""
        with self._lock:
            if not self._freelist:
                raise MemoryError("out of pages")
            return self._freelist.pop()