import pytest

from tinyfs.bio import Panic
from tinyfs.kalloc import PGSIZE, PageAllocator

END = 0x100000
TOP = 0x200000


def test_pages_are_4096_bytes_apart():
    a = PageAllocator(END, TOP)
    a.free_range(END, END + 8192)
    assert sorted([a.alloc(), a.alloc()]) == [END, END + 4096]


def test_alloc_is_last_freed_first():
    a = PageAllocator(END, TOP)
    a.free(END)
    a.free(END + PGSIZE)
    assert a.alloc() == END + PGSIZE
    assert a.alloc() == END


def test_free_range_rounds_up_and_aligns():
    a = PageAllocator(END, TOP)
    a.free_range(END + 1, END + 4 * PGSIZE)
    pages = [a.alloc() for _ in range(len(a))]
    assert len(pages) == 3
    assert all(p % PGSIZE == 0 and p > END for p in pages)
    assert sorted(pages) == [END + PGSIZE, END + 2 * PGSIZE, END + 3 * PGSIZE]


def test_free_range_skips_partial_last_page():
    a = PageAllocator(END, TOP)
    a.free_range(END, END + PGSIZE - 1)
    assert len(a) == 0


def test_exhaustion_raises():
    a = PageAllocator(END, TOP)
    with pytest.raises(MemoryError):
        a.alloc()


@pytest.mark.parametrize("addr", [END + 1, END - PGSIZE, TOP])
def test_bad_free_panics(addr):
    a = PageAllocator(END, TOP)
    with pytest.raises(Panic):
        a.free(addr)


def test_alloc_free_round_trip():
    a = PageAllocator(END, TOP)
    a.free_range(END, END + 8 * PGSIZE)
    before = len(a)
    page = a.alloc()
    assert len(a) == before - 1
    a.free(page)
    assert len(a) == before