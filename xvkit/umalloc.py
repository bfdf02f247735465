"""First-fit memory allocator over a growable heap, with a circular free list."""

from __future__ import annotations

from typing import Optional

HEADER_SIZE = 8
MIN_UNITS = 4096

# Sentinel header of the free list; it lies below every heap address.
_BASE = -HEADER_SIZE


class Heap:
    """A program break plus the allocator that carves blocks out of it.

    Addresses are byte offsets. Every block is preceded by a header of
    HEADER_SIZE bytes, and block sizes are counted in header-sized units.
    """

    def __init__(self, start: int = 0, limit: Optional[int] = None) -> None:
        if start < 0 or start % HEADER_SIZE:
            raise ValueError("heap start must be a non-negative multiple of the header size")
        if limit is not None and limit < start:
            raise ValueError("heap limit below its start")
        self.start = start
        self.brk = start
        self.limit = limit
        self._ptr: dict[int, int] = {}
        self._size: dict[int, int] = {}
        self._allocated: set[int] = set()
        self._freep: Optional[int] = None

    def sbrk(self, n: int) -> int:
        """Move the break by n bytes and return the old break."""
        old = self.brk
        new = old + n
        if new < self.start or (self.limit is not None and new > self.limit):
            raise MemoryError("sbrk: cannot move the break there")
        self.brk = new
        return old

    def _morecore(self, nunits: int) -> int:
        nunits = max(nunits, MIN_UNITS)
        header = self.sbrk(nunits * HEADER_SIZE)
        self._size[header] = nunits
        self._release(header)
        assert self._freep is not None
        return self._freep

    def malloc(self, nbytes: int) -> int:
        """Allocate nbytes and return the address of the block's data."""
        if nbytes < 0:
            raise ValueError("negative allocation size")
        nunits = (nbytes + HEADER_SIZE - 1) // HEADER_SIZE + 1
        if self._freep is None:
            self._ptr[_BASE] = _BASE
            self._size[_BASE] = 0
            self._freep = _BASE
        prevp = self._freep
        p = self._ptr[prevp]
        while True:
            size = self._size[p]
            if size >= nunits:
                if size == nunits:
                    self._ptr[prevp] = self._ptr.pop(p)
                else:
                    self._size[p] = size - nunits
                    p += (size - nunits) * HEADER_SIZE
                    self._size[p] = nunits
                self._freep = prevp
                self._allocated.add(p)
                return p + HEADER_SIZE
            if p == self._freep:
                p = self._morecore(nunits)
            prevp, p = p, self._ptr[p]

    def free(self, addr: int) -> None:
        """Return a block obtained from malloc to the free list."""
        header = addr - HEADER_SIZE
        if header not in self._allocated:
            raise ValueError(f"free of address {addr} that is not allocated")
        self._allocated.remove(header)
        self._release(header)

    def _release(self, bp: int) -> None:
        assert self._freep is not None
        p = self._freep
        while not (p < bp < self._ptr[p]):
            nxt = self._ptr[p]
            if p >= nxt and (bp > p or bp < nxt):
                break
            p = nxt
        nxt = self._ptr[p]
        if bp + self._size[bp] * HEADER_SIZE == nxt:
            self._size[bp] += self._size.pop(nxt)
            self._ptr[bp] = self._ptr.pop(nxt)
        else:
            self._ptr[bp] = nxt
        if p + self._size[p] * HEADER_SIZE == bp:
            self._size[p] += self._size.pop(bp)
            self._ptr[p] = self._ptr.pop(bp)
        else:
            self._ptr[p] = bp
        self._freep = p

    def free_blocks(self) -> list[tuple[int, int]]:
        """The free blocks as (header address, size in units), in address order."""
        if self._freep is None:
            return []
        blocks = []
        p = self._ptr[_BASE]
        while p != _BASE:
            blocks.append((p, self._size[p]))
            p = self._ptr[p]
        return blocks