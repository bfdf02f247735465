"""Two-level x86 page tables over a simulated pool of physical pages."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from xvkit.locks import KernelPanic
from xvkit.mmu import (
    DEVSPACE,
    EXTMEM,
    KERNBASE,
    KERNLINK,
    NPDENTRIES,
    PDXSHIFT,
    PGSIZE,
    PHYSTOP,
    PTE_P,
    PTE_U,
    PTE_W,
    UINT_MASK,
    p2v,
    pdx,
    pgrounddown,
    pgroundup,
    pte_addr,
    pte_flags,
    ptx,
    v2p,
)

_ENTRY_SIZE = 4


class OutOfMemory(MemoryError):
    """No physical page could be allocated."""


class PhysicalMemory:
    """A pool of physical pages between start and end."""

    def __init__(self, start: int = EXTMEM, end: int = PHYSTOP) -> None:
        if start <= 0 or start % PGSIZE or end % PGSIZE or end <= start:
            raise ValueError("physical range must be page aligned, non-empty and above zero")
        self.start = start
        self.end = end
        self._free = list(range(start, end, PGSIZE))
        self._pages: dict[int, bytearray] = {}

    @property
    def available(self) -> int:
        """Number of free pages."""
        return len(self._free)

    def alloc(self) -> int:
        """Allocate one page and return its physical address."""
        if not self._free:
            raise OutOfMemory("out of physical pages")
        pa = self._free.pop()
        self._pages[pa] = bytearray(PGSIZE)
        return pa

    def free(self, pa: int) -> None:
        """Return an allocated page to the pool."""
        if pa % PGSIZE or not self.start <= pa < self.end or pa not in self._pages:
            raise KernelPanic("kfree")
        del self._pages[pa]
        self._free.append(pa)

    def _locate(self, pa: int, n: int) -> tuple[bytearray, int]:
        base = pgrounddown(pa)
        page = self._pages.get(base)
        offset = pa - base
        if page is None or n < 0 or offset + n > PGSIZE:
            raise ValueError(f"physical range 0x{pa:x}+{n} is not inside an allocated page")
        return page, offset

    def read(self, pa: int, n: int) -> bytes:
        """Read n bytes from within one allocated page."""
        page, offset = self._locate(pa, n)
        return bytes(page[offset:offset + n])

    def write(self, pa: int, data: bytes) -> None:
        """Write data within one allocated page."""
        data = bytes(data)
        page, offset = self._locate(pa, len(data))
        page[offset:offset + len(data)] = data


@dataclass(frozen=True)
class KernelMapping:
    """One region of the kernel's part of every address space."""

    virt: int
    phys_start: int
    phys_end: int
    perm: int

    @classmethod
    def standard(cls, data: int) -> tuple["KernelMapping", ...]:
        """The kernel layout, given the virtual address where kernel data begins."""
        if not KERNLINK < data <= p2v(PHYSTOP) or data % PGSIZE:
            raise ValueError("kernel data address out of range")
        return (
            cls(KERNBASE, 0, EXTMEM, PTE_W),
            cls(KERNLINK, v2p(KERNLINK), v2p(data), 0),
            cls(data, v2p(data), PHYSTOP, PTE_W),
            cls(DEVSPACE, DEVSPACE, 0, PTE_W),
        )


class AddressSpace:
    """A page directory and the user and kernel mappings it holds."""

    def __init__(self, memory: PhysicalMemory, kmap: Iterable[KernelMapping] = ()) -> None:
        self.memory = memory
        self.kmap = tuple(kmap)
        pgdir = memory.alloc()
        memory.write(pgdir, bytes(PGSIZE))
        self.pgdir: Optional[int] = pgdir

    def _directory(self) -> int:
        if self.pgdir is None:
            raise KernelPanic("freevm: no pgdir")
        return self.pgdir

    def _entry(self, addr: int) -> int:
        return int.from_bytes(self.memory.read(addr, _ENTRY_SIZE), "little")

    def _set_entry(self, addr: int, value: int) -> None:
        self.memory.write(addr, (value & UINT_MASK).to_bytes(_ENTRY_SIZE, "little"))

    def walk(self, va: int, alloc: bool = False) -> Optional[int]:
        """Physical address of the page table entry for va, or None if absent.

        With alloc, a missing page table is created.
        """
        pde_slot = self._directory() + _ENTRY_SIZE * pdx(va)
        pde = self._entry(pde_slot)
        if pde & PTE_P:
            pgtab = pte_addr(pde)
        else:
            if not alloc:
                return None
            pgtab = self.memory.alloc()
            self.memory.write(pgtab, bytes(PGSIZE))
            self._set_entry(pde_slot, pgtab | PTE_P | PTE_W | PTE_U)
        return pgtab + _ENTRY_SIZE * ptx(va)

    def map_pages(self, va: int, size: int, pa: int, perm: int) -> None:
        """Map [va, va+size) onto physical memory starting at pa."""
        if size <= 0:
            raise ValueError("mapping size must be positive")
        a = pgrounddown(va)
        last = pgrounddown(va + size - 1)
        while True:
            pte = self.walk(a, alloc=True)
            assert pte is not None
            if self._entry(pte) & PTE_P:
                raise KernelPanic("remap")
            self._set_entry(pte, pa | perm | PTE_P)
            if a == last:
                break
            a = (a + PGSIZE) & UINT_MASK
            pa = (pa + PGSIZE) & UINT_MASK

    def init_user(self, init: bytes) -> None:
        """Load a program of less than a page at address 0."""
        if len(init) >= PGSIZE:
            raise KernelPanic("inituvm: more than a page")
        mem = self.memory.alloc()
        self.memory.write(mem, bytes(PGSIZE))
        self.map_pages(0, PGSIZE, mem, PTE_W | PTE_U)
        self.memory.write(mem, init)

    def load_user(self, addr: int, data: bytes, offset: int, sz: int) -> None:
        """Copy sz bytes of data from offset into the already mapped pages at addr."""
        if addr % PGSIZE:
            raise KernelPanic("loaduvm: addr must be page aligned")
        for i in range(0, sz, PGSIZE):
            pte = self.walk(addr + i)
            if pte is None:
                raise KernelPanic("loaduvm: address should exist")
            pa = pte_addr(self._entry(pte))
            n = min(sz - i, PGSIZE)
            chunk = data[offset + i:offset + i + n]
            if len(chunk) != n:
                raise ValueError("program segment extends past the end of the file")
            self.memory.write(pa, chunk)

    def alloc_user(self, oldsz: int, newsz: int) -> int:
        """Grow user memory from oldsz to newsz and return the new size."""
        if newsz >= KERNBASE:
            raise ValueError("user memory would reach kernel space")
        if newsz < oldsz:
            return oldsz
        for a in range(pgroundup(oldsz), newsz, PGSIZE):
            try:
                mem = self.memory.alloc()
            except OutOfMemory:
                self.dealloc_user(newsz, oldsz)
                raise OutOfMemory("allocuvm out of memory") from None
            self.memory.write(mem, bytes(PGSIZE))
            try:
                self.map_pages(a, PGSIZE, mem, PTE_W | PTE_U)
            except OutOfMemory:
                self.dealloc_user(newsz, oldsz)
                self.memory.free(mem)
                raise OutOfMemory("allocuvm out of memory (2)") from None
        return newsz

    def dealloc_user(self, oldsz: int, newsz: int) -> int:
        """Shrink user memory from oldsz to newsz and return the new size."""
        if newsz >= oldsz:
            return oldsz
        a = pgroundup(newsz)
        while a < oldsz:
            pte = self.walk(a)
            if pte is None:
                a = ((pdx(a) + 1) << PDXSHIFT) - PGSIZE
            else:
                entry = self._entry(pte)
                if entry & PTE_P:
                    pa = pte_addr(entry)
                    if pa == 0:
                        raise KernelPanic("kfree")
                    self.memory.free(pa)
                    self._set_entry(pte, 0)
            a += PGSIZE
        return newsz

    def free(self) -> None:
        """Release every user page, every page table and the directory itself."""
        pgdir = self._directory()
        self.dealloc_user(KERNBASE, 0)
        for i in range(NPDENTRIES):
            pde = self._entry(pgdir + _ENTRY_SIZE * i)
            if pde & PTE_P:
                self.memory.free(pte_addr(pde))
        self.memory.free(pgdir)
        self.pgdir = None

    def clear_user(self, uva: int) -> None:
        """Make the page at uva inaccessible to user code."""
        pte = self.walk(uva)
        if pte is None:
            raise KernelPanic("clearpteu")
        self._set_entry(pte, self._entry(pte) & ~PTE_U)

    def copy(self, sz: int) -> "AddressSpace":
        """A new address space holding a copy of the first sz bytes of user memory."""
        child = setup_kvm(self.memory, self.kmap)
        try:
            for i in range(0, sz, PGSIZE):
                pte = self.walk(i)
                if pte is None:
                    raise KernelPanic("copyuvm: pte should exist")
                entry = self._entry(pte)
                if not entry & PTE_P:
                    raise KernelPanic("copyuvm: page not present")
                pa, flags = pte_addr(entry), pte_flags(entry)
                mem = self.memory.alloc()
                self.memory.write(mem, self.memory.read(pa, PGSIZE))
                try:
                    child.map_pages(i, PGSIZE, mem, flags)
                except OutOfMemory:
                    self.memory.free(mem)
                    raise
        except OutOfMemory:
            child.free()
            raise
        return child

    def user_to_kernel(self, uva: int) -> Optional[int]:
        """Kernel virtual address of the user page at uva, or None if not user-accessible."""
        pte = self.walk(uva)
        if pte is None:
            return None
        entry = self._entry(pte)
        if not entry & PTE_P or not entry & PTE_U:
            return None
        return p2v(pte_addr(entry))

    def copy_out(self, va: int, data: bytes) -> None:
        """Copy data to user address va, page by page."""
        buf = memoryview(bytes(data))
        while buf:
            va0 = pgrounddown(va)
            ka = self.user_to_kernel(va0)
            if ka is None:
                raise ValueError(f"user address 0x{va:x} is not mapped")
            n = min(PGSIZE - (va - va0), len(buf))
            self.memory.write(v2p(ka) + (va - va0), buf[:n])
            buf = buf[n:]
            va = va0 + PGSIZE


def setup_kvm(memory: PhysicalMemory, kmap: Iterable[KernelMapping]) -> AddressSpace:
    """A new address space holding only the kernel mappings."""
    kmap = tuple(kmap)
    if p2v(PHYSTOP) > DEVSPACE:
        raise KernelPanic("PHYSTOP too high")
    space = AddressSpace(memory, kmap)
    try:
        for k in kmap:
            space.map_pages(k.virt, (k.phys_end - k.phys_start) & UINT_MASK, k.phys_start, k.perm)
    except OutOfMemory:
        space.free()
        raise
    return space