"""x86 memory-management layout, kernel parameters and ELF header records."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator

UINT_MASK = 0xFFFFFFFF
USHORT_MASK = 0xFFFF
UCHAR_MASK = 0xFF

# Kernel parameters.
NPROC = 64
KSTACKSIZE = 4096
NCPU = 8
NOFILE = 16
NFILE = 100
NINODE = 50
NDEV = 10
ROOTDEV = 1
MAXARG = 32
MAXOPBLOCKS = 10
LOGSIZE = MAXOPBLOCKS * 3
NBUF = MAXOPBLOCKS * 3
FSSIZE = 1000

# Memory layout.
EXTMEM = 0x100000
PHYSTOP = 0xE000000
DEVSPACE = 0xFE000000
KERNBASE = 0x80000000
KERNLINK = KERNBASE + EXTMEM

# Eflags and control registers.
FL_IF = 0x00000200
CR0_PE = 0x00000001
CR0_WP = 0x00010000
CR0_PG = 0x80000000
CR4_PSE = 0x00000010

# Segment selectors.
SEG_KCODE = 1
SEG_KDATA = 2
SEG_UCODE = 3
SEG_UDATA = 4
SEG_TSS = 5
NSEGS = 6

DPL_USER = 0x3

# Application segment type bits.
STA_X = 0x8
STA_W = 0x2
STA_R = 0x2

# System segment type bits.
STS_T32A = 0x9
STS_IG32 = 0xE
STS_TG32 = 0xF

# Paging.
NPDENTRIES = 1024
NPTENTRIES = 1024
PGSIZE = 4096
PTXSHIFT = 12
PDXSHIFT = 22

PTE_P = 0x001
PTE_W = 0x002
PTE_U = 0x004
PTE_PS = 0x080

# ELF.
ELF_MAGIC = 0x464C457F
ELF_PROG_LOAD = 1
ELF_PROG_FLAG_EXEC = 1
ELF_PROG_FLAG_WRITE = 2
ELF_PROG_FLAG_READ = 4


def _u(value: int) -> int:
    return value & UINT_MASK


def pdx(va: int) -> int:
    """Page directory index of a virtual address."""
    return (_u(va) >> PDXSHIFT) & 0x3FF


def ptx(va: int) -> int:
    """Page table index of a virtual address."""
    return (_u(va) >> PTXSHIFT) & 0x3FF


def pgaddr(d: int, t: int, o: int) -> int:
    """Build a virtual address from directory index, table index and offset."""
    return _u(d << PDXSHIFT | t << PTXSHIFT | o)


def pgroundup(sz: int) -> int:
    """Round up to the next page boundary (32-bit arithmetic)."""
    return _u(sz + PGSIZE - 1) & _u(~(PGSIZE - 1))


def pgrounddown(a: int) -> int:
    """Round down to a page boundary."""
    return _u(a) & _u(~(PGSIZE - 1))


def pte_addr(pte: int) -> int:
    """Physical address held in a page table entry."""
    return _u(pte) & _u(~0xFFF)


def pte_flags(pte: int) -> int:
    """Flag bits of a page table entry."""
    return _u(pte) & 0xFFF


def v2p(a: int) -> int:
    """Kernel virtual address to physical address."""
    return _u(a - KERNBASE)


def p2v(a: int) -> int:
    """Physical address to kernel virtual address."""
    return _u(a + KERNBASE)


def _pack_fields(obj: object, layout: tuple[tuple[str, int], ...]) -> bytes:
    value = 0
    shift = 0
    for name, width in layout:
        value |= (getattr(obj, name) & ((1 << width) - 1)) << shift
        shift += width
    return value.to_bytes(shift // 8, "little")


_SEG_LAYOUT = (
    ("lim_15_0", 16),
    ("base_15_0", 16),
    ("base_23_16", 8),
    ("type", 4),
    ("s", 1),
    ("dpl", 2),
    ("p", 1),
    ("lim_19_16", 4),
    ("avl", 1),
    ("rsv1", 1),
    ("db", 1),
    ("g", 1),
    ("base_31_24", 8),
)

_GATE_LAYOUT = (
    ("off_15_0", 16),
    ("cs", 16),
    ("args", 5),
    ("rsv1", 3),
    ("type", 4),
    ("s", 1),
    ("dpl", 2),
    ("p", 1),
    ("off_31_16", 16),
)


@dataclass(frozen=True)
class SegmentDescriptor:
    """An x86 segment descriptor."""

    lim_15_0: int = 0
    base_15_0: int = 0
    base_23_16: int = 0
    type: int = 0
    s: int = 0
    dpl: int = 0
    p: int = 0
    lim_19_16: int = 0
    avl: int = 0
    rsv1: int = 0
    db: int = 0
    g: int = 0
    base_31_24: int = 0

    @classmethod
    def seg(cls, type: int, base: int, lim: int, dpl: int) -> "SegmentDescriptor":
        """Normal 32-bit segment with a limit in 4 KiB units."""
        base, lim = _u(base), _u(lim)
        return cls(
            lim_15_0=(lim >> 12) & 0xFFFF,
            base_15_0=base & 0xFFFF,
            base_23_16=(base >> 16) & 0xFF,
            type=type & 0xF,
            s=1,
            dpl=dpl & 0x3,
            p=1,
            lim_19_16=(lim >> 28) & 0xF,
            avl=0,
            rsv1=0,
            db=1,
            g=1,
            base_31_24=(base >> 24) & 0xFF,
        )

    @classmethod
    def seg16(cls, type: int, base: int, lim: int, dpl: int) -> "SegmentDescriptor":
        """Segment with a byte-granular limit."""
        base, lim = _u(base), _u(lim)
        return cls(
            lim_15_0=lim & 0xFFFF,
            base_15_0=base & 0xFFFF,
            base_23_16=(base >> 16) & 0xFF,
            type=type & 0xF,
            s=1,
            dpl=dpl & 0x3,
            p=1,
            lim_19_16=(lim >> 16) & 0xF,
            avl=0,
            rsv1=0,
            db=1,
            g=0,
            base_31_24=(base >> 24) & 0xFF,
        )

    @property
    def base(self) -> int:
        return self.base_15_0 | self.base_23_16 << 16 | self.base_31_24 << 24

    def pack(self) -> bytes:
        """The eight bytes of the descriptor as laid out in the GDT."""
        return _pack_fields(self, _SEG_LAYOUT)


@dataclass(frozen=True)
class GateDescriptor:
    """An x86 interrupt or trap gate descriptor."""

    off_15_0: int = 0
    cs: int = 0
    args: int = 0
    rsv1: int = 0
    type: int = 0
    s: int = 0
    dpl: int = 0
    p: int = 0
    off_31_16: int = 0

    @classmethod
    def make(cls, istrap: bool, sel: int, off: int, dpl: int) -> "GateDescriptor":
        """Interrupt gate, or trap gate when istrap is true."""
        off = _u(off)
        return cls(
            off_15_0=off & 0xFFFF,
            cs=sel & 0xFFFF,
            args=0,
            rsv1=0,
            type=STS_TG32 if istrap else STS_IG32,
            s=0,
            dpl=dpl & 0x3,
            p=1,
            off_31_16=off >> 16,
        )

    @property
    def offset(self) -> int:
        return self.off_15_0 | self.off_31_16 << 16

    def pack(self) -> bytes:
        """The eight bytes of the gate as laid out in the IDT."""
        return _pack_fields(self, _GATE_LAYOUT)


_ELF_HEADER = struct.Struct("<I12sHHIIIIIHHHHHH")
_PROG_HEADER = struct.Struct("<8I")


@dataclass(frozen=True)
class ProgramHeader:
    """An ELF program section header."""

    type: int
    off: int
    vaddr: int
    paddr: int
    filesz: int
    memsz: int
    flags: int
    align: int

    SIZE = _PROG_HEADER.size

    @classmethod
    def parse(cls, data: bytes, offset: int = 0) -> "ProgramHeader":
        """Decode the program header found at offset in data."""
        if offset < 0:
            raise ValueError("negative program header offset")
        try:
            return cls(*_PROG_HEADER.unpack_from(data, offset))
        except struct.error as exc:
            raise ValueError("truncated program header") from exc

    @property
    def is_load(self) -> bool:
        return self.type == ELF_PROG_LOAD

    def pack(self) -> bytes:
        return _PROG_HEADER.pack(
            self.type, self.off, self.vaddr, self.paddr,
            self.filesz, self.memsz, self.flags, self.align,
        )


@dataclass(frozen=True)
class ElfHeader:
    """An ELF file header."""

    magic: int
    elf: bytes
    type: int
    machine: int
    version: int
    entry: int
    phoff: int
    shoff: int
    flags: int
    ehsize: int
    phentsize: int
    phnum: int
    shentsize: int
    shnum: int
    shstrndx: int

    SIZE = _ELF_HEADER.size

    @classmethod
    def parse(cls, data: bytes) -> "ElfHeader":
        """Decode an ELF header; raise ValueError if it is short or has a bad magic."""
        try:
            fields = _ELF_HEADER.unpack_from(data, 0)
        except struct.error as exc:
            raise ValueError("truncated ELF header") from exc
        header = cls(*fields)
        if header.magic != ELF_MAGIC:
            raise ValueError(f"bad ELF magic 0x{header.magic:08x}")
        return header

    def program_headers(self, data: bytes) -> Iterator[ProgramHeader]:
        """Yield the program headers this header describes."""
        for index in range(self.phnum):
            yield ProgramHeader.parse(data, self.phoff + index * ProgramHeader.SIZE)

    def pack(self) -> bytes:
        return _ELF_HEADER.pack(
            self.magic, self.elf, self.type, self.machine, self.version,
            self.entry, self.phoff, self.shoff, self.flags, self.ehsize,
            self.phentsize, self.phnum, self.shentsize, self.shnum, self.shstrndx,
        )