"""System call numbers, trap vectors and checked access to system call arguments."""

from __future__ import annotations

import enum
from typing import Callable, Mapping, Optional, Union

from xvkit.mmu import UINT_MASK


class SyscallNumber(enum.IntEnum):
    """System call numbers."""

    FORK = 1
    EXIT = 2
    WAIT = 3
    PIPE = 4
    READ = 5
    KILL = 6
    EXEC = 7
    FSTAT = 8
    CHDIR = 9
    DUP = 10
    GETPID = 11
    SBRK = 12
    SLEEP = 13
    UPTIME = 14
    OPEN = 15
    WRITE = 16
    MKNOD = 17
    UNLINK = 18
    LINK = 19
    MKDIR = 20
    CLOSE = 21
    SETPRIORITY = 22
    SCHED_YIELD = 23


class Trap(enum.IntEnum):
    """x86 trap and interrupt vectors."""

    DIVIDE = 0
    DEBUG = 1
    NMI = 2
    BRKPT = 3
    OFLOW = 4
    BOUND = 5
    ILLOP = 6
    DEVICE = 7
    DBLFLT = 8
    TSS = 10
    SEGNP = 11
    STACK = 12
    GPFLT = 13
    PGFLT = 14
    FPERR = 16
    ALIGN = 17
    MCHK = 18
    SIMDERR = 19
    IRQ0 = 32
    SYSCALL = 64
    DEFAULT = 500


class Irq(enum.IntEnum):
    """Hardware interrupt request lines, counted from Trap.IRQ0."""

    TIMER = 0
    KBD = 1
    COM1 = 4
    IDE = 14
    ERROR = 19
    SPURIOUS = 31


class BadAddress(ValueError):
    """A system call argument points outside the process's memory."""


class SyscallArgs:
    """Reads system call arguments from a process's memory and user stack."""

    def __init__(self, memory: Union[bytes, bytearray], esp: int, sz: Optional[int] = None) -> None:
        self.memory = memory
        self.esp = esp & UINT_MASK
        self.sz = len(memory) if sz is None else sz
        if self.sz > len(memory):
            raise ValueError("process size exceeds its memory")

    def fetch_int(self, addr: int) -> int:
        """The signed 32-bit integer at addr."""
        addr &= UINT_MASK
        if addr >= self.sz or addr + 4 > self.sz:
            raise BadAddress(f"integer at 0x{addr:x} outside process")
        return int.from_bytes(self.memory[addr:addr + 4], "little", signed=True)

    def fetch_str(self, addr: int) -> bytes:
        """The NUL-terminated string at addr, without its NUL."""
        addr &= UINT_MASK
        if addr >= self.sz:
            raise BadAddress(f"string at 0x{addr:x} outside process")
        end = bytes(self.memory[addr:self.sz]).find(0)
        if end < 0:
            raise BadAddress(f"string at 0x{addr:x} is not terminated")
        return bytes(self.memory[addr:addr + end])

    def arg_int(self, n: int) -> int:
        """The nth 32-bit system call argument."""
        return self.fetch_int(self.esp + 4 + 4 * n)

    def arg_ptr(self, n: int, size: int) -> int:
        """The nth argument as the address of a block of size bytes inside the process."""
        addr = self.arg_int(n) & UINT_MASK
        if size < 0 or addr >= self.sz or addr + size > self.sz:
            raise BadAddress(f"block at 0x{addr:x} of {size} bytes outside process")
        return addr

    def arg_str(self, n: int) -> bytes:
        """The nth argument as a NUL-terminated string."""
        return self.fetch_str(self.arg_int(n))


def dispatch(table: Mapping[int, Callable[[], int]], num: int) -> int:
    """Run the handler for system call num and return its result."""
    handler = table.get(num) if num > 0 else None
    if handler is None:
        raise LookupError(f"unknown sys call {num}")
    return handler()