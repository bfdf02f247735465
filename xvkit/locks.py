"""Spin locks with per-CPU interrupt nesting, and sleeping locks for processes."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional


class KernelPanic(RuntimeError):
    """An unrecoverable kernel inconsistency."""


@dataclass(eq=False)
class Cpu:
    """Per-CPU interrupt state: nesting depth of disables and the saved enable flag."""

    ncli: int = 0
    intena: bool = False
    interrupts_enabled: bool = True

    def push_cli(self) -> None:
        """Disable interrupts, remembering whether they were on at the outermost level."""
        was_enabled = self.interrupts_enabled
        self.interrupts_enabled = False
        if self.ncli == 0:
            self.intena = was_enabled
        self.ncli += 1

    def pop_cli(self) -> None:
        """Undo one push_cli; re-enable interrupts once the outermost level is undone."""
        if self.interrupts_enabled:
            raise KernelPanic("popcli - interruptible")
        self.ncli -= 1
        if self.ncli < 0:
            raise KernelPanic("popcli")
        if self.ncli == 0 and self.intena:
            self.interrupts_enabled = True


class SpinLock:
    """Mutual exclusion lock held by a CPU with interrupts disabled."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self.cpu: Optional[Cpu] = None
        self._word = threading.Lock()

    @property
    def locked(self) -> bool:
        return self._word.locked()

    def acquire(self, cpu: Cpu) -> None:
        """Take the lock on behalf of cpu, waiting while another CPU holds it."""
        cpu.push_cli()
        if self.holding(cpu):
            raise KernelPanic("acquire")
        self._word.acquire()
        self.cpu = cpu

    def release(self, cpu: Cpu) -> None:
        """Give up the lock held by cpu."""
        if not self.holding(cpu):
            raise KernelPanic("release")
        self.cpu = None
        self._word.release()
        cpu.pop_cli()

    def holding(self, cpu: Cpu) -> bool:
        """Whether cpu holds this lock."""
        cpu.push_cli()
        result = self.locked and self.cpu is cpu
        cpu.pop_cli()
        return result


class SleepLock:
    """Long-term lock; waiters sleep until it is released."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self.locked = False
        self.pid = 0
        self._cond = threading.Condition(threading.Lock())

    def acquire(self, pid: int) -> None:
        """Take the lock for process pid, sleeping while it is held."""
        with self._cond:
            while self.locked:
                self._cond.wait()
            self.locked = True
            self.pid = pid

    def release(self) -> None:
        """Release the lock and wake any sleepers."""
        with self._cond:
            self.locked = False
            self.pid = 0
            self._cond.notify_all()

    def holding(self, pid: int) -> bool:
        """Whether process pid holds the lock."""
        with self._cond:
            return self.locked and self.pid == pid