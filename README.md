# xvkit

Pure-Python models of the pieces of a small x86 teaching kernel and its
user library, for experimenting with and testing the ideas without an
emulator. There are no third-party dependencies.

## Modules

- `xvkit.mmu` – kernel parameters and memory-layout constants; page
  index helpers `pdx`, `ptx`, `pgaddr`, `pgroundup`, `pgrounddown`,
  `pte_addr`, `pte_flags`, `v2p`, `p2v` (all in 32-bit arithmetic);
  `SegmentDescriptor.seg` / `seg16` and `GateDescriptor.make`, each with
  `pack()` giving the eight descriptor bytes; `ElfHeader.parse` (raises
  `ValueError` on a short header or bad magic) with
  `program_headers(data)`, and `ProgramHeader.parse`.
- `xvkit.cstring` – byte-string helpers with C semantics: `memcmp`,
  `memmove` (in place on a `bytearray`), `strncmp`, `strcmp`, `strncpy`,
  `safestrcpy`, `strlen`, `strchr` (returns an index or `None`), `atoi`
  (32-bit wraparound) and `gets` (reads one line from a binary stream).
  Also the `OpenFlag` and `FileType` enums and the `Stat` record.
- `xvkit.wc` – `count(stream)` returns a `WordCount` of lines, words and
  bytes; `main` is the `xvkit-wc` command.
- `xvkit.shparse` – `parse_command(line)` turns a shell command line into
  a tree of `ExecCmd`, `RedirCmd`, `PipeCmd`, `ListCmd` and `BackCmd`,
  raising `ShellSyntaxError` on bad input. `Scanner` is the tokenizer
  (`peek`, `next_token`). Supported syntax: words, `<`, `>`, `>>`, `|`,
  `;`, `&` and parenthesised groups; at most 9 arguments per command.
- `xvkit.locks` – `Cpu` with `push_cli`/`pop_cli` interrupt nesting,
  `SpinLock` (`acquire`, `release`, `holding` per CPU) and `SleepLock`
  (`acquire`, `release`, `holding` per process id). Misuse such as
  re-acquiring a held spin lock raises `KernelPanic`.
- `xvkit.umalloc` – `Heap`, a first-fit circular free-list allocator over
  a simulated program break: `sbrk`, `malloc`, `free`, `free_blocks`.
  Moving the break outside its limits raises `MemoryError`.
- `xvkit.vm` – two-level page tables stored in simulated
  `PhysicalMemory` pages. `setup_kvm(memory, kmap)` builds an
  `AddressSpace` holding the kernel mappings (`KernelMapping.standard`
  gives the usual layout); the address space can `walk`, `map_pages`,
  `init_user`, `load_user`, `alloc_user`, `dealloc_user`, `clear_user`,
  `copy`, `user_to_kernel`, `copy_out` and `free`. Running out of pages
  raises `OutOfMemory`.
- `xvkit.syscalls` – the `SyscallNumber`, `Trap` and `Irq` enums;
  `SyscallArgs` fetches integers, pointers and strings from a process's
  memory and user stack, raising `BadAddress` when they fall outside it;
  `dispatch(table, num)` runs a handler or raises `LookupError`.

## Install

```
pip install xvkit
```

## Examples

```python
from xvkit.shparse import parse_command, PipeCmd

cmd = parse_command("cat < in | grep x > out &\n")
assert isinstance(cmd.cmd, PipeCmd)
```

```python
from xvkit.mmu import pdx, ptx, pgroundup

assert pdx(0x80400000) == 0x201
assert pgroundup(1) == 4096
```

```python
from xvkit.umalloc import Heap

heap = Heap()
addr = heap.malloc(100)
heap.free(addr)
```

## Command line

Count lines, words and bytes of files, or of standard input when no file
is named:

```
xvkit-wc README.md
```

## What it does not do

This is a set of models, not a running system. There is no scheduler,
no process table, no file system or disk, no device drivers and no
system call implementations behind `dispatch` – callers supply the
handler table. The shell module only parses command lines; it does not
run them.