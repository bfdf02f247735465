"""Models of a small x86 teaching kernel: paging, locks, system call arguments, a user heap, C string helpers, a shell parser and wc."""

__version__ = "0.1.0"