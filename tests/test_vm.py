import pytest

from xvkit.locks import KernelPanic
from xvkit.mmu import DEVSPACE, EXTMEM, KERNBASE, KERNLINK, PGSIZE, PHYSTOP, PTE_P, PTE_W, v2p
from xvkit.vm import (
    AddressSpace,
    KernelMapping,
    OutOfMemory,
    PhysicalMemory,
    setup_kvm,
)

KMAP = (KernelMapping(KERNBASE, 0, EXTMEM, PTE_W),)


def make_memory(npages=64):
    return PhysicalMemory(EXTMEM, EXTMEM + npages * PGSIZE)


def read_user(space, va, n):
    return space.memory.read(v2p(space.user_to_kernel(va)), n)


def test_physical_alloc_free_round_trip():
    memory = make_memory(4)
    pa = memory.alloc()
    assert memory.available == 3
    memory.write(pa + 10, b"abc")
    assert memory.read(pa + 10, 3) == b"abc"
    memory.free(pa)
    assert memory.available == 4


def test_physical_free_errors():
    memory = make_memory(2)
    pa = memory.alloc()
    with pytest.raises(KernelPanic):
        memory.free(pa + 1)
    memory.free(pa)
    with pytest.raises(KernelPanic):
        memory.free(pa)


def test_physical_exhaustion_and_bad_access():
    memory = make_memory(1)
    pa = memory.alloc()
    with pytest.raises(OutOfMemory):
        memory.alloc()
    with pytest.raises(ValueError):
        memory.read(pa + PGSIZE - 2, 4)


def test_setup_kvm_maps_kernel_region():
    memory = make_memory()
    space = setup_kvm(memory, KMAP)
    pte = space.walk(KERNBASE + 5 * PGSIZE)
    entry = int.from_bytes(memory.read(pte, 4), "little")
    assert entry == 5 * PGSIZE | PTE_W | PTE_P
    assert space.user_to_kernel(KERNBASE) is None
    assert space.walk(0) is None


def test_setup_kvm_out_of_memory_leaks_nothing():
    memory = make_memory(1)
    with pytest.raises(OutOfMemory):
        setup_kvm(memory, KMAP)
    assert memory.available == 1


def test_remap_panics():
    space = setup_kvm(make_memory(), KMAP)
    with pytest.raises(KernelPanic, match="remap"):
        space.map_pages(KERNBASE, PGSIZE, 0, PTE_W)


def test_init_user_loads_program():
    space = setup_kvm(make_memory(), KMAP)
    space.init_user(b"hello")
    assert read_user(space, 0, 8) == b"hello\0\0\0"
    with pytest.raises(KernelPanic):
        setup_kvm(make_memory(), KMAP).init_user(bytes(PGSIZE))


def test_alloc_and_dealloc_user():
    memory = make_memory()
    space = setup_kvm(memory, KMAP)
    assert space.alloc_user(0, 3 * PGSIZE) == 3 * PGSIZE
    after = memory.available
    for va in range(0, 3 * PGSIZE, PGSIZE):
        assert read_user(space, va, PGSIZE) == bytes(PGSIZE)
    assert space.dealloc_user(3 * PGSIZE, 0) == 0
    assert space.user_to_kernel(0) is None
    assert memory.available == after + 3


def test_alloc_user_edge_cases():
    space = setup_kvm(make_memory(), KMAP)
    with pytest.raises(ValueError):
        space.alloc_user(0, KERNBASE)
    assert space.alloc_user(2 * PGSIZE, PGSIZE) == 2 * PGSIZE
    assert space.dealloc_user(PGSIZE, 2 * PGSIZE) == PGSIZE


def test_alloc_user_out_of_memory_releases_pages():
    memory = make_memory(3)
    space = setup_kvm(memory, KMAP)
    before = memory.available
    with pytest.raises(OutOfMemory):
        space.alloc_user(0, 2 * PGSIZE)
    assert memory.available == before


def test_alloc_user_partial_failure_unmaps_first_page():
    memory = make_memory(4)
    space = setup_kvm(memory, KMAP)
    with pytest.raises(OutOfMemory):
        space.alloc_user(0, 2 * PGSIZE)
    assert space.user_to_kernel(0) is None


def test_copy_of_unmapped_memory_panics():
    space = setup_kvm(make_memory(), KMAP)
    with pytest.raises(KernelPanic):
        space.copy(PGSIZE)


def test_copy_out_crosses_pages():
    space = setup_kvm(make_memory(), KMAP)
    space.alloc_user(0, 2 * PGSIZE)
    space.copy_out(PGSIZE - 2, b"abcd")
    assert read_user(space, 0, PGSIZE)[-2:] == b"ab"
    assert read_user(space, PGSIZE, 2) == b"cd"
    with pytest.raises(ValueError):
        space.copy_out(2 * PGSIZE, b"x")


def test_clear_user_hides_page():
    space = setup_kvm(make_memory(), KMAP)
    space.alloc_user(0, 2 * PGSIZE)
    space.clear_user(0)
    assert space.user_to_kernel(0) is None
    with pytest.raises(ValueError):
        space.copy_out(0, b"x")
    with pytest.raises(KernelPanic):
        space.clear_user(KERNBASE - 16 * PGSIZE * 1024)


def test_load_user():
    space = setup_kvm(make_memory(), KMAP)
    space.alloc_user(0, 2 * PGSIZE)
    data = bytes(range(256)) * 20
    space.load_user(0, data, 100, PGSIZE + 50)
    assert read_user(space, 0, 10) == data[100:110]
    assert read_user(space, PGSIZE, 50) == data[100 + PGSIZE:150 + PGSIZE]
    with pytest.raises(KernelPanic):
        space.load_user(1, data, 0, 10)
    with pytest.raises(ValueError):
        space.load_user(0, data, len(data) - 5, 10)
    with pytest.raises(KernelPanic):
        space.load_user(8 * PGSIZE * 1024, data, 0, 10)


def test_free_releases_everything_once():
    memory = make_memory()
    initial = memory.available
    space = setup_kvm(memory, KMAP)
    space.init_user(b"x")
    space.free()
    assert memory.available == initial
    with pytest.raises(KernelPanic):
        space.free()


def test_address_space_starts_empty():
    memory = make_memory()
    space = AddressSpace(memory)
    assert space.walk(KERNBASE) is None
    assert memory.available == 63


def test_standard_kernel_map():
    data = KERNLINK + 64 * PGSIZE
    kmap = KernelMapping.standard(data)
    assert kmap[0] == KernelMapping(KERNBASE, 0, EXTMEM, PTE_W)
    assert kmap[1] == KernelMapping(KERNLINK, v2p(KERNLINK), v2p(data), 0)
    assert kmap[2] == KernelMapping(data, v2p(data), PHYSTOP, PTE_W)
    assert kmap[3] == KernelMapping(DEVSPACE, DEVSPACE, 0, PTE_W)
    with pytest.raises(ValueError):
        KernelMapping.standard(KERNLINK)