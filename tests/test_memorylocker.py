import pytest

from tusstore.errors import FileLockedError
from tusstore.memorylocker import MemoryLocker


def test_memory_locker_scenario():
    locker = MemoryLocker()

    lock1 = locker.new_lock("one")
    lock1.lock()
    with pytest.raises(FileLockedError):
        lock1.lock()

    lock2 = locker.new_lock("one")
    with pytest.raises(FileLockedError):
        lock2.lock()

    lock1.unlock()
    lock1.unlock()

    lock2.lock()
    with pytest.raises(FileLockedError):
        lock1.lock()


def test_locks_for_different_ids_are_independent():
    locker = MemoryLocker()
    first = locker.new_lock("one")
    second = locker.new_lock("two")
    first.lock()
    second.lock()
    with pytest.raises(FileLockedError):
        locker.new_lock("two").lock()


def test_context_manager_releases_lock():
    locker = MemoryLocker()
    with locker.new_lock("one") as held:
        assert held.upload_id == "one"
        with pytest.raises(FileLockedError):
            locker.new_lock("one").lock()
    again = locker.new_lock("one")
    again.lock()
    with pytest.raises(FileLockedError):
        locker.new_lock("one").lock()


def test_separate_lockers_do_not_share_locks():
    a = MemoryLocker()
    b = MemoryLocker()
    a.new_lock("one").lock()
    b.new_lock("one").lock()
    with pytest.raises(FileLockedError):
        b.new_lock("one").lock()