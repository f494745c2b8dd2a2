# -*- coding: utf-8 -*-

import threading
from io import BytesIO

import pytest
from fs.memoryfs import MemoryFS

import hashdepot.utils as u


@pytest.mark.parametrize(
    "depth,width,expected",
    [
        (0, 1, ["abcdef"]),
        (2, 1, ["a", "b", "cdef"]),
        (2, 2, ["ab", "cd", "ef"]),
        (3, 2, ["ab", "cd", "ef"]),
    ],
)
def test_shard(depth, width, expected):
    assert u.shard("abcdef", depth, width) == expected


@pytest.mark.parametrize(
    "value,expected",
    [
        ("a" * 64, True),
        ("0123456789abcdef" * 4, True),
        ("a" * 63, False),
        ("a" * 65, False),
        ("A" * 64, False),
        ("g" * 64, False),
        (None, False),
        (b"a" * 64, False),
    ],
)
def test_is_hexdigest(value, expected):
    assert u.is_hexdigest(value) is expected


def test_load_fs():
    filesystem = MemoryFS()

    assert u.load_fs(filesystem) is filesystem
    assert isinstance(u.load_fs("mem://"), MemoryFS)


def test_load_fs_creates_directory(tmpdir):
    path = tmpdir.join("missing")
    u.load_fs(str(path))

    assert path.isdir()


@pytest.mark.parametrize(
    "obj,expected",
    [
        (b"hello", [b"hello"]),
        ("hello", [b"hello"]),
        (BytesIO(b"hello"), [b"he", b"ll", b"o"]),
        ([b"h", b"", "ello"], [b"h", b"ello"]),
    ],
)
def test_stream(obj, expected):
    assert list(u.Stream(obj, chunk_size=2)) == expected


def test_stream_error():
    with pytest.raises(ValueError):
        u.Stream(42)


def test_stream_close():
    fileobj = BytesIO(b"hello")
    u.Stream(fileobj).close()

    assert fileobj.closed


def test_keyed_lock_same_key_excludes():
    locks = u.KeyedLock()
    entered = threading.Event()
    release = threading.Event()
    acquired = threading.Event()

    def hold():
        with locks.hold("a"):
            entered.set()
            release.wait(5)

    def wait():
        with locks.hold("a"):
            acquired.set()

    threading.Thread(target=hold).start()
    entered.wait(5)
    threading.Thread(target=wait).start()

    assert not acquired.wait(0.1)
    release.set()
    assert acquired.wait(5)


def test_keyed_lock_other_key_proceeds():
    locks = u.KeyedLock()
    acquired = threading.Event()

    def hold_other():
        with locks.hold("b"):
            acquired.set()

    with locks.hold("a"):
        assert "a" in locks

        thread = threading.Thread(target=hold_other)
        thread.start()
        assert acquired.wait(5)
        thread.join(5)

    assert "a" not in locks
    assert len(locks) == 0
