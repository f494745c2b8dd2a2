# -*- coding: utf-8 -*-


"""
common utils for hashdepot
"""


import re
import threading
from contextlib import contextmanager
from typing import Iterator, List, Union

import fs as pyfs
from fs.base import FS

DIGEST_LENGTH = 64

_HEXDIGEST = re.compile(r"^[0-9a-f]{%d}$" % DIGEST_LENGTH)


def compact(items):
    """Return only truthy elements of `items`."""
    return [item for item in items if item]


def shard(digest, depth, width) -> List[str]:
    # This creates a list of `depth` number of tokens with width
    # `width` from the first part of the id plus the remainder.
    return compact(
        [digest[i * width : width * (i + 1)] for i in range(depth)]
        + [digest[depth * width :]]
    )


def is_hexdigest(value) -> bool:
    """Return whether `value` is a 64 character lowercase hex digest."""
    return isinstance(value, str) and bool(_HEXDIGEST.match(value))


def to_bytes(data) -> bytes:
    if isinstance(data, str):
        return data.encode("utf8")
    return bytes(data)


def load_fs(root: Union[FS, str]) -> FS:
    """Return a PyFilesystem2 filesystem for `root`.

    Args:
        root: An already opened ``fs.base.FS`` or a filesystem URL such as
            ``mem://`` or ``osfs:///var/lib/hashdepot``. Plain paths are
            opened as OS directories and created when missing.
    """
    if isinstance(root, FS):
        return root
    return pyfs.open_fs(root, create=True)


class Stream(object):
    """Common interface for the content of an upload.

    The input `obj` can be ``bytes``/``str``, a readable file-like object or
    an iterable of chunks (such as a request body). Iterating the stream
    yields ``bytes`` chunks of at most `chunk_size` for readable objects;
    iterables are passed through chunk by chunk.

    Unlike a file stream, content is consumed as it is read: a network body
    cannot be rewound, so a stream can only be iterated once.
    """

    def __init__(self, obj, chunk_size=64 * 1024):
        if isinstance(obj, (bytes, bytearray, memoryview, str)):
            obj = [to_bytes(obj)]
        elif not hasattr(obj, "read") and not hasattr(obj, "__iter__"):
            raise ValueError("Object must be bytes, a readable object or an iterable.")

        self._obj = obj
        self.chunk_size = chunk_size

    def __iter__(self) -> Iterator[bytes]:
        if hasattr(self._obj, "read"):
            while True:
                data = self._obj.read(self.chunk_size)

                if not data:
                    break

                yield to_bytes(data)
        else:
            for data in self._obj:
                if data:
                    yield to_bytes(data)

    def close(self):
        """Close the underlying object when it supports it."""
        close = getattr(self._obj, "close", None)
        if close is not None:
            close()


class KeyedLock(object):
    """Arena of mutexes keyed by an arbitrary hashable key.

    Holding the lock for one key never blocks holders of another key. Entries
    are reference counted and dropped once no thread holds or waits on them.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1

        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[key]

    def __contains__(self, key) -> bool:
        with self._guard:
            return key in self._locks

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
