# -*- coding: utf-8 -*-
"""Module for the ObjectStore class."""

import io
import json
import logging
import uuid
from contextlib import closing
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

import fs as pyfs
from fs.base import FS
from fs.errors import FSError, ResourceNotFound
from fs.permissions import Permissions

import hashdepot.utils as u
from hashdepot.errors import HashCollisionMismatch, NotFound, StoreError
from hashdepot.verify import DEFAULT_ALGORITHM, check_algorithm, computehash, new_hash

logger = logging.getLogger(__name__)

OBJECTS_DIR = "objects"
META_DIR = "meta"
TMP_DIR = "tmp"
META_EXTENSION = ".json"


@dataclass(frozen=True)
class StoredObject:
    """Handle on a committed object.

    ``metadata`` is the free-form string the uploader attached to the object.
    ``is_duplicate`` tells whether the put that returned this handle found the
    object already stored. It is not part of the object's identity.
    """

    hash: str
    length: int
    type: str
    relpath: str
    metadata: str = ""
    is_duplicate: bool = field(default=False, compare=False)

    def to_dict(self):
        return {
            "hash": self.hash,
            "length": self.length,
            "type": self.type,
            "metadata": self.metadata,
        }


class ObjectStore(object):
    """Content addressed object store on top of a PyFilesystem2 filesystem.

    Object bytes live under ``objects/`` at a path sharded from their digest,
    with a JSON document describing them under ``meta/``. Writes are staged
    under ``tmp/`` and moved into place, bytes first and meta last, so an
    object is visible to :meth:`get` only once it is complete.

    Attributes:
        fs: Backing filesystem.
        depth (int, optional): Depth of subfolders to create when saving an
            object.
        width (int, optional): Width of each subfolder to create when saving
            an object.
        algorithm (str): Hash algorithm used to fingerprint stored content.
            Must produce 256-bit digests. Defaults to ``'sha256'``.
        chunk_size (int): Size of the reads used to copy content.
        dmode (int, optional): Directory mode permission to set for
            subdirectories. Defaults to ``0o755``.
    """

    def __init__(self,
                 root: Union[FS, str],
                 depth: int = 4,
                 width: int = 1,
                 algorithm: str = DEFAULT_ALGORITHM,
                 chunk_size: int = 64 * 1024,
                 dmode: int = 0o755):

        self.fs = u.load_fs(root)
        self.depth = depth
        self.width = width
        self.algorithm = check_algorithm(algorithm)
        self.chunk_size = chunk_size
        self.dmode = dmode
        self._locks = u.KeyedLock()

        for path in (OBJECTS_DIR, META_DIR, TMP_DIR):
            self._makedirs(path)

    def put(self,
            hashid: str,
            type: str,
            length: int,
            content,
            digest: Optional[str] = None,
            metadata: str = "") -> StoredObject:
        """Store `content` under `hashid`.

        Concurrent puts of the same `hashid` run one after the other; a put
        that finds the object already committed compares it with its own
        arguments instead of writing again.

        Args:
            hashid: Content address of the object.
            type: Type tag of the object.
            length: Number of bytes in `content`.
            content: Bytes, readable object or iterable of chunks.
            digest: Digest of `content` under :attr:`algorithm`, when the
                caller already computed it.
            metadata: Free-form string kept with the object. A put that finds
                the object already stored returns the stored metadata.

        Returns:
            The stored object. ``is_duplicate`` is set when it already existed.

        Raises:
            HashCollisionMismatch: If different content is stored under
                `hashid`.
            StoreError: If the backend fails or `content` isn't `length` bytes.
        """
        if not u.is_hexdigest(hashid):
            raise ValueError("Invalid content hash: {0!r}".format(hashid))

        with self._locks.hold(hashid):
            existing = self._load(hashid)

            if existing is not None:
                return self._check_duplicate(existing, type, length, content, digest)

            return self._commit(hashid, type, length, content, metadata)

    def get(self, hashid: str) -> StoredObject:
        """Return the :class:`StoredObject` stored under `hashid`.

        Raises:
            NotFound: If nothing is stored under `hashid`.
        """
        meta = self._load(hashid) if u.is_hexdigest(hashid) else None
        if meta is None:
            raise NotFound(hashid)

        return self._to_object(meta)

    def open(self, hashid: str) -> io.IOBase:
        """Return a binary file object reading the content of `hashid`."""
        obj = self.get(hashid)
        try:
            return self.fs.open(obj.relpath, "rb")
        except FSError as exc:
            raise StoreError("Could not open {0}: {1}".format(hashid, exc)) from exc

    def read(self, hashid: str) -> bytes:
        """Return the content of `hashid`."""
        with closing(self.open(hashid)) as fileobj:
            return fileobj.read()

    def exists(self, hashid: str) -> bool:
        """Check whether an object is stored under `hashid`."""
        if not u.is_hexdigest(hashid):
            return False
        return self.fs.isfile(self._meta_path(hashid))

    def hashes(self) -> Iterable[str]:
        """Return generator that yields the digest of every stored object."""
        for path in self.fs.walk.files(META_DIR, filter=["*" + META_EXTENSION]):
            yield self._unshard(path)

    def count(self) -> int:
        """Return count of the number of stored objects."""
        return sum(1 for _ in self.hashes())

    def size(self) -> int:
        """Return the total size in bytes of all stored objects."""
        return sum(info.size
                   for _, info in self.fs.walk.info(OBJECTS_DIR, namespaces=["details"])
                   if info.is_file)

    def __contains__(self, hashid: str) -> bool:
        return self.exists(hashid)

    def __iter__(self) -> Iterable[str]:
        return self.hashes()

    def __len__(self) -> int:
        return self.count()

    def _check_duplicate(self, meta, type, length, content, digest):
        """Compare an incoming put with the already stored `meta`."""
        hashid = meta["hash"]

        if digest is None:
            digest = self._computehash(content)

        if meta["length"] != length or meta["type"] != type or meta["digest"] != digest:
            logger.critical(
                "Hash collision for %s: stored (type=%r, length=%d, digest=%s), "
                "incoming (type=%r, length=%d, digest=%s)",
                hashid, meta["type"], meta["length"], meta["digest"],
                type, length, digest,
            )
            raise HashCollisionMismatch(hashid)

        logger.debug("Object %s already stored", hashid)
        return self._to_object(meta, is_duplicate=True)

    def _commit(self, hashid, type, length, content, metadata):
        """Write a new object. Caller holds the lock for `hashid`."""
        staged = self._tmp_path()
        path = self._hashid_to_path(hashid)
        meta_path = self._meta_path(hashid)

        try:
            state = new_hash(self.algorithm)
            with closing(self.fs.open(staged, mode="wb")) as fileobj:
                for data in u.Stream(content, chunk_size=self.chunk_size):
                    fileobj.write(data)
                    state.write(data)

            if state.length != length:
                raise StoreError(
                    "Expected {0} bytes for {1}, got {2}".format(length, hashid, state.length)
                )

            meta = {
                "hash": hashid,
                "length": length,
                "type": type,
                "digest": state.finalize(),
                "algorithm": self.algorithm,
                "metadata": metadata,
            }

            self._makedirs(pyfs.path.dirname(path))
            self.fs.move(staged, path, overwrite=True)

            staged = self._tmp_path()
            self.fs.writetext(staged, json.dumps(meta, sort_keys=True))
            self._makedirs(pyfs.path.dirname(meta_path))
            self.fs.move(staged, meta_path, overwrite=True)

        except (FSError, OSError) as exc:
            raise StoreError("Could not store {0}: {1}".format(hashid, exc)) from exc

        finally:
            self._discard(staged)

        logger.info("Stored %s (%d bytes, type=%r)", hashid, length, type)
        return self._to_object(meta)

    def _load(self, hashid):
        """Return the meta document of `hashid` or ``None``."""
        try:
            return json.loads(self.fs.readtext(self._meta_path(hashid)))
        except ResourceNotFound:
            return None
        except (FSError, ValueError) as exc:
            raise StoreError("Could not read {0}: {1}".format(hashid, exc)) from exc

    def _to_object(self, meta, is_duplicate=False):
        return StoredObject(
            hash=meta["hash"],
            length=meta["length"],
            type=meta["type"],
            relpath=self._hashid_to_path(meta["hash"]),
            metadata=meta.get("metadata", ""),
            is_duplicate=is_duplicate,
        )

    def _computehash(self, content) -> str:
        """Compute hash of content using :attr:`algorithm`."""
        return computehash(content, self.algorithm, self.chunk_size)

    def _discard(self, path):
        """Remove a staged file if it is still around."""
        if self.fs.exists(path):
            self.fs.remove(path)

    def _makedirs(self, dir_path):
        """Physically create the folder path on disk."""
        perms = Permissions.create(self.dmode)
        self.fs.makedirs(dir_path, permissions=perms, recreate=True)

    def _tmp_path(self) -> str:
        return pyfs.path.join(TMP_DIR, uuid.uuid4().hex)

    def _hashid_to_path(self, hashid: str) -> str:
        """Build the relative path of the bytes of `hashid`."""
        return pyfs.path.join(OBJECTS_DIR, *self._shard(hashid))

    def _meta_path(self, hashid: str) -> str:
        """Build the relative path of the meta document of `hashid`."""
        return pyfs.path.join(META_DIR, *self._shard(hashid)) + META_EXTENSION

    def _shard(self, hashid: str):
        """Shard content ID into subfolders."""
        return u.shard(hashid, self.depth, self.width)

    def _unshard(self, path: str) -> str:
        """Unshard a meta document path to determine hash value."""
        relpath = pyfs.path.relativefrom(META_DIR, pyfs.path.relpath(path))
        return pyfs.path.splitext(relpath)[0].replace("/", "")
