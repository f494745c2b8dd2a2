# -*- coding: utf-8 -*-
"""Module for the RelationIndex class."""

import logging
from contextlib import closing
from typing import Iterator, Union

import fs as pyfs
from fs.base import FS
from fs.errors import FSError, ResourceNotFound
from fs.permissions import Permissions

import hashdepot.utils as u
from hashdepot.errors import StoreError

logger = logging.getLogger(__name__)

RELATIONS_DIR = "relations"


class RelationIndex(object):
    """Append only index of parent to child edges between object digests.

    The children of a parent are kept in one file per parent, one digest per
    line, in the order they were linked. Edges are opaque: neither end has to
    be a stored object and cycles are allowed.

    Attributes:
        fs: Backing filesystem.
        depth (int, optional): Depth of subfolders for the per-parent files.
        width (int, optional): Width of each subfolder.
        dmode (int, optional): Directory mode permission for subdirectories.
    """

    def __init__(self,
                 root: Union[FS, str],
                 depth: int = 4,
                 width: int = 1,
                 dmode: int = 0o755):
        self.fs = u.load_fs(root)
        self.depth = depth
        self.width = width
        self.dmode = dmode
        self._locks = u.KeyedLock()

    def link(self, parent: str, child: str) -> bool:
        """Record the edge ``parent -> child``.

        Linking an existing edge again is a no-op.

        Returns:
            ``True`` if the edge was added, ``False`` if it already existed.
        """
        for hashid in (parent, child):
            if not u.is_hexdigest(hashid):
                raise ValueError("Invalid content hash: {0!r}".format(hashid))

        path = self._parent_path(parent)

        with self._locks.hold(parent):
            with closing(self.children(parent)) as existing:
                if child in existing:
                    return False

            try:
                perms = Permissions.create(self.dmode)
                self.fs.makedirs(pyfs.path.dirname(path), permissions=perms, recreate=True)
                self.fs.appendtext(path, child + "\n")
            except (FSError, OSError) as exc:
                raise StoreError(
                    "Could not link {0} -> {1}: {2}".format(parent, child, exc)
                ) from exc

        logger.debug("Linked %s -> %s", parent, child)
        return True

    def children(self, parent: str) -> Iterator[str]:
        """Return an iterator over the children of `parent` in link order.

        Every call starts over from the first child. An unknown parent has no
        children.
        """
        if not u.is_hexdigest(parent):
            return

        path = self._parent_path(parent)
        try:
            fileobj = self.fs.open(path, "r")
        except ResourceNotFound:
            return
        except FSError as exc:
            raise StoreError("Could not read {0}: {1}".format(path, exc)) from exc

        with closing(fileobj):
            for line in fileobj:
                # A line without its newline is still being appended.
                if line.endswith("\n"):
                    yield line.rstrip("\n")

    def has_children(self, parent: str) -> bool:
        with closing(self.children(parent)) as existing:
            return next(existing, None) is not None

    def _parent_path(self, parent: str) -> str:
        return pyfs.path.join(RELATIONS_DIR, *u.shard(parent, self.depth, self.width))
