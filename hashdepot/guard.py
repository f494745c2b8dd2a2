# -*- coding: utf-8 -*-
"""Maximum object size policy."""

import logging
from typing import Callable, Iterator, Optional

import hashdepot.utils as u
from hashdepot.errors import SizeExceeded

logger = logging.getLogger(__name__)

DEFAULT_MAX_OBJECT_SIZE = 4 * 10**9


class SizeGuard(object):
    """Enforce a maximum object size against declared and observed lengths.

    A declared length is untrusted input, so content has to be checked both
    before it is accepted and while it is being streamed.

    Attributes:
        max_object_size (int): Largest accepted object, in bytes.
    """

    def __init__(self, max_object_size: int = DEFAULT_MAX_OBJECT_SIZE):
        if max_object_size < 0:
            raise ValueError("max_object_size must be >= 0")
        self.max_object_size = max_object_size

    def check_declared(self, declared_length: int) -> None:
        if declared_length > self.max_object_size:
            raise SizeExceeded(declared_length, self.max_object_size)

    def check_observed(self, observed_length: int) -> None:
        if observed_length > self.max_object_size:
            raise SizeExceeded(observed_length, self.max_object_size)

    def bound(self, content, chunk_size: int = 64 * 1024,
              checkpoint: Optional[Callable[[], None]] = None) -> "BoundedReader":
        """Wrap `content` in a :class:`BoundedReader` enforcing this guard."""
        return BoundedReader(u.Stream(content, chunk_size=chunk_size), self,
                             checkpoint=checkpoint)


class BoundedReader(object):
    """Chunk iterator that counts bytes and stops at the size limit.

    The chunk that crosses the limit is never yielded. When iteration is
    aborted for any reason the underlying stream is closed, so a transport
    connection is not left half read.

    Args:
        stream (Stream): Source of chunks.
        guard (SizeGuard): Size policy to enforce.
        checkpoint (callable, optional): Called before every read; raising
            from it aborts the read.
    """

    def __init__(self, stream: u.Stream, guard: SizeGuard,
                 checkpoint: Optional[Callable[[], None]] = None):
        self.stream = stream
        self.guard = guard
        self.checkpoint = checkpoint
        self.observed = 0

    def __iter__(self) -> Iterator[bytes]:
        chunks = iter(self.stream)
        try:
            while True:
                if self.checkpoint is not None:
                    self.checkpoint()

                chunk = next(chunks, None)
                if chunk is None:
                    break

                self.guard.check_observed(self.observed + len(chunk))
                self.observed += len(chunk)
                yield chunk
        except BaseException:
            logger.debug("Aborted read after %d bytes", self.observed)
            self.stream.close()
            raise
