# -*- coding: utf-8 -*-
"""Ingestion of uploaded objects.

An ingestion takes the metadata a client declared for an object and the
object's content, and drives them through::

    RECEIVED -> VALIDATING -> HASHING -> STORING -> LINKING -> COMMITTED

Any of VALIDATING, HASHING and STORING may end in REJECTED instead. Metadata
is validated before a single byte of content is read, content is hashed while
it is spooled to a local temporary file, and the object store is only touched
once the content is known to match its declared digest and length.
"""

import enum
import functools
import json
import logging
import tempfile
import time
from dataclasses import dataclass
from typing import Optional

import hashdepot.utils as u
from hashdepot.errors import (
    BadRequest,
    Cancelled,
    HashDepotError,
    HashMismatch,
    NotFound,
    StoreError,
)
from hashdepot.guard import SizeGuard
from hashdepot.relations import RelationIndex
from hashdepot.store import ObjectStore, StoredObject
from hashdepot.verify import new_hash, verify_digest

logger = logging.getLogger(__name__)


class IngestState(enum.Enum):
    RECEIVED = "received"
    VALIDATING = "validating"
    HASHING = "hashing"
    STORING = "storing"
    LINKING = "linking"
    COMMITTED = "committed"
    REJECTED = "rejected"


_TRANSITIONS = {
    IngestState.RECEIVED: {IngestState.VALIDATING},
    IngestState.VALIDATING: {IngestState.HASHING, IngestState.REJECTED},
    IngestState.HASHING: {IngestState.STORING, IngestState.REJECTED},
    IngestState.STORING: {IngestState.LINKING, IngestState.REJECTED},
    IngestState.LINKING: {IngestState.COMMITTED},
    IngestState.COMMITTED: set(),
    IngestState.REJECTED: set(),
}


@dataclass(frozen=True)
class ObjectMetadata:
    """What a client declares about an object it uploads."""

    declared_type: str
    declared_hash: str
    declared_length: int
    parent_hash: Optional[str] = None
    metadata: str = ""

    @classmethod
    def parse(cls, value) -> "ObjectMetadata":
        """Build metadata from an instance, a dict, or a JSON document."""
        if isinstance(value, cls):
            return value
        if isinstance(value, dict):
            return cls.from_dict(value)
        if isinstance(value, (str, bytes, bytearray)):
            return cls.from_json(value)
        raise BadRequest("Unsupported metadata: {0!r}".format(type(value).__name__))

    @classmethod
    def from_json(cls, raw) -> "ObjectMetadata":
        try:
            payload = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as exc:
            raise BadRequest("Malformed metadata: {0}".format(exc)) from exc

        if not isinstance(payload, dict):
            raise BadRequest("Metadata must be a JSON object")

        return cls.from_dict(payload)

    @classmethod
    def from_dict(cls, payload) -> "ObjectMetadata":
        """Build metadata from the upload wire document.

        ``content_hash``, ``content_length`` and ``type`` are required;
        ``metadata`` and ``parent_hash`` are optional.
        """
        missing = [key for key in ("content_hash", "content_length", "type")
                   if payload.get(key) is None]
        if missing:
            raise BadRequest("Missing required fields: {0}".format(", ".join(missing)))

        length = payload["content_length"]
        if isinstance(length, bool) or not isinstance(length, int):
            raise BadRequest("content_length must be an integer")

        for key in ("content_hash", "type"):
            if not isinstance(payload[key], str):
                raise BadRequest("{0} must be a string".format(key))

        parent_hash = payload.get("parent_hash")
        if parent_hash is not None and not isinstance(parent_hash, str):
            raise BadRequest("parent_hash must be a string")

        metadata = payload.get("metadata")
        if metadata is None:
            metadata = ""
        elif not isinstance(metadata, str):
            raise BadRequest("metadata must be a string")

        return cls(
            declared_type=payload["type"],
            declared_hash=payload["content_hash"],
            declared_length=length,
            parent_hash=parent_hash,
            metadata=metadata,
        )


class Ingestion(object):
    """State of a single ingestion. Only legal transitions are allowed."""

    def __init__(self):
        self.state = IngestState.RECEIVED
        self.history = [self.state]

    def advance(self, state: IngestState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                "Illegal ingestion transition {0} -> {1}".format(self.state.name, state.name)
            )
        logger.debug("Ingestion %s -> %s", self.state.name, state.name)
        self.state = state
        self.history.append(state)

    def reject(self, error: HashDepotError) -> None:
        error.state = self.state
        self.advance(IngestState.REJECTED)
        logger.warning("Rejected upload in %s: %s", error.state.name, error)


class IngestionPipeline(object):
    """Validate, hash, store and link uploaded objects.

    Args:
        store (ObjectStore): Where committed objects go.
        relations (RelationIndex): Where parent to child edges go.
        guard (SizeGuard, optional): Size policy. Defaults to the default
            maximum object size.
        chunk_size (int): Size of the reads from the content stream.
        spool_size (int): Bytes of content kept in memory before spooling to
            a temporary file.
        timeout (float, optional): Default number of seconds an ingestion may
            spend before it starts storing.
    """

    def __init__(self,
                 store: ObjectStore,
                 relations: RelationIndex,
                 guard: Optional[SizeGuard] = None,
                 chunk_size: int = 64 * 1024,
                 spool_size: int = 8 * 1024 * 1024,
                 timeout: Optional[float] = None):
        self.store = store
        self.relations = relations
        self.guard = guard or SizeGuard()
        self.chunk_size = chunk_size
        self.spool_size = spool_size
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "IngestionPipeline":
        """Build a pipeline and its collaborators from
        :class:`hashdepot.settings.Settings`.
        """
        root = u.load_fs(settings.storage_url)
        store = ObjectStore(root,
                            depth=settings.depth,
                            width=settings.width,
                            algorithm=settings.algorithm,
                            chunk_size=settings.chunk_size)
        relations = RelationIndex(root, depth=settings.depth, width=settings.width)

        return cls(store,
                   relations,
                   guard=SizeGuard(settings.max_object_size),
                   chunk_size=settings.chunk_size,
                   spool_size=settings.spool_size,
                   timeout=settings.ingest_timeout)

    @property
    def algorithm(self) -> str:
        return self.store.algorithm

    def ingest(self, metadata, content, cancel=None,
               timeout: Optional[float] = None) -> StoredObject:
        """Ingest one uploaded object.

        Args:
            metadata: :class:`ObjectMetadata`, its wire ``dict`` or the JSON
                document of that dict.
            content: Bytes, readable object or iterable of chunks. Not read
                at all when the metadata is rejected.
            cancel (optional): Object with an ``is_set()`` method, such as a
                ``threading.Event``. Once set, the ingestion stops before it
                starts storing.
            timeout (float, optional): Seconds allowed before storing starts.
                Defaults to :attr:`timeout`.

        Returns:
            The committed :class:`StoredObject`.

        Raises:
            BadRequest: Malformed metadata, invalid digest, length mismatch or
                content that is not a stream.
            SizeExceeded: Declared or streamed content is too large.
            HashMismatch: Content doesn't hash to the declared digest.
            Cancelled: `cancel` was set, the timeout elapsed or the content
                stream failed.
            HashCollisionMismatch: Other content is stored under the digest.
            StoreError: The object store failed.
        """
        if timeout is None:
            timeout = self.timeout
        deadline = None if timeout is None else time.monotonic() + timeout
        checkpoint = functools.partial(self._check_cancelled, cancel, deadline)

        ingestion = Ingestion()
        ingestion.advance(IngestState.VALIDATING)

        try:
            metadata = ObjectMetadata.parse(metadata)
            checkpoint()
            self._validate(metadata)

            ingestion.advance(IngestState.HASHING)
            with tempfile.SpooledTemporaryFile(max_size=self.spool_size) as spool:
                digest = self._receive(metadata, content, spool, checkpoint)
                checkpoint()

                ingestion.advance(IngestState.STORING)
                spool.seek(0)
                stored = self.store.put(metadata.declared_hash,
                                        metadata.declared_type,
                                        metadata.declared_length,
                                        spool,
                                        digest=digest,
                                        metadata=metadata.metadata)

        except HashDepotError as exc:
            ingestion.reject(exc)
            raise

        ingestion.advance(IngestState.LINKING)
        self._link(metadata, stored)

        ingestion.advance(IngestState.COMMITTED)
        return stored

    def lookup(self, hashid: str) -> StoredObject:
        """Return the stored object `hashid`."""
        if not u.is_hexdigest(hashid):
            raise BadRequest("Invalid content hash: {0!r}".format(hashid))
        return self.store.get(hashid)

    def children(self, parent: str):
        """Return the child digests linked to the stored object `parent`.

        Raises:
            NotFound: If `parent` isn't a stored object. A stored object
                without children has an empty list instead.
        """
        if not u.is_hexdigest(parent):
            raise BadRequest("Invalid content hash: {0!r}".format(parent))
        if not self.store.exists(parent):
            raise NotFound(parent)
        return list(self.relations.children(parent))

    def _validate(self, metadata: ObjectMetadata) -> None:
        length = metadata.declared_length
        if isinstance(length, bool) or not isinstance(length, int):
            raise BadRequest("content_length must be an integer")

        self.guard.check_declared(length)

        if length < 0:
            raise BadRequest("content_length must be >= 0")

        if not u.is_hexdigest(metadata.declared_hash):
            raise BadRequest(
                "content_hash must be {0} lowercase hex characters".format(u.DIGEST_LENGTH)
            )

        if metadata.parent_hash is not None and not u.is_hexdigest(metadata.parent_hash):
            raise BadRequest(
                "parent_hash must be {0} lowercase hex characters".format(u.DIGEST_LENGTH)
            )

    def _receive(self, metadata, content, spool, checkpoint) -> str:
        """Stream `content` into `spool` and return its verified digest."""
        state = new_hash(self.algorithm)
        try:
            reader = self.guard.bound(content, self.chunk_size, checkpoint=checkpoint)
        except ValueError as exc:
            raise BadRequest("Unreadable content: {0}".format(exc)) from exc
        chunks = iter(reader)

        try:
            while True:
                try:
                    chunk = next(chunks, None)
                except OSError as exc:
                    raise Cancelled("Content stream failed: {0}".format(exc)) from exc

                if chunk is None:
                    break

                # Bytes past the declared length can never commit.
                if reader.observed > metadata.declared_length:
                    raise BadRequest(
                        "Declared {0} bytes but received more".format(
                            metadata.declared_length
                        )
                    )

                state.write(chunk)
                try:
                    spool.write(chunk)
                except OSError as exc:
                    raise StoreError("Could not spool content: {0}".format(exc)) from exc
        finally:
            chunks.close()

        if reader.observed != metadata.declared_length:
            raise BadRequest(
                "Declared {0} bytes but received {1}".format(
                    metadata.declared_length, reader.observed
                )
            )

        digest = state.finalize()
        if not verify_digest(digest, metadata.declared_hash):
            raise HashMismatch(metadata.declared_hash, digest)

        return digest

    def _link(self, metadata: ObjectMetadata, stored: StoredObject) -> None:
        """Record the declared parent of `stored`. Failures don't undo the
        commit; the edge can be linked again later.
        """
        if metadata.parent_hash is None:
            return

        try:
            self.relations.link(metadata.parent_hash, stored.hash)
        except StoreError:
            logger.exception("Could not link %s -> %s", metadata.parent_hash, stored.hash)

    @staticmethod
    def _check_cancelled(cancel, deadline) -> None:
        if cancel is not None and cancel.is_set():
            raise Cancelled("Ingestion cancelled")
        if deadline is not None and time.monotonic() > deadline:
            raise Cancelled("Ingestion timed out")
