# -*- coding: utf-8 -*-
"""hashdepot is a content-addressed upload service. Clients declare the hash,
length and type of an object and upload its bytes; the bytes are verified
against the declared hash while they stream in and stored under that hash.

- Objects are written once and never change.
- Every digest is stored at most once; uploading it again is a no-op.
- Objects may declare a parent, and the children of any object can be listed.
"""

from .__meta__ import (
    __title__,
    __summary__,
    __version__,
    __author__,
    __email__,
    __license__,
)

from .errors import (
    BadRequest,
    Cancelled,
    HashCollisionMismatch,
    HashDepotError,
    HashMismatch,
    NotFound,
    SizeExceeded,
    StoreError,
)
from .guard import SizeGuard
from .pipeline import IngestionPipeline, IngestState, ObjectMetadata
from .relations import RelationIndex
from .store import ObjectStore, StoredObject
from .verify import HashState, new_hash, verify_digest


__all__ = (
    "BadRequest",
    "Cancelled",
    "HashCollisionMismatch",
    "HashDepotError",
    "HashMismatch",
    "HashState",
    "IngestState",
    "IngestionPipeline",
    "NotFound",
    "ObjectMetadata",
    "ObjectStore",
    "RelationIndex",
    "SizeExceeded",
    "SizeGuard",
    "StoreError",
    "StoredObject",
    "new_hash",
    "verify_digest",
)
