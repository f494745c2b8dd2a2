# -*- coding: utf-8 -*-
"""Errors raised while ingesting and reading objects."""


class HashDepotError(Exception):
    """Base exception for all hashdepot errors.

    Attributes:
        reason (str): Short machine readable name of the failure.
        status (int): HTTP status the failure maps to.
        state: :class:`hashdepot.pipeline.IngestState` the ingestion was in
            when it was rejected, or ``None`` outside of an ingestion.
    """

    reason = "error"
    status = 500

    def __init__(self, message=None):
        super().__init__(message or self.reason)
        self.state = None


class BadRequest(HashDepotError):
    """Malformed metadata or an invalid digest. Never retried."""

    reason = "bad_request"
    status = 400


class SizeExceeded(HashDepotError):
    """Declared or observed length is over the configured maximum."""

    reason = "size_exceeded"
    status = 400

    def __init__(self, length, limit):
        self.length = length
        self.limit = limit
        super().__init__(
            "Object size {0} exceeds maximum of {1} bytes".format(length, limit)
        )


class HashMismatch(HashDepotError):
    """Content did not hash to its declared digest."""

    reason = "hash_mismatch"
    status = 409

    def __init__(self, expected, actual):
        self.expected = expected
        self.actual = actual
        super().__init__(
            "Content hash mismatch: declared {0}, computed {1}".format(expected, actual)
        )


class Cancelled(HashDepotError):
    """The caller went away or the ingestion ran out of time. Safe to retry."""

    reason = "cancelled"
    status = 408


class StoreError(HashDepotError):
    """The storage backend failed."""

    reason = "store_error"
    status = 500


class HashCollisionMismatch(StoreError):
    """An object with the same digest but different content is already stored."""

    reason = "hash_collision_mismatch"
    status = 409

    def __init__(self, hashid, message=None):
        self.hashid = hashid
        super().__init__(
            message or "Conflicting content already stored for {0}".format(hashid)
        )


class NotFound(HashDepotError):
    """No stored object has the requested digest."""

    reason = "not_found"
    status = 404

    def __init__(self, hashid):
        self.hashid = hashid
        super().__init__("Object not found: {0}".format(hashid))
