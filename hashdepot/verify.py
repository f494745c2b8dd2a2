# -*- coding: utf-8 -*-
"""Incremental content hashing and digest verification."""

import hashlib
import hmac
from typing import Optional

import hashdepot.utils as u

DEFAULT_ALGORITHM = "sha256"


def check_algorithm(algorithm: str) -> str:
    """Return `algorithm` if ``hashlib`` provides it with a 256-bit digest.

    Raises:
        ValueError: If the algorithm is unknown or its digests are not 64 hex
            characters long.
    """
    try:
        digest_size = hashlib.new(algorithm).digest_size
    except (ValueError, TypeError) as exc:
        raise ValueError("Unknown hash algorithm: {0!r}".format(algorithm)) from exc

    if digest_size * 2 != u.DIGEST_LENGTH:
        raise ValueError(
            "Hash algorithm {0!r} does not produce 256-bit digests".format(algorithm)
        )

    return algorithm


class HashState(object):
    """Running hash over a byte stream.

    Attributes:
        algorithm (str): Name of the ``hashlib`` algorithm.
        length (int): Number of bytes written so far.
    """

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM):
        self.algorithm = algorithm
        self.length = 0
        self._hash = hashlib.new(algorithm)

    def write(self, chunk) -> "HashState":
        """Feed `chunk` into the hash and return the state."""
        data = u.to_bytes(chunk)
        self._hash.update(data)
        self.length += len(data)
        return self

    def finalize(self) -> str:
        """Return the lowercase hex digest of everything written so far.

        Finalizing before any write yields the digest of the empty input.
        """
        return self._hash.hexdigest()


def new_hash(algorithm: str = DEFAULT_ALGORITHM) -> HashState:
    return HashState(algorithm)


def verify_digest(computed: Optional[str], declared: Optional[str]) -> bool:
    """Return whether two hex digests are equal.

    The comparison always runs over the full length of the digests instead of
    stopping at the first differing character.
    """
    if not isinstance(computed, str) or not isinstance(declared, str):
        return False
    return hmac.compare_digest(computed.encode("utf8"), declared.encode("utf8"))


def computehash(content, algorithm: str = DEFAULT_ALGORITHM,
                chunk_size: int = 64 * 1024) -> str:
    """Compute the hex digest of `content` using `algorithm`."""
    state = new_hash(algorithm)
    for data in u.Stream(content, chunk_size=chunk_size):
        state.write(data)
    return state.finalize()
