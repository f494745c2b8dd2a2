# -*- coding: utf-8 -*-
"""HTTP interface of the upload service.

Endpoints:
- POST /objects                  - upload an object
- GET  /objects/{hash}           - describe a stored object
- GET  /objects/{hash}/content   - download a stored object
- GET  /objects/{hash}/children  - list the children linked to an object

An upload body is the JSON metadata document on its own line, followed by the
raw bytes of the object::

    {"type": "blob", "content_hash": "2cf2...9824", "content_length": 5}\\n
    hello

The metadata is validated before any of the object bytes are read.
"""

import logging
import threading
from contextlib import closing
from typing import List, Optional

import anyio.from_thread
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel
from starlette.requests import ClientDisconnect

from hashdepot.__meta__ import __version__
from hashdepot.errors import BadRequest, Cancelled, HashDepotError
from hashdepot.pipeline import IngestionPipeline
from hashdepot.store import StoredObject

logger = logging.getLogger(__name__)

MAX_METADATA_SIZE = 64 * 1024

router = APIRouter(prefix="/objects", tags=["Objects"])


class ObjectResponse(BaseModel):
    """Description of a stored object."""

    hash: str
    length: int
    type: str
    metadata: str = ""

    @classmethod
    def from_stored(cls, stored: StoredObject) -> "ObjectResponse":
        return cls(**stored.to_dict())


class RequestBody(object):
    """Blocking reader over an ASGI request body.

    Meant to be used from a worker thread while the event loop keeps
    receiving the body. A client disconnect becomes :class:`Cancelled`.
    """

    def __init__(self, request: Request):
        self._chunks = request.stream()
        self._buffer = b""
        self._done = False
        self._closed = False
        self.disconnected = threading.Event()

    async def _next(self) -> bytes:
        try:
            return await self._chunks.__anext__()
        except StopAsyncIteration:
            return b""

    def _pull(self) -> bytes:
        if self._done:
            return b""
        try:
            chunk = anyio.from_thread.run(self._next)
        except ClientDisconnect as exc:
            self._done = True
            self.disconnected.set()
            raise Cancelled("Client disconnected") from exc
        if not chunk:
            self._done = True
        return chunk

    def readline(self, limit: int = MAX_METADATA_SIZE) -> bytes:
        """Return the body up to the first newline, without the newline.

        Raises:
            BadRequest: If no newline shows up within `limit` bytes.
        """
        while b"\n" not in self._buffer and not self._done:
            if len(self._buffer) > limit:
                break
            self._buffer += self._pull()

        line, sep, rest = self._buffer.partition(b"\n")
        if len(line) > limit:
            raise BadRequest("Metadata line exceeds {0} bytes".format(limit))

        self._buffer = rest
        return line

    def __iter__(self):
        if self._buffer:
            data, self._buffer = self._buffer, b""
            yield data

        while not self._done:
            chunk = self._pull()
            if chunk:
                yield chunk

    def close(self) -> None:
        """Stop reading and close the body stream.

        Whatever is left of the body is never received, so an aborted upload
        does not keep the connection busy with bytes nobody reads.
        """
        self._done = True
        self._buffer = b""
        if not self._closed:
            self._closed = True
            anyio.from_thread.run(self._chunks.aclose)


def get_pipeline(request: Request) -> IngestionPipeline:
    return request.app.state.pipeline


def _ingest(pipeline: IngestionPipeline, body: RequestBody) -> StoredObject:
    with closing(body):
        metadata = body.readline()
        return pipeline.ingest(metadata, body, cancel=body.disconnected)


@router.post("", status_code=201, response_model=ObjectResponse)
async def upload_object(request: Request,
                        pipeline: IngestionPipeline = Depends(get_pipeline)):
    """Upload an object: a metadata line followed by the object bytes."""
    stored = await run_in_threadpool(_ingest, pipeline, RequestBody(request))
    return ObjectResponse.from_stored(stored)


@router.get("/{hashid}", response_model=ObjectResponse)
def describe_object(hashid: str, pipeline: IngestionPipeline = Depends(get_pipeline)):
    return ObjectResponse.from_stored(pipeline.lookup(hashid))


@router.get("/{hashid}/content")
def download_object(hashid: str, pipeline: IngestionPipeline = Depends(get_pipeline)):
    stored = pipeline.lookup(hashid)
    fileobj = pipeline.store.open(stored.hash)

    def iter_content():
        with closing(fileobj):
            while True:
                data = fileobj.read(pipeline.chunk_size)
                if not data:
                    break
                yield data

    return StreamingResponse(iter_content(),
                             media_type="application/octet-stream",
                             headers={"Content-Length": str(stored.length)})


@router.get("/{hashid}/children", response_model=List[str])
def list_children(hashid: str, pipeline: IngestionPipeline = Depends(get_pipeline)):
    """List the children of a stored object, ``[]`` when it has none."""
    return pipeline.children(hashid)


async def handle_error(request: Request, exc: HashDepotError) -> JSONResponse:
    if exc.status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status,
                        content={"error": exc.reason, "detail": str(exc)})


def create_app(pipeline: Optional[IngestionPipeline] = None, settings=None) -> FastAPI:
    """Build the HTTP app around `pipeline`.

    When no pipeline is given one is built from `settings`, or from
    :func:`hashdepot.settings.get_settings` when those are missing too.
    """
    if pipeline is None:
        if settings is None:
            from hashdepot.settings import get_settings

            settings = get_settings()
        pipeline = IngestionPipeline.from_settings(settings)

    app = FastAPI(title="hashdepot", version=__version__)
    app.state.pipeline = pipeline
    app.include_router(router)
    app.add_exception_handler(HashDepotError, handle_error)
    return app
