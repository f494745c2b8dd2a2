# -*- coding: utf-8 -*-

import pytest
from fs.memoryfs import MemoryFS
from fs.osfs import OSFS

import hashdepot


@pytest.fixture
def memfs():
    filesystem = MemoryFS()
    yield filesystem
    filesystem.close()


@pytest.fixture
def testpath(tmpdir):
    return tmpdir.mkdir("hashdepot")


@pytest.fixture(params=["mem", "os"])
def backend(request, memfs, testpath):
    if request.param == "mem":
        return memfs
    return OSFS(str(testpath))


@pytest.fixture
def store(backend):
    return hashdepot.ObjectStore(backend, depth=2, width=2)


@pytest.fixture
def relations(backend):
    return hashdepot.RelationIndex(backend, depth=2, width=2)


@pytest.fixture
def guard():
    return hashdepot.SizeGuard(max_object_size=16)


@pytest.fixture
def pipeline(store, relations, guard):
    return hashdepot.IngestionPipeline(store, relations, guard=guard, chunk_size=4)
