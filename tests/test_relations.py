# -*- coding: utf-8 -*-

import hashlib
import threading

import pytest
from fs.memoryfs import MemoryFS
from fs.wrap import read_only

import hashdepot
from hashdepot.errors import StoreError


def sha256(data):
    return hashlib.sha256(data).hexdigest()


PARENT = sha256(b"parent")
CHILDREN = [sha256(u"child {0}".format(i).encode("utf8")) for i in range(5)]


def test_children_unknown_parent(relations):
    assert list(relations.children(PARENT)) == []
    assert not relations.has_children(PARENT)


def test_children_invalid_parent(relations):
    assert list(relations.children("invalid")) == []


def test_link(relations):
    assert relations.link(PARENT, CHILDREN[0])

    assert list(relations.children(PARENT)) == [CHILDREN[0]]
    assert relations.has_children(PARENT)


def test_link_idempotent(relations):
    assert relations.link(PARENT, CHILDREN[0])
    assert not relations.link(PARENT, CHILDREN[0])

    assert list(relations.children(PARENT)) == [CHILDREN[0]]


def test_children_insertion_order(relations):
    for child in reversed(CHILDREN):
        relations.link(PARENT, child)

    assert list(relations.children(PARENT)) == list(reversed(CHILDREN))


def test_children_restartable(relations):
    for child in CHILDREN:
        relations.link(PARENT, child)

    first = relations.children(PARENT)
    assert next(first) == CHILDREN[0]

    assert list(relations.children(PARENT)) == CHILDREN
    assert list(first) == CHILDREN[1:]


def test_children_lazy(relations):
    relations.link(PARENT, CHILDREN[0])
    children = relations.children(PARENT)
    relations.link(PARENT, CHILDREN[1])

    assert list(children) == CHILDREN[:2]


def test_children_distinct_parents(relations):
    other = sha256(b"other parent")
    relations.link(PARENT, CHILDREN[0])
    relations.link(other, CHILDREN[1])

    assert list(relations.children(PARENT)) == [CHILDREN[0]]
    assert list(relations.children(other)) == [CHILDREN[1]]


def test_link_cycle(relations):
    relations.link(PARENT, CHILDREN[0])
    relations.link(CHILDREN[0], PARENT)
    relations.link(PARENT, PARENT)

    assert list(relations.children(PARENT)) == [CHILDREN[0], PARENT]
    assert list(relations.children(CHILDREN[0])) == [PARENT]


@pytest.mark.parametrize(
    "parent,child",
    [("invalid", CHILDREN[0]), (PARENT, "invalid"), (PARENT.upper(), CHILDREN[0])],
)
def test_link_invalid_hash(relations, parent, child):
    with pytest.raises(ValueError):
        relations.link(parent, child)


def test_children_ignores_partial_line(relations):
    relations.link(PARENT, CHILDREN[0])
    relations.fs.appendtext(relations._parent_path(PARENT), CHILDREN[1][:10])

    assert list(relations.children(PARENT)) == [CHILDREN[0]]


def test_relations_reopen(backend):
    hashdepot.RelationIndex(backend).link(PARENT, CHILDREN[0])

    assert list(hashdepot.RelationIndex(backend).children(PARENT)) == [CHILDREN[0]]


def test_link_backend_error():
    relations = hashdepot.RelationIndex(read_only(MemoryFS()))

    with pytest.raises(StoreError):
        relations.link(PARENT, CHILDREN[0])


def test_link_concurrent(relations):
    barrier = threading.Barrier(len(CHILDREN) * 2)

    def link(child):
        barrier.wait()
        relations.link(PARENT, child)

    threads = [threading.Thread(target=link, args=(child,))
               for child in CHILDREN + CHILDREN]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    children = list(relations.children(PARENT))

    assert sorted(children) == sorted(CHILDREN)
    assert len(relations._locks) == 0
