from __future__ import annotations

from typedstore import CompensationStack, resolve_descriptor
from typedstore.allocation import allocate_identifier

from tests.records import CustomIDDocument, MyDocument


def test_existing_id_is_not_touched():
    doc = MyDocument(id="keep")
    allocation = allocate_identifier(resolve_descriptor(MyDocument), doc, "keep", is_new=False)
    assert allocation.is_new is False
    allocation.rollback()
    assert doc.id == "keep"


def test_new_id_is_written_eagerly_and_rolled_back():
    doc = MyDocument(name="Alice")
    allocation = allocate_identifier(resolve_descriptor(MyDocument), doc, "generated", is_new=True)
    assert doc.id == "generated"
    allocation.rollback()
    assert doc.id == ""


def test_new_id_goes_through_accessor():
    doc = CustomIDDocument(name="x")
    allocation = allocate_identifier(resolve_descriptor(CustomIDDocument), doc, "hash_abc", is_new=True)
    assert doc.my_id == "abc"
    allocation.rollback()
    assert doc.my_id == ""


def test_compensations_run_in_recorded_order_once():
    seen: list[int] = []
    stack = CompensationStack()
    stack.push(lambda: seen.append(1))
    stack.push(lambda: seen.append(2))
    assert len(stack) == 2

    assert stack.unwind() == 2
    assert seen == [1, 2]
    assert stack.unwind() == 0
    assert seen == [1, 2]


def test_discarded_compensations_never_run():
    seen: list[int] = []
    stack = CompensationStack()
    stack.push(lambda: seen.append(1))
    stack.discard()
    assert stack.unwind() == 0
    assert seen == []
