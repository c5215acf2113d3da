from __future__ import annotations

import pytest
from google.api_core.exceptions import Aborted, AlreadyExists

from typedstore import Client, ProgrammingError, ReadOnlyCollectionError

from tests.records import ChildDocument, MyDocument, ParentDocument, ReadOnlyDocument


def test_read_modify_write_commits(client, fake_db):
    fake_db.docs["MyDocument/docid"] = {"name": "Alice"}

    def body(tx: Client) -> str:
        doc = MyDocument(id="docid")
        tx.get(doc)
        doc.name = doc.name + " Smith"
        tx.set(doc)
        return doc.name

    assert client.run_transaction(body) == "Alice Smith"
    assert fake_db.docs["MyDocument/docid"] == {"name": "Alice Smith"}
    assert fake_db.commits == 1


def test_writes_are_staged_until_commit(client, fake_db):
    seen: list[dict] = []

    def body(tx: Client) -> None:
        tx.create(MyDocument(id="a", name="A"))
        seen.append(dict(fake_db.docs))

    client.run_transaction(body)
    assert seen == [{}]
    assert fake_db.docs == {"MyDocument/a": {"name": "A"}}


def test_transaction_client_is_scoped(client, fake_db):
    scoped: list[Client] = []

    def body(tx: Client) -> None:
        assert tx.in_transaction
        scoped.append(tx)

    client.run_transaction(body)
    assert scoped[0] is not client
    assert client.transaction is None
    assert client.compensations is None


def test_reads_and_queries_use_the_transaction(client, fake_db):
    fake_db.docs["MyDocument/docid"] = {"name": "Alice"}
    seen: list = []

    def body(tx: Client) -> None:
        seen.append(tx.transaction)
        tx.get(MyDocument(id="docid"))
        tx.get_all([MyDocument(id="docid")])
        tx.query(MyDocument).get_all()
        tx.query(MyDocument).count()

    client.run_transaction(body)
    txn = seen[0]
    assert [(c[0], c[2]) for c in fake_db.calls] == [("get", txn), ("get_all", txn), ("stream", txn), ("count", txn)]


def test_body_error_rolls_back_generated_ids(client, fake_db):
    doc = MyDocument(name="Alice")
    explicit = MyDocument(id="keep", name="Bob")

    def body(tx: Client) -> None:
        tx.create(doc)
        tx.set(explicit)
        assert doc.id
        raise ValueError("boom")

    with pytest.raises(ValueError, match="boom"):
        client.run_transaction(body)
    assert doc.id == ""
    assert explicit.id == "keep"
    assert fake_db.docs == {}
    assert fake_db.commits == 0


def test_commit_conflict_rolls_back_generated_ids(client, fake_db):
    fake_db.docs["MyDocument/dup"] = {"name": "existing"}
    fresh = MyDocument(name="new")

    def body(tx: Client) -> None:
        tx.create(fresh)
        tx.create(MyDocument(id="dup", name="again"))

    with pytest.raises(AlreadyExists):
        client.run_transaction(body)
    assert fresh.id == ""
    assert fake_db.docs == {"MyDocument/dup": {"name": "existing"}}


def test_aborted_attempt_is_retried_with_fresh_ids(client, fake_db):
    fake_db.abort_commits = 1
    doc = MyDocument(name="Alice")
    ids_seen: list[str] = []
    ids_at_start: list[str] = []

    def body(tx: Client) -> None:
        ids_at_start.append(doc.id)
        tx.create(doc)
        ids_seen.append(doc.id)

    client.run_transaction(body)

    assert fake_db.attempts == 2
    assert fake_db.commits == 1
    assert ids_at_start == ["", ""]
    assert ids_seen[0] != ids_seen[1]
    assert doc.id == ids_seen[1]
    assert fake_db.docs == {f"MyDocument/{doc.id}": {"name": "Alice"}}


def test_exhausted_retries_raise_and_roll_back(client, fake_db):
    fake_db.abort_commits = 10
    doc = MyDocument(name="Alice")

    with pytest.raises(Aborted):
        client.run_transaction(lambda tx: tx.create(doc), max_attempts=3)

    assert fake_db.attempts == 3
    assert doc.id == ""
    assert fake_db.docs == {}


def test_nested_transactions_are_rejected(client):
    def body(tx: Client) -> None:
        tx.run_transaction(lambda inner: None)

    with pytest.raises(ProgrammingError, match="nested"):
        client.run_transaction(body)


def test_readonly_collections_are_enforced_in_transactions(client, fake_db):
    client.add_readonly_table_maps({"ReadOnlyDocument": "ReadOnlyTable"})
    doc = ReadOnlyDocument(name="x")

    with pytest.raises(ReadOnlyCollectionError):
        client.run_transaction(lambda tx: tx.set(doc))
    assert doc.id == ""
    assert fake_db.docs == {}


def test_nested_documents_in_transaction(client, fake_db):
    parent = ParentDocument(id="p1", name="Parent")

    def body(tx: Client) -> str:
        tx.set(parent)
        child = ChildDocument(parent=parent, name="Child1")
        tx.create(child)
        return child.id

    child_id = client.run_transaction(body)
    assert fake_db.docs["ParentDocument/p1"] == {"name": "Parent"}
    assert fake_db.docs[f"ParentDocument/p1/ChildDocument/{child_id}"] == {"name": "Child1"}


def test_delete_in_transaction(client, fake_db):
    fake_db.docs["MyDocument/docid"] = {"name": "Alice"}
    client.run_transaction(lambda tx: tx.delete(MyDocument(id="docid")))
    assert fake_db.docs == {}
