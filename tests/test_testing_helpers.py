from __future__ import annotations

import pytest

import typedstore.testing as testing

from tests.records import ChildDocument, MyDocument, ParentDocument


class _Resp:
    def __init__(self) -> None:
        self.raised = False

    def raise_for_status(self) -> None:
        self.raised = True


def test_helpers_refuse_without_emulator(monkeypatch: pytest.MonkeyPatch, client) -> None:
    monkeypatch.delenv("FIRESTORE_EMULATOR_HOST", raising=False)
    with pytest.raises(RuntimeError, match="FIRESTORE_EMULATOR_HOST"):
        testing.clear_emulator_database(client)
    with pytest.raises(RuntimeError):
        testing.delete_collection(client, "MyDocument")


def test_clear_emulator_database_targets_connected_database(monkeypatch: pytest.MonkeyPatch, client) -> None:
    monkeypatch.setenv("FIRESTORE_EMULATOR_HOST", "localhost:8080")
    seen: list[tuple[str, float]] = []
    resp = _Resp()

    def _delete(url, timeout):
        seen.append((url, timeout))
        return resp

    monkeypatch.setattr(testing.requests, "delete", _delete)
    testing.clear_emulator_database(client, timeout_s=3.0)

    assert seen == [("http://localhost:8080/emulator/v1/projects/test-project/databases/(default)/documents", 3.0)]
    assert resp.raised is True


def test_delete_collection(monkeypatch: pytest.MonkeyPatch, client, fake_db) -> None:
    monkeypatch.setenv("FIRESTORE_EMULATOR_HOST", "localhost:8080")
    fake_db.docs["MyDocument/a"] = {"name": "A"}
    fake_db.docs["MyDocument/b"] = {"name": "B"}
    fake_db.docs["ParentDocument/p1"] = {"name": "P"}
    fake_db.docs["ParentDocument/p1/ChildDocument/c1"] = {"name": "C"}
    fake_db.docs["ParentDocument/p2/ChildDocument/c2"] = {"name": "C2"}

    assert testing.delete_collection(client, MyDocument) == 2
    assert testing.delete_collection(client, ChildDocument, parent=ParentDocument(id="p1")) == 1
    assert sorted(fake_db.docs) == ["ParentDocument/p1", "ParentDocument/p2/ChildDocument/c2"]

    assert testing.delete_collection(fake_db, "ParentDocument") == 2
    assert fake_db.docs == {}

    with pytest.raises(TypeError):
        testing.delete_collection(fake_db, MyDocument)
