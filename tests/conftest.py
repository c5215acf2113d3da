from __future__ import annotations

import pytest

import typedstore.transaction as transaction_module
from typedstore import Client

from tests.fake_firestore import _FakeFirestore, fake_transactional


@pytest.fixture
def fake_db() -> _FakeFirestore:
    return _FakeFirestore()


@pytest.fixture
def client(fake_db: _FakeFirestore, monkeypatch: pytest.MonkeyPatch) -> Client:
    # The real retrying primitive drives gRPC transactions; the fake replays it in memory.
    monkeypatch.setattr(transaction_module, "transactional", fake_transactional)
    return Client(fake_db)
