from unittest.mock import MagicMock

import pytest

from drinkshop.catalog import repository
from drinkshop.payments.errors import PersistenceFailure


def _client(monkeypatch, *, data=None, fail=False):
    client = MagicMock()
    execute = client.table.return_value.select.return_value.in_.return_value.execute
    if fail:
        execute.side_effect = RuntimeError("db down")
    else:
        execute.return_value = MagicMock(data=data)
    monkeypatch.setattr("drinkshop.infra.supabase_client.get_supabase", lambda: client)
    return client


def test_products_map_is_keyed_by_id(monkeypatch):
    client = _client(monkeypatch, data=[{"id": "p1", "name": "Club Beer", "packs": []}])
    products = repository.get_products_map(["p1", "p2", "p1"])
    assert list(products) == ["p1"]
    client.table.return_value.select.return_value.in_.assert_called_once_with("id", ["p1", "p2"])


def test_empty_ids_skip_the_store(monkeypatch):
    client = _client(monkeypatch, data=[])
    assert repository.get_products_map([]) == {}
    client.table.assert_not_called()


def test_catalog_read_error_is_persistence_failure(monkeypatch):
    _client(monkeypatch, fail=True)
    with pytest.raises(PersistenceFailure):
        repository.get_products_map(["p1"])
