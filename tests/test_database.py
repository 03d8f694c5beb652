import pytest

from storefront.core.errors import DuplicateKey


def test_crud_roundtrip(store):
    row = store.create_record("products", {"name": "Chair", "price": "10.00", "inventory_quantity": 3})
    assert row["id"]
    assert store.get_record("products", "id", row["id"])["name"] == "Chair"

    updated = store.update_record("products", "id", row["id"], {"inventory_quantity": 2})
    assert updated["inventory_quantity"] == "2"

    assert store.delete_record("products", "id", row["id"]) is True
    assert store.get_record("products", "id", row["id"]) is None
    assert store.delete_record("products", "id", row["id"]) is False


def test_missing_table_reads_as_empty(store):
    assert store.list_records("orders") == []
    assert store.get_records("orders", "id", ["a", "b"]) == []


def test_batch_read(store):
    ids = [store.create_record("products", {"name": n})["id"] for n in ("a", "b", "c")]
    rows = store.get_records("products", "id", [ids[0], ids[2], "nope"])
    assert [r["name"] for r in rows] == ["a", "c"]


def test_transaction_commits_all_tables_together(store):
    with store.transaction() as tx:
        order = tx.create_record("orders", {"order_number": "ORD-1-AAAA"})
        tx.create_record("order_items", {"order_id": order["id"], "quantity": 1})
        # staged writes are visible inside the transaction only
        assert tx.get_record("orders", "id", order["id"]) is not None
        assert store.get_record("orders", "id", order["id"]) is None
    assert store.get_record("orders", "id", order["id"]) is not None
    assert len(store.find_records("order_items", order_id=order["id"])) == 1


def test_exception_discards_staged_writes(store):
    with pytest.raises(RuntimeError):
        with store.transaction() as tx:
            tx.create_record("orders", {"order_number": "ORD-1-AAAA"})
            raise RuntimeError("boom")
    assert store.list_records("orders") == []


def test_unique_field_is_enforced_on_commit(store):
    store.create_record("orders", {"order_number": "ORD-1-AAAA"}, unique=("order_number",))
    with pytest.raises(DuplicateKey):
        store.create_record("orders", {"order_number": "ORD-1-AAAA"}, unique=("order_number",))
    assert len(store.list_records("orders")) == 1


def test_row_lock_is_released_when_transaction_ends(store):
    pid = store.create_record("products", {"name": "Lamp", "inventory_quantity": 1})["id"]
    with store.transaction() as tx:
        seen = tx.with_locked_row("products", "id", pid, lambda row: row["name"])
        assert seen == "Lamp"
    # a second transaction can take the same row lock straight away
    with store.transaction() as tx:
        assert tx.lock_row("products", "id", pid)["name"] == "Lamp"
    with store.transaction() as tx:
        assert tx.lock_row("products", "id", "missing") is None


def test_xlsx_table(store, monkeypatch):
    from storefront.config import settings

    monkeypatch.setattr(settings, "PRODUCTS_FILE", "products.xlsx")
    row = store.create_record("products", {"name": "Rug", "inventory_quantity": 4})
    assert (store.data_dir / "products.xlsx").exists()
    assert store.get_record("products", "id", row["id"])["inventory_quantity"] == "4"
