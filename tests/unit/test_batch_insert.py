from __future__ import annotations

import pytest

from stock_inbound.db.batch_insert import BatchInsertError, InsertResult, batch_insert


class DummyCursor:
    def __init__(self) -> None:
        self.queries: list[str] = []
        self.calls: list[dict] = []
        self.fetched: list[tuple] = [(1, 10, "076-004"), (2, 10, "076-005")]


# execute_values is patched inside the module so no database is needed
@pytest.fixture(autouse=True)
def patch_execute_values(monkeypatch):
    import stock_inbound.db.batch_insert as bi

    def fake_execute_values(cursor, sql, rows, page_size=1000, fetch=False):
        cursor.queries.append(sql)
        cursor.calls.append({"rows": list(rows), "page_size": page_size, "fetch": fetch})
        if fetch:
            return cursor.fetched
        return None

    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    return fake_execute_values


def test_batch_insert_basic():
    cur = DummyCursor()
    res = batch_insert(cur, table="items", columns=["imei", "box_id"], rows=[["356938035643809", 1]])
    assert isinstance(res, InsertResult)
    assert res.inserted_rows == 1
    assert res.returned_values is None
    assert cur.queries == ['INSERT INTO items ("imei","box_id") VALUES %s']
    assert cur.calls[0]["fetch"] is False


def test_batch_insert_returning():
    cur = DummyCursor()
    res = batch_insert(
        cur,
        table="boxes",
        columns=["device_id", "box_no"],
        rows=[(10, "076-004"), (10, "076-005")],
        returning=["box_id", "device_id", "box_no"],
        page_size=500,
    )
    assert res.returned_values == [(1, 10, "076-004"), (2, 10, "076-005")]
    assert cur.queries[0].endswith('RETURNING "box_id","device_id","box_no"')
    assert cur.calls[0]["page_size"] == 500
    assert cur.calls[0]["fetch"] is True


def test_batch_insert_empty_rows():
    cur = DummyCursor()
    assert batch_insert(cur, table="items", columns=["imei"], rows=[]).inserted_rows == 0
    assert batch_insert(cur, table="boxes", columns=["box_no"], rows=[], returning=["box_id"]).returned_values == []
    assert cur.queries == []


def test_batch_insert_wraps_driver_errors(monkeypatch):
    import stock_inbound.db.batch_insert as bi

    def failing(*args, **kwargs):
        raise RuntimeError("duplicate key value violates unique constraint")

    monkeypatch.setattr(bi, "execute_values", failing)
    with pytest.raises(BatchInsertError) as e:
        batch_insert(DummyCursor(), table="items", columns=["imei"], rows=[["1"]])
    assert "duplicate key" in str(e.value)


def test_batch_insert_with_metrics_callback():
    cur = DummyCursor()
    captured = []
    batch_insert(cur, table="items", columns=["imei"], rows=[["a"], ["b"], ["c"]], metrics_callback=captured.append)
    assert len(captured) == 1
    metrics = captured[0]
    assert metrics.batch_size == 3
    assert metrics.elapsed_seconds >= 0
    assert metrics.end_time >= metrics.start_time


def test_insert_sql_quotes_columns():
    from stock_inbound.db.batch_insert import insert_sql

    assert insert_sql("items", ["imei"]) == 'INSERT INTO items ("imei") VALUES %s'
    assert insert_sql("boxes", ["box_no"], returning=["box_id"]).endswith('RETURNING "box_id"')
