# storefront/database.py
"""
File-backed storage layer: one CSV (or .xlsx) file per table inside
settings.DATA_DIR, read and written with pandas. Every cell is stored as a
string; the models in storefront.models convert rows to typed objects.

Two ways to write:

  * the plain CRUD primitives (create_record / update_record / delete_record)
    apply a single change under the table's file lock;
  * db.transaction() returns a unit of work. Writes are staged in memory and
    applied together on commit; an exception inside the block discards them.
    Rows locked with tx.lock_row() / tx.with_locked_row() stay locked until
    the transaction ends, which serializes read-modify-write cycles on the
    same row across threads and processes.

Usage:
    from storefront.database import db
    db.get_record("products", "id", product_id)
    with db.transaction() as tx:
        tx.with_locked_row("products", "id", product_id, lambda row: ...)
        tx.create_record("orders", {...}, unique=("order_number",))
"""

from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple
import json
import logging
import os
import re
import uuid

import pandas as pd
from filelock import FileLock, Timeout

from storefront.config import settings
from storefront.core.errors import DuplicateKey, InternalError

logger = logging.getLogger(__name__)

Row = Dict[str, str]
# ("insert", row, unique_fields) | ("update", key, value, updates) | ("delete", key, value)
Op = Tuple[Any, ...]


def to_cell(value: Any) -> str:
    """Serialize a Python value into the string stored in a CSV cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _rows(df: pd.DataFrame) -> List[Row]:
    if df.empty:
        return []
    return df.to_dict(orient="records")


def _apply_op(df: pd.DataFrame, op: Op, table: str = "", check_unique: bool = False) -> pd.DataFrame:
    kind = op[0]
    if kind == "insert":
        row, unique = op[1], op[2]
        if check_unique and not df.empty:
            for field in unique:
                if field in df.columns and (df[field] == row.get(field, "")).any():
                    raise DuplicateKey(table, field, row.get(field))
        new = pd.DataFrame([row], dtype=str)
        if len(df) == 0:
            columns = list(df.columns) + [c for c in new.columns if c not in df.columns]
            return new.reindex(columns=columns, fill_value="")
        return pd.concat([df, new], ignore_index=True, sort=False).fillna("")

    if df.empty:
        return df
    key, value = op[1], op[2]
    if key not in df.columns:
        return df
    mask = df[key] == str(value)
    if not mask.any():
        return df
    if kind == "update":
        df = df.copy()
        for k, v in op[3].items():
            if k not in df.columns:
                df[k] = ""
            df.loc[mask, k] = v
        return df
    if kind == "delete":
        return df[~mask].reset_index(drop=True)
    raise ValueError(f"Unknown operation {kind!r}")


class FileBackedDB:
    """
    Manages the CSV tables inside `data_dir`.
    Table name corresponds to a file name in settings (or you may pass a full filename).
    """

    def __init__(self, data_dir: Optional[Path] = None, lock_timeout: Optional[float] = None):
        self.data_dir = Path(data_dir if data_dir is not None else settings.DATA_DIR)
        self.lock_timeout = float(settings.LOCK_TIMEOUT if lock_timeout is None else lock_timeout)

    def _file_path(self, table: str) -> Path:
        if table.endswith((".csv", ".xlsx")):
            return self.data_dir / Path(table)
        mapping = {
            "users": settings.USERS_FILE,
            "shipping_addresses": settings.SHIPPING_ADDRESSES_FILE,
            "products": settings.PRODUCTS_FILE,
            "orders": settings.ORDERS_FILE,
            "order_items": settings.ORDER_ITEMS_FILE,
            "order_status_history": settings.ORDER_STATUS_HISTORY_FILE,
            "carts": settings.CARTS_FILE,
        }
        filename = mapping.get(table, f"{table}.csv")
        return self.data_dir / Path(filename)

    def _lock_for(self, path: Path) -> FileLock:
        return FileLock(str(path) + ".lock", timeout=self.lock_timeout)

    def _row_lock_for(self, table: str, key: str, value: Any) -> FileLock:
        lock_dir = self.data_dir / ".locks"
        lock_dir.mkdir(parents=True, exist_ok=True)
        safe_value = re.sub(r"[^A-Za-z0-9_-]", "_", str(value))
        return FileLock(str(lock_dir / f"{table}.{key}.{safe_value}.lock"), timeout=self.lock_timeout)

    def _acquire(self, lock: FileLock, what: str) -> None:
        try:
            lock.acquire()
        except Timeout as exc:
            logger.error("Timed out after %.1fs waiting for lock on %s", self.lock_timeout, what)
            raise InternalError(f"Timed out waiting for lock on {what}") from exc

    def _read_df(self, table: str) -> pd.DataFrame:
        path = self._file_path(table)
        if not path.exists():
            return pd.DataFrame()
        # CSV preferred; a table configured as .xlsx is read through openpyxl
        if path.suffix.lower() == ".xlsx":
            return pd.read_excel(path, dtype=str, keep_default_na=False).fillna("")
        try:
            return pd.read_csv(path, dtype=str, keep_default_na=False).fillna("")
        except pd.errors.EmptyDataError:
            return pd.DataFrame()

    def _write_df_nolock(self, table: str, df: pd.DataFrame) -> None:
        """
        Write DataFrame for `table` WITHOUT acquiring the file lock.
        Use this only when the caller already holds the lock. The file is
        replaced atomically so lock-free readers never see a partial write.
        """
        path = self._file_path(table)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{uuid.uuid4().hex}.{path.name}")
        if path.suffix.lower() == ".xlsx":
            df.to_excel(tmp, index=False)
        else:
            df.to_csv(tmp, index=False)
        os.replace(tmp, path)

    def _commit_ops(self, ops: Dict[str, List[Op]]) -> None:
        """Apply staged operations, holding every touched table's lock (sorted) until all are written."""
        tables = sorted(ops)
        held: List[FileLock] = []
        try:
            for table in tables:
                lock = self._lock_for(self._file_path(table))
                self._acquire(lock, table)
                held.append(lock)
            frames = {}
            for table in tables:
                df = self._read_df(table)
                for op in ops[table]:
                    df = _apply_op(df, op, table=table, check_unique=True)
                frames[table] = df
            for table, df in frames.items():
                self._write_df_nolock(table, df)
        finally:
            for lock in reversed(held):
                lock.release()

    @contextmanager
    def transaction(self) -> Iterator["Transaction"]:
        tx = Transaction(self)
        try:
            yield tx
            tx.commit()
        except BaseException:
            tx.rollback()
            raise
        finally:
            tx.close()

    # --- high-level CRUD primitives ---

    def list_records(self, table: str) -> List[Row]:
        return _rows(self._read_df(table))

    def find_records(self, table: str, **equals: Any) -> List[Row]:
        df = self._read_df(table)
        return _rows(_filter(df, equals))

    def get_record(self, table: str, key: str, value: Any) -> Optional[Row]:
        rows = self.find_records(table, **{key: value})
        return rows[0] if rows else None

    def get_records(self, table: str, key: str, values: Iterable[Any]) -> List[Row]:
        """Batch lookup: every row whose `key` is one of `values`, in file order."""
        df = self._read_df(table)
        wanted = {str(v) for v in values}
        if df.empty or key not in df.columns or not wanted:
            return []
        return _rows(df[df[key].isin(wanted)])

    def create_record(self, table: str, data: Dict[str, Any], id_field: str = "id",
                      unique: Iterable[str] = ()) -> Dict[str, Any]:
        """
        Create a new record. If id_field not present in `data`, one will be generated (uuid4 hex).
        Returns the saved record (with id).
        """
        with self.transaction() as tx:
            saved = tx.create_record(table, data, id_field=id_field, unique=unique)
        return saved

    def update_record(self, table: str, key: str, value: Any, updates: Dict[str, Any]) -> Optional[Row]:
        """
        Update rows where df[key] == value with fields in updates. Returns the updated first row dict or None.
        """
        with self.transaction() as tx:
            updated = tx.update_record(table, key, value, updates)
        return updated

    def delete_record(self, table: str, key: str, value: Any) -> bool:
        """
        Delete all records where df[key] == value. Returns True if any rows were removed.
        """
        with self.transaction() as tx:
            removed = tx.delete_record(table, key, value)
        return removed


def _filter(df: pd.DataFrame, equals: Dict[str, Any]) -> pd.DataFrame:
    if df.empty:
        return df
    mask = pd.Series(True, index=df.index)
    for key, value in equals.items():
        if key not in df.columns:
            return df.iloc[0:0]
        mask &= df[key] == to_cell(value)
    return df[mask]


class Transaction:
    """
    Unit of work over a FileBackedDB. Obtain one through `db.transaction()`.
    Reads see the committed tables plus this transaction's staged writes.
    """

    def __init__(self, db: FileBackedDB):
        self.db = db
        self._ops: Dict[str, List[Op]] = {}
        self._row_locks: Dict[Tuple[str, str, str], FileLock] = {}

    def _stage(self, table: str, op: Op) -> None:
        self._ops.setdefault(table, []).append(op)

    def _view(self, table: str) -> pd.DataFrame:
        df = self.db._read_df(table)
        for op in self._ops.get(table, []):
            df = _apply_op(df, op, table=table)
        return df

    # --- locking ---

    def lock_row(self, table: str, key: str, value: Any) -> Optional[Row]:
        """
        Take the exclusive lock for one row (kept until the transaction ends)
        and return its current contents, or None if it does not exist.
        """
        ident = (table, key, str(value))
        if ident not in self._row_locks:
            lock = self.db._row_lock_for(table, key, value)
            self.db._acquire(lock, f"{table}/{value}")
            self._row_locks[ident] = lock
        return self.get_record(table, key, value)

    def with_locked_row(self, table: str, key: str, value: Any, fn: Callable[[Optional[Row]], Any]) -> Any:
        return fn(self.lock_row(table, key, value))

    # --- reads ---

    def list_records(self, table: str) -> List[Row]:
        return _rows(self._view(table))

    def find_records(self, table: str, **equals: Any) -> List[Row]:
        return _rows(_filter(self._view(table), equals))

    def get_record(self, table: str, key: str, value: Any) -> Optional[Row]:
        rows = self.find_records(table, **{key: value})
        return rows[0] if rows else None

    def get_records(self, table: str, key: str, values: Iterable[Any]) -> List[Row]:
        df = self._view(table)
        wanted = {str(v) for v in values}
        if df.empty or key not in df.columns or not wanted:
            return []
        return _rows(df[df[key].isin(wanted)])

    # --- staged writes ---

    def create_record(self, table: str, data: Dict[str, Any], id_field: str = "id",
                      unique: Iterable[str] = ()) -> Dict[str, Any]:
        if id_field not in data or not data.get(id_field):
            data[id_field] = uuid.uuid4().hex
        row = {k: to_cell(v) for k, v in data.items()}
        self._stage(table, ("insert", row, tuple(unique)))
        return data

    def update_record(self, table: str, key: str, value: Any, updates: Dict[str, Any]) -> Optional[Row]:
        if self.get_record(table, key, value) is None:
            return None
        self._stage(table, ("update", key, str(value), {k: to_cell(v) for k, v in updates.items()}))
        return self.get_record(table, key, value)

    def delete_record(self, table: str, key: str, value: Any) -> bool:
        if self.get_record(table, key, value) is None:
            return False
        self._stage(table, ("delete", key, str(value)))
        return True

    # --- lifecycle ---

    def commit(self) -> None:
        if self._ops:
            self.db._commit_ops(self._ops)
        self._ops = {}

    def rollback(self) -> None:
        self._ops = {}

    def close(self) -> None:
        for lock in self._row_locks.values():
            lock.release()
        self._row_locks = {}


# module-level singleton for convenience
db = FileBackedDB()
