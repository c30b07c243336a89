"""
Storage Backend Module

Provides abstract relational storage interface and implementations for
in-memory (testing) and SQLite (persistence). Rows are JSON documents keyed by
an autoincrement integer id; monetary values are stored as Decimal strings.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Sequence, Tuple, Union
from decimal import Decimal
from datetime import datetime
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from contextlib import contextmanager


# Unique constraints per table
UNIQUE_FIELDS: Dict[str, List[str]] = {
    "users": ["email"],
    "accounts": ["account_number"],
    "sessions": ["token"],
    "transactions": [],
}


class StorageError(Exception):
    """Base class for storage failures"""


class DuplicateRecordError(StorageError):
    """Raised when a write violates a unique constraint"""

    def __init__(self, table: str, field_name: str):
        super().__init__(f"Duplicate value for {table}.{field_name}")
        self.table = table
        self.field_name = field_name


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: int
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        for key, value in result.items():
            if isinstance(value, datetime):
                result[key] = isoformat(value)
            elif isinstance(value, Decimal):
                result[key] = str(value)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        if isinstance(values.get('created_at'), str):
            values['created_at'] = datetime.fromisoformat(values['created_at'])
        return cls(**values)


def isoformat(value: datetime) -> str:
    """Fixed-width ISO timestamp so stored values sort lexically"""
    return value.isoformat(timespec="microseconds")


def _sort_key(field_name: str):
    def key(record: Dict[str, Any]):
        value = record.get(field_name)
        # None sorts first, like SQL NULLs in ascending order
        if value is None:
            return (0, 0)
        return (1, value)
    return key


def _apply_order(records: List[Dict[str, Any]], order_by: Sequence[str]) -> List[Dict[str, Any]]:
    """Stable multi-key sort; '-field' means descending"""
    for ordering in reversed(list(order_by)):
        descending = ordering.startswith("-")
        field_name = ordering.lstrip("-")
        records.sort(key=_sort_key(field_name), reverse=descending)
    return records


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def insert(self, table: str, data: Dict[str, Any]) -> int:
        """Insert a new row and return its generated id"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        """Load a row by id"""
        pass

    @abstractmethod
    def update(self, table: str, record_id: int, changes: Dict[str, Any]) -> bool:
        """Merge changes into an existing row"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any],
             order_by: Sequence[str] = (), limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Find rows whose fields equal all filter values"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: int) -> bool:
        """Delete a row by id"""
        pass

    @abstractmethod
    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        """Delete rows matching filters and return how many were removed"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count rows in table"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all rows from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def find_one(self, table: str, filters: Dict[str, Any],
                 order_by: Sequence[str] = ()) -> Optional[Dict[str, Any]]:
        """Return the first matching row or None"""
        rows = self.find(table, filters, order_by=order_by, limit=1)
        return rows[0] if rows else None

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


class InMemoryStorage(StorageInterface):
    """
    In-memory storage implementation for tests and single-process runs.

    atomic() snapshots each table on its first write inside the block and a
    rollback restores those tables wholesale, so it is not isolated from
    writes made by other threads to the same tables meanwhile.
    """

    def __init__(self):
        self._data: Dict[str, Dict[int, Dict[str, Any]]] = {}
        self._sequences: Dict[str, int] = {}
        self._lock = threading.RLock()
        self._snapshot: Optional[Dict[str, Tuple[Dict[int, Dict[str, Any]], int]]] = None

    def _ensure_table(self, table: str) -> None:
        if table not in self._data:
            self._data[table] = {}
            self._sequences[table] = 0

    @staticmethod
    def _copy(data: Dict[str, Any]) -> Dict[str, Any]:
        # Deep copy through JSON so stored rows behave like persisted ones
        return json.loads(json.dumps(data, default=str))

    def _check_unique(self, table: str, row: Dict[str, Any], record_id: Optional[int]) -> None:
        for field_name in UNIQUE_FIELDS.get(table, []):
            value = row.get(field_name)
            if value is None:
                continue
            for other_id, other in self._data[table].items():
                if other_id != record_id and other.get(field_name) == value:
                    raise DuplicateRecordError(table, field_name)

    def insert(self, table: str, data: Dict[str, Any]) -> int:
        with self._lock:
            self._ensure_table(table)
            row = self._copy(data)
            self._check_unique(table, row, None)
            self._remember(table)
            self._sequences[table] += 1
            record_id = self._sequences[table]
            row['id'] = record_id
            self._data[table][record_id] = row
            return record_id

    def load(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            row = self._data[table].get(record_id)
            if row is not None:
                return self._copy(row)
            return None

    def update(self, table: str, record_id: int, changes: Dict[str, Any]) -> bool:
        with self._lock:
            self._ensure_table(table)
            row = self._data[table].get(record_id)
            if row is None:
                return False
            merged = dict(row)
            merged.update(self._copy(changes))
            merged['id'] = record_id
            self._check_unique(table, merged, record_id)
            self._remember(table)
            self._data[table][record_id] = merged
            return True

    def find(self, table: str, filters: Dict[str, Any],
             order_by: Sequence[str] = (), limit: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            wanted = self._copy(filters)
            results = []
            for row in self._data[table].values():
                if all(key in row and row[key] == value for key, value in wanted.items()):
                    results.append(self._copy(row))
            _apply_order(results, order_by)
            if limit is not None:
                results = results[:limit]
            return results

    def delete(self, table: str, record_id: int) -> bool:
        with self._lock:
            self._ensure_table(table)
            if record_id in self._data[table]:
                self._remember(table)
                del self._data[table][record_id]
                return True
            return False

    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        with self._lock:
            matches = self.find(table, filters)
            if matches:
                self._remember(table)
            for row in matches:
                del self._data[table][row['id']]
            return len(matches)

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._ensure_table(table)
            self._remember(table)
            self._data[table] = {}

    def begin_transaction(self) -> None:
        with self._lock:
            if self._snapshot is None:
                self._snapshot = {}

    def _remember(self, table: str) -> None:
        """Record a table's pre-transaction state the first time it is written"""
        if self._snapshot is not None and table not in self._snapshot:
            # Rows are replaced, never mutated, so a shallow copy suffices
            self._snapshot[table] = (dict(self._data[table]), self._sequences[table])

    def commit(self) -> None:
        with self._lock:
            self._snapshot = None

    def rollback(self) -> None:
        """Restore only the tables written inside the atomic block"""
        with self._lock:
            if self._snapshot is not None:
                for table, (rows, sequence) in self._snapshot.items():
                    self._data[table] = rows
                    self._sequences[table] = sequence
                self._snapshot = None

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class SQLiteStorage(StorageInterface):
    """SQLite storage implementation for persistence"""

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False
        self._tables = set()

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    @staticmethod
    def _json_path(field_name: str) -> str:
        if not field_name.replace("_", "").isalnum():
            raise StorageError(f"Invalid field name: {field_name}")
        return f"$.{field_name}"

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema and unique indexes"""
        if table in self._tables:
            return
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    data TEXT NOT NULL
                )
            """)
            for field_name in UNIQUE_FIELDS.get(table, []):
                self._connection.execute(f"""
                    CREATE UNIQUE INDEX IF NOT EXISTS uq_{table}_{field_name}
                    ON {table}(json_extract(data, '{self._json_path(field_name)}'))
                """)
            if not self._in_transaction:
                self._connection.commit()
            self._tables.add(table)

    def _commit_unless_in_transaction(self) -> None:
        if not self._in_transaction:
            self._connection.commit()

    def _execute_write(self, table: str, sql: str, params: Sequence[Any]) -> sqlite3.Cursor:
        try:
            return self._connection.execute(sql, params)
        except sqlite3.IntegrityError as e:
            if not self._in_transaction:
                self._connection.rollback()
            for field_name in UNIQUE_FIELDS.get(table, []):
                if field_name in str(e) or f"uq_{table}_{field_name}" in str(e):
                    raise DuplicateRecordError(table, field_name) from e
            raise DuplicateRecordError(table, "unknown") from e
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    @staticmethod
    def _row_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
        data = json.loads(row['data'])
        data['id'] = row['id']
        return data

    def _where_clause(self, filters: Dict[str, Any]):
        conditions = []
        params: List[Any] = []
        for key, value in filters.items():
            if key == "id":
                conditions.append("id = ?")
            else:
                conditions.append(f"json_extract(data, '{self._json_path(key)}') = ?")
            if isinstance(value, bool):
                value = int(value)
            elif isinstance(value, Decimal):
                value = str(value)
            params.append(value)
        clause = " AND ".join(conditions) if conditions else "1 = 1"
        return clause, params

    def _order_clause(self, order_by: Sequence[str]) -> str:
        parts = []
        for ordering in order_by:
            direction = "DESC" if ordering.startswith("-") else "ASC"
            field_name = ordering.lstrip("-")
            column = "id" if field_name == "id" else f"json_extract(data, '{self._json_path(field_name)}')"
            parts.append(f"{column} {direction}")
        if not parts:
            parts.append("id ASC")
        return "ORDER BY " + ", ".join(parts)

    def insert(self, table: str, data: Dict[str, Any]) -> int:
        with self._lock:
            self._ensure_table(table)
            payload = {k: v for k, v in data.items() if k != 'id'}
            cursor = self._execute_write(
                table,
                f"INSERT INTO {table} (data) VALUES (?)",
                (json.dumps(payload, default=str),)
            )
            self._commit_unless_in_transaction()
            return cursor.lastrowid

    def load(self, table: str, record_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT id, data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return self._row_to_dict(row)
            return None

    def update(self, table: str, record_id: int, changes: Dict[str, Any]) -> bool:
        with self._lock:
            current = self.load(table, record_id)
            if current is None:
                return False
            current.update(json.loads(json.dumps(changes, default=str)))
            current.pop('id', None)
            self._execute_write(
                table,
                f"UPDATE {table} SET data = ? WHERE id = ?",
                (json.dumps(current, default=str), record_id)
            )
            self._commit_unless_in_transaction()
            return True

    def find(self, table: str, filters: Dict[str, Any],
             order_by: Sequence[str] = (), limit: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._lock:
            self._ensure_table(table)
            where, params = self._where_clause(filters)
            sql = f"SELECT id, data FROM {table} WHERE {where} {self._order_clause(order_by)}"
            if limit is not None:
                sql += " LIMIT ?"
                params.append(int(limit))
            cursor = self._connection.execute(sql, params)
            return [self._row_to_dict(row) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: int) -> bool:
        with self._lock:
            self._ensure_table(table)
            cursor = self._execute_write(table, f"DELETE FROM {table} WHERE id = ?", (record_id,))
            self._commit_unless_in_transaction()
            return cursor.rowcount > 0

    def delete_where(self, table: str, filters: Dict[str, Any]) -> int:
        with self._lock:
            self._ensure_table(table)
            where, params = self._where_clause(filters)
            cursor = self._execute_write(table, f"DELETE FROM {table} WHERE {where}", params)
            self._commit_unless_in_transaction()
            return cursor.rowcount

    def count(self, table: str) -> int:
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def clear_table(self, table: str) -> None:
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")
            self._commit_unless_in_transaction()

    def begin_transaction(self) -> None:
        """Start a database transaction"""
        with self._lock:
            if not self._in_transaction:
                # isolation_level='DEFERRED' opens the transaction on the first write
                self._in_transaction = True

    def commit(self) -> None:
        """Commit current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.commit()
                self._in_transaction = False

    def rollback(self) -> None:
        """Rollback current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.rollback()
                self._in_transaction = False

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None
