"""SQLite database client wrapper with CRUD and bulk operations."""

import asyncio
import json
import logging
import re
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, NoReturn

import aiosqlite

from src.core.config import settings
from src.core.errors import NotFoundError, PersistenceError


logger = logging.getLogger(__name__)

FilterParam = str | None


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def now_iso() -> str:
    """Current UTC timestamp in the format stored on records."""
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _convert_record_ids(record: dict[str, Any]) -> dict[str, Any]:
    """Convert integer ID and foreign key fields to strings for Pydantic compatibility."""
    converted = record.copy()
    for key, value in converted.items():
        if isinstance(value, int) and not isinstance(value, bool) and (key == "id" or key.endswith("_id")):
            converted[key] = str(value)
    return converted


def _to_sql_value(value: Any) -> Any:
    """Serialize a Python value into something SQLite can store."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, set | frozenset):
        return json.dumps(sorted(value))
    if isinstance(value, dict | list | tuple):
        return json.dumps(value)
    return value


def _row_to_record(cursor: aiosqlite.Cursor, row: Any) -> dict[str, Any]:
    columns = [description[0] for description in cursor.description]
    return _convert_record_ids(dict(zip(columns, row, strict=True)))


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(token: str, *, is_like: bool = False) -> FilterParam:
    """Decode a quoted filter token into the string it stands for.

    Double-quoted tokens use JSON escapes (what sanitize_param produces).
    Values are never coerced to numbers or booleans.
    """
    if token.startswith('"'):
        try:
            value = json.loads(token)
        except json.JSONDecodeError as e:
            msg = f"Invalid filter value: {token}"
            raise ValueError(msg) from e
    else:
        value = token[1:-1]

    if is_like:
        escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"
    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


_COMPARISON_RE = re.compile(r"""^(\w+)\s*(!=|>=|<=|=|>|<|~)\s*("(?:[^"\\]|\\.)*"|'[^']*'|null)$""", re.DOTALL)


def _parse_single_comparison(comparison: str) -> tuple[str, list[FilterParam]]:
    """Parse a single comparison expression into a SQL condition and its parameters.

    A bare ``null`` value compares against SQL NULL (``=`` and ``!=`` only).
    """
    match = _COMPARISON_RE.match(comparison.strip())
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field, op, token = match.groups()

    if token == "null":
        if op == "=":
            return f"{field} IS NULL", []
        if op == "!=":
            return f"{field} IS NOT NULL", []
        msg = f"Operator {op} cannot be used with null: {comparison}"
        raise ValueError(msg)

    sql_op = _get_sql_operator(op)
    is_like = sql_op == "LIKE"
    value = _parse_value(token, is_like=is_like)

    if is_like:
        return f"{field} LIKE ? ESCAPE '\\'", [value]
    return f"{field} {sql_op} ?", [value]


def _split_outside_quotes(expression: str, separator: str) -> list[str]:
    """Split on a separator that is outside quoted values and parenthesized groups."""
    parts = []
    current = ""
    paren_depth = 0
    quote: str | None = None
    i = 0

    while i < len(expression):
        char = expression[i]
        if quote:
            current += char
            if char == "\\" and quote == '"' and i + 1 < len(expression):
                current += expression[i + 1]
                i += 2
                continue
            if char == quote:
                quote = None
            i += 1
            continue

        if char in "'\"":
            quote = char
        elif char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1
        elif paren_depth == 0 and expression.startswith(separator, i):
            parts.append(current.strip())
            current = ""
            i += len(separator)
            continue

        current += char
        i += 1

    if quote or paren_depth != 0:
        msg = f"Invalid filter syntax: {expression}"
        raise ValueError(msg)
    if current.strip():
        parts.append(current.strip())
    return parts


def _parse_or_group(or_group: str) -> tuple[str, list[FilterParam]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]  # Remove parentheses
    or_conditions = []
    or_params: list[FilterParam] = []

    for part in _split_outside_quotes(inner, "||"):
        cond, values = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.extend(values)

    return f"({' OR '.join(or_conditions)})", or_params


def parse_filter(filter_query: str) -> tuple[str, list[FilterParam]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list.

    ``&&`` and ``||`` only separate conditions outside quoted values, so any
    string passed through sanitize_param can be compared safely.
    """
    if not filter_query:
        return "", []

    parts = _split_outside_quotes(filter_query, "&&")
    conditions = []
    params: list[FilterParam] = []

    for part in parts:
        # Handle parenthesized OR groups
        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
        else:
            cond, cond_params = _parse_single_comparison(part)
        conditions.append(cond)
        params.extend(cond_params)

    return " AND ".join(conditions), params


def parse_sort(sort: str) -> str:
    """Translate a ``-field,+other`` sort string into an ORDER BY clause.

    Invalid fields fall back to ``id ASC``.
    """
    clauses = []
    for raw in sort.split(","):
        item = raw.strip()
        if not item:
            continue
        direction = "DESC" if item.startswith("-") else "ASC"
        field = item.lstrip("+-")
        if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*$", field):
            logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
            return "id ASC"
        clauses.append(f"{field} {direction}")
    return ", ".join(clauses) or "id ASC"


ConnectionKey = tuple[int, int, str]

_db_connections: dict[ConnectionKey, aiosqlite.Connection] = {}
_write_locks: dict[ConnectionKey, asyncio.Lock] = {}
_db_lock = asyncio.Lock()


def _connection_key(db_path: str | None = None) -> ConnectionKey:
    return (threading.get_ident(), id(asyncio.get_running_loop()), str(get_db_path(db_path)))


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    cache_key = _connection_key(db_path)
    thread_id, loop_id, path = cache_key

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        Path(path).parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(path)
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn
        _write_locks[cache_key] = asyncio.Lock()

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": path, "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    cache_key = _connection_key(db_path)
    path = cache_key[2]

    _write_locks.pop(cache_key, None)
    conn = _db_connections.pop(cache_key, None)
    if conn is None:
        return

    try:
        await conn.close()
        logger.info("Closed SQLite connection", extra={"db_path": path})
    except Exception as e:
        logger.warning("Error closing SQLite connection", extra={"error": str(e), "db_path": path})


@asynccontextmanager
async def _transaction(*, db_path: str | None = None) -> AsyncIterator[aiosqlite.Connection]:
    """Run one unit of work on the shared connection, then commit it.

    Requests share a single connection, so every unit of work holds the
    connection's lock until it has committed or rolled back. Another request's
    commit can never land in the middle of a bulk insert.
    """
    conn = await get_connection(db_path=db_path)
    lock = _write_locks.setdefault(_connection_key(db_path), asyncio.Lock())

    async with lock:
        try:
            yield conn
        except BaseException:
            await conn.rollback()
            raise
        await conn.commit()


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from src.core import schema

    await schema.init_db(db_path=db_path)


def _raise_persistence_error(*, operation: str, collection: str, error: Exception) -> NoReturn:
    if isinstance(error, aiosqlite.OperationalError) and "no such table" in str(error):
        msg = f"Table '{collection}' does not exist. Call init_db() first."
        logger.error("Table not found", extra={"collection": collection})
        raise PersistenceError(msg) from error
    logger.error(f"{operation}_failed", extra={"collection": collection, "error": str(error)})
    msg = f"Failed to {operation.replace('_', ' ')} in {collection}: {error}"
    raise PersistenceError(msg) from error


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id."""
    records = await create_records(collection=collection, records=[data])
    return records[0]


async def create_records(*, collection: str, records: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Insert several records in a single transaction.

    Either every record is written or none is.
    """
    if not records:
        return []

    _validate_collection_name(collection)
    record_ids: list[int] = []

    try:
        async with _transaction() as conn:
            for data in records:
                columns = list(data.keys())
                for column in columns:
                    _validate_collection_name(column)
                columns_str = ", ".join(columns)
                placeholders_str = ", ".join("?" for _ in columns)
                values = [_to_sql_value(data[key]) for key in columns]

                query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - names are validated
                cursor = await conn.execute(query, values)
                record_ids.append(cursor.lastrowid)

            placeholders = ", ".join("?" for _ in record_ids)
            query = f"SELECT * FROM {collection} WHERE id IN ({placeholders}) ORDER BY id ASC"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, record_ids)
            rows = await cursor.fetchall()
    except Exception as e:
        _raise_persistence_error(operation="create_records", collection=collection, error=e)

    created = [_row_to_record(cursor, row) for row in rows]
    logger.info("Created records", extra={"collection": collection, "count": len(created)})
    return created


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising NotFoundError if not found."""
    if not str(record_id).isdigit():
        msg = f"Record not found in {collection}: {record_id}"
        raise NotFoundError(msg)

    try:
        _validate_collection_name(collection)
        async with _transaction() as conn:
            query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, (int(record_id),))
            row = await cursor.fetchone()
    except Exception as e:
        _raise_persistence_error(operation="get_record", collection=collection, error=e)

    if row is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise NotFoundError(msg)

    logger.info("Retrieved record", extra={"collection": collection, "record_id": record_id})
    return _row_to_record(cursor, row)


def _build_set_clause(data: dict[str, Any]) -> tuple[str, list[Any]]:
    payload = {**data, "updated": data.get("updated", now_iso())}
    for key in payload:
        _validate_collection_name(key)
    set_clause = ", ".join(f"{key} = ?" for key in payload)
    return set_clause, [_to_sql_value(value) for value in payload.values()]


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Update a record by ID and return the updated record."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    if not str(record_id).isdigit():
        msg = f"Record not found in {collection}: {record_id}"
        raise NotFoundError(msg)

    try:
        _validate_collection_name(collection)
        set_clause, values = _build_set_clause(data)
        values.append(int(record_id))

        async with _transaction() as conn:
            query = f"UPDATE {collection} SET {set_clause} WHERE id = ?"  # noqa: S608 - names are validated
            cursor = await conn.execute(query, values)
    except Exception as e:
        _raise_persistence_error(operation="update_record", collection=collection, error=e)

    if cursor.rowcount == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise NotFoundError(msg)

    logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
    return await get_record(collection=collection, record_id=record_id)


async def update_records(*, collection: str, filter_query: str, data: dict[str, Any]) -> int:
    """Apply the same patch to every record matching the filter and return how many changed."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)
    if not filter_query:
        msg = "Bulk update requires a filter"
        raise ValueError(msg)

    _validate_collection_name(collection)
    where_clause, params = parse_filter(filter_query)
    set_clause, values = _build_set_clause(data)

    try:
        async with _transaction() as conn:
            query = f"UPDATE {collection} SET {set_clause} WHERE {where_clause}"  # noqa: S608 - names are validated
            cursor = await conn.execute(query, [*values, *params])
    except Exception as e:
        _raise_persistence_error(operation="update_records", collection=collection, error=e)

    logger.info("Updated records", extra={"collection": collection, "count": cursor.rowcount})
    return cursor.rowcount


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising NotFoundError if not found."""
    if not str(record_id).isdigit():
        msg = f"Record not found in {collection}: {record_id}"
        raise NotFoundError(msg)

    try:
        _validate_collection_name(collection)
        async with _transaction() as conn:
            query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, (int(record_id),))
    except Exception as e:
        _raise_persistence_error(operation="delete_record", collection=collection, error=e)

    if cursor.rowcount == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise NotFoundError(msg)

    logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})


async def delete_records(*, collection: str, filter_query: str) -> int:
    """Delete every record matching the filter and return how many were removed."""
    if not filter_query:
        msg = "Bulk delete requires a filter"
        raise ValueError(msg)

    _validate_collection_name(collection)
    where_clause, params = parse_filter(filter_query)

    try:
        async with _transaction() as conn:
            query = f"DELETE FROM {collection} WHERE {where_clause}"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, params)
    except Exception as e:
        _raise_persistence_error(operation="delete_records", collection=collection, error=e)

    logger.info("Deleted records", extra={"collection": collection, "count": cursor.rowcount})
    return cursor.rowcount


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination."""
    _validate_collection_name(collection)

    where_clause = ""
    params: list[Any] = []
    if filter_query:
        where_clause, params = parse_filter(filter_query)
        where_clause = f"WHERE {where_clause}"

    order_by = parse_sort(sort) if sort else "id ASC"
    offset = (page - 1) * per_page

    query = f"SELECT * FROM {collection} {where_clause} ORDER BY {order_by} LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
    params.extend([per_page, offset])

    try:
        async with _transaction() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
    except Exception as e:
        _raise_persistence_error(operation="list_records", collection=collection, error=e)

    records = [_row_to_record(cursor, row) for row in rows]
    logger.info("Listed records", extra={"collection": collection, "count": len(records)})
    return records


async def get_first_record(*, collection: str, filter_query: str) -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    records = await list_records(collection=collection, filter_query=filter_query, per_page=1)
    return records[0] if records else None
