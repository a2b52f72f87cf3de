"""
Database engine initialisation and the SQL-backed document store.

Each record lives as one JSON document in a ``documents`` table keyed by
(collection, key), which gives the same path model as the hosted store:
``farmers`` is the collection subtree, ``farmers/<id>`` one record.
"""

import asyncio
import copy
import sys
import threading
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import (
    JSON,
    Column,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    insert,
    select,
    text,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from fieldops.config import DB_URI
from fieldops.store import RemoteStore, StoreError, split_path

metadata = MetaData()

documents = Table(
    "documents",
    metadata,
    Column("collection", String(128), primary_key=True),
    Column("key", String(128), primary_key=True),
    Column("doc", JSON, nullable=False),
)


def make_engine(db_uri: str):
    """SQLAlchemy engine; in-memory SQLite shares one connection across threads."""
    if db_uri in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            db_uri,
            future=True,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_engine(db_uri, echo=False, future=True)


def init_engine(db_uri: Optional[str] = None):
    """Create a SQLAlchemy engine and verify the connection."""
    engine = make_engine(db_uri or DB_URI)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


class SqlStore(RemoteStore):
    """RemoteStore over a relational database, one JSON document per record."""

    def __init__(self, engine):
        self.engine = engine
        self._lock = threading.Lock()
        metadata.create_all(engine)

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(self._locked, fn, *args)
        except SQLAlchemyError as e:
            raise StoreError(f"database error: {e}") from e

    def _locked(self, fn, *args):
        with self._lock:
            return fn(*args)

    # ── sync helpers (run in a worker thread) ──

    def _children(self, conn, collection: str) -> Dict[str, Any]:
        rows = conn.execute(
            select(documents.c.key, documents.c.doc).where(documents.c.collection == collection)
        )
        return {row.key: row.doc for row in rows}

    def _get(self, conn, collection: str, key: str) -> Any:
        return conn.execute(
            select(documents.c.doc).where(
                documents.c.collection == collection, documents.c.key == key
            )
        ).scalar()

    def _put(self, conn, collection: str, key: str, doc: Any) -> None:
        conn.execute(
            delete(documents).where(documents.c.collection == collection, documents.c.key == key)
        )
        if doc is not None:
            conn.execute(insert(documents).values(collection=collection, key=key, doc=doc))

    def _read_sync(self, path: str) -> Any:
        parts = split_path(path)
        with self.engine.connect() as conn:
            if len(parts) == 1:
                return self._children(conn, parts[0]) or None
            value = self._get(conn, parts[0], parts[1])
        for part in parts[2:]:
            if not isinstance(value, dict):
                return None
            value = value.get(part)
        return value

    def _read_where_sync(self, path: str, field: str, value: Any) -> Dict[str, Any]:
        parts = split_path(path)
        if len(parts) != 1:
            raise StoreError(f"Equality queries are only supported on collections, not '{path}'")
        with self.engine.connect() as conn:
            children = self._children(conn, parts[0])
        return {
            key: doc for key, doc in children.items()
            if isinstance(doc, dict) and doc.get(field) == value
        }

    def _write_sync(self, path: str, value: Any) -> None:
        parts = split_path(path)
        with self.engine.begin() as conn:
            if len(parts) == 1:
                conn.execute(delete(documents).where(documents.c.collection == parts[0]))
                for key, doc in (value or {}).items():
                    self._put(conn, parts[0], str(key), doc)
            elif len(parts) == 2:
                self._put(conn, parts[0], parts[1], value)
            else:
                doc = copy.deepcopy(self._get(conn, parts[0], parts[1])) or {}
                node = doc
                for part in parts[2:-1]:
                    node = node.setdefault(part, {})
                if value is None:
                    node.pop(parts[-1], None)
                else:
                    node[parts[-1]] = value
                self._put(conn, parts[0], parts[1], doc)

    def _update_sync(self, path: str, values: Dict[str, Any]) -> None:
        parts = split_path(path)
        with self.engine.begin() as conn:
            if len(parts) == 1:
                for key, doc in values.items():
                    self._put(conn, parts[0], str(key), doc)
                return
            if len(parts) > 2:
                raise StoreError(f"Updates below a record are not supported: '{path}'")
            doc = copy.deepcopy(self._get(conn, parts[0], parts[1])) or {}
            for key, val in values.items():
                if val is None:
                    doc.pop(key, None)
                else:
                    doc[key] = val
            self._put(conn, parts[0], parts[1], doc)

    def _delete_sync(self, path: str) -> None:
        parts = split_path(path)
        if len(parts) > 2:
            self._write_sync(path, None)
            return
        stmt = delete(documents).where(documents.c.collection == parts[0])
        if len(parts) == 2:
            stmt = stmt.where(documents.c.key == parts[1])
        with self.engine.begin() as conn:
            conn.execute(stmt)

    # ── RemoteStore ──

    async def read(self, path: str) -> Any:
        return await self._run(self._read_sync, path)

    async def read_where(self, path: str, field: str, value: Any) -> Dict[str, Any]:
        return await self._run(self._read_where_sync, path, field, value)

    async def write(self, path: str, value: Any) -> None:
        await self._run(self._write_sync, path, value)

    async def update(self, path: str, values: Dict[str, Any]) -> None:
        await self._run(self._update_sync, path, values)

    async def delete(self, path: str) -> None:
        await self._run(self._delete_sync, path)

    async def push(self, path: str, value: Any) -> str:
        if len(split_path(path)) != 1:
            raise StoreError(f"Generated keys are only supported on collections, not '{path}'")
        key = uuid.uuid4().hex
        await self._run(self._write_sync, f"{path}/{key}", value)
        return key
