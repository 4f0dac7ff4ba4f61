"""SQLite-backed knowledge store: the sink ingested records flow into."""

from __future__ import annotations

import sqlite3
from typing import Iterable, Sequence, TypeVar

from knowledge_ingest.core.errors import StorageError
from knowledge_ingest.core.logging import get_logger
from knowledge_ingest.core.metrics import STORED_DOCUMENTS
from knowledge_ingest.db.sqlite import SQLiteDatabase
from knowledge_ingest.knowledge.embeddings import EmbeddingModel
from knowledge_ingest.knowledge.models import (
    TABLES,
    Account,
    Channel,
    Conversation,
    Document,
    Message,
    StoreTable,
    embedding_column,
    to_sql,
)
from knowledge_ingest.utils.time import now_ms

logger = get_logger(__name__)

T = TypeVar("T", bound=StoreTable)


def schema_statements(tables: Sequence[type[StoreTable]] = TABLES) -> list[str]:
    """Build the DDL for every table, its indexes and its embedding table."""
    statements: list[str] = []
    for table_type in tables:
        name = table_type.table
        columns = ", ".join(column.ddl() for column in table_type.columns)
        statements.append(f"CREATE TABLE IF NOT EXISTS {name} ({columns})")
        for column in table_type.columns:
            if column.indexed:
                statements.append(
                    f"CREATE INDEX IF NOT EXISTS idx_{name}_{column.name} ON {name} ({column.name})"
                )
        if embedding_column(table_type) is not None:
            key_type = next(c.sql_type for c in table_type.columns if c.primary_key)
            statements.append(
                f"""
                CREATE TABLE IF NOT EXISTS {name}_embeddings (
                  id {key_type} PRIMARY KEY REFERENCES {name}(id) ON DELETE CASCADE,
                  model TEXT NOT NULL,
                  dim INTEGER NOT NULL,
                  vector BLOB NOT NULL,
                  created_at INTEGER NOT NULL
                )
                """
            )
    return statements


def _upsert_sql(table_type: type[StoreTable]) -> str:
    names = [column.name for column in table_type.columns]
    placeholders = ", ".join("?" for _ in names)
    updates = ", ".join(f"{name} = excluded.{name}" for name in names if name != "id")
    return (
        f"INSERT INTO {table_type.table} ({', '.join(names)}) VALUES ({placeholders}) "
        f"ON CONFLICT(id) DO UPDATE SET {updates}"
    )


class KnowledgeStore:
    """Persist entities and their embeddings with upsert semantics.

    Writing an entity whose ``id`` already exists replaces every stored column
    and its embedding, so re-ingesting a source never duplicates rows.
    """

    def __init__(self, database: SQLiteDatabase, embedding_model: EmbeddingModel) -> None:
        self.db = database
        self.embedding_model = embedding_model
        self.db.ensure_schema(schema_statements())

    # Sinks ------------------------------------------------------------

    def add_documents(self, documents: Iterable[Document]) -> int:
        written = self._upsert(Document, documents)
        self._update_document_metric()
        return written

    def add_messages(self, messages: Iterable[Message]) -> int:
        return self._upsert(Message, messages)

    def add_channels(self, channels: Iterable[Channel]) -> int:
        return self._upsert(Channel, channels)

    def add_accounts(self, accounts: Iterable[Account]) -> int:
        return self._upsert(Account, accounts)

    def add_conversations(self, conversations: Iterable[Conversation]) -> int:
        return self._upsert(Conversation, conversations)

    # Reads ------------------------------------------------------------

    def get_document(self, document_id: str) -> Document | None:
        return self._get(Document, document_id)

    def documents_for_source(self, source_id: str) -> list[Document]:
        return self._select(Document, "source_id = ?", [source_id])

    def get_message(self, message_id: str) -> Message | None:
        return self._get(Message, message_id)

    def messages_for_channel(self, channel_id: str) -> list[Message]:
        return self._select(Message, "channel_id = ?", [channel_id])

    def get_channel(self, channel_id: str) -> Channel | None:
        return self._get(Channel, channel_id)

    def get_account(self, account_id: int) -> Account | None:
        return self._get(Account, account_id)

    def get_conversation(self, conversation_id: str) -> Conversation | None:
        return self._get(Conversation, conversation_id)

    def get_embedding(self, table_type: type[StoreTable], row_id: object) -> list[float] | None:
        row = self._fetchone(f"SELECT vector FROM {table_type.table}_embeddings WHERE id = ?", [row_id])
        return None if row is None else EmbeddingModel.from_bytes(row["vector"])

    def count(self, table_type: type[StoreTable]) -> int:
        row = self._fetchone(f"SELECT COUNT(*) AS count FROM {table_type.table}", [])
        return int(row["count"]) if row else 0

    # Deletes ----------------------------------------------------------

    def delete_source(self, source_id: str) -> int:
        """Remove every document grouped under ``source_id``."""
        try:
            with self.db.transaction() as cursor:
                cursor.execute("DELETE FROM documents WHERE source_id = ?", [source_id])
                deleted = cursor.rowcount
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to delete documents for {source_id}") from exc
        logger.info("Deleted %s documents for %s", deleted, source_id)
        self._update_document_metric()
        return deleted

    # Internal helpers -------------------------------------------------

    def _upsert(self, table_type: type[T], entities: Iterable[T]) -> int:
        items = list(entities)
        if not items:
            return 0
        rows = [[to_sql(value) for _, value in entity.column_values()] for entity in items]
        target = embedding_column(table_type)
        vectors: list[list[float]] = []
        if target is not None:
            texts = [dict(entity.column_values())[target].value for entity in items]
            vectors = self.embedding_model.encode(texts).vectors
        now = now_ms()
        try:
            with self.db.transaction() as cursor:
                cursor.executemany(_upsert_sql(table_type), rows)
                if target is not None:
                    cursor.executemany(
                        f"""
                        INSERT INTO {table_type.table}_embeddings (id, model, dim, vector, created_at)
                        VALUES (?, ?, ?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET
                          model = excluded.model, dim = excluded.dim,
                          vector = excluded.vector, created_at = excluded.created_at
                        """,
                        [
                            (
                                entity.id,
                                self.embedding_model.model_name,
                                self.embedding_model.dim,
                                self.embedding_model.as_bytes(vector),
                                now,
                            )
                            for entity, vector in zip(items, vectors)
                        ],
                    )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to write {len(items)} rows to {table_type.table}") from exc
        logger.debug("Upserted %s rows into %s", len(items), table_type.table)
        return len(items)

    def _get(self, table_type: type[T], row_id: object) -> T | None:
        rows = self._select(table_type, "id = ?", [row_id])
        return rows[0] if rows else None

    def _select(self, table_type: type[T], where: str, params: Sequence[object]) -> list[T]:
        names = ", ".join(column.name for column in table_type.columns)
        try:
            rows = self.db.query(
                f"SELECT {names} FROM {table_type.table} WHERE {where} ORDER BY rowid",
                list(params),
            )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to read from {table_type.table}") from exc
        return [table_type.from_row(row) for row in rows]

    def _fetchone(self, sql: str, params: Sequence[object]) -> sqlite3.Row | None:
        try:
            return self.db.execute(sql, list(params)).fetchone()
        except sqlite3.Error as exc:
            raise StorageError("Failed to read from the knowledge store") from exc

    def _update_document_metric(self) -> None:
        STORED_DOCUMENTS.set(self.count(Document))


__all__ = ["KnowledgeStore", "schema_statements"]
