"""Persisted entities and the table contract the knowledge store honours.

Every entity declares its table name, its columns (which one is the primary
key, which are indexed for equality lookups and which single column, if any,
is the embedding target) and how it is written to and read back from a row.
Column values are a closed set of storage primitives so persistence code can
enumerate them.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Protocol, Sequence, TypeVar, Union

import orjson

from knowledge_ingest.core.errors import ConversionError
from knowledge_ingest.utils.time import as_utc, parse_timestamp


# Column values ------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TextValue:
    value: str


@dataclass(frozen=True, slots=True)
class IntegerValue:
    value: int


@dataclass(frozen=True, slots=True)
class TimestampValue:
    value: datetime


ColumnValue = Union[TextValue, IntegerValue, TimestampValue, None]


def to_sql(value: ColumnValue) -> str | int | None:
    """Lower a column value to the primitive sqlite3 binds."""
    if value is None:
        return None
    if isinstance(value, TextValue):
        return value.value
    if isinstance(value, IntegerValue):
        return value.value
    if isinstance(value, TimestampValue):
        return as_utc(value.value).isoformat()
    raise TypeError(f"Unsupported column value {value!r}")


def text(value: str | None) -> ColumnValue:
    return None if value is None else TextValue(value)


def timestamp(value: datetime | None) -> ColumnValue:
    return None if value is None else TimestampValue(value)


def json_text(value: Any | None) -> ColumnValue:
    if value is None:
        return None
    return TextValue(orjson.dumps(value).decode("utf-8"))


@dataclass(frozen=True, slots=True)
class Column:
    name: str
    sql_type: str
    primary_key: bool = False
    indexed: bool = False
    embedded: bool = False

    def ddl(self) -> str:
        suffix = " PRIMARY KEY" if self.primary_key else ""
        return f"{self.name} {self.sql_type}{suffix}"


# Closed enumerations ------------------------------------------------------


class _CanonicalEnum(Enum):
    """Enum persisted by its canonical string form."""

    def as_str(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str):
        for member in cls:
            if member.value == value:
                return member
        raise ConversionError(f"Invalid {cls.__name__}: {value!r}")

    def __str__(self) -> str:
        return self.value


class MessageSource(_CanonicalEnum):
    DISCORD = "discord"
    TELEGRAM = "telegram"
    TWITTER = "twitter"


class ChannelType(_CanonicalEnum):
    DIRECT_MESSAGE = "direct_message"
    TEXT = "text"
    VOICE = "voice"


E = TypeVar("E", bound=_CanonicalEnum)


# Row decoding helpers -----------------------------------------------------


def _row_timestamp(row: sqlite3.Row, column: str) -> datetime | None:
    try:
        return parse_timestamp(row[column])
    except ValueError as exc:
        raise ConversionError(f"Invalid timestamp in column {column}: {row[column]!r}") from exc


def _utc_fields(entity: Any, *names: str) -> None:
    """Store timestamps as aware UTC; naive values are taken to be UTC."""
    for name in names:
        value = getattr(entity, name)
        if value is not None:
            object.__setattr__(entity, name, as_utc(value))


def _row_enum(enum_type: type[E], row: sqlite3.Row, column: str) -> E:
    return enum_type.parse(row[column])


def _row_json(row: sqlite3.Row, column: str) -> Any | None:
    raw = row[column]
    if raw is None or raw == "":
        return None
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise ConversionError(f"Invalid JSON in column {column}") from exc


# Table contract -----------------------------------------------------------


T = TypeVar("T", bound="StoreTable")


class StoreTable(Protocol):
    table: ClassVar[str]
    columns: ClassVar[Sequence[Column]]

    @property
    def id(self) -> Any: ...

    def column_values(self) -> list[tuple[str, ColumnValue]]: ...

    @classmethod
    def from_row(cls: type[T], row: sqlite3.Row) -> T: ...


def embedding_column(table_type: type[StoreTable]) -> str | None:
    """Return the single embedded column of a table, if it has one."""
    embedded = [column.name for column in table_type.columns if column.embedded]
    if len(embedded) > 1:
        raise ValueError(f"{table_type.table} declares more than one embedding column")
    return embedded[0] if embedded else None


# Entities -----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Document:
    """The unit of ingestion."""

    id: str
    source_id: str
    content: str
    created_at: datetime | None = None
    metadata: Any | None = None

    table: ClassVar[str] = "documents"
    columns: ClassVar[Sequence[Column]] = (
        Column("id", "TEXT", primary_key=True),
        Column("source_id", "TEXT", indexed=True),
        Column("content", "TEXT", embedded=True),
        Column("created_at", "TIMESTAMP"),
        Column("metadata", "TEXT"),
    )

    def __post_init__(self) -> None:
        _utc_fields(self, "created_at")

    def column_values(self) -> list[tuple[str, ColumnValue]]:
        return [
            ("id", TextValue(self.id)),
            ("source_id", TextValue(self.source_id)),
            ("content", TextValue(self.content)),
            ("created_at", timestamp(self.created_at)),
            ("metadata", json_text(self.metadata)),
        ]

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Document":
        return cls(
            id=row["id"],
            source_id=row["source_id"],
            content=row["content"],
            created_at=_row_timestamp(row, "created_at"),
            metadata=_row_json(row, "metadata"),
        )


@dataclass(frozen=True, slots=True)
class Account:
    id: int
    source_id: str
    name: str
    source: MessageSource
    created_at: datetime | None = None
    updated_at: datetime | None = None

    table: ClassVar[str] = "accounts"
    columns: ClassVar[Sequence[Column]] = (
        Column("id", "INTEGER", primary_key=True),
        Column("source_id", "TEXT", indexed=True),
        Column("name", "TEXT"),
        Column("source", "TEXT"),
        Column("created_at", "TIMESTAMP"),
        Column("updated_at", "TIMESTAMP"),
    )

    def __post_init__(self) -> None:
        _utc_fields(self, "created_at", "updated_at")

    def column_values(self) -> list[tuple[str, ColumnValue]]:
        return [
            ("id", IntegerValue(self.id)),
            ("source_id", TextValue(self.source_id)),
            ("name", TextValue(self.name)),
            ("source", TextValue(self.source.as_str())),
            ("created_at", timestamp(self.created_at)),
            ("updated_at", timestamp(self.updated_at)),
        ]

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Account":
        return cls(
            id=row["id"],
            source_id=row["source_id"],
            name=row["name"],
            source=_row_enum(MessageSource, row, "source"),
            created_at=_row_timestamp(row, "created_at"),
            updated_at=_row_timestamp(row, "updated_at"),
        )


@dataclass(frozen=True, slots=True)
class Conversation:
    id: str
    user_id: str
    title: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    table: ClassVar[str] = "conversations"
    columns: ClassVar[Sequence[Column]] = (
        Column("id", "TEXT", primary_key=True),
        Column("user_id", "TEXT", indexed=True),
        Column("title", "TEXT"),
        Column("created_at", "TIMESTAMP"),
        Column("updated_at", "TIMESTAMP"),
    )

    def __post_init__(self) -> None:
        _utc_fields(self, "created_at", "updated_at")

    def column_values(self) -> list[tuple[str, ColumnValue]]:
        return [
            ("id", TextValue(self.id)),
            ("user_id", TextValue(self.user_id)),
            ("title", TextValue(self.title)),
            ("created_at", timestamp(self.created_at)),
            ("updated_at", timestamp(self.updated_at)),
        ]

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Conversation":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            created_at=_row_timestamp(row, "created_at"),
            updated_at=_row_timestamp(row, "updated_at"),
        )


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    source: MessageSource
    source_id: str
    channel_type: ChannelType
    channel_id: str
    account_id: str
    role: str
    content: str
    created_at: datetime | None = None

    table: ClassVar[str] = "messages"
    columns: ClassVar[Sequence[Column]] = (
        Column("id", "TEXT", primary_key=True),
        Column("source", "TEXT"),
        Column("source_id", "TEXT", indexed=True),
        Column("channel_type", "TEXT"),
        Column("channel_id", "TEXT", indexed=True),
        Column("account_id", "TEXT", indexed=True),
        Column("role", "TEXT"),
        Column("content", "TEXT", embedded=True),
        Column("created_at", "TIMESTAMP"),
    )

    def __post_init__(self) -> None:
        _utc_fields(self, "created_at")

    def column_values(self) -> list[tuple[str, ColumnValue]]:
        return [
            ("id", TextValue(self.id)),
            ("source", TextValue(self.source.as_str())),
            ("source_id", TextValue(self.source_id)),
            ("channel_type", TextValue(self.channel_type.as_str())),
            ("channel_id", TextValue(self.channel_id)),
            ("account_id", TextValue(self.account_id)),
            ("role", TextValue(self.role)),
            ("content", TextValue(self.content)),
            ("created_at", timestamp(self.created_at)),
        ]

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Message":
        return cls(
            id=row["id"],
            source=_row_enum(MessageSource, row, "source"),
            source_id=row["source_id"],
            channel_type=_row_enum(ChannelType, row, "channel_type"),
            channel_id=row["channel_id"],
            account_id=row["account_id"],
            role=row["role"],
            content=row["content"],
            created_at=_row_timestamp(row, "created_at"),
        )


@dataclass(frozen=True, slots=True)
class Channel:
    id: str
    channel_id: str
    channel_type: ChannelType
    source: MessageSource
    name: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    table: ClassVar[str] = "channels"
    columns: ClassVar[Sequence[Column]] = (
        Column("id", "TEXT", primary_key=True),
        Column("channel_id", "TEXT", indexed=True),
        Column("channel_type", "TEXT"),
        Column("source", "TEXT"),
        Column("name", "TEXT"),
        Column("created_at", "TIMESTAMP"),
        Column("updated_at", "TIMESTAMP"),
    )

    def __post_init__(self) -> None:
        _utc_fields(self, "created_at", "updated_at")

    def column_values(self) -> list[tuple[str, ColumnValue]]:
        return [
            ("id", TextValue(self.id)),
            ("channel_id", TextValue(self.channel_id)),
            ("channel_type", TextValue(self.channel_type.as_str())),
            ("source", TextValue(self.source.as_str())),
            ("name", TextValue(self.name)),
            ("created_at", timestamp(self.created_at)),
            ("updated_at", timestamp(self.updated_at)),
        ]

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Channel":
        return cls(
            id=row["id"],
            channel_id=row["channel_id"],
            channel_type=_row_enum(ChannelType, row, "channel_type"),
            source=_row_enum(MessageSource, row, "source"),
            name=row["name"],
            created_at=_row_timestamp(row, "created_at"),
            updated_at=_row_timestamp(row, "updated_at"),
        )


TABLES: tuple[type[StoreTable], ...] = (Document, Account, Conversation, Message, Channel)


__all__ = [
    "TextValue",
    "IntegerValue",
    "TimestampValue",
    "ColumnValue",
    "Column",
    "to_sql",
    "MessageSource",
    "ChannelType",
    "StoreTable",
    "embedding_column",
    "Document",
    "Account",
    "Conversation",
    "Message",
    "Channel",
    "TABLES",
]
