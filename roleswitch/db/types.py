"""Cross-database compatible SQLAlchemy types.

These TypeDecorators enable models to work with both PostgreSQL (production)
and SQLite (local default and tests) by using native types where available
and JSON fallback.
"""

import json
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Text
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine.interfaces import Dialect
from sqlalchemy.types import TypeDecorator, TypeEngine

from roleswitch.core.datetime_utils import ensure_utc, to_utc_naive


class UTCDateTime(TypeDecorator[datetime]):
    """Timestamp stored as naive UTC and loaded as timezone-aware UTC.

    SQLite drops tzinfo, so values are normalized on the way in and
    re-labelled on the way out.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> Any:
        return to_utc_naive(value)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        return ensure_utc(value)


class JSONType(TypeDecorator[Any]):
    """JSON type that works with PostgreSQL JSONB and SQLite TEXT.

    - PostgreSQL: Uses native JSONB with indexing support
    - SQLite: Stores as JSON text string
    """

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.JSONB())
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        # SQLite: serialize to JSON string
        return json.dumps(value, default=str)

    def process_result_value(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        # SQLite: parse JSON string
        if isinstance(value, str):
            return json.loads(value)
        return value


class StringArray(TypeDecorator[list[str]]):
    """Array of strings that works with PostgreSQL ARRAY and SQLite TEXT.

    - PostgreSQL: Uses native ARRAY(Text) type
    - SQLite: Stores as JSON array string
    """

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect) -> TypeEngine[Any]:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(postgresql.ARRAY(Text))
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value: list[str] | None, dialect: Dialect) -> Any:
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        # SQLite: serialize to JSON string
        return json.dumps(value)

    def process_result_value(self, value: Any, dialect: Dialect) -> list[str] | None:
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        # SQLite: parse JSON string
        if isinstance(value, str):
            return json.loads(value)
        return value
