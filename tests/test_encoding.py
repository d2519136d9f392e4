"""Tests for column encoding classification and the caching resolver."""

from __future__ import annotations

import pytest
from sqlalchemy import JSON, String, Text, text
from sqlalchemy.dialects import postgresql

from trailkeep.core.errors import ColumnNotFoundError
from trailkeep.services.encoding import ColumnEncoding, ColumnEncodingResolver, classify


class TestClassify:
    @pytest.mark.parametrize("column_type,expected", [
        (postgresql.JSONB(), ColumnEncoding.JSONB),
        (postgresql.JSON(), ColumnEncoding.JSON),
        (JSON(), ColumnEncoding.JSON),
        (Text(), ColumnEncoding.TEXT),
        (String(255), ColumnEncoding.TEXT),
    ])
    def test_classify(self, column_type, expected):
        assert classify(column_type) is expected

    def test_structured_flag(self):
        assert not ColumnEncoding.TEXT.is_structured
        assert ColumnEncoding.JSON.is_structured
        assert ColumnEncoding.JSONB.is_structured


@pytest.mark.requires_db
class TestResolver:
    @pytest.mark.asyncio
    async def test_declared_columns_are_text(self, db_session):
        resolver = ColumnEncodingResolver()
        assert await resolver.resolve(db_session, "history_records", "snapshot") is ColumnEncoding.TEXT
        assert await resolver.resolve(db_session, "history_records", "changes") is ColumnEncoding.TEXT

    @pytest.mark.asyncio
    async def test_cache_holds_until_reset(self, db_session):
        resolver = ColumnEncodingResolver()
        assert await resolver.resolve(db_session, "history_records", "changes") is ColumnEncoding.TEXT

        await db_session.execute(text(
            "ALTER TABLE history_records ALTER COLUMN changes TYPE jsonb USING changes::jsonb"
        ))
        assert await resolver.resolve(db_session, "history_records", "changes") is ColumnEncoding.TEXT

        resolver.reset()
        assert await resolver.resolve(db_session, "history_records", "changes") is ColumnEncoding.JSONB

    @pytest.mark.asyncio
    async def test_json_column(self, db_session):
        await db_session.execute(text(
            "ALTER TABLE history_records ALTER COLUMN snapshot TYPE json USING snapshot::json"
        ))
        resolver = ColumnEncodingResolver()
        assert await resolver.resolve(db_session, "history_records", "snapshot") is ColumnEncoding.JSON

    @pytest.mark.asyncio
    async def test_unknown_column(self, db_session):
        with pytest.raises(ColumnNotFoundError):
            await ColumnEncodingResolver().resolve(db_session, "history_records", "object")
